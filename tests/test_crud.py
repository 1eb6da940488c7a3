"""Tests for idempotent creation and the list query"""
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from walletwise import crud
from walletwise.errors import DuplicateIdempotencyKey, StorageError
from walletwise.models import Expense

from conftest import make_intent


class LosesRaceStore:
    """Wraps a real store so the first lookup misses a record a concurrent
    caller has just inserted."""

    def __init__(self, store, racer_intent):
        self.store = store
        self.racer_intent = racer_intent
        self.lookups = 0

    def find_by_idempotency_key(self, key):
        self.lookups += 1
        if self.lookups == 1:
            self.store.insert(key, self.racer_intent)
            return None
        return self.store.find_by_idempotency_key(key)

    def insert(self, key, intent):
        return self.store.insert(key, intent)


class ScriptedStore:
    """Store double returning canned results."""

    def __init__(self, found=None, insert_error=None):
        self.found = list(found or [])
        self.insert_error = insert_error
        self.inserts = 0

    def find_by_idempotency_key(self, key):
        return self.found.pop(0) if self.found else None

    def insert(self, key, intent):
        self.inserts += 1
        raise self.insert_error


class TestCreateExpense:

    def test_creates_new_record(self, store, intent):
        expense, was_created = crud.create_expense(store, intent, "key-1")
        assert was_created is True
        assert expense.idempotency_key == "key-1"
        assert expense.amount_minor == 1230

    def test_sequential_retries_return_same_record(self, store, intent):
        results = [crud.create_expense(store, intent, "key-1") for _ in range(5)]
        ids = {expense.id for expense, _ in results}
        assert len(ids) == 1
        assert [created for _, created in results] == [True, False, False, False, False]
        assert len(store.query()) == 1

    def test_different_keys_create_distinct_records(self, store):
        first, _ = crud.create_expense(store, make_intent(amount_minor=100), "key-1")
        second, _ = crud.create_expense(store, make_intent(amount_minor=200, category="Travel"), "key-2")
        assert first.id != second.id
        assert len(store.query()) == 2

    def test_same_key_different_payload_returns_first(self, store):
        first, _ = crud.create_expense(store, make_intent(amount_minor=100), "key-1")
        again, was_created = crud.create_expense(store, make_intent(amount_minor=999), "key-1")
        assert was_created is False
        assert again.id == first.id
        assert again.amount_minor == 100

    def test_lost_race_returns_winner(self, store, intent):
        racing = LosesRaceStore(store, racer_intent=intent)
        expense, was_created = crud.create_expense(racing, intent, "key-1")
        assert was_created is False
        assert expense.id == store.find_by_idempotency_key("key-1").id
        assert len(store.query()) == 1

    def test_duplicate_without_record_is_storage_error(self, intent):
        double = ScriptedStore(insert_error=DuplicateIdempotencyKey("key-1"))
        with pytest.raises(StorageError):
            crud.create_expense(double, intent, "key-1")

    def test_storage_error_propagates(self, intent):
        double = ScriptedStore(insert_error=StorageError("disk full"))
        with pytest.raises(StorageError):
            crud.create_expense(double, intent, "key-1")

    def test_existing_record_skips_insert(self, intent):
        existing = SimpleNamespace(id=7)
        double = ScriptedStore(found=[existing], insert_error=AssertionError("insert called"))
        expense, was_created = crud.create_expense(double, intent, "key-1")
        assert expense is existing
        assert was_created is False
        assert double.inserts == 0

    def test_concurrent_creates_store_one_record(self, store, intent):
        workers = 8
        barrier = threading.Barrier(workers)

        def submit(_):
            barrier.wait()
            return crud.create_expense(store, intent, "key-race")

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(submit, range(workers)))

        ids = {expense.id for expense, _ in results}
        assert len(ids) == 1
        assert sum(1 for _, created in results if created) == 1
        assert len(store.query()) == 1


class TestGetExpenses:

    def test_empty_store(self, store):
        assert crud.get_expenses(store) == []

    def test_filter_by_category(self, store):
        crud.create_expense(store, make_intent(category="Food"), "k1")
        crud.create_expense(store, make_intent(category="Food"), "k2")
        crud.create_expense(store, make_intent(category="Travel"), "k3")

        result = crud.get_expenses(store, category="Food")
        assert sorted(e.idempotency_key for e in result) == ["k1", "k2"]

    def test_filter_is_exact_and_case_sensitive(self, store):
        crud.create_expense(store, make_intent(category="Food"), "k1")
        assert crud.get_expenses(store, category="food") == []
        assert crud.get_expenses(store, category="Foo") == []

    def test_empty_filter_returns_all(self, store):
        crud.create_expense(store, make_intent(category="Food"), "k1")
        crud.create_expense(store, make_intent(category="Travel"), "k2")
        assert len(crud.get_expenses(store, category="")) == 2

    @pytest.fixture
    def dated(self, store):
        for key, day in [("jan", date(2024, 1, 1)), ("mar", date(2024, 3, 1)), ("feb", date(2024, 2, 1))]:
            crud.create_expense(store, make_intent(day=day), key)

    def test_sort_by_date_desc(self, store, dated):
        result = crud.get_expenses(store, sort="date_desc")
        assert [e.idempotency_key for e in result] == ["mar", "feb", "jan"]

    def test_default_sort_is_reverse_insertion(self, store, dated):
        result = crud.get_expenses(store)
        assert [e.idempotency_key for e in result] == ["feb", "mar", "jan"]

    def test_default_sort_ignores_clock_skew(self, store):
        first, _ = crud.create_expense(store, make_intent(), "first")
        second, _ = crud.create_expense(store, make_intent(), "second")
        # a writer with a fast clock stamped the earlier insert later
        with store.session_factory() as db:
            db.query(Expense).filter(Expense.id == first.id).update(
                {Expense.created_at: second.created_at + timedelta(minutes=5)}
            )
            db.commit()
        result = crud.get_expenses(store)
        assert [e.idempotency_key for e in result] == ["second", "first"]

    def test_unknown_sort_falls_back_to_default(self, store, dated):
        result = crud.get_expenses(store, sort="amount_asc")
        assert [e.idempotency_key for e in result] == ["feb", "mar", "jan"]

    def test_filter_and_sort_combined(self, store):
        crud.create_expense(store, make_intent(category="Food", day=date(2024, 1, 5)), "a")
        crud.create_expense(store, make_intent(category="Travel", day=date(2024, 1, 9)), "b")
        crud.create_expense(store, make_intent(category="Food", day=date(2024, 1, 7)), "c")
        result = crud.get_expenses(store, category="Food", sort="date_desc")
        assert [e.idempotency_key for e in result] == ["c", "a"]

    def test_distinct_categories(self, store):
        crud.create_expense(store, make_intent(category="Travel"), "k1")
        crud.create_expense(store, make_intent(category="Food"), "k2")
        crud.create_expense(store, make_intent(category="Food"), "k3")
        assert crud.get_all_categories(store) == ["Food", "Travel"]
