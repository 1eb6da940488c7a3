from typing import Optional
import logging

from walletwise.errors import DuplicateIdempotencyKey, StorageError
from walletwise.models import Expense
from walletwise.schemas import ExpenseIntent
from walletwise.store import LedgerStore, ORDER_INSERTED_DESC, ORDER_DATE_DESC

logger = logging.getLogger("walletwise.crud")

SORT_DATE_DESC = "date_desc"


def create_expense(store: LedgerStore, intent: ExpenseIntent, idempotency_key: str) -> tuple[Expense, bool]:
    """
    Create a new expense, or return the one already recorded under
    idempotency_key. Returns (expense, was_created).

    The lookup only short-circuits plain retries. Two callers can both miss it,
    so the store's unique constraint decides the winner and the loser re-reads
    the winning record instead of failing.
    """
    existing = store.find_by_idempotency_key(idempotency_key)
    if existing:
        logger.info("idempotency hit: returning expense %s for key %s", existing.id, idempotency_key)
        return existing, False

    try:
        expense = store.insert(idempotency_key, intent)
    except DuplicateIdempotencyKey:
        winner = store.find_by_idempotency_key(idempotency_key)
        if winner is None:
            raise StorageError(f"key {idempotency_key} reported as duplicate but no record found")
        logger.info("concurrent create for key %s resolved to expense %s", idempotency_key, winner.id)
        return winner, False

    logger.info("created expense %s for key %s", expense.id, idempotency_key)
    return expense, True


def get_expenses(
    store: LedgerStore,
    category: Optional[str] = None,
    sort: Optional[str] = None,
) -> list[Expense]:
    """
    Fetch expenses with an optional exact category filter.
    sort="date_desc" orders by expense date, newest first; anything else falls
    back to most recently inserted first.
    """
    order = ORDER_DATE_DESC if sort == SORT_DATE_DESC else ORDER_INSERTED_DESC
    return store.query(category=category or None, order=order)


def get_all_categories(store: LedgerStore) -> list[str]:
    """Return distinct categories for filter dropdown."""
    return store.distinct_categories()
