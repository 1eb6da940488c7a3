from datetime import date

import pytest
from fastapi.testclient import TestClient

from walletwise.config import Settings
from walletwise.database import init_db, make_engine, make_session_factory
from walletwise.main import create_app
from walletwise.schemas import ExpenseIntent
from walletwise.store import LedgerStore


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        db_retry_backoff_seconds=0,
    )


@pytest.fixture
def store(settings):
    engine = make_engine(settings.database_url)
    init_db(engine)
    yield LedgerStore(make_session_factory(engine), max_retries=3, retry_backoff=0)
    engine.dispose()


@pytest.fixture
def client(settings, store):
    app = create_app(settings, store=store)
    with TestClient(app) as c:
        yield c


def make_intent(amount_minor=1230, category="Food", description="Lunch", day=date(2024, 1, 1)):
    return ExpenseIntent(amount_minor=amount_minor, category=category, description=description, date=day)


@pytest.fixture
def intent():
    return make_intent()
