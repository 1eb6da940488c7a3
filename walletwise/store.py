from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.exc import DataError, IntegrityError, OperationalError, DatabaseError, SQLAlchemyError
from typing import Optional
import logging
import time

from walletwise.errors import DuplicateIdempotencyKey, StorageError
from walletwise.models import Expense, IDEMPOTENCY_CONSTRAINT
from walletwise.schemas import ExpenseIntent

logger = logging.getLogger("walletwise.store")

ORDER_INSERTED_DESC = "inserted_desc"
ORDER_DATE_DESC = "date_desc"


def is_idempotency_violation(exc: IntegrityError) -> bool:
    """True when the integrity error comes from the idempotency_key unique constraint.

    SQLite names the column ("UNIQUE constraint failed: expenses.idempotency_key"),
    PostgreSQL and MySQL name the constraint.
    """
    message = str(exc.orig) if exc.orig is not None else str(exc)
    return IDEMPOTENCY_CONSTRAINT in message or "expenses.idempotency_key" in message


class LedgerStore:
    """SQLAlchemy-backed expense table.

    Every call runs in its own short-lived session, so one store can be shared
    by all request threads. Inserts commit before returning.
    """

    def __init__(self, session_factory: sessionmaker, max_retries: int = 3, retry_backoff: float = 1.0):
        self.session_factory = session_factory
        self.max_retries = max(1, max_retries)
        self.retry_backoff = retry_backoff

    def find_by_idempotency_key(self, idempotency_key: str) -> Optional[Expense]:
        try:
            with self.session_factory() as db:
                return (
                    db.query(Expense)
                    .filter(Expense.idempotency_key == idempotency_key)
                    .first()
                )
        except SQLAlchemyError as e:
            raise StorageError(f"lookup failed: {e}") from e

    def insert(self, idempotency_key: str, intent: ExpenseIntent) -> Expense:
        """Insert a new expense carrying ``idempotency_key``.

        Raises DuplicateIdempotencyKey when the key is already taken and
        StorageError for anything else. Transient errors are retried with
        exponential backoff; a retry whose earlier attempt did commit comes
        back as DuplicateIdempotencyKey.
        """
        for attempt in range(self.max_retries):
            expense = Expense(
                idempotency_key=idempotency_key,
                amount_minor=intent.amount_minor,
                category=intent.category,
                description=intent.description,
                date=intent.date,
            )
            with self.session_factory() as db:
                try:
                    self._save(db, expense)
                    return expense
                except IntegrityError as e:
                    db.rollback()
                    if is_idempotency_violation(e):
                        raise DuplicateIdempotencyKey(idempotency_key) from e
                    raise StorageError(f"insert rejected: {e.orig}") from e
                except DataError as e:
                    # the row itself is unacceptable; retrying cannot help
                    db.rollback()
                    raise StorageError(f"insert rejected: {e.orig}") from e
                except (OperationalError, DatabaseError) as e:
                    db.rollback()
                    if attempt < self.max_retries - 1:
                        delay = self.retry_backoff * (2 ** attempt)
                        logger.warning(
                            "transient insert failure for key %s (attempt %d/%d), retrying in %.2fs: %s",
                            idempotency_key, attempt + 1, self.max_retries, delay, e,
                        )
                        time.sleep(delay)
                    else:
                        raise StorageError(f"insert failed after {self.max_retries} attempts: {e}") from e
                except SQLAlchemyError as e:
                    db.rollback()
                    raise StorageError(f"insert failed: {e}") from e
        raise StorageError("insert failed")

    @staticmethod
    def _save(db: Session, expense: Expense) -> None:
        db.add(expense)
        db.commit()
        db.refresh(expense)

    def query(self, category: Optional[str] = None, order: str = ORDER_INSERTED_DESC) -> list[Expense]:
        try:
            with self.session_factory() as db:
                q = db.query(Expense)
                if category:
                    q = q.filter(Expense.category == category)
                if order == ORDER_DATE_DESC:
                    q = q.order_by(Expense.date.desc(), Expense.id.desc())
                else:
                    # ids grow with every insert; created_at follows the writing process clock
                    q = q.order_by(Expense.id.desc())
                return q.all()
        except SQLAlchemyError as e:
            raise StorageError(f"query failed: {e}") from e

    def distinct_categories(self) -> list[str]:
        try:
            with self.session_factory() as db:
                rows = db.query(Expense.category).distinct().order_by(Expense.category).all()
                return [r[0] for r in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"category lookup failed: {e}") from e
