from sqlalchemy import BigInteger, Column, Integer, String, Text, Date, DateTime, UniqueConstraint
from walletwise.database import Base
from datetime import datetime, timezone
import enum

IDEMPOTENCY_CONSTRAINT = "uq_expenses_idempotency_key"
MAX_IDEMPOTENCY_KEY_LENGTH = 255
# largest value a signed 64-bit BIGINT column holds
MAX_AMOUNT_MINOR = 2**63 - 1


class Category(str, enum.Enum):
    FOOD = "Food"
    TRAVEL = "Travel"
    UTILITIES = "Utilities"
    ENTERTAINMENT = "Entertainment"
    OTHER = "Other"


KNOWN_CATEGORIES = [c.value for c in Category]


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name=IDEMPOTENCY_CONSTRAINT),
        # ids are never reused, even after the highest row disappears
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    idempotency_key = Column(String(MAX_IDEMPOTENCY_KEY_LENGTH), nullable=False)
    amount_minor = Column(BigInteger, nullable=False)   # cents, never a float
    category = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self) -> str:
        return f"<Expense id={self.id} key={self.idempotency_key!r} amount_minor={self.amount_minor}>"
