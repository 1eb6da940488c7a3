"""Validation gate for the create path.

Turns a raw payload plus the Idempotency-Key header into an ExpenseIntent,
or raises InvalidInput listing every problem found. Nothing here touches the
store.

Amounts arrive in whole currency units (``12.3`` or ``"12.30"``) and are
stored in minor units. Conversion scales by 100 and rounds half to even, so
``0.125`` becomes 12 and ``0.135`` becomes 14.
"""

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Optional

from walletwise.errors import InvalidInput
from walletwise.models import KNOWN_CATEGORIES, MAX_AMOUNT_MINOR, MAX_IDEMPOTENCY_KEY_LENGTH
from walletwise.schemas import ExpenseIn, ExpenseIntent

MINOR_UNITS_PER_MAJOR = 100


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def to_minor_units(amount: Any) -> int:
    """Convert a decimal string or number of whole units to integer minor units.

    Raises ValueError when the value is not a finite number or is too large
    to scale exactly.
    """
    if isinstance(amount, bool):
        raise ValueError("Amount must be a number")
    try:
        value = Decimal(str(amount).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("Amount must be a number")
    if not value.is_finite():
        raise ValueError("Amount must be a finite number")
    try:
        scaled = (value * MINOR_UNITS_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN)
    except InvalidOperation:
        raise ValueError("Amount is too large")
    return int(scaled)


def validate_create(
    payload: ExpenseIn,
    idempotency_key: Optional[str],
    strict_categories: bool = False,
) -> ExpenseIntent:
    errors: list[dict] = []

    def fail(field: str, message: str) -> None:
        errors.append({"field": field, "message": message})

    if _is_blank(idempotency_key):
        fail("Idempotency-Key", "Idempotency-Key header is required")
    elif len(idempotency_key.strip()) > MAX_IDEMPOTENCY_KEY_LENGTH:
        fail("Idempotency-Key", f"Idempotency-Key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters")

    amount_minor = None
    if _is_blank(payload.amount):
        fail("amount", "Amount is required")
    else:
        try:
            amount_minor = to_minor_units(payload.amount)
        except ValueError as e:
            fail("amount", str(e))
        else:
            if amount_minor <= 0:
                fail("amount", "Amount must be greater than zero")
            elif amount_minor > MAX_AMOUNT_MINOR:
                fail("amount", "Amount is too large")

    category = (payload.category or "").strip()
    if not category:
        fail("category", "Category is required")
    elif strict_categories and category not in KNOWN_CATEGORIES:
        fail("category", f"Category must be one of {', '.join(KNOWN_CATEGORIES)}")

    description = (payload.description or "").strip()
    if not description:
        fail("description", "Description is required")

    expense_date = None
    if _is_blank(payload.date):
        fail("date", "Date is required")
    else:
        try:
            expense_date = date.fromisoformat(payload.date.strip())
        except ValueError:
            fail("date", "Date must be a calendar date in YYYY-MM-DD format")

    if errors:
        raise InvalidInput(errors)

    return ExpenseIntent(
        amount_minor=amount_minor,
        category=category,
        description=description,
        date=expense_date,
    )
