from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Any, Optional


class ExpenseIn(BaseModel):
    """Raw create payload. Field checks happen in the validation gate so every
    missing or malformed field is reported the same way."""

    amount: Any = Field(default=None, description="Whole currency units, e.g. 12.30 or \"12.30\"")
    category: Optional[str] = Field(default=None, examples=["Food"])
    description: Optional[str] = Field(default=None)
    date: Optional[str] = Field(default=None, description="Calendar date, YYYY-MM-DD")


class ExpenseIntent(BaseModel):
    """A validated create request, ready for the resolver."""

    amount_minor: int = Field(..., gt=0)
    category: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    date: date

    model_config = {"frozen": True}


class ExpenseResponse(BaseModel):
    id: int
    idempotency_key: str
    amount_minor: int
    category: str
    description: str
    date: date
    created_at: datetime

    model_config = {"from_attributes": True}


class CategoriesResponse(BaseModel):
    known: list[str]
    used: list[str]
