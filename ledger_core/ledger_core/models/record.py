"""Value objects for financial records, balances, audit entries and users.

Input models (:class:`RecordCreate`, :class:`RecordUpdate`) validate caller
payloads before any storage call.  Output models are built from rows with
``from_attributes`` so repositories can hand back Core rows or ORM objects.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Normalise a numeric storage value to a two-decimal :class:`Decimal`."""
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENT)


def _clean_description(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("description must not be blank")
    return value


class Category(str, Enum):
    """Whether a record adds to or subtracts from the balance."""

    INCOME = "income"
    EXPENSE = "expense"


class AuditOperation(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class RecordCreate(BaseModel):
    """Payload for creating a record.

    Unknown keys (including any ``user_id`` or ``owner_id``) are dropped:
    the owner always comes from the authenticated principal.
    """

    model_config = ConfigDict(extra="ignore")

    description: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    category: Category

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str) -> str:
        return _clean_description(v)


class RecordUpdate(BaseModel):
    """Partial update; only fields that are supplied are written."""

    model_config = ConfigDict(extra="ignore")

    description: str | None = Field(default=None, min_length=1, max_length=255)
    amount: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    category: Category | None = None

    @field_validator("description")
    @classmethod
    def _strip_description(cls, v: str | None) -> str | None:
        return _clean_description(v) if v is not None else None

    def changes(self) -> dict[str, Any]:
        """Return the supplied fields as column values."""
        values = self.model_dump(exclude_none=True)
        if "category" in values:
            values["category"] = Category(values["category"]).value
        return values


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class FinancialRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    description: str
    amount: Decimal
    category: Category
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def _money(cls, v: Any) -> Decimal:
        return to_money(v)


class Balance(BaseModel):
    """Income, expense and net balance over the caller's visible records."""

    total_income: Decimal = Decimal("0.00")
    total_expense: Decimal = Decimal("0.00")
    balance: Decimal = Decimal("0.00")

    @classmethod
    def from_totals(cls, income: Any, expense: Any) -> Balance:
        total_income = to_money(income)
        total_expense = to_money(expense)
        return cls(
            total_income=total_income,
            total_expense=total_expense,
            balance=total_income - total_expense,
        )


class AuditEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    table_name: str
    record_id: int
    operation: AuditOperation
    old_data: dict[str, Any] | None = None
    new_data: dict[str, Any] | None = None
    db_user: str | None = None
    app_user_id: int | None = None
    ip_address: str | None = None
    created_at: datetime | None = None


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: str
    created_at: datetime | None = None
