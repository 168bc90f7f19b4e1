"""Domain models for the merged payment history."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..billing.timeutils import parse_optional_datetime

DEFAULT_CURRENCY = "EUR"
DEFAULT_PROVIDER = "stripe"
DEFAULT_REMOTE_DESCRIPTION = "Stripe checkout"


class PaymentSource(str, Enum):
    LOCAL = "local"
    STRIPE = "stripe"


class RefundState(str, Enum):
    PAID = "paid"
    PARTIAL_REFUND = "partial_refund"
    FULL_REFUND = "full_refund"


def classify_refund(amount: Optional[int], refunded_amount: Optional[int], status: Optional[str]) -> RefundState:
    """Derive the refund state from amounts and the reported status."""

    if status and status.lower() == "refunded":
        return RefundState.FULL_REFUND
    refunded = refunded_amount or 0
    if refunded <= 0:
        return RefundState.PAID
    if amount is not None and refunded >= amount:
        return RefundState.FULL_REFUND
    return RefundState.PARTIAL_REFUND


class _PaymentFields(BaseModel):
    id: str
    amount: Optional[int] = None
    currency: str = DEFAULT_CURRENCY
    paid_at: Optional[datetime] = None
    receipt_url: Optional[str] = None
    description: Optional[str] = None
    provider: str = DEFAULT_PROVIDER
    stripe_payment_intent_id: Optional[str] = None
    status: Optional[str] = None
    refunded_amount: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: object) -> object:
        return str(value) if value is not None else value

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: object) -> object:
        if not value:
            return DEFAULT_CURRENCY
        return str(value).upper()

    @field_validator("paid_at", mode="before")
    @classmethod
    def _aware_paid_at(cls, value: object) -> object:
        return parse_optional_datetime(value)

    @property
    def merge_key(self) -> str:
        return self.stripe_payment_intent_id or f"db:{self.id}"

    @property
    def refund_state(self) -> RefundState:
        return classify_refund(self.amount, self.refunded_amount, self.status)


class PaymentRecord(_PaymentFields):
    """A row of the local payment ledger."""

    user_id: Optional[str] = None
    subscription_id: Optional[str] = None

    @classmethod
    def from_row(cls, row: dict) -> "PaymentRecord":
        amount = row.get("amount_cents")
        amount = int(amount) if amount is not None else None
        status = row.get("status") or None
        refunded = amount if status and "refunded" in str(status).lower() else None
        return cls(
            id=row["id"],
            user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
            subscription_id=str(row["subscription_id"]) if row.get("subscription_id") is not None else None,
            amount=amount,
            currency=row.get("currency"),
            paid_at=row.get("paid_at"),
            receipt_url=row.get("receipt_url") or None,
            description=row.get("description") or None,
            provider=row.get("provider") or DEFAULT_PROVIDER,
            stripe_payment_intent_id=row.get("stripe_payment_intent_id") or None,
            status=status,
            refunded_amount=refunded,
        )


class RemoteCharge(_PaymentFields):
    """A processor payment intent projected onto the ledger's fields."""

    description: Optional[str] = DEFAULT_REMOTE_DESCRIPTION


class MergedPayment(_PaymentFields):
    source: PaymentSource


class PaymentPage(BaseModel):
    payments: List[MergedPayment] = Field(default_factory=list)
    total: int = 0

    model_config = ConfigDict(frozen=True)


__all__ = [
    "DEFAULT_CURRENCY",
    "DEFAULT_REMOTE_DESCRIPTION",
    "MergedPayment",
    "PaymentPage",
    "PaymentRecord",
    "PaymentSource",
    "RefundState",
    "RemoteCharge",
    "classify_refund",
]
