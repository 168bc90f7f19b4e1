"""API schemas for the payment history endpoint."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..payments import MergedPayment, PaymentPage, PaymentSource, RefundState


class PaymentOut(BaseModel):
    id: str
    amount: Optional[int] = None
    currency: str
    paid_at: Optional[datetime] = Field(alias="paidAt", default=None)
    receipt_url: Optional[str] = Field(alias="receiptUrl", default=None)
    description: Optional[str] = None
    provider: str
    stripe_payment_intent_id: Optional[str] = Field(alias="stripePaymentIntentId", default=None)
    status: Optional[str] = None
    refunded_amount: Optional[int] = Field(alias="refundedAmount", default=None)
    refund_state: RefundState = Field(alias="refundState")
    source: PaymentSource

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_payment(cls, payment: MergedPayment) -> "PaymentOut":
        return cls(
            id=payment.id,
            amount=payment.amount,
            currency=payment.currency,
            paid_at=payment.paid_at,
            receipt_url=payment.receipt_url,
            description=payment.description,
            provider=payment.provider,
            stripe_payment_intent_id=payment.stripe_payment_intent_id,
            status=payment.status,
            refunded_amount=payment.refunded_amount,
            refund_state=payment.refund_state,
            source=payment.source,
        )


class PaymentListResponse(BaseModel):
    payments: List[PaymentOut]
    total: int
    page: int
    page_size: int = Field(alias="pageSize")
    has_prev: bool = Field(alias="hasPrev")
    has_next: bool = Field(alias="hasNext")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_page(cls, result: PaymentPage, *, page: int, page_size: int) -> "PaymentListResponse":
        offset = (page - 1) * page_size
        return cls(
            payments=[PaymentOut.from_payment(payment) for payment in result.payments],
            total=result.total,
            page=page,
            page_size=page_size,
            has_prev=page > 1,
            has_next=offset + page_size < result.total,
        )
