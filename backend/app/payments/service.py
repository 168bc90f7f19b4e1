"""Merge the local payment ledger with the processor's charge history."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Sequence

from ..billing.timeutils import sort_key
from .models import MergedPayment, PaymentPage, PaymentRecord, PaymentSource, RemoteCharge

logger = logging.getLogger("payments")

DEFAULT_FETCH_LIMIT = 50
REMOTE_FETCH_CAP = 100
FETCH_SLACK = 20


class PaymentLedger(Protocol):
    """Local payment rows recorded by checkout and webhook handlers."""

    def list_payments(
        self,
        user_id: str,
        *,
        limit: int,
        subscription_id: Optional[str] = None,
    ) -> Sequence[PaymentRecord]:
        ...


class ChargeProvider(Protocol):
    """Processor payment intents for a customer, newest first."""

    def list_charges(self, customer_id: str, *, limit: int) -> Sequence[RemoteCharge]:
        ...


class CustomerResolver(Protocol):
    def resolve_customer_id(self, user_id: str, *, email: Optional[str] = None) -> Optional[str]:
        ...


def fetch_bound(limit: int, offset: int) -> int:
    return min(DEFAULT_FETCH_LIMIT, offset + limit + FETCH_SLACK)


def _merge_pair(existing: MergedPayment, incoming: MergedPayment) -> MergedPayment:
    return existing.model_copy(
        update={
            "amount": existing.amount if existing.amount is not None else incoming.amount,
            "currency": existing.currency or incoming.currency,
            "paid_at": existing.paid_at or incoming.paid_at,
            "receipt_url": existing.receipt_url or incoming.receipt_url,
            "description": existing.description or incoming.description,
            "provider": existing.provider or incoming.provider,
            "stripe_payment_intent_id": existing.stripe_payment_intent_id or incoming.stripe_payment_intent_id,
            "status": incoming.status or existing.status,
            "refunded_amount": (
                incoming.refunded_amount if incoming.refunded_amount is not None else existing.refunded_amount
            ),
            "source": PaymentSource.LOCAL if existing.source is PaymentSource.LOCAL else incoming.source,
        }
    )


def _as_merged(payment, source: PaymentSource) -> MergedPayment:
    return MergedPayment(
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
        source=source,
    )


def merge_payments(
    local: Iterable[PaymentRecord],
    remote: Iterable[RemoteCharge],
) -> List[MergedPayment]:
    """Deduplicate both sources by external reference and sort newest first.

    Local rows win for descriptive fields; the processor wins for status and
    refunded amount. Missing ``paid_at`` sorts last.
    """

    merged: Dict[str, MergedPayment] = {}
    candidates = [_as_merged(row, PaymentSource.LOCAL) for row in local]
    candidates.extend(_as_merged(row, PaymentSource.STRIPE) for row in remote)
    for payment in candidates:
        key = payment.merge_key
        existing = merged.get(key)
        merged[key] = payment if existing is None else _merge_pair(existing, payment)
    return sorted(merged.values(), key=lambda payment: sort_key(payment.paid_at), reverse=True)


@dataclass
class PaymentHistoryService:
    """Builds a user's paginated, deduplicated payment history."""

    ledger: PaymentLedger
    charges: Optional[ChargeProvider] = None
    customers: Optional[CustomerResolver] = None

    def fetch_user_payments(
        self,
        user_id: str,
        *,
        limit: int = 10,
        offset: int = 0,
        subscription_id: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> PaymentPage:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if offset < 0:
            raise ValueError("offset must not be negative")

        bound = fetch_bound(limit, offset)
        local = self._local_payments(user_id, bound, subscription_id)
        remote: Sequence[RemoteCharge] = []
        if subscription_id is None:
            remote = self._remote_payments(user_id, user_email, min(REMOTE_FETCH_CAP, bound))

        merged = merge_payments(local, remote)
        return PaymentPage(payments=merged[offset : offset + limit], total=len(merged))

    def _local_payments(
        self,
        user_id: str,
        bound: int,
        subscription_id: Optional[str],
    ) -> Sequence[PaymentRecord]:
        try:
            return list(self.ledger.list_payments(user_id, limit=bound, subscription_id=subscription_id))
        except Exception:
            logger.exception("Payment ledger read failed for user=%s", user_id)
            return []

    def _remote_payments(self, user_id: str, email: Optional[str], limit: int) -> Sequence[RemoteCharge]:
        if self.charges is None or self.customers is None:
            return []
        try:
            customer_id = self.customers.resolve_customer_id(user_id, email=email)
            if not customer_id:
                return []
            return list(self.charges.list_charges(customer_id, limit=limit))
        except Exception:
            logger.exception("Processor payment read failed for user=%s", user_id)
            return []


__all__ = [
    "ChargeProvider",
    "CustomerResolver",
    "PaymentHistoryService",
    "PaymentLedger",
    "fetch_bound",
    "merge_payments",
]
