"""Application wiring for the payment history service."""
from __future__ import annotations

from ..payments import PaymentHistoryService
from ..payments.repository import PostgresCustomerIdLookup, PostgresPaymentLedger
from ..payments.stripe_provider import StripeChargeProvider, StripeCustomerResolver
from .billing import build_stripe_client


def get_payment_history_service() -> PaymentHistoryService:
    """Build the service per request; without Stripe only local rows are merged."""

    ledger = PostgresPaymentLedger()
    client = build_stripe_client()
    if client is None:
        return PaymentHistoryService(ledger=ledger)
    return PaymentHistoryService(
        ledger=ledger,
        charges=StripeChargeProvider(client),
        customers=StripeCustomerResolver(client, PostgresCustomerIdLookup()),
    )


__all__ = ["get_payment_history_service"]
