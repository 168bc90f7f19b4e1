"""Stripe-backed customer resolution and charge listing."""
from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Protocol, Sequence

import stripe

from ..billing.stripe_support import list_data, stripe_errors, stripe_field, stripe_id
from .models import DEFAULT_REMOTE_DESCRIPTION, RemoteCharge

logger = logging.getLogger("payments")

USER_METADATA_KEY = "app_user_id"
CUSTOMER_SEARCH_LIMIT = 10


class CustomerIdLookup(Protocol):
    """Local source of customer ids recorded on subscription rows."""

    def latest_customer_id(self, user_id: str) -> Optional[str]:
        ...


def remote_charge_from_intent(intent: Any) -> RemoteCharge:
    """Project a payment intent (with ``latest_charge`` expanded) onto a charge."""

    latest_charge = stripe_field(intent, "latest_charge")
    if isinstance(latest_charge, str):
        latest_charge = None

    amount = stripe_field(intent, "amount")
    if not isinstance(amount, int) or isinstance(amount, bool):
        received = stripe_field(intent, "amount_received")
        amount = received if isinstance(received, int) and not isinstance(received, bool) else None

    refunded = stripe_field(latest_charge, "amount_refunded")
    if not isinstance(refunded, int) or isinstance(refunded, bool):
        refunded = None

    if refunded and amount and refunded >= amount:
        status = "refunded"
    elif refunded and refunded > 0:
        status = "partially_refunded"
    else:
        status = stripe_field(intent, "status")

    intent_id = stripe_id(intent)
    return RemoteCharge(
        id=intent_id,
        amount=amount,
        currency=stripe_field(intent, "currency"),
        paid_at=stripe_field(latest_charge, "created") or stripe_field(intent, "created"),
        receipt_url=stripe_field(latest_charge, "receipt_url"),
        description=(
            stripe_field(intent, "description")
            or stripe_field(latest_charge, "description")
            or DEFAULT_REMOTE_DESCRIPTION
        ),
        provider="stripe",
        stripe_payment_intent_id=intent_id,
        status=status,
        refunded_amount=refunded,
    )


class StripeChargeProvider:
    """Lists a customer's payment intents through an explicit client."""

    def __init__(self, client: stripe.StripeClient) -> None:
        self._client = client

    def list_charges(self, customer_id: str, *, limit: int) -> Sequence[RemoteCharge]:
        with stripe_errors("payment_intents.list"):
            result = self._client.payment_intents.list(
                params={
                    "customer": customer_id,
                    "limit": max(1, min(100, limit)),
                    "expand": ["data.latest_charge"],
                }
            )
        return [remote_charge_from_intent(intent) for intent in list_data(result)]


class StripeCustomerResolver:
    """Finds or creates the processor customer that belongs to a user.

    Recorded ids win; otherwise customers sharing the user's e-mail are
    searched, preferring one already tagged with the user id. A new customer is
    created only when nothing matches. Any failure yields ``None``.
    """

    def __init__(self, client: stripe.StripeClient, lookup: CustomerIdLookup) -> None:
        self._client = client
        self._lookup = lookup

    def resolve_customer_id(self, user_id: str, *, email: Optional[str] = None) -> Optional[str]:
        try:
            recorded = self._lookup.latest_customer_id(user_id)
            if recorded:
                return recorded

            candidate = self._find_by_email(user_id, email) if email else None
            if candidate is not None:
                self._backfill_metadata(candidate, user_id)
                return stripe_id(candidate)

            params = {"metadata": {USER_METADATA_KEY: user_id}}
            if email:
                params["email"] = email
            with stripe_errors("customers.create"):
                created = self._client.customers.create(params=params)
            logger.info("Created Stripe customer %s for user=%s", stripe_id(created), user_id)
            return stripe_id(created)
        except Exception:
            logger.exception("Could not resolve Stripe customer for user=%s", user_id)
            return None

    def _find_by_email(self, user_id: str, email: str) -> Optional[Any]:
        with stripe_errors("customers.list"):
            result = self._client.customers.list(params={"email": email, "limit": CUSTOMER_SEARCH_LIMIT})
        customers: List[Any] = [customer for customer in list_data(result) if not stripe_field(customer, "deleted")]
        for customer in customers:
            metadata = stripe_field(customer, "metadata", {}) or {}
            if isinstance(metadata, Mapping) and metadata.get(USER_METADATA_KEY) == user_id:
                return customer
        return customers[0] if customers else None

    def _backfill_metadata(self, customer: Any, user_id: str) -> None:
        metadata = dict(stripe_field(customer, "metadata", {}) or {})
        if metadata.get(USER_METADATA_KEY) == user_id:
            return
        metadata[USER_METADATA_KEY] = user_id
        try:
            with stripe_errors("customers.update"):
                self._client.customers.update(stripe_id(customer), params={"metadata": metadata})
        except Exception:
            logger.warning("Customer metadata backfill failed for user=%s", user_id, exc_info=True)


__all__ = [
    "CustomerIdLookup",
    "StripeChargeProvider",
    "StripeCustomerResolver",
    "USER_METADATA_KEY",
    "remote_charge_from_intent",
]
