"""Shared billing plumbing: domain errors, Stripe access and time helpers."""

from .exceptions import (
    BillingError,
    CodeAlreadyUsed,
    CodeInvalid,
    EntitlementExhausted,
    PartialInconsistency,
    RemoteWriteFailed,
    ValidationError,
)
from .stripe_support import create_stripe_client, list_data, stripe_errors, stripe_field, stripe_id
from .timeutils import ensure_aware, parse_optional_datetime, sort_key, utc_now

__all__ = [
    "BillingError",
    "CodeAlreadyUsed",
    "CodeInvalid",
    "EntitlementExhausted",
    "PartialInconsistency",
    "RemoteWriteFailed",
    "ValidationError",
    "create_stripe_client",
    "ensure_aware",
    "list_data",
    "parse_optional_datetime",
    "sort_key",
    "stripe_errors",
    "stripe_field",
    "stripe_id",
    "utc_now",
]
