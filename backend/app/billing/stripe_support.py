"""Helpers for talking to Stripe through an explicitly constructed client."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, List, Mapping, Optional

import stripe

from ..config import BillingConfig
from .exceptions import RemoteWriteFailed

logger = logging.getLogger("billing")


def create_stripe_client(config: BillingConfig) -> stripe.StripeClient:
    """Build a request-scoped client; no global ``stripe.api_key`` is touched."""

    if not config.stripe_secret_key:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    options = {"max_network_retries": 0}
    if config.stripe_api_version:
        options["stripe_version"] = config.stripe_api_version
    return stripe.StripeClient(config.stripe_secret_key, **options)


def stripe_field(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from a Stripe object, a plain mapping or an id string."""

    if obj is None or isinstance(obj, str):
        return default
    if isinstance(obj, Mapping):
        value = obj.get(name, default)
    else:
        value = getattr(obj, name, default)
    return default if value is None else value


def stripe_id(obj: Any) -> Optional[str]:
    """Return the id of an expandable field, expanded or not."""

    if obj is None:
        return None
    if isinstance(obj, str):
        return obj
    identifier = stripe_field(obj, "id")
    return str(identifier) if identifier is not None else None


def list_data(result: Any) -> List[Any]:
    data = stripe_field(result, "data", [])
    return list(data or [])


@contextmanager
def stripe_errors(operation: str) -> Iterator[None]:
    """Translate Stripe client failures into :class:`RemoteWriteFailed`."""

    try:
        yield
    except stripe.StripeError as exc:
        logger.warning("Stripe call %s failed: %s", operation, exc)
        raise RemoteWriteFailed(
            message=f"Stripe rejected {operation}",
            detail={"operation": operation, "stripe_code": getattr(exc, "code", None)},
        ) from exc


__all__ = ["create_stripe_client", "list_data", "stripe_errors", "stripe_field", "stripe_id"]
