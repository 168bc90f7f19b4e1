"""Request-scoped processor client and admin checks shared by the routers."""
from __future__ import annotations

import logging
from typing import Any, Optional

import stripe
from fastapi import HTTPException, status

from ..billing.stripe_support import create_stripe_client
from ..config import BillingConfig, get_billing_config

logger = logging.getLogger("billing")


def build_stripe_client(config: Optional[BillingConfig] = None) -> Optional[stripe.StripeClient]:
    """Return a fresh client, or ``None`` when no secret key is configured."""

    resolved = config or get_billing_config()
    if not resolved.stripe_enabled:
        logger.debug("Stripe secret key missing; processor calls disabled")
        return None
    return create_stripe_client(resolved)


def require_stripe_client(config: Optional[BillingConfig] = None) -> stripe.StripeClient:
    client = build_stripe_client(config)
    if client is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Stripe is not configured")
    return client


def is_admin_user(user: Any, config: Optional[BillingConfig] = None) -> bool:
    """Admins are listed in ``ADMIN_EMAILS`` or carry the ``admin`` role."""

    if user is None:
        return False
    resolved = config or get_billing_config()
    role = str(getattr(user, "role", "") or "").lower()
    if role == "admin":
        return True
    email = str(getattr(user, "email", "") or "").strip().lower()
    return bool(email) and email in resolved.admin_emails


def ensure_admin(user: Any, config: Optional[BillingConfig] = None) -> None:
    if not is_admin_user(user, config):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


__all__ = ["build_stripe_client", "ensure_admin", "is_admin_user", "require_stripe_client"]
