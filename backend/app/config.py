"""Runtime configuration for seat entitlements, payments and the catalog."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import FrozenSet, Mapping, Optional

DEFAULT_RENEW_WINDOW_DAYS = 15
DEFAULT_REMINDER_WINDOW_DAYS = 7
DEFAULT_FREE_CODE_PLAN_ID = "free-code-hidden"
DEFAULT_PAYMENTS_PAGE_SIZE = 10
DEFAULT_ORPHAN_PROFILE_TIMEOUT_MINUTES = 30


@dataclass(frozen=True)
class BillingConfig:
    """Settings shared by the billing, entitlement and catalog services."""

    stripe_secret_key: Optional[str]
    stripe_api_version: Optional[str]
    admin_emails: FrozenSet[str]
    renew_window_days: int
    reminder_window_days: int
    free_code_plan_id: str
    payments_page_size: int
    orphan_profile_timeout_minutes: int

    @property
    def stripe_enabled(self) -> bool:
        return bool(self.stripe_secret_key)


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_email_set(value: Optional[str]) -> FrozenSet[str]:
    if not value:
        return frozenset()
    return frozenset(part.strip().lower() for part in value.split(",") if part.strip())


def load_billing_config(env: Optional[Mapping[str, str]] = None) -> BillingConfig:
    """Load :class:`BillingConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    return BillingConfig(
        stripe_secret_key=env_mapping.get("STRIPE_SECRET_KEY") or None,
        stripe_api_version=env_mapping.get("STRIPE_API_VERSION") or None,
        admin_emails=_to_email_set(env_mapping.get("ADMIN_EMAILS")),
        renew_window_days=max(0, _to_int(env_mapping.get("RENEW_WINDOW_DAYS"), default=DEFAULT_RENEW_WINDOW_DAYS)),
        reminder_window_days=max(
            1, _to_int(env_mapping.get("RENEWAL_REMINDER_WINDOW_DAYS"), default=DEFAULT_REMINDER_WINDOW_DAYS)
        ),
        free_code_plan_id=(env_mapping.get("FREE_CODE_PLAN_ID") or DEFAULT_FREE_CODE_PLAN_ID).strip(),
        payments_page_size=max(1, _to_int(env_mapping.get("PAYMENTS_PAGE_SIZE"), default=DEFAULT_PAYMENTS_PAGE_SIZE)),
        orphan_profile_timeout_minutes=max(
            1,
            _to_int(
                env_mapping.get("ORPHAN_PROFILE_TIMEOUT_MINUTES"),
                default=DEFAULT_ORPHAN_PROFILE_TIMEOUT_MINUTES,
            ),
        ),
    )


@lru_cache(maxsize=1)
def get_billing_config() -> BillingConfig:
    return load_billing_config()


__all__ = [
    "BillingConfig",
    "DEFAULT_FREE_CODE_PLAN_ID",
    "DEFAULT_ORPHAN_PROFILE_TIMEOUT_MINUTES",
    "DEFAULT_PAYMENTS_PAGE_SIZE",
    "DEFAULT_REMINDER_WINDOW_DAYS",
    "DEFAULT_RENEW_WINDOW_DAYS",
    "get_billing_config",
    "load_billing_config",
]
