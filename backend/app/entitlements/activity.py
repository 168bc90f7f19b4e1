"""Evaluate whether subscription rows currently grant access."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable, Optional

from ..billing.timeutils import ensure_aware
from .models import SubscriptionRecord, SubscriptionState, SubscriptionStatus


def _resolve_now(now: Optional[datetime]) -> datetime:
    return ensure_aware(now) if now is not None else datetime.now(timezone.utc)


def status_ok(subscription: SubscriptionRecord) -> bool:
    return subscription.status is SubscriptionStatus.ACTIVE


def is_active(subscription: SubscriptionRecord, *, now: Optional[datetime] = None) -> bool:
    """Return ``True`` when the row is active and its period has not ended.

    Rows without ``current_period_end`` never expire.
    """

    if not status_ok(subscription):
        return False
    period_end = subscription.current_period_end
    if period_end is None:
        return True
    return ensure_aware(period_end) >= _resolve_now(now)


def latest_subscription(subscriptions: Iterable[SubscriptionRecord]) -> Optional[SubscriptionRecord]:
    rows = list(subscriptions)
    if not rows:
        return None
    return max(rows, key=lambda row: ensure_aware(row.created_at))


def subscription_state(
    subscriptions: Iterable[SubscriptionRecord],
    *,
    now: Optional[datetime] = None,
) -> SubscriptionState:
    """Summarize a user's rows; only the most recent row decides activity."""

    rows = list(subscriptions)
    latest = latest_subscription(rows)
    return SubscriptionState(
        has_any=bool(rows),
        is_active=latest is not None and is_active(latest, now=now),
        latest=latest,
    )


__all__ = ["is_active", "latest_subscription", "status_ok", "subscription_state"]
