"""Renewal window calculations over a user's subscription rows."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from ..billing.timeutils import ensure_aware
from ..config import DEFAULT_RENEW_WINDOW_DAYS
from .activity import status_ok
from .models import RenewableSeat, RenewalFlow, SubscriptionRecord


def renewal_horizon(window_days: int, *, now: Optional[datetime] = None) -> datetime:
    current = ensure_aware(now) if now is not None else datetime.now(timezone.utc)
    return current + timedelta(days=max(0, window_days))


def is_renewable(subscription: SubscriptionRecord, *, horizon: datetime) -> bool:
    """Inactive rows are always renewable; active ones once their end is inside the window."""

    if not status_ok(subscription):
        return True
    period_end = subscription.current_period_end
    return period_end is not None and ensure_aware(period_end) <= ensure_aware(horizon)


def renewable_seat_list(
    subscriptions: Iterable[SubscriptionRecord],
    *,
    window_days: int = DEFAULT_RENEW_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> List[RenewableSeat]:
    current = ensure_aware(now) if now is not None else datetime.now(timezone.utc)
    horizon = renewal_horizon(window_days, now=current)
    seats: List[RenewableSeat] = []
    for row in subscriptions:
        if not is_renewable(row, horizon=horizon):
            continue
        period_end = row.current_period_end
        expired = not status_ok(row) or (period_end is not None and ensure_aware(period_end) < current)
        seats.append(
            RenewableSeat(
                subscription_id=row.id,
                seats=row.seats,
                current_period_end=period_end,
                expired=expired,
            )
        )
    return seats


def renewable_seat_count(
    subscriptions: Iterable[SubscriptionRecord],
    *,
    window_days: int = DEFAULT_RENEW_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> int:
    return sum(seat.seats for seat in renewable_seat_list(subscriptions, window_days=window_days, now=now))


def renewal_flow(count: int) -> RenewalFlow:
    if count <= 0:
        return RenewalFlow.NONE
    if count == 1:
        return RenewalFlow.SINGLE_SEAT
    return RenewalFlow.MULTI_SEAT


__all__ = [
    "is_renewable",
    "renewable_seat_count",
    "renewable_seat_list",
    "renewal_flow",
    "renewal_horizon",
]
