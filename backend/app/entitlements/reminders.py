"""Renewal reminders for subscriptions approaching the end of their period."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

from ..config import DEFAULT_REMINDER_WINDOW_DAYS
from .activity import status_ok
from .models import RenewalReminderReport, SubscriptionRecord
from .service import SubscriptionRepository

logger = logging.getLogger("entitlements")


class RenewalNotifier(Protocol):
    """Delivers a renewal reminder to the owner of a subscription."""

    def notify_expiring(self, subscription: SubscriptionRecord, *, days_left: int) -> None:
        ...


class RenewalReminderJob:
    """Notifies owners of expiring rows once, then deactivates ended rows."""

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        notifier: RenewalNotifier,
        *,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._notifier = notifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self, window_days: int = DEFAULT_REMINDER_WINDOW_DAYS) -> RenewalReminderReport:
        now = self._clock()
        window = max(1, window_days)
        expiring = [
            row
            for row in self._subscriptions.list_expiring(start=now, end=now + timedelta(days=window))
            if status_ok(row) and row.notified_expiry_at is None and row.current_period_end is not None
        ]

        sent = 0
        for subscription in expiring:
            days_left = max(0, (subscription.current_period_end - now).days)
            try:
                self._notifier.notify_expiring(subscription, days_left=days_left)
            except Exception:
                logger.exception(
                    "Renewal reminder failed subscription=%s user=%s",
                    subscription.id,
                    subscription.user_id,
                )
                continue
            try:
                self._subscriptions.mark_expiry_notified(subscription.id, now)
            except Exception:
                logger.exception("Could not mark reminder sent for subscription=%s", subscription.id)
            sent += 1

        deactivated = self._subscriptions.deactivate_expired(now)
        report = RenewalReminderReport(
            window_days=window,
            expiring_count=len(expiring),
            sent=sent,
            deactivated=deactivated,
        )
        logger.info(
            "Renewal reminders window=%sd expiring=%s sent=%s deactivated=%s",
            report.window_days,
            report.expiring_count,
            report.sent,
            report.deactivated,
        )
        return report


__all__ = ["RenewalNotifier", "RenewalReminderJob"]
