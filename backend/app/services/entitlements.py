"""Application wiring for the entitlement services."""
from __future__ import annotations

import logging
from typing import Callable, Optional

from ...mail import EmailProvider, create_email_provider, load_email_config, render_renewal_reminder
from ..config import BillingConfig, get_billing_config
from ..entitlements import (
    EntitlementRedemptionCoordinator,
    OrphanedProfileReconciler,
    RenewalNotifier,
    RenewalReminderJob,
    RenewalWindowCalculator,
    SeatLedgerResolver,
    SubscriptionRecord,
)
from ..entitlements.repository import (
    PostgresEntitlementGateway,
    PostgresPlanRepository,
    PostgresProfileRepository,
    PostgresSubscriptionRepository,
    PostgresUserDirectory,
)

logger = logging.getLogger("entitlements")


class EmailRenewalNotifier(RenewalNotifier):
    """Sends renewal reminders through the configured email provider."""

    def __init__(
        self,
        provider: EmailProvider,
        resolve_email: Callable[[str], Optional[str]],
        *,
        renewal_url: str,
    ) -> None:
        self._provider = provider
        self._resolve_email = resolve_email
        self._renewal_url = renewal_url

    def notify_expiring(self, subscription: SubscriptionRecord, *, days_left: int) -> None:
        recipient = self._resolve_email(subscription.user_id)
        if not recipient:
            raise LookupError(f"No email address for user {subscription.user_id}")
        subject, text_body, html_body = render_renewal_reminder(
            days_left=days_left,
            seats=subscription.seats,
            ends_at=subscription.current_period_end,
            renewal_url=self._renewal_url,
        )
        self._provider.send_email(recipient, subject, html_body, text_body)
        logger.info(
            "Renewal reminder sent subscription=%s user=%s days_left=%s",
            subscription.id,
            subscription.user_id,
            days_left,
        )


def get_seat_ledger() -> SeatLedgerResolver:
    return SeatLedgerResolver(gateway=PostgresEntitlementGateway(), profiles=PostgresProfileRepository())


def get_renewal_calculator() -> RenewalWindowCalculator:
    config = get_billing_config()
    return RenewalWindowCalculator(PostgresSubscriptionRepository(), window_days=config.renew_window_days)


def get_redemption_coordinator() -> EntitlementRedemptionCoordinator:
    config = get_billing_config()
    gateway = PostgresEntitlementGateway()
    profiles = PostgresProfileRepository()
    return EntitlementRedemptionCoordinator(
        gateway=gateway,
        profiles=profiles,
        plans=PostgresPlanRepository(),
        seat_ledger=SeatLedgerResolver(gateway=gateway, profiles=profiles),
        free_plan_id=config.free_code_plan_id,
    )


def build_renewal_reminder_job() -> RenewalReminderJob:
    email_config = load_email_config()
    directory = PostgresUserDirectory()
    notifier = EmailRenewalNotifier(
        create_email_provider(email_config),
        directory.get_email,
        renewal_url=email_config.renewal_url,
    )
    return RenewalReminderJob(PostgresSubscriptionRepository(), notifier)


def build_orphan_reconciler(config: Optional[BillingConfig] = None) -> OrphanedProfileReconciler:
    resolved = config or get_billing_config()
    return OrphanedProfileReconciler(
        PostgresEntitlementGateway(),
        PostgresProfileRepository(),
        timeout_minutes=resolved.orphan_profile_timeout_minutes,
    )


__all__ = [
    "EmailRenewalNotifier",
    "build_orphan_reconciler",
    "build_renewal_reminder_job",
    "get_redemption_coordinator",
    "get_renewal_calculator",
    "get_seat_ledger",
]
