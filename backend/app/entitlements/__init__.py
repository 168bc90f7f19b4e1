"""Seat entitlements: activity, balances, renewals and redemption."""

from .activity import is_active, latest_subscription, status_ok, subscription_state
from .models import (
    DependentProfile,
    DependentProfileDraft,
    MembershipBlock,
    ReconciliationReport,
    RedemptionMethod,
    RedemptionReceipt,
    RemoteProcedureResult,
    RenewableSeat,
    RenewalFlow,
    RenewalReminderReport,
    SeatStatus,
    SubscriptionRecord,
    SubscriptionState,
    SubscriptionStatus,
)
from .reminders import RenewalNotifier, RenewalReminderJob
from .renewals import is_renewable, renewable_seat_count, renewable_seat_list, renewal_flow, renewal_horizon
from .service import (
    EntitlementGateway,
    EntitlementRedemptionCoordinator,
    OrphanedProfileReconciler,
    PlanRepository,
    ProfileRepository,
    RenewalWindowCalculator,
    SeatLedgerResolver,
    SubscriptionRepository,
    coerce_seat_balance,
    is_already_used_message,
)

__all__ = [
    "DependentProfile",
    "DependentProfileDraft",
    "EntitlementGateway",
    "EntitlementRedemptionCoordinator",
    "MembershipBlock",
    "OrphanedProfileReconciler",
    "PlanRepository",
    "ProfileRepository",
    "ReconciliationReport",
    "RedemptionMethod",
    "RedemptionReceipt",
    "RemoteProcedureResult",
    "RenewableSeat",
    "RenewalFlow",
    "RenewalNotifier",
    "RenewalReminderJob",
    "RenewalReminderReport",
    "RenewalWindowCalculator",
    "SeatLedgerResolver",
    "SeatStatus",
    "SubscriptionRecord",
    "SubscriptionRepository",
    "SubscriptionState",
    "SubscriptionStatus",
    "coerce_seat_balance",
    "is_active",
    "is_already_used_message",
    "is_renewable",
    "latest_subscription",
    "renewable_seat_count",
    "renewable_seat_list",
    "renewal_flow",
    "renewal_horizon",
    "status_ok",
    "subscription_state",
]
