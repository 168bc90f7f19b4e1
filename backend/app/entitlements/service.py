"""Services resolving seat balances and redeeming entitlements for new dependents."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Mapping, Optional, Protocol, Sequence
from uuid import uuid4

from ..billing.exceptions import (
    BillingError,
    CodeAlreadyUsed,
    CodeInvalid,
    EntitlementExhausted,
    RemoteWriteFailed,
)
from ..config import DEFAULT_FREE_CODE_PLAN_ID, DEFAULT_ORPHAN_PROFILE_TIMEOUT_MINUTES, DEFAULT_RENEW_WINDOW_DAYS
from .activity import subscription_state
from .models import (
    DependentProfile,
    DependentProfileDraft,
    ReconciliationReport,
    RedemptionMethod,
    RedemptionReceipt,
    RemoteProcedureResult,
    RenewableSeat,
    SeatStatus,
    SubscriptionRecord,
    SubscriptionState,
)
from .renewals import renewable_seat_list

logger = logging.getLogger("entitlements")

# Only an "already used" reply may fall back to a seat; "unused" or "cannot be used" must not.
_ALREADY_USED_PATTERN = re.compile(
    r"\balready\s+(?:been\s+)?(?:used|redeemed)\b"
    r"|\bya\s+(?:fue\s+)?(?:usad[oa]|utilizad[oa]|canjead[oa])\b"
    r"|(?<!no\s)\butilizad[oa]\b",
    re.IGNORECASE,
)


class EntitlementGateway(Protocol):
    """Remote procedures that own seat accounting and code redemption."""

    def seats_remaining(self, user_id: str) -> object:
        ...

    def ensure_profile(self, user_id: str) -> None:
        ...

    def create_code_subscription(self, code: str, plan_id: str) -> RemoteProcedureResult:
        ...

    def redeem_access_code(self, code: str, user_id: str, profile_id: str) -> RemoteProcedureResult:
        ...

    def assign_free_seat(self, user_id: str, profile_id: str) -> RemoteProcedureResult:
        ...


class SubscriptionRepository(Protocol):
    """Read and maintenance access to subscription rows."""

    def list_subscriptions(self, user_id: str) -> Sequence[SubscriptionRecord]:
        ...

    def list_expiring(self, *, start: datetime, end: datetime) -> Sequence[SubscriptionRecord]:
        ...

    def mark_expiry_notified(self, subscription_id: str, notified_at: datetime) -> None:
        ...

    def deactivate_expired(self, now: datetime) -> int:
        ...


class PlanRepository(Protocol):
    def find_free_plan_id(self) -> Optional[str]:
        ...


class ProfileRepository(Protocol):
    """Persistence for dependent profiles and their membership rows."""

    def create_profile(
        self,
        user_id: str,
        draft: DependentProfileDraft,
        *,
        redemption_key: str,
    ) -> DependentProfile:
        ...

    def confirm_entitlement(self, profile_id: str, confirmed_at: datetime) -> None:
        ...

    def count_unconfirmed(self, user_id: str) -> int:
        ...

    def list_unconfirmed(self, *, created_before: datetime) -> Sequence[DependentProfile]:
        ...

    def archive_profile(self, profile_id: str, archived_at: datetime) -> None:
        ...


def coerce_seat_balance(raw: object) -> int:
    """Normalize a ``seats_remaining`` payload into a non-negative count."""

    if isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)):
        raw = raw[0] if raw else None
    if isinstance(raw, Mapping):
        raw = raw.get("remaining", raw.get("seats"))
    if isinstance(raw, bool) or raw is None:
        return 0
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def is_already_used_message(message: Optional[str]) -> bool:
    return bool(message) and bool(_ALREADY_USED_PATTERN.search(message))


@dataclass
class SeatLedgerResolver:
    """Answers how many unused seats a user holds; fails closed to zero."""

    gateway: EntitlementGateway
    profiles: Optional[ProfileRepository] = None

    def remaining_seats(self, user_id: str) -> int:
        try:
            raw = self.gateway.seats_remaining(user_id)
        except Exception:
            logger.exception("seats_remaining failed for user=%s; treating balance as zero", user_id)
            return 0
        return coerce_seat_balance(raw)

    def seat_status(self, user_id: str) -> SeatStatus:
        pending = 0
        if self.profiles is not None:
            try:
                pending = max(0, int(self.profiles.count_unconfirmed(user_id)))
            except Exception:
                logger.exception("Could not count unconfirmed profiles for user=%s", user_id)
        return SeatStatus(remaining=self.remaining_seats(user_id), pending_profiles=pending)


class RenewalWindowCalculator:
    """Counts the seats a user may renew inside the configured window."""

    def __init__(
        self,
        subscriptions: SubscriptionRepository,
        *,
        window_days: int = DEFAULT_RENEW_WINDOW_DAYS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._window_days = max(0, window_days)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def window_days(self) -> int:
        return self._window_days

    def renewable_seat_list(self, user_id: str, window_days: Optional[int] = None) -> List[RenewableSeat]:
        rows = self._subscriptions.list_subscriptions(user_id)
        days = self._window_days if window_days is None else max(0, window_days)
        return renewable_seat_list(rows, window_days=days, now=self._clock())

    def renewable_seat_count(self, user_id: str, window_days: Optional[int] = None) -> int:
        return sum(seat.seats for seat in self.renewable_seat_list(user_id, window_days))

    def subscription_state(self, user_id: str) -> SubscriptionState:
        return subscription_state(self._subscriptions.list_subscriptions(user_id), now=self._clock())


@dataclass
class EntitlementRedemptionCoordinator:
    """Creates a dependent profile while consuming exactly one entitlement.

    The order of remote calls matters: the seat barrier is checked before any
    write, a code subscription is created before the profile exists, and the
    seat or code is consumed only once the profile row is persisted.
    """

    gateway: EntitlementGateway
    profiles: ProfileRepository
    plans: PlanRepository
    seat_ledger: SeatLedgerResolver
    free_plan_id: str = DEFAULT_FREE_CODE_PLAN_ID
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def create_dependent_profile(
        self,
        user_id: str,
        draft: DependentProfileDraft,
        *,
        access_code: Optional[str] = None,
    ) -> RedemptionReceipt:
        code = (access_code or "").strip() or None

        if code is None and self.seat_ledger.remaining_seats(user_id) <= 0:
            raise EntitlementExhausted(detail={"remaining": 0})

        self._call("ensure_profile_server", self.gateway.ensure_profile, user_id)

        if code is not None:
            plan_id = self._resolve_free_plan_id()
            created = self._call("create_code_subscription", self.gateway.create_code_subscription, code, plan_id)
            if not created.ok:
                raise CodeInvalid(message=created.message or CodeInvalid.message)

        profile = self._call(
            "create_profile",
            self.profiles.create_profile,
            user_id,
            draft,
            redemption_key=uuid4().hex,
        )

        if code is not None:
            receipt = self._redeem_code(code, user_id, profile)
        else:
            receipt = self._assign_seat(user_id, profile)

        self._confirm(profile)
        logger.info(
            "Entitlement consumed user=%s profile=%s method=%s",
            user_id,
            profile.id,
            receipt.method.value,
        )
        return receipt

    def _redeem_code(self, code: str, user_id: str, profile: DependentProfile) -> RedemptionReceipt:
        redeemed = self._call(
            "redeem_access_code_for_player",
            self.gateway.redeem_access_code,
            code,
            user_id,
            profile.id,
        )
        if redeemed.ok:
            return RedemptionReceipt(profile_id=profile.id, method=RedemptionMethod.ACCESS_CODE, ends_at=redeemed.ends_at)

        if not is_already_used_message(redeemed.message):
            raise CodeInvalid(
                message=redeemed.message or CodeInvalid.message,
                detail={"profile_id": profile.id},
            )

        logger.warning(
            "Access code already used by user=%s; falling back to a purchased seat for profile=%s",
            user_id,
            profile.id,
        )
        fallback = self._call(
            "assign_free_seat_to_player",
            self.gateway.assign_free_seat,
            user_id,
            profile.id,
        )
        if not fallback.ok:
            raise CodeAlreadyUsed(
                message=redeemed.message or CodeAlreadyUsed.message,
                detail={"profile_id": profile.id},
            )
        return RedemptionReceipt(profile_id=profile.id, method=RedemptionMethod.SEAT_FALLBACK, ends_at=fallback.ends_at)

    def _assign_seat(self, user_id: str, profile: DependentProfile) -> RedemptionReceipt:
        assigned = self._call("assign_free_seat_to_player", self.gateway.assign_free_seat, user_id, profile.id)
        if not assigned.ok:
            logger.error(
                "Seat assignment refused for user=%s profile=%s: %s",
                user_id,
                profile.id,
                assigned.message,
            )
            raise RemoteWriteFailed(
                message=assigned.message or "Seat assignment failed",
                detail={"profile_id": profile.id},
            )
        return RedemptionReceipt(profile_id=profile.id, method=RedemptionMethod.SEAT, ends_at=assigned.ends_at)

    def _confirm(self, profile: DependentProfile) -> None:
        try:
            self.profiles.confirm_entitlement(profile.id, self.clock())
        except Exception:
            logger.exception("Could not stamp entitlement confirmation for profile=%s", profile.id)

    def _resolve_free_plan_id(self) -> str:
        try:
            plan_id = self.plans.find_free_plan_id()
        except Exception:
            logger.warning("Free plan lookup failed; using %s", self.free_plan_id, exc_info=True)
            plan_id = None
        return plan_id or self.free_plan_id

    def _call(self, operation: str, func: Callable[..., object], *args: object, **kwargs: object):
        try:
            return func(*args, **kwargs)
        except BillingError:
            raise
        except Exception as exc:
            logger.exception("Remote call %s failed", operation)
            raise RemoteWriteFailed(
                message=f"{operation} failed",
                detail={"operation": operation},
            ) from exc


class OrphanedProfileReconciler:
    """Settles profiles whose entitlement was never confirmed.

    Each stale profile gets one seat-assignment attempt; success confirms it,
    a refusal archives it. Transport failures leave it for the next run.
    """

    def __init__(
        self,
        gateway: EntitlementGateway,
        profiles: ProfileRepository,
        *,
        timeout_minutes: int = DEFAULT_ORPHAN_PROFILE_TIMEOUT_MINUTES,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._gateway = gateway
        self._profiles = profiles
        self._timeout = timedelta(minutes=max(1, timeout_minutes))
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def run(self) -> ReconciliationReport:
        now = self._clock()
        candidates = list(self._profiles.list_unconfirmed(created_before=now - self._timeout))
        confirmed = archived = failed = 0
        for profile in candidates:
            try:
                result = self._gateway.assign_free_seat(profile.user_id, profile.id)
            except Exception:
                logger.exception("Seat assignment failed while reconciling profile=%s", profile.id)
                failed += 1
                continue
            try:
                if result.ok:
                    self._profiles.confirm_entitlement(profile.id, now)
                    confirmed += 1
                else:
                    logger.warning(
                        "Archiving orphaned profile=%s user=%s: %s",
                        profile.id,
                        profile.user_id,
                        result.message,
                    )
                    self._profiles.archive_profile(profile.id, now)
                    archived += 1
            except Exception:
                logger.exception("Could not settle orphaned profile=%s", profile.id)
                failed += 1
        report = ReconciliationReport(
            examined=len(candidates),
            confirmed=confirmed,
            archived=archived,
            failed=failed,
        )
        logger.info(
            "Orphaned profile reconciliation examined=%s confirmed=%s archived=%s failed=%s",
            report.examined,
            report.confirmed,
            report.archived,
            report.failed,
        )
        return report


__all__ = [
    "EntitlementGateway",
    "EntitlementRedemptionCoordinator",
    "OrphanedProfileReconciler",
    "PlanRepository",
    "ProfileRepository",
    "RenewalWindowCalculator",
    "SeatLedgerResolver",
    "SubscriptionRepository",
    "coerce_seat_balance",
    "is_already_used_message",
]
