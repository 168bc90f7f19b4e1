from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from backend.app.billing import CodeAlreadyUsed, CodeInvalid, EntitlementExhausted, RemoteWriteFailed
from backend.app.entitlements import (
    DependentProfile,
    DependentProfileDraft,
    EntitlementRedemptionCoordinator,
    MembershipBlock,
    RedemptionMethod,
    RemoteProcedureResult,
    RenewalFlow,
    RenewalWindowCalculator,
    SeatLedgerResolver,
    SubscriptionRecord,
    SubscriptionStatus,
    coerce_seat_balance,
    is_active,
    renewable_seat_count,
    renewable_seat_list,
    renewal_flow,
    subscription_state,
)
from backend.app.entitlements.service import is_already_used_message

NOW = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)


class FakeGateway:
    def __init__(
        self,
        *,
        seats: object = 1,
        code_subscription: Optional[RemoteProcedureResult] = None,
        redeem: Optional[RemoteProcedureResult] = None,
        assign: Optional[RemoteProcedureResult] = None,
    ) -> None:
        self.seats = seats
        self.code_subscription = code_subscription or RemoteProcedureResult(ok=True)
        self.redeem = redeem or RemoteProcedureResult(ok=True, ends_at=NOW + timedelta(days=365))
        self.assign = assign or RemoteProcedureResult(ok=True, ends_at=NOW + timedelta(days=365))
        self.calls: List[Tuple[str, tuple]] = []

    def seats_remaining(self, user_id: str) -> object:
        self.calls.append(("seats_remaining", (user_id,)))
        if isinstance(self.seats, Exception):
            raise self.seats
        return self.seats

    def ensure_profile(self, user_id: str) -> None:
        self.calls.append(("ensure_profile", (user_id,)))

    def create_code_subscription(self, code: str, plan_id: str) -> RemoteProcedureResult:
        self.calls.append(("create_code_subscription", (code, plan_id)))
        return self.code_subscription

    def redeem_access_code(self, code: str, user_id: str, profile_id: str) -> RemoteProcedureResult:
        self.calls.append(("redeem_access_code", (code, user_id, profile_id)))
        return self.redeem

    def assign_free_seat(self, user_id: str, profile_id: str) -> RemoteProcedureResult:
        self.calls.append(("assign_free_seat", (user_id, profile_id)))
        if isinstance(self.assign, Exception):
            raise self.assign
        return self.assign

    def names(self) -> List[str]:
        return [name for name, _ in self.calls]


class FakeProfiles:
    def __init__(self, *, fail_confirm: bool = False) -> None:
        self.profiles: Dict[str, DependentProfile] = {}
        self.confirmed: Dict[str, datetime] = {}
        self.archived: Dict[str, datetime] = {}
        self.fail_confirm = fail_confirm
        self.unconfirmed_count = 0

    def create_profile(self, user_id: str, draft: DependentProfileDraft, *, redemption_key: str) -> DependentProfile:
        profile = DependentProfile(
            id=f"p-{len(self.profiles) + 1}",
            user_id=user_id,
            full_name=draft.full_name,
            redemption_key=redemption_key,
            created_at=NOW,
        )
        self.profiles[profile.id] = profile
        return profile

    def confirm_entitlement(self, profile_id: str, confirmed_at: datetime) -> None:
        if self.fail_confirm:
            raise RuntimeError("database unavailable")
        self.confirmed[profile_id] = confirmed_at

    def count_unconfirmed(self, user_id: str) -> int:
        return self.unconfirmed_count

    def list_unconfirmed(self, *, created_before: datetime) -> Sequence[DependentProfile]:
        return [
            profile
            for profile in self.profiles.values()
            if profile.id not in self.confirmed and profile.created_at < created_before
        ]

    def archive_profile(self, profile_id: str, archived_at: datetime) -> None:
        self.archived[profile_id] = archived_at


class FakePlans:
    def __init__(self, plan_id: Optional[str] = "plan-free", *, error: Optional[Exception] = None) -> None:
        self.plan_id = plan_id
        self.error = error

    def find_free_plan_id(self) -> Optional[str]:
        if self.error is not None:
            raise self.error
        return self.plan_id


class FakeSubscriptions:
    def __init__(self, rows: Sequence[SubscriptionRecord] = ()) -> None:
        self.rows = list(rows)

    def list_subscriptions(self, user_id: str) -> Sequence[SubscriptionRecord]:
        return [row for row in self.rows if row.user_id == user_id]


def _subscription(
    sub_id: str,
    *,
    status: object = "active",
    period_end: Optional[datetime] = None,
    seats: object = 1,
    created_at: datetime = NOW - timedelta(days=30),
    user_id: str = "user-1",
) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=sub_id,
        user_id=user_id,
        status=status,
        current_period_end=period_end,
        seats=seats,
        created_at=created_at,
    )


def _draft(**overrides) -> DependentProfileDraft:
    values = {
        "full_name": "Lucia Perez",
        "birthday": date(2014, 5, 4),
        "memberships": [MembershipBlock(sport_id="football", competition_name="Liga Alevin", club_name="CD Norte")],
    }
    values.update(overrides)
    return DependentProfileDraft(**values)


def _coordinator(gateway: FakeGateway, profiles: Optional[FakeProfiles] = None, plans: Optional[FakePlans] = None):
    profiles = profiles or FakeProfiles()
    coordinator = EntitlementRedemptionCoordinator(
        gateway=gateway,
        profiles=profiles,
        plans=plans or FakePlans(),
        seat_ledger=SeatLedgerResolver(gateway=gateway, profiles=profiles),
        clock=lambda: NOW,
    )
    return coordinator, profiles


@pytest.mark.parametrize(
    "status, period_end, expected",
    [
        ("active", None, True),
        ("active", NOW + timedelta(days=1), True),
        ("active", NOW, True),
        ("active", NOW - timedelta(seconds=1), False),
        ("ACTIVE", NOW + timedelta(days=1), True),
        (True, NOW + timedelta(days=1), True),
        ("inactive", None, False),
        ("canceled", NOW + timedelta(days=1), False),
        (False, None, False),
        (None, None, False),
    ],
)
def test_is_active_grid(status, period_end, expected):
    assert is_active(_subscription("s1", status=status, period_end=period_end), now=NOW) is expected


def test_status_is_resolved_to_enum_at_the_boundary():
    assert _subscription("s1", status=True).status is SubscriptionStatus.ACTIVE
    assert _subscription("s1", status="Active").status is SubscriptionStatus.ACTIVE
    assert _subscription("s1", status="paused").status is SubscriptionStatus.INACTIVE


def test_subscription_record_defaults_missing_seats_to_one():
    assert _subscription("s1", seats=None).seats == 1
    assert _subscription("s1", seats="3").seats == 3


def test_subscription_state_uses_latest_row_only():
    rows = [
        _subscription("old", status="active", period_end=NOW + timedelta(days=20), created_at=NOW - timedelta(days=60)),
        _subscription("new", status="inactive", created_at=NOW - timedelta(days=1)),
    ]

    state = subscription_state(rows, now=NOW)

    assert state.has_any is True
    assert state.is_active is False
    assert state.latest.id == "new"


def test_subscription_state_without_rows():
    state = subscription_state([], now=NOW)

    assert state.has_any is False
    assert state.is_active is False
    assert state.latest is None


def test_renewable_seat_list_applies_window():
    rows = [
        _subscription("inactive", status="inactive", seats=2),
        _subscription("ending-soon", period_end=NOW + timedelta(days=10)),
        _subscription("ends-later", period_end=NOW + timedelta(days=40)),
        _subscription("expired-active", period_end=NOW - timedelta(days=2)),
        _subscription("open-ended", period_end=None),
    ]

    seats = renewable_seat_list(rows, window_days=15, now=NOW)

    assert [seat.subscription_id for seat in seats] == ["inactive", "ending-soon", "expired-active"]
    assert {seat.subscription_id: seat.expired for seat in seats} == {
        "inactive": True,
        "ending-soon": False,
        "expired-active": True,
    }
    assert renewable_seat_count(rows, window_days=15, now=NOW) == 4


def test_renewable_seat_count_with_zero_window_excludes_future_rows():
    rows = [_subscription("tomorrow", period_end=NOW + timedelta(days=1))]

    assert renewable_seat_count(rows, window_days=0, now=NOW) == 0


@pytest.mark.parametrize(
    "count, flow",
    [(0, RenewalFlow.NONE), (-1, RenewalFlow.NONE), (1, RenewalFlow.SINGLE_SEAT), (2, RenewalFlow.MULTI_SEAT)],
)
def test_renewal_flow(count, flow):
    assert renewal_flow(count) is flow


def test_renewal_window_calculator_reads_user_rows():
    repo = FakeSubscriptions(
        [
            _subscription("mine", period_end=NOW + timedelta(days=3), seats=2),
            _subscription("theirs", period_end=NOW + timedelta(days=3), user_id="user-2"),
        ]
    )
    calculator = RenewalWindowCalculator(repo, window_days=15, clock=lambda: NOW)

    assert calculator.renewable_seat_count("user-1") == 2
    assert calculator.renewable_seat_count("user-1", window_days=1) == 0
    assert calculator.subscription_state("user-1").is_active is True


@pytest.mark.parametrize(
    "raw, expected",
    [
        (3, 3),
        ("2", 2),
        (-4, 0),
        (None, 0),
        ("abc", 0),
        (True, 0),
        ([{"remaining": 5}], 5),
        ({"seats": 1}, 1),
        ([], 0),
    ],
)
def test_coerce_seat_balance(raw, expected):
    assert coerce_seat_balance(raw) == expected


def test_seat_ledger_fails_closed_on_gateway_error():
    ledger = SeatLedgerResolver(gateway=FakeGateway(seats=RuntimeError("timeout")))

    assert ledger.remaining_seats("user-1") == 0


def test_seat_status_reports_pending_profiles():
    profiles = FakeProfiles()
    profiles.unconfirmed_count = 2
    ledger = SeatLedgerResolver(gateway=FakeGateway(seats=4), profiles=profiles)

    status = ledger.seat_status("user-1")

    assert status.remaining == 4
    assert status.pending_profiles == 2


@pytest.mark.parametrize(
    "message, expected",
    [
        ("Code already redeemed", True),
        ("Code has ALREADY BEEN USED", True),
        ("Código ya usado", True),
        ("El código ya fue canjeado", True),
        ("Código utilizado", True),
        ("Código no utilizado", False),
        ("Code unused: not valid for this plan", False),
        ("This code cannot be used after its expiry date", False),
        ("Code expired", False),
        (None, False),
        ("", False),
    ],
)
def test_is_already_used_message(message, expected):
    assert is_already_used_message(message) is expected


def test_zero_seats_without_code_is_rejected_before_any_write():
    gateway = FakeGateway(seats=0)
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(EntitlementExhausted) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft())

    assert excinfo.value.status_code == 402
    assert gateway.names() == ["seats_remaining"]
    assert profiles.profiles == {}


def test_seat_path_consumes_one_seat_and_confirms():
    gateway = FakeGateway(seats=2)
    coordinator, profiles = _coordinator(gateway)

    receipt = coordinator.create_dependent_profile("user-1", _draft())

    assert receipt.method is RedemptionMethod.SEAT
    assert receipt.profile_id == "p-1"
    assert gateway.names() == ["seats_remaining", "ensure_profile", "assign_free_seat"]
    assert profiles.confirmed == {"p-1": NOW}
    assert profiles.profiles["p-1"].redemption_key


def test_seat_assignment_refusal_raises_remote_write_failed():
    gateway = FakeGateway(seats=1, assign=RemoteProcedureResult(ok=False, message="no seats"))
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(RemoteWriteFailed) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft())

    assert excinfo.value.payload["profile_id"] == "p-1"
    assert profiles.confirmed == {}


def test_code_path_skips_seat_barrier_and_redeems_once():
    gateway = FakeGateway(seats=0)
    coordinator, profiles = _coordinator(gateway)

    receipt = coordinator.create_dependent_profile("user-1", _draft(), access_code="  CLUB-2025 ")

    assert receipt.method is RedemptionMethod.ACCESS_CODE
    assert gateway.names() == ["ensure_profile", "create_code_subscription", "redeem_access_code"]
    assert gateway.calls[1] == ("create_code_subscription", ("CLUB-2025", "plan-free"))
    assert gateway.calls[2] == ("redeem_access_code", ("CLUB-2025", "user-1", "p-1"))
    assert list(profiles.confirmed) == ["p-1"]


def test_blank_code_is_treated_as_seat_redemption():
    gateway = FakeGateway(seats=0)
    coordinator, _ = _coordinator(gateway)

    with pytest.raises(EntitlementExhausted):
        coordinator.create_dependent_profile("user-1", _draft(), access_code="   ")


def test_free_plan_lookup_failure_uses_configured_plan():
    gateway = FakeGateway()
    coordinator, _ = _coordinator(gateway, plans=FakePlans(error=RuntimeError("db down")))

    coordinator.create_dependent_profile("user-1", _draft(), access_code="CODE")

    assert gateway.calls[1] == ("create_code_subscription", ("CODE", "free-code-hidden"))


def test_invalid_code_stops_before_profile_creation():
    gateway = FakeGateway(code_subscription=RemoteProcedureResult(ok=False, message="Unknown code"))
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(CodeInvalid) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft(), access_code="NOPE")

    assert excinfo.value.message == "Unknown code"
    assert profiles.profiles == {}
    assert "redeem_access_code" not in gateway.names()


def test_used_code_falls_back_to_purchased_seat():
    gateway = FakeGateway(redeem=RemoteProcedureResult(ok=False, message="Code already used"))
    coordinator, profiles = _coordinator(gateway)

    receipt = coordinator.create_dependent_profile("user-1", _draft(), access_code="CODE")

    assert receipt.method is RedemptionMethod.SEAT_FALLBACK
    assert gateway.names()[-2:] == ["redeem_access_code", "assign_free_seat"]
    assert list(profiles.confirmed) == ["p-1"]


def test_used_code_without_spare_seat_raises_conflict():
    gateway = FakeGateway(
        redeem=RemoteProcedureResult(ok=False, message="Código ya usado"),
        assign=RemoteProcedureResult(ok=False, message="no seats"),
    )
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(CodeAlreadyUsed) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft(), access_code="CODE")

    assert excinfo.value.status_code == 409
    assert profiles.confirmed == {}


def test_other_redemption_failure_does_not_fall_back():
    gateway = FakeGateway(redeem=RemoteProcedureResult(ok=False, message="Code expired"))
    coordinator, _ = _coordinator(gateway)

    with pytest.raises(CodeInvalid):
        coordinator.create_dependent_profile("user-1", _draft(), access_code="CODE")

    assert "assign_free_seat" not in gateway.names()


def test_expired_code_reply_never_spends_a_purchased_seat():
    gateway = FakeGateway(
        seats=3,
        redeem=RemoteProcedureResult(ok=False, message="This code cannot be used after its expiry date"),
    )
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(CodeInvalid) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft(), access_code="EXPIRED1")

    assert excinfo.value.payload["profile_id"] == "p-1"
    assert gateway.names() == ["ensure_profile", "create_code_subscription", "redeem_access_code"]
    assert profiles.confirmed == {}


def test_unreadable_seat_balance_blocks_profile_creation():
    gateway = FakeGateway(seats=RuntimeError("timeout"))
    coordinator, profiles = _coordinator(gateway)

    with pytest.raises(EntitlementExhausted):
        coordinator.create_dependent_profile("user-1", _draft())

    assert gateway.names() == ["seats_remaining"]
    assert profiles.profiles == {}


def test_same_code_is_redeemed_at_most_once_across_sequential_calls():
    gateway = FakeGateway(seats=1)
    coordinator, profiles = _coordinator(gateway)

    first = coordinator.create_dependent_profile("user-1", _draft(), access_code="CLUB-2025")
    gateway.redeem = RemoteProcedureResult(ok=False, message="Code already used")
    second = coordinator.create_dependent_profile("user-1", _draft(full_name="Mario Perez"), access_code="CLUB-2025")

    assert first.method is RedemptionMethod.ACCESS_CODE
    assert second.method is RedemptionMethod.SEAT_FALLBACK
    redeemed = [args for name, args in gateway.calls if name == "redeem_access_code"]
    assert [args[2] for args in redeemed] == ["p-1", "p-2"]
    assert gateway.names().count("assign_free_seat") == 1
    assert sorted(profiles.confirmed) == ["p-1", "p-2"]


def test_same_code_without_spare_seat_is_rejected_the_second_time():
    gateway = FakeGateway(seats=0)
    coordinator, profiles = _coordinator(gateway)

    coordinator.create_dependent_profile("user-1", _draft(), access_code="CLUB-2025")
    gateway.redeem = RemoteProcedureResult(ok=False, message="Code already used")
    gateway.assign = RemoteProcedureResult(ok=False, message="no seats")

    with pytest.raises(CodeAlreadyUsed):
        coordinator.create_dependent_profile("user-1", _draft(full_name="Mario Perez"), access_code="CLUB-2025")

    assert list(profiles.confirmed) == ["p-1"]


def test_each_redemption_consumes_at_most_one_entitlement():
    gateway = FakeGateway(seats=5)
    coordinator, profiles = _coordinator(gateway)

    coordinator.create_dependent_profile("user-1", _draft())
    coordinator.create_dependent_profile("user-1", _draft(full_name="Mario Perez"))

    assert gateway.names().count("assign_free_seat") == 2
    assert len(profiles.profiles) == 2
    keys = {profile.redemption_key for profile in profiles.profiles.values()}
    assert len(keys) == 2


def test_transport_error_is_wrapped_as_remote_write_failed():
    gateway = FakeGateway(assign=ConnectionError("reset by peer"))
    coordinator, _ = _coordinator(gateway)

    with pytest.raises(RemoteWriteFailed) as excinfo:
        coordinator.create_dependent_profile("user-1", _draft())

    assert excinfo.value.payload["operation"] == "assign_free_seat_to_player"


def test_confirmation_failure_is_swallowed():
    gateway = FakeGateway()
    coordinator, _ = _coordinator(gateway, profiles=FakeProfiles(fail_confirm=True))

    receipt = coordinator.create_dependent_profile("user-1", _draft())

    assert receipt.method is RedemptionMethod.SEAT


def test_membership_block_requires_club_for_team():
    with pytest.raises(ValueError):
        MembershipBlock(sport_id="football", competition_name="Liga", team_name="Infantil A")


def test_membership_block_blank_optional_fields_become_none():
    block = MembershipBlock(sport_id="basket", competition_name="Liga", club_name="  ", category_id="")

    assert block.club_name is None
    assert block.category_id is None


def test_draft_limits_membership_blocks():
    block = MembershipBlock(sport_id="football", competition_name="Liga")
    with pytest.raises(ValueError):
        DependentProfileDraft(full_name="Ana", memberships=[block] * 6)
    with pytest.raises(ValueError):
        DependentProfileDraft(full_name="Ana", memberships=[])


def test_remote_procedure_result_from_payload_shapes():
    nested = RemoteProcedureResult.from_payload(
        [{"redeem_access_code_for_player": {"ok": True, "ends_at": "2025-09-01T00:00:00Z"}}],
        procedure="redeem_access_code_for_player",
    )
    flat = RemoteProcedureResult.from_payload({"ok": False, "message": "nope"})
    empty = RemoteProcedureResult.from_payload([])

    assert nested.ok is True
    assert nested.ends_at == datetime(2025, 9, 1, tzinfo=timezone.utc)
    assert flat.ok is False and flat.message == "nope"
    assert empty.ok is False
