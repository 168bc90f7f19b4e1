from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import List, Optional, Sequence

import pytest

from backend.app.payments import (
    PaymentHistoryService,
    PaymentRecord,
    PaymentSource,
    RefundState,
    RemoteCharge,
    classify_refund,
    fetch_bound,
    merge_payments,
)
from backend.app.payments.stripe_provider import (
    USER_METADATA_KEY,
    StripeChargeProvider,
    StripeCustomerResolver,
    remote_charge_from_intent,
)

BASE = datetime(2025, 1, 15, 10, tzinfo=timezone.utc)


def _local(row_id: int, *, days: int, intent: Optional[str] = None, **extra) -> PaymentRecord:
    row = {
        "id": row_id,
        "user_id": "user-1",
        "amount_cents": 4500,
        "currency": "eur",
        "paid_at": BASE + timedelta(days=days),
        "description": f"Season pass {row_id}",
        "stripe_payment_intent_id": intent,
        "status": "succeeded",
    }
    row.update(extra)
    return PaymentRecord.from_row(row)


def _remote(intent: str, *, days: Optional[int], status: str = "succeeded", refunded: Optional[int] = None) -> RemoteCharge:
    return RemoteCharge(
        id=intent,
        amount=4500,
        currency="eur",
        paid_at=BASE + timedelta(days=days) if days is not None else None,
        stripe_payment_intent_id=intent,
        status=status,
        refunded_amount=refunded,
    )


class FakeLedger:
    def __init__(self, rows: Sequence[PaymentRecord] = (), *, error: Optional[Exception] = None) -> None:
        self.rows = list(rows)
        self.error = error
        self.calls: List[dict] = []

    def list_payments(self, user_id: str, *, limit: int, subscription_id: Optional[str] = None):
        self.calls.append({"user_id": user_id, "limit": limit, "subscription_id": subscription_id})
        if self.error is not None:
            raise self.error
        return self.rows[:limit]


class FakeCharges:
    def __init__(self, charges: Sequence[RemoteCharge] = (), *, error: Optional[Exception] = None) -> None:
        self.charges = list(charges)
        self.error = error
        self.calls: List[tuple] = []

    def list_charges(self, customer_id: str, *, limit: int):
        self.calls.append((customer_id, limit))
        if self.error is not None:
            raise self.error
        return self.charges[:limit]


class FakeCustomers:
    def __init__(self, customer_id: Optional[str] = "cus_1") -> None:
        self.customer_id = customer_id

    def resolve_customer_id(self, user_id: str, *, email: Optional[str] = None) -> Optional[str]:
        return self.customer_id


@pytest.mark.parametrize(
    "amount, refunded, status, expected",
    [
        (1000, 0, "succeeded", RefundState.PAID),
        (1000, None, None, RefundState.PAID),
        (1000, 400, "succeeded", RefundState.PARTIAL_REFUND),
        (1000, 1000, "succeeded", RefundState.FULL_REFUND),
        (1000, 1500, None, RefundState.FULL_REFUND),
        (1000, 0, "refunded", RefundState.FULL_REFUND),
        (None, 200, None, RefundState.PARTIAL_REFUND),
    ],
)
def test_classify_refund(amount, refunded, status, expected):
    assert classify_refund(amount, refunded, status) is expected


def test_local_refunded_status_implies_full_refund():
    record = _local(1, days=0, status="refunded")

    assert record.refunded_amount == 4500
    assert record.refund_state is RefundState.FULL_REFUND


def test_local_row_defaults():
    record = PaymentRecord.from_row({"id": 9, "amount_cents": None, "currency": None, "paid_at": "2025-01-01T00:00:00Z"})

    assert record.id == "9"
    assert record.currency == "EUR"
    assert record.provider == "stripe"
    assert record.merge_key == "db:9"
    assert record.paid_at == datetime(2025, 1, 1, tzinfo=timezone.utc)


def test_merge_deduplicates_by_intent_and_prefers_remote_status():
    local = [_local(1, days=0, intent="pi_1"), _local(2, days=-3)]
    remote = [_remote("pi_1", days=0, status="partially_refunded", refunded=1000), _remote("pi_2", days=2)]

    merged = merge_payments(local, remote)

    assert [payment.merge_key for payment in merged] == ["pi_2", "pi_1", "db:2"]
    collided = merged[1]
    assert collided.id == "1"
    assert collided.source is PaymentSource.LOCAL
    assert collided.description == "Season pass 1"
    assert collided.status == "partially_refunded"
    assert collided.refund_state is RefundState.PARTIAL_REFUND
    assert merged[0].source is PaymentSource.STRIPE


def test_merge_sorts_missing_dates_last():
    merged = merge_payments([], [_remote("pi_old", days=None), _remote("pi_new", days=1)])

    assert [payment.id for payment in merged] == ["pi_new", "pi_old"]


def test_merge_keeps_every_local_row_without_intent():
    local = [_local(1, days=0), _local(2, days=0)]

    assert len(merge_payments(local, [])) == 2


def test_fetch_bound_is_capped():
    assert fetch_bound(10, 0) == 30
    assert fetch_bound(10, 30) == 50


def test_pagination_over_merged_window():
    local = [_local(index, days=-index) for index in range(1, 26)]
    service = PaymentHistoryService(ledger=FakeLedger(local))

    first = service.fetch_user_payments("user-1", limit=10, offset=0)
    third = service.fetch_user_payments("user-1", limit=10, offset=20)

    assert first.total == 25
    assert [payment.id for payment in first.payments] == [str(index) for index in range(1, 11)]
    assert [payment.id for payment in third.payments] == [str(index) for index in range(21, 26)]


def test_subscription_filter_skips_processor():
    charges = FakeCharges([_remote("pi_1", days=0)])
    ledger = FakeLedger([_local(1, days=0)])
    service = PaymentHistoryService(ledger=ledger, charges=charges, customers=FakeCustomers())

    page = service.fetch_user_payments("user-1", limit=10, subscription_id="sub-9")

    assert charges.calls == []
    assert ledger.calls[0]["subscription_id"] == "sub-9"
    assert page.total == 1


def test_remote_failure_degrades_to_local_rows():
    service = PaymentHistoryService(
        ledger=FakeLedger([_local(1, days=0)]),
        charges=FakeCharges(error=RuntimeError("stripe down")),
        customers=FakeCustomers(),
    )

    page = service.fetch_user_payments("user-1", limit=10)

    assert [payment.id for payment in page.payments] == ["1"]


def test_local_failure_degrades_to_remote_rows():
    charges = FakeCharges([_remote("pi_1", days=0)])
    service = PaymentHistoryService(
        ledger=FakeLedger(error=RuntimeError("db down")),
        charges=charges,
        customers=FakeCustomers(),
    )

    page = service.fetch_user_payments("user-1", limit=10, offset=0)

    assert [payment.id for payment in page.payments] == ["pi_1"]
    assert charges.calls == [("cus_1", 30)]


def test_unknown_customer_yields_local_only():
    charges = FakeCharges([_remote("pi_1", days=0)])
    service = PaymentHistoryService(ledger=FakeLedger(), charges=charges, customers=FakeCustomers(None))

    page = service.fetch_user_payments("user-1")

    assert page.total == 0
    assert charges.calls == []


@pytest.mark.parametrize("limit, offset", [(0, 0), (10, -1)])
def test_invalid_paging_is_rejected(limit, offset):
    service = PaymentHistoryService(ledger=FakeLedger())

    with pytest.raises(ValueError):
        service.fetch_user_payments("user-1", limit=limit, offset=offset)


def test_remote_charge_from_expanded_intent():
    intent = {
        "id": "pi_123",
        "amount": 3000,
        "currency": "eur",
        "status": "succeeded",
        "created": 1735732800,
        "description": None,
        "latest_charge": {
            "id": "ch_1",
            "amount_refunded": 1000,
            "receipt_url": "https://pay.example/receipt",
            "created": 1735732900,
        },
    }

    charge = remote_charge_from_intent(intent)

    assert charge.id == "pi_123"
    assert charge.stripe_payment_intent_id == "pi_123"
    assert charge.currency == "EUR"
    assert charge.status == "partially_refunded"
    assert charge.refunded_amount == 1000
    assert charge.receipt_url == "https://pay.example/receipt"
    assert charge.paid_at == datetime.fromtimestamp(1735732900, tz=timezone.utc)
    assert charge.description == "Stripe checkout"


def test_remote_charge_full_refund_and_unexpanded_charge():
    refunded = remote_charge_from_intent(
        {"id": "pi_1", "amount": 500, "latest_charge": {"amount_refunded": 500}, "status": "succeeded"}
    )
    unexpanded = remote_charge_from_intent(
        {"id": "pi_2", "amount_received": 700, "latest_charge": "ch_2", "status": "succeeded", "created": 1735732800}
    )

    assert refunded.status == "refunded"
    assert unexpanded.amount == 700
    assert unexpanded.refunded_amount is None
    assert unexpanded.status == "succeeded"


class _FakeResource:
    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.list_result: dict = {"data": []}
        self.create_result: dict = {"id": "cus_new"}
        self.update_error: Optional[Exception] = None

    def list(self, params=None):
        self.calls.append(("list", params))
        return self.list_result

    def create(self, params=None):
        self.calls.append(("create", params))
        return self.create_result

    def update(self, customer_id, params=None):
        self.calls.append(("update", customer_id, params))
        if self.update_error is not None:
            raise self.update_error
        return {"id": customer_id}


class FakeLookup:
    def __init__(self, customer_id: Optional[str] = None) -> None:
        self.customer_id = customer_id

    def latest_customer_id(self, user_id: str) -> Optional[str]:
        return self.customer_id


def _client():
    return SimpleNamespace(customers=_FakeResource(), payment_intents=_FakeResource())


def test_customer_resolver_prefers_recorded_id():
    client = _client()
    resolver = StripeCustomerResolver(client, FakeLookup("cus_recorded"))

    assert resolver.resolve_customer_id("user-1", email="a@example.com") == "cus_recorded"
    assert client.customers.calls == []


def test_customer_resolver_matches_tagged_customer_by_email():
    client = _client()
    client.customers.list_result = {
        "data": [
            {"id": "cus_other", "metadata": {}},
            {"id": "cus_mine", "metadata": {USER_METADATA_KEY: "user-1"}},
        ]
    }
    resolver = StripeCustomerResolver(client, FakeLookup())

    assert resolver.resolve_customer_id("user-1", email="a@example.com") == "cus_mine"
    assert [call[0] for call in client.customers.calls] == ["list"]


def test_customer_resolver_backfills_untagged_match():
    client = _client()
    client.customers.list_result = {"data": [{"id": "cus_untagged", "metadata": {"source": "checkout"}}]}
    resolver = StripeCustomerResolver(client, FakeLookup())

    assert resolver.resolve_customer_id("user-1", email="a@example.com") == "cus_untagged"
    update = client.customers.calls[-1]
    assert update[0] == "update"
    assert update[2] == {"metadata": {"source": "checkout", USER_METADATA_KEY: "user-1"}}


def test_customer_resolver_backfill_failure_still_returns_match():
    client = _client()
    client.customers.list_result = {"data": [{"id": "cus_untagged", "metadata": {}}]}
    client.customers.update_error = RuntimeError("network")
    resolver = StripeCustomerResolver(client, FakeLookup())

    assert resolver.resolve_customer_id("user-1", email="a@example.com") == "cus_untagged"


def test_customer_resolver_creates_when_nothing_matches():
    client = _client()
    resolver = StripeCustomerResolver(client, FakeLookup())

    assert resolver.resolve_customer_id("user-1") == "cus_new"
    assert client.customers.calls == [("create", {"metadata": {USER_METADATA_KEY: "user-1"}})]


def test_customer_resolver_failure_returns_none():
    client = _client()
    client.customers.create = None
    resolver = StripeCustomerResolver(client, FakeLookup())

    assert resolver.resolve_customer_id("user-1") is None


def test_charge_provider_requests_expanded_charges():
    client = _client()
    client.payment_intents.list_result = {"data": [{"id": "pi_1", "amount": 100, "status": "succeeded"}]}

    charges = StripeChargeProvider(client).list_charges("cus_1", limit=500)

    assert [charge.id for charge in charges] == ["pi_1"]
    _, params = client.payment_intents.calls[0]
    assert params == {"customer": "cus_1", "limit": 100, "expand": ["data.latest_charge"]}
