"""Payment history merged from the local ledger and the processor."""

from .models import (
    MergedPayment,
    PaymentPage,
    PaymentRecord,
    PaymentSource,
    RefundState,
    RemoteCharge,
    classify_refund,
)
from .service import (
    ChargeProvider,
    CustomerResolver,
    PaymentHistoryService,
    PaymentLedger,
    fetch_bound,
    merge_payments,
)

__all__ = [
    "ChargeProvider",
    "CustomerResolver",
    "MergedPayment",
    "PaymentHistoryService",
    "PaymentLedger",
    "PaymentPage",
    "PaymentRecord",
    "PaymentSource",
    "RefundState",
    "RemoteCharge",
    "classify_refund",
    "fetch_bound",
    "merge_payments",
]
