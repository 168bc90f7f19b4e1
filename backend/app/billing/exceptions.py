"""Domain errors raised by the entitlement, payment and catalog services."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from fastapi import HTTPException, status


@dataclass
class BillingError(Exception):
    """Represents an actionable billing failure surfaced to API callers."""

    code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST
    detail: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        base_detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.detail:
            base_detail.update(self.detail)
        object.__setattr__(self, "_payload", base_detail)
        super().__init__(self.message)

    @property
    def payload(self) -> Mapping[str, Any]:
        """Serialized representation suitable for JSON responses."""

        return self._payload

    def to_http_exception(self) -> HTTPException:
        """Convert the domain error into a FastAPI HTTPException."""

        return HTTPException(status_code=self.status_code, detail=dict(self.payload))


@dataclass
class ValidationError(BillingError):
    code: str = "validation_failed"
    message: str = "Invalid request"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class EntitlementExhausted(BillingError):
    code: str = "entitlement_exhausted"
    message: str = "No seats available. Purchase a seat or redeem an access code."
    status_code: int = status.HTTP_402_PAYMENT_REQUIRED


@dataclass
class CodeInvalid(BillingError):
    code: str = "code_invalid"
    message: str = "The access code is not valid"
    status_code: int = status.HTTP_400_BAD_REQUEST


@dataclass
class CodeAlreadyUsed(BillingError):
    code: str = "code_already_used"
    message: str = "The access code has already been used"
    status_code: int = status.HTTP_409_CONFLICT


@dataclass
class RemoteWriteFailed(BillingError):
    code: str = "remote_write_failed"
    message: str = "A remote write did not complete"
    status_code: int = status.HTTP_502_BAD_GATEWAY


@dataclass
class PartialInconsistency(BillingError):
    """A multi-step catalog operation stopped after its first write succeeded."""

    code: str = "partial_inconsistency"
    message: str = "The operation completed only partially"
    status_code: int = status.HTTP_502_BAD_GATEWAY
    new_offer_id: Optional[str] = None
    old_offer_id: Optional[str] = None

    def __post_init__(self) -> None:
        merged: Dict[str, Any] = dict(self.detail or {})
        merged["new_offer_id"] = self.new_offer_id
        merged["old_offer_id"] = self.old_offer_id
        self.detail = merged
        super().__post_init__()


__all__ = [
    "BillingError",
    "CodeAlreadyUsed",
    "CodeInvalid",
    "EntitlementExhausted",
    "PartialInconsistency",
    "RemoteWriteFailed",
    "ValidationError",
]
