"""Domain models for seat entitlements and dependent profiles."""
from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..billing.timeutils import parse_optional_datetime

FULL_NAME_MAX_LENGTH = 60
COMPETITION_NAME_MAX_LENGTH = 80
CLUB_NAME_MAX_LENGTH = 80
TEAM_NAME_MAX_LENGTH = 60
MAX_MEMBERSHIP_BLOCKS = 5


class SubscriptionStatus(str, Enum):
    """Closed status of a subscription row once read from storage."""

    ACTIVE = "active"
    INACTIVE = "inactive"

    @classmethod
    def coerce(cls, value: object) -> "SubscriptionStatus":
        """Resolve the stored flag (boolean or free-form string) into the enum."""

        if isinstance(value, SubscriptionStatus):
            return value
        if value is True:
            return cls.ACTIVE
        if isinstance(value, str) and value.lower() == "active":
            return cls.ACTIVE
        return cls.INACTIVE


class RedemptionMethod(str, Enum):
    """How a dependent profile obtained its entitlement."""

    SEAT = "seat"
    ACCESS_CODE = "access_code"
    SEAT_FALLBACK = "seat_fallback"


class RenewalFlow(str, Enum):
    """Checkout flow offered to a user with renewable seats."""

    NONE = "none"
    SINGLE_SEAT = "single_seat"
    MULTI_SEAT = "multi_seat"


def _coerce_timestamp(value: object) -> object:
    parsed = parse_optional_datetime(value)
    return parsed if parsed is not None else value


class SubscriptionRecord(BaseModel):
    """A user's subscription row; each row grants ``seats`` entitlements."""

    id: str
    user_id: str
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    current_period_end: Optional[datetime] = None
    seats: int = Field(default=1, ge=0)
    plan_id: Optional[str] = None
    stripe_customer_id: Optional[str] = None
    notified_expiry_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: object) -> object:
        return str(value) if value is not None else value

    @field_validator("status", mode="before")
    @classmethod
    def _resolve_status(cls, value: object) -> SubscriptionStatus:
        return SubscriptionStatus.coerce(value)

    @field_validator("seats", mode="before")
    @classmethod
    def _default_seats(cls, value: object) -> object:
        if value is None:
            return 1
        try:
            return int(value)
        except (TypeError, ValueError):
            return 1

    @field_validator("current_period_end", "notified_expiry_at", "created_at", "updated_at", mode="before")
    @classmethod
    def _aware_timestamps(cls, value: object) -> object:
        return _coerce_timestamp(value)


class SubscriptionState(BaseModel):
    has_any: bool
    is_active: bool
    latest: Optional[SubscriptionRecord] = None

    model_config = ConfigDict(frozen=True)


class RenewableSeat(BaseModel):
    """One subscription row that can be renewed now."""

    subscription_id: str
    seats: int
    current_period_end: Optional[datetime] = None
    expired: bool

    model_config = ConfigDict(frozen=True)


class SeatStatus(BaseModel):
    remaining: int = Field(ge=0)
    pending_profiles: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)


class MembershipBlock(BaseModel):
    """One sport/competition membership declared for a new dependent."""

    sport_id: str = Field(min_length=1)
    competition_name: str = Field(min_length=1, max_length=COMPETITION_NAME_MAX_LENGTH)
    club_name: Optional[str] = Field(default=None, max_length=CLUB_NAME_MAX_LENGTH)
    team_name: Optional[str] = Field(default=None, max_length=TEAM_NAME_MAX_LENGTH)
    category_id: Optional[str] = None
    avatar_path: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    @field_validator("club_name", "team_name", "category_id", "avatar_path", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _team_requires_club(self) -> "MembershipBlock":
        if self.team_name and not self.club_name:
            raise ValueError("team_name requires club_name")
        return self


class DependentProfileDraft(BaseModel):
    """Validated input for creating a dependent athlete profile."""

    full_name: str = Field(min_length=1, max_length=FULL_NAME_MAX_LENGTH)
    birthday: Optional[date] = None
    season_id: Optional[str] = None
    memberships: List[MembershipBlock] = Field(min_length=1, max_length=MAX_MEMBERSHIP_BLOCKS)

    model_config = ConfigDict(populate_by_name=True, frozen=True, str_strip_whitespace=True)

    @property
    def avatar_path(self) -> Optional[str]:
        return self.memberships[0].avatar_path if self.memberships else None


class DependentProfile(BaseModel):
    """A persisted dependent profile and the state of its entitlement."""

    id: str
    user_id: str
    full_name: str
    redemption_key: Optional[str] = None
    entitlement_confirmed_at: Optional[datetime] = None
    archived_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: object) -> object:
        return str(value) if value is not None else value

    @property
    def is_confirmed(self) -> bool:
        return self.entitlement_confirmed_at is not None


class RemoteProcedureResult(BaseModel):
    """Outcome reported by a redemption or seat-assignment procedure."""

    ok: bool = False
    message: Optional[str] = None
    ends_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("ok", mode="before")
    @classmethod
    def _falsy_ok(cls, value: object) -> object:
        return False if value is None else value

    @field_validator("ends_at", mode="before")
    @classmethod
    def _aware_ends_at(cls, value: object) -> object:
        return _coerce_timestamp(value)

    @classmethod
    def from_payload(cls, payload: object, *, procedure: Optional[str] = None) -> "RemoteProcedureResult":
        """Read a procedure result that may be a row set, one row or a JSON object.

        Row sets are read as their first row. A row whose only useful column is
        named after the procedure (``SELECT * FROM fn(...)`` over a JSON
        returning function) is unwrapped.
        """

        if isinstance(payload, Sequence) and not isinstance(payload, (str, bytes)):
            payload = payload[0] if payload else None
        if isinstance(payload, Mapping) and "ok" not in payload and procedure:
            nested = payload.get(procedure)
            if isinstance(nested, Mapping):
                payload = nested
        if not isinstance(payload, Mapping):
            return cls(ok=False, message=None)
        return cls(
            ok=bool(payload.get("ok")),
            message=payload.get("message"),
            ends_at=payload.get("ends_at"),
        )


class RedemptionReceipt(BaseModel):
    profile_id: str
    method: RedemptionMethod
    ends_at: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)


class RenewalReminderReport(BaseModel):
    window_days: int
    expiring_count: int = 0
    sent: int = 0
    deactivated: int = 0

    model_config = ConfigDict(frozen=True)


class ReconciliationReport(BaseModel):
    examined: int = 0
    confirmed: int = 0
    archived: int = 0
    failed: int = 0

    model_config = ConfigDict(frozen=True)


__all__ = [
    "CLUB_NAME_MAX_LENGTH",
    "COMPETITION_NAME_MAX_LENGTH",
    "DependentProfile",
    "DependentProfileDraft",
    "FULL_NAME_MAX_LENGTH",
    "MAX_MEMBERSHIP_BLOCKS",
    "MembershipBlock",
    "ReconciliationReport",
    "RedemptionMethod",
    "RedemptionReceipt",
    "RemoteProcedureResult",
    "RenewableSeat",
    "RenewalFlow",
    "RenewalReminderReport",
    "SeatStatus",
    "SubscriptionRecord",
    "SubscriptionState",
    "SubscriptionStatus",
]
