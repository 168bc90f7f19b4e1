"""API schemas for seat, subscription and dependent-profile endpoints."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..entitlements import (
    DependentProfileDraft,
    MembershipBlock,
    RedemptionMethod,
    RedemptionReceipt,
    RenewableSeat,
    RenewalFlow,
    SeatStatus,
    SubscriptionState,
)
from ..entitlements.models import (
    CLUB_NAME_MAX_LENGTH,
    COMPETITION_NAME_MAX_LENGTH,
    FULL_NAME_MAX_LENGTH,
    MAX_MEMBERSHIP_BLOCKS,
    TEAM_NAME_MAX_LENGTH,
)


class SeatStatusResponse(BaseModel):
    remaining: int
    pending_profiles: int = Field(alias="pendingProfiles", default=0)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_status(cls, seat_status: SeatStatus) -> "SeatStatusResponse":
        return cls(remaining=seat_status.remaining, pending_profiles=seat_status.pending_profiles)


class SubscriptionStateResponse(BaseModel):
    has_any_subscription: bool = Field(alias="hasAnySubscription")
    is_active_subscription: bool = Field(alias="isActiveSubscription")
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_state(cls, state: SubscriptionState) -> "SubscriptionStateResponse":
        return cls(
            has_any_subscription=state.has_any,
            is_active_subscription=state.is_active,
            current_period_end=state.latest.current_period_end if state.latest else None,
        )


class RenewableSeatOut(BaseModel):
    subscription_id: str = Field(alias="subscriptionId")
    seats: int
    current_period_end: Optional[datetime] = Field(alias="currentPeriodEnd", default=None)
    expired: bool

    model_config = ConfigDict(populate_by_name=True)


class RenewalSummaryResponse(BaseModel):
    count: int
    flow: RenewalFlow
    window_days: int = Field(alias="windowDays")
    seats: List[RenewableSeatOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_seats(
        cls,
        seats: List[RenewableSeat],
        *,
        flow: RenewalFlow,
        window_days: int,
    ) -> "RenewalSummaryResponse":
        return cls(
            count=sum(seat.seats for seat in seats),
            flow=flow,
            window_days=window_days,
            seats=[
                RenewableSeatOut(
                    subscription_id=seat.subscription_id,
                    seats=seat.seats,
                    current_period_end=seat.current_period_end,
                    expired=seat.expired,
                )
                for seat in seats
            ],
        )


class MembershipBlockIn(BaseModel):
    sport_id: str = Field(alias="sportId", min_length=1)
    competition_name: str = Field(alias="competitionName", min_length=1, max_length=COMPETITION_NAME_MAX_LENGTH)
    club_name: Optional[str] = Field(alias="clubName", default=None, max_length=CLUB_NAME_MAX_LENGTH)
    team_name: Optional[str] = Field(alias="teamName", default=None, max_length=TEAM_NAME_MAX_LENGTH)
    category_id: Optional[str] = Field(alias="categoryId", default=None)
    avatar_path: Optional[str] = Field(alias="avatarPath", default=None)

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    @model_validator(mode="after")
    def _team_requires_club(self) -> "MembershipBlockIn":
        if self.team_name and not self.club_name:
            raise ValueError("teamName requires clubName")
        return self


class CreateDependentRequest(BaseModel):
    full_name: str = Field(alias="fullName", min_length=1, max_length=FULL_NAME_MAX_LENGTH)
    birthday: Optional[date] = None
    season_id: Optional[str] = Field(alias="seasonId", default=None)
    memberships: List[MembershipBlockIn] = Field(min_length=1, max_length=MAX_MEMBERSHIP_BLOCKS)
    access_code: Optional[str] = Field(alias="accessCode", default=None)

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    def to_draft(self) -> DependentProfileDraft:
        return DependentProfileDraft(
            full_name=self.full_name,
            birthday=self.birthday,
            season_id=self.season_id,
            memberships=[MembershipBlock(**block.model_dump()) for block in self.memberships],
        )


class CreateDependentResponse(BaseModel):
    profile_id: str = Field(alias="profileId")
    method: RedemptionMethod
    ends_at: Optional[datetime] = Field(alias="endsAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_receipt(cls, receipt: RedemptionReceipt) -> "CreateDependentResponse":
        return cls(profile_id=receipt.profile_id, method=receipt.method, ends_at=receipt.ends_at)
