"""Domain models for priced offers, products and coupons."""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..billing.timeutils import parse_optional_datetime


class OfferType(str, Enum):
    ONE_TIME = "one_time"
    RECURRING = "recurring"


class RecurringInterval(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class CouponType(str, Enum):
    PERCENT = "percent"
    AMOUNT = "amount"


class CouponDuration(str, Enum):
    FOREVER = "forever"
    ONCE = "once"
    REPEATING = "repeating"


class CouponStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    MAXED = "maxed"


def to_minor_units(amount: float) -> int:
    """Convert a major-unit amount to cents, rounding halves up."""

    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class OfferDraft(BaseModel):
    """Input for a new priced offer, amount in major currency units."""

    product_id: str
    amount: float
    currency: str = "eur"
    type: OfferType = OfferType.ONE_TIME
    interval: Optional[str] = None
    nickname: Optional[str] = None
    active: bool = True
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency", mode="before")
    @classmethod
    def _lower_currency(cls, value: object) -> object:
        if value is None or value == "":
            return "eur"
        return str(value).strip().lower()

    @property
    def unit_amount(self) -> int:
        return to_minor_units(self.amount)


class PricedOffer(BaseModel):
    id: str
    product_id: Optional[str] = None
    active: bool = True
    unit_amount: Optional[int] = None
    currency: str = "eur"
    type: OfferType = OfferType.ONE_TIME
    interval: Optional[RecurringInterval] = None
    nickname: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CatalogProduct(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    active: bool = True
    default_offer_id: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class OfferReplacement(BaseModel):
    new_offer: PricedOffer
    archived_offer: PricedOffer
    default_updated: bool

    model_config = ConfigDict(frozen=True)


class ProductCreation(BaseModel):
    product: CatalogProduct
    default_offer: Optional[PricedOffer] = None

    model_config = ConfigDict(frozen=True)


class CouponDraft(BaseModel):
    """Coupon input as submitted by an administrator, validated by the service."""

    id: Optional[str] = None
    name: Optional[str] = None
    type: str
    value: float
    currency: Optional[str] = None
    duration: str
    duration_in_months: Optional[float] = None
    redeem_by: Optional[datetime] = None
    max_redemptions: Optional[float] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("redeem_by", mode="before")
    @classmethod
    def _parse_redeem_by(cls, value: object) -> object:
        if value is None or value == "":
            return None
        parsed = parse_optional_datetime(value)
        return parsed if parsed is not None else value


class Coupon(BaseModel):
    id: str
    name: Optional[str] = None
    percent_off: Optional[float] = None
    amount_off: Optional[int] = None
    currency: Optional[str] = None
    duration: CouponDuration = CouponDuration.ONCE
    duration_in_months: Optional[int] = None
    redeem_by: Optional[datetime] = None
    max_redemptions: Optional[int] = None
    times_redeemed: int = 0
    valid: Optional[bool] = True
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("redeem_by", mode="before")
    @classmethod
    def _aware_redeem_by(cls, value: object) -> object:
        return parse_optional_datetime(value)


__all__ = [
    "CatalogProduct",
    "Coupon",
    "CouponDraft",
    "CouponDuration",
    "CouponStatus",
    "CouponType",
    "OfferDraft",
    "OfferReplacement",
    "OfferType",
    "PricedOffer",
    "ProductCreation",
    "RecurringInterval",
    "to_minor_units",
]
