"""API schemas for catalog administration endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..catalog import (
    CatalogProduct,
    Coupon,
    CouponDraft,
    CouponStatus,
    OfferDraft,
    OfferReplacement,
    OfferType,
    PricedOffer,
    ProductCreation,
)


class OfferOut(BaseModel):
    id: str
    product_id: Optional[str] = Field(alias="productId", default=None)
    active: bool
    unit_amount: Optional[int] = Field(alias="unitAmount", default=None)
    currency: str
    type: OfferType
    interval: Optional[str] = None
    nickname: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_offer(cls, offer: PricedOffer) -> "OfferOut":
        return cls(
            id=offer.id,
            product_id=offer.product_id,
            active=offer.active,
            unit_amount=offer.unit_amount,
            currency=offer.currency,
            type=offer.type,
            interval=offer.interval.value if offer.interval else None,
            nickname=offer.nickname,
            metadata=dict(offer.metadata),
        )


class OfferListResponse(BaseModel):
    data: List[OfferOut]


class ProductOut(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    active: bool
    default_offer_id: Optional[str] = Field(alias="defaultPriceId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_product(cls, product: CatalogProduct) -> "ProductOut":
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            active=product.active,
            default_offer_id=product.default_offer_id,
        )


class CreateOfferRequest(BaseModel):
    product_id: str = Field(alias="productId")
    amount: float
    currency: str = "eur"
    type: OfferType = OfferType.ONE_TIME
    interval: Optional[str] = None
    nickname: Optional[str] = None
    active: bool = True

    model_config = ConfigDict(populate_by_name=True)

    def to_draft(self) -> OfferDraft:
        return OfferDraft(
            product_id=self.product_id,
            amount=self.amount,
            currency=self.currency,
            type=self.type,
            interval=self.interval,
            nickname=self.nickname,
            active=self.active,
        )


class PatchOfferRequest(BaseModel):
    price_id: str = Field(alias="priceId", min_length=1)
    active: Optional[Any] = None
    nickname: Optional[Any] = None

    model_config = ConfigDict(populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        """Only the fields the caller actually sent; an explicit null nickname clears it."""

        return {name: getattr(self, name) for name in ("active", "nickname") if name in self.model_fields_set}


class ReplaceOfferRequest(BaseModel):
    amount: float
    currency: Optional[str] = None
    type: OfferType = OfferType.RECURRING
    interval: Optional[str] = None
    nickname: Optional[str] = None
    make_default: bool = Field(alias="makeDefault", default=True)

    model_config = ConfigDict(populate_by_name=True)


class ReplaceOfferResponse(BaseModel):
    new_offer: OfferOut = Field(alias="newPrice")
    archived_offer: OfferOut = Field(alias="archivedPrice")
    default_updated: bool = Field(alias="defaultUpdated")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_replacement(cls, replacement: OfferReplacement) -> "ReplaceOfferResponse":
        return cls(
            new_offer=OfferOut.from_offer(replacement.new_offer),
            archived_offer=OfferOut.from_offer(replacement.archived_offer),
            default_updated=replacement.default_updated,
        )


class SetDefaultOfferRequest(BaseModel):
    price_id: str = Field(alias="priceId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CreateProductRequest(BaseModel):
    name: str
    description: Optional[str] = None
    active: bool = True
    create_price: bool = Field(alias="createPrice", default=False)
    price_amount: Optional[float] = Field(alias="priceAmount", default=None)
    price_currency: Optional[str] = Field(alias="priceCurrency", default=None)

    model_config = ConfigDict(populate_by_name=True)


class CreateProductResponse(BaseModel):
    product: ProductOut
    default_price: Optional[OfferOut] = Field(alias="defaultPrice", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_creation(cls, creation: ProductCreation) -> "CreateProductResponse":
        return cls(
            product=ProductOut.from_product(creation.product),
            default_price=OfferOut.from_offer(creation.default_offer) if creation.default_offer else None,
        )


class CouponOut(BaseModel):
    id: str
    name: Optional[str] = None
    percent_off: Optional[float] = Field(alias="percentOff", default=None)
    amount_off: Optional[int] = Field(alias="amountOff", default=None)
    currency: Optional[str] = None
    duration: str
    duration_in_months: Optional[int] = Field(alias="durationInMonths", default=None)
    redeem_by: Optional[datetime] = Field(alias="redeemBy", default=None)
    max_redemptions: Optional[int] = Field(alias="maxRedemptions", default=None)
    times_redeemed: int = Field(alias="timesRedeemed", default=0)
    status: Optional[CouponStatus] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_coupon(cls, coupon: Coupon, status: Optional[CouponStatus] = None) -> "CouponOut":
        return cls(
            id=coupon.id,
            name=coupon.name,
            percent_off=coupon.percent_off,
            amount_off=coupon.amount_off,
            currency=coupon.currency,
            duration=coupon.duration.value,
            duration_in_months=coupon.duration_in_months,
            redeem_by=coupon.redeem_by,
            max_redemptions=coupon.max_redemptions,
            times_redeemed=coupon.times_redeemed,
            status=status,
            metadata=dict(coupon.metadata),
        )


class CouponListResponse(BaseModel):
    data: List[CouponOut]


class CreateCouponRequest(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    type: str
    value: float
    currency: Optional[str] = None
    duration: str
    duration_in_months: Optional[float] = Field(alias="durationInMonths", default=None)
    redeem_by: Optional[str] = Field(alias="redeemBy", default=None)
    max_redemptions: Optional[float] = Field(alias="maxRedemptions", default=None)

    model_config = ConfigDict(populate_by_name=True)

    def to_draft(self) -> CouponDraft:
        return CouponDraft(
            id=self.id,
            name=self.name,
            type=self.type,
            value=self.value,
            currency=self.currency,
            duration=self.duration,
            duration_in_months=self.duration_in_months,
            redeem_by=self.redeem_by,
            max_redemptions=self.max_redemptions,
        )


class PatchCouponRequest(BaseModel):
    coupon_id: str = Field(alias="couponId", min_length=1)
    name: Optional[str] = None
    metadata: Optional[Any] = None

    model_config = ConfigDict(populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in ("name", "metadata") if name in self.model_fields_set}


class DeleteCouponRequest(BaseModel):
    coupon_id: str = Field(alias="couponId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)
