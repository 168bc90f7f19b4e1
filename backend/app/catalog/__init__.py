"""Priced-offer lifecycle and coupon administration."""

from .models import (
    CatalogProduct,
    Coupon,
    CouponDraft,
    CouponDuration,
    CouponStatus,
    CouponType,
    OfferDraft,
    OfferReplacement,
    OfferType,
    PricedOffer,
    ProductCreation,
    RecurringInterval,
    to_minor_units,
)
from .service import (
    CatalogProvider,
    CouponService,
    OfferLifecycleService,
    build_coupon_params,
    derive_coupon_status,
    parse_coupon_metadata,
    validate_offer_draft,
)

__all__ = [
    "CatalogProduct",
    "CatalogProvider",
    "Coupon",
    "CouponDraft",
    "CouponDuration",
    "CouponService",
    "CouponStatus",
    "CouponType",
    "OfferDraft",
    "OfferLifecycleService",
    "OfferReplacement",
    "OfferType",
    "PricedOffer",
    "ProductCreation",
    "RecurringInterval",
    "build_coupon_params",
    "derive_coupon_status",
    "parse_coupon_metadata",
    "to_minor_units",
    "validate_offer_draft",
]
