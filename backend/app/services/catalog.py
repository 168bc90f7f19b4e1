"""Application wiring for catalog administration."""
from __future__ import annotations

from ..catalog import CouponService, OfferLifecycleService
from ..catalog.stripe_provider import StripeCatalogProvider
from .billing import require_stripe_client


def get_offer_service() -> OfferLifecycleService:
    return OfferLifecycleService(StripeCatalogProvider(require_stripe_client()))


def get_coupon_service() -> CouponService:
    return CouponService(StripeCatalogProvider(require_stripe_client()))


__all__ = ["get_coupon_service", "get_offer_service"]
