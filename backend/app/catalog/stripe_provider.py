"""Catalog provider backed by Stripe prices, products and coupons."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

import stripe

from ..billing.stripe_support import list_data, stripe_errors, stripe_field, stripe_id
from .models import CatalogProduct, Coupon, OfferType, PricedOffer

LIST_LIMIT = 100


def _metadata(obj: Any) -> Dict[str, str]:
    raw = stripe_field(obj, "metadata", {}) or {}
    return {str(key): str(value) for key, value in dict(raw).items()}


def offer_from_stripe(price: Any) -> PricedOffer:
    recurring = stripe_field(price, "recurring")
    return PricedOffer(
        id=stripe_id(price),
        product_id=stripe_id(stripe_field(price, "product")),
        active=bool(stripe_field(price, "active", False)),
        unit_amount=stripe_field(price, "unit_amount"),
        currency=stripe_field(price, "currency", "eur"),
        type=OfferType.RECURRING if recurring else OfferType.ONE_TIME,
        interval=stripe_field(recurring, "interval"),
        nickname=stripe_field(price, "nickname") or None,
        metadata=_metadata(price),
        created_at=stripe_field(price, "created"),
    )


def product_from_stripe(product: Any) -> CatalogProduct:
    return CatalogProduct(
        id=stripe_id(product),
        name=stripe_field(product, "name", ""),
        description=stripe_field(product, "description"),
        active=bool(stripe_field(product, "active", False)),
        default_offer_id=stripe_id(stripe_field(product, "default_price")),
    )


def coupon_from_stripe(coupon: Any) -> Coupon:
    return Coupon(
        id=stripe_id(coupon),
        name=stripe_field(coupon, "name"),
        percent_off=stripe_field(coupon, "percent_off"),
        amount_off=stripe_field(coupon, "amount_off"),
        currency=stripe_field(coupon, "currency"),
        duration=stripe_field(coupon, "duration", "once"),
        duration_in_months=stripe_field(coupon, "duration_in_months"),
        redeem_by=stripe_field(coupon, "redeem_by"),
        max_redemptions=stripe_field(coupon, "max_redemptions"),
        times_redeemed=stripe_field(coupon, "times_redeemed", 0),
        valid=stripe_field(coupon, "valid"),
        metadata=_metadata(coupon),
    )


def _is_missing(exc: stripe.InvalidRequestError) -> bool:
    return getattr(exc, "code", None) == "resource_missing" or getattr(exc, "http_status", None) == 404


class StripeCatalogProvider:
    """Issues catalog reads and writes through an explicitly constructed client."""

    def __init__(self, client: stripe.StripeClient) -> None:
        self._client = client

    def create_price(self, params: Mapping[str, Any]) -> PricedOffer:
        with stripe_errors("prices.create"):
            return offer_from_stripe(self._client.prices.create(params=dict(params)))

    def update_price(self, price_id: str, params: Mapping[str, Any]) -> PricedOffer:
        with stripe_errors("prices.update"):
            return offer_from_stripe(self._client.prices.update(price_id, params=dict(params)))

    def get_price(self, price_id: str) -> Optional[PricedOffer]:
        try:
            price = self._client.prices.retrieve(price_id)
        except stripe.InvalidRequestError as exc:
            if _is_missing(exc):
                return None
            raise
        return offer_from_stripe(price)

    def list_prices(self, *, product_id: Optional[str] = None, active: Optional[bool] = None) -> List[PricedOffer]:
        params: Dict[str, Any] = {"limit": LIST_LIMIT}
        if product_id:
            params["product"] = product_id
        if active is not None:
            params["active"] = active
        with stripe_errors("prices.list"):
            result = self._client.prices.list(params=params)
        return [offer_from_stripe(price) for price in list_data(result)]

    def create_product(self, params: Mapping[str, Any]) -> CatalogProduct:
        with stripe_errors("products.create"):
            return product_from_stripe(self._client.products.create(params=dict(params)))

    def update_product(self, product_id: str, params: Mapping[str, Any]) -> CatalogProduct:
        with stripe_errors("products.update"):
            return product_from_stripe(self._client.products.update(product_id, params=dict(params)))

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        try:
            product = self._client.products.retrieve(product_id)
        except stripe.InvalidRequestError as exc:
            if _is_missing(exc):
                return None
            raise
        return product_from_stripe(product)

    def list_products(self) -> List[CatalogProduct]:
        with stripe_errors("products.list"):
            result = self._client.products.list(params={"limit": LIST_LIMIT})
        return [product_from_stripe(product) for product in list_data(result)]

    def create_coupon(self, params: Mapping[str, Any]) -> Coupon:
        with stripe_errors("coupons.create"):
            return coupon_from_stripe(self._client.coupons.create(params=dict(params)))

    def update_coupon(self, coupon_id: str, params: Mapping[str, Any]) -> Coupon:
        with stripe_errors("coupons.update"):
            return coupon_from_stripe(self._client.coupons.update(coupon_id, params=dict(params)))

    def delete_coupon(self, coupon_id: str) -> None:
        with stripe_errors("coupons.delete"):
            self._client.coupons.delete(coupon_id)

    def list_coupons(self) -> List[Coupon]:
        with stripe_errors("coupons.list"):
            result = self._client.coupons.list(params={"limit": LIST_LIMIT})
        return [coupon_from_stripe(coupon) for coupon in list_data(result)]


__all__ = [
    "StripeCatalogProvider",
    "coupon_from_stripe",
    "offer_from_stripe",
    "product_from_stripe",
]
