"""Lifecycle management for priced offers, products and coupons."""
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, Union

from ..billing.exceptions import BillingError, PartialInconsistency, RemoteWriteFailed, ValidationError
from ..billing.timeutils import ensure_aware
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

logger = logging.getLogger("catalog")

_INTERVALS = {interval.value for interval in RecurringInterval}
_OFFER_PATCH_FIELDS = {"active", "nickname"}
_COUPON_PATCH_FIELDS = {"name", "metadata"}


class CatalogProvider(Protocol):
    """Remote catalog store (the payment processor)."""

    def create_price(self, params: Mapping[str, Any]) -> PricedOffer:
        ...

    def update_price(self, price_id: str, params: Mapping[str, Any]) -> PricedOffer:
        ...

    def get_price(self, price_id: str) -> Optional[PricedOffer]:
        ...

    def list_prices(self, *, product_id: Optional[str] = None, active: Optional[bool] = None) -> Sequence[PricedOffer]:
        ...

    def create_product(self, params: Mapping[str, Any]) -> CatalogProduct:
        ...

    def update_product(self, product_id: str, params: Mapping[str, Any]) -> CatalogProduct:
        ...

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        ...

    def list_products(self) -> Sequence[CatalogProduct]:
        ...

    def create_coupon(self, params: Mapping[str, Any]) -> Coupon:
        ...

    def update_coupon(self, coupon_id: str, params: Mapping[str, Any]) -> Coupon:
        ...

    def delete_coupon(self, coupon_id: str) -> None:
        ...

    def list_coupons(self) -> Sequence[Coupon]:
        ...


def _remote(operation: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    try:
        return func(*args, **kwargs)
    except BillingError:
        raise
    except Exception as exc:
        logger.exception("Catalog call %s failed", operation)
        raise RemoteWriteFailed(message=f"{operation} failed", detail={"operation": operation}) from exc


def _validate_amount(amount: object, *, field: str = "amount") -> float:
    try:
        number = float(amount)
    except (TypeError, ValueError) as exc:
        raise ValidationError(message=f"{field} must be a number") from exc
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(message=f"{field} must be greater than 0")
    return number


def _validate_currency(currency: Optional[str], *, field: str = "currency") -> str:
    normalized = (currency or "eur").strip().lower()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValidationError(message=f"{field} must be a 3-letter ISO code")
    return normalized


def validate_offer_draft(draft: OfferDraft) -> Dict[str, Any]:
    """Check a draft and return processor create parameters."""

    if not draft.product_id or not draft.product_id.strip():
        raise ValidationError(message="productId is required")
    amount = _validate_amount(draft.amount)
    currency = _validate_currency(draft.currency)
    params: Dict[str, Any] = {
        "product": draft.product_id.strip(),
        "currency": currency,
        "unit_amount": to_minor_units(amount),
        "active": draft.active,
    }
    if draft.type is OfferType.RECURRING:
        if draft.interval not in _INTERVALS:
            raise ValidationError(message="invalid interval for recurring price")
        params["recurring"] = {"interval": draft.interval}
    if draft.nickname:
        params["nickname"] = draft.nickname
    if draft.metadata:
        params["metadata"] = dict(draft.metadata)
    return params


class OfferLifecycleService:
    """Creates, archives and replaces priced offers.

    A product's default offer always points at an active offer: replacement
    moves the default to the new offer before the old one is archived, and an
    offer that is still the default cannot be archived on its own.
    """

    def __init__(self, provider: CatalogProvider) -> None:
        self._provider = provider

    def list_offers(self, *, product_id: Optional[str] = None, active: Optional[bool] = None) -> List[PricedOffer]:
        return list(_remote("prices.list", self._provider.list_prices, product_id=product_id, active=active))

    def list_products(self) -> List[CatalogProduct]:
        return list(_remote("products.list", self._provider.list_products))

    def create_offer(self, draft: OfferDraft) -> PricedOffer:
        params = validate_offer_draft(draft)
        offer = _remote("prices.create", self._provider.create_price, params)
        logger.info("Created offer %s for product=%s amount=%s %s", offer.id, offer.product_id, offer.unit_amount, offer.currency)
        return offer

    def archive_offer(
        self,
        offer_id: str,
        *,
        reason: Optional[str] = None,
        replaced_by: Optional[str] = None,
    ) -> PricedOffer:
        offer = self._require_offer(offer_id)
        if not offer.active:
            return offer
        if offer.product_id:
            product = self._require_product(offer.product_id)
            if product.default_offer_id == offer.id:
                raise ValidationError(
                    message="Cannot archive the default offer; set another default first",
                    detail={"offer_id": offer.id, "product_id": product.id},
                )
        metadata = dict(offer.metadata)
        if reason:
            metadata["archived_reason"] = reason
        if replaced_by:
            metadata["new_offer_id"] = replaced_by
        params: Dict[str, Any] = {"active": False}
        if metadata != offer.metadata:
            params["metadata"] = metadata
        archived = _remote("prices.update", self._provider.update_price, offer.id, params)
        logger.info("Archived offer %s reason=%s", offer.id, reason)
        return archived

    def set_default_offer(self, product_id: str, offer_id: str) -> CatalogProduct:
        offer = self._require_offer(offer_id)
        if offer.product_id != product_id:
            raise ValidationError(
                message="Offer does not belong to this product",
                detail={"offer_id": offer_id, "product_id": product_id},
            )
        if not offer.active:
            raise ValidationError(message="Cannot set an archived offer as default", detail={"offer_id": offer_id})
        product = _remote("products.update", self._provider.update_product, product_id, {"default_price": offer_id})
        logger.info("Product %s default offer set to %s", product_id, offer_id)
        return product

    def replace_offer(
        self,
        old_offer_id: str,
        *,
        amount: float,
        currency: Optional[str] = None,
        offer_type: OfferType = OfferType.RECURRING,
        interval: Optional[str] = None,
        nickname: Optional[str] = None,
        make_default: bool = True,
    ) -> OfferReplacement:
        """Create a successor offer, promote it, then archive the old one.

        The new offer is never rolled back; a failure after it exists raises
        :class:`PartialInconsistency` naming both offers.
        """

        _validate_amount(amount)
        _validate_currency(currency)
        if offer_type is OfferType.RECURRING and interval not in _INTERVALS:
            raise ValidationError(message="invalid interval for recurring price")

        old = self._require_offer(old_offer_id)
        if not old.product_id:
            raise ValidationError(message="Offer has no product", detail={"offer_id": old_offer_id})

        metadata = dict(old.metadata)
        metadata["replaces_offer_id"] = old.id
        draft = OfferDraft(
            product_id=old.product_id,
            amount=amount,
            currency=currency or old.currency,
            type=offer_type,
            interval=interval,
            nickname=nickname if nickname is not None else old.nickname,
            metadata=metadata,
        )
        new = self.create_offer(draft)

        default_updated = False
        if make_default:
            try:
                self.set_default_offer(old.product_id, new.id)
            except (BillingError, LookupError) as exc:
                logger.error(
                    "Offer %s created but default pointer still references %s",
                    new.id,
                    old.id,
                )
                raise PartialInconsistency(
                    message="New offer created but the product default was not updated",
                    new_offer_id=new.id,
                    old_offer_id=old.id,
                ) from exc
            default_updated = True

        try:
            archived = self.archive_offer(old.id, reason="replaced", replaced_by=new.id)
        except (BillingError, LookupError) as exc:
            logger.error("Offer %s created but old offer %s could not be archived", new.id, old.id)
            raise PartialInconsistency(
                message="New offer created but the old offer is still active",
                new_offer_id=new.id,
                old_offer_id=old.id,
            ) from exc
        return OfferReplacement(new_offer=new, archived_offer=archived, default_updated=default_updated)

    def patch_offer(self, offer_id: str, changes: Mapping[str, Any]) -> PricedOffer:
        """Apply ``active`` and/or ``nickname``; a ``None`` nickname clears it."""

        unknown = set(changes) - _OFFER_PATCH_FIELDS
        if unknown:
            raise ValidationError(message=f"Unsupported fields: {', '.join(sorted(unknown))}")
        if not changes:
            raise ValidationError(message="Nothing to update")

        params: Dict[str, Any] = {}
        if "active" in changes:
            active = changes["active"]
            if not isinstance(active, bool):
                raise ValidationError(message="active must be boolean")
            params["active"] = active
        if "nickname" in changes:
            nickname = changes["nickname"]
            if nickname is not None and not isinstance(nickname, str):
                raise ValidationError(message="nickname must be a string")
            params["nickname"] = nickname or ""

        if params.get("active") is False:
            offer = self._require_offer(offer_id)
            if offer.active and offer.product_id:
                product = self._require_product(offer.product_id)
                if product.default_offer_id == offer.id:
                    raise ValidationError(
                        message="Cannot archive the default offer; set another default first",
                        detail={"offer_id": offer.id, "product_id": product.id},
                    )

        return _remote("prices.update", self._provider.update_price, offer_id, params)

    def create_product(
        self,
        name: str,
        *,
        description: Optional[str] = None,
        active: bool = True,
        default_amount: Optional[float] = None,
        currency: Optional[str] = None,
    ) -> ProductCreation:
        if not name or not name.strip():
            raise ValidationError(message="name is required")
        if default_amount is not None:
            _validate_amount(default_amount, field="priceAmount")
            _validate_currency(currency, field="priceCurrency")

        params: Dict[str, Any] = {"name": name.strip(), "active": active}
        if description and description.strip():
            params["description"] = description.strip()
        product = _remote("products.create", self._provider.create_product, params)
        logger.info("Created product %s", product.id)

        if default_amount is None:
            return ProductCreation(product=product)

        offer = self.create_offer(
            OfferDraft(product_id=product.id, amount=default_amount, currency=currency, type=OfferType.ONE_TIME)
        )
        try:
            product = self.set_default_offer(product.id, offer.id)
        except (BillingError, LookupError) as exc:
            logger.error("Product %s created with offer %s but no default", product.id, offer.id)
            raise PartialInconsistency(
                message="Product and offer created but the default was not set",
                new_offer_id=offer.id,
            ) from exc
        return ProductCreation(product=product, default_offer=offer)

    def _require_offer(self, offer_id: str) -> PricedOffer:
        offer = _remote("prices.retrieve", self._provider.get_price, offer_id)
        if offer is None:
            raise LookupError(f"Offer {offer_id} not found")
        return offer

    def _require_product(self, product_id: str) -> CatalogProduct:
        product = _remote("products.retrieve", self._provider.get_product, product_id)
        if product is None:
            raise LookupError(f"Product {product_id} not found")
        return product


def derive_coupon_status(coupon: Coupon, *, now: Optional[datetime] = None) -> CouponStatus:
    """Expiry outranks exhaustion; everything else is active."""

    current = ensure_aware(now) if now is not None else datetime.now(timezone.utc)
    if coupon.valid is False:
        return CouponStatus.EXPIRED
    if coupon.redeem_by is not None and coupon.redeem_by < current:
        return CouponStatus.EXPIRED
    if coupon.max_redemptions is not None and coupon.times_redeemed >= coupon.max_redemptions:
        return CouponStatus.MAXED
    return CouponStatus.ACTIVE


def build_coupon_params(draft: CouponDraft) -> Dict[str, Any]:
    """Validate a coupon draft and return processor create parameters."""

    if draft.type not in {coupon_type.value for coupon_type in CouponType}:
        raise ValidationError(message='type must be "percent" or "amount"')
    value = _validate_amount(draft.value, field="value")
    if draft.duration not in {duration.value for duration in CouponDuration}:
        raise ValidationError(message="duration must be forever, once, or repeating")

    params: Dict[str, Any] = {"duration": draft.duration}
    if draft.id and draft.id.strip():
        params["id"] = draft.id.strip()
    if draft.name and draft.name.strip():
        params["name"] = draft.name.strip()

    if draft.type == CouponType.PERCENT.value:
        if value > 100:
            raise ValidationError(message="percent value cannot exceed 100")
        params["percent_off"] = value
    else:
        if not draft.currency or not draft.currency.strip():
            raise ValidationError(message="currency is required for amount coupons")
        params["amount_off"] = to_minor_units(value)
        params["currency"] = draft.currency.strip().lower()

    if draft.duration == CouponDuration.REPEATING.value:
        months = draft.duration_in_months
        if months is None or not math.isfinite(months) or months <= 0:
            raise ValidationError(message="durationInMonths must be greater than 0 for repeating coupons")
        params["duration_in_months"] = int(math.floor(months))

    if draft.redeem_by is not None:
        params["redeem_by"] = int(draft.redeem_by.timestamp())

    if draft.max_redemptions is not None:
        if not math.isfinite(draft.max_redemptions) or draft.max_redemptions <= 0:
            raise ValidationError(message="maxRedemptions must be a positive number")
        params["max_redemptions"] = int(math.floor(draft.max_redemptions))
    return params


def parse_coupon_metadata(value: object) -> Union[Dict[str, str], str]:
    """Accept a mapping, a JSON object string, or an empty value.

    An empty value becomes ``""``, which Stripe reads as "unset all keys";
    stripe-python drops ``None`` and empty dicts from the request body.
    """

    if value is None or value == "":
        return ""
    if isinstance(value, Mapping):
        return {str(key): str(item) for key, item in value.items()} or ""
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except ValueError as exc:
            raise ValidationError(message="metadata must be valid JSON") from exc
        if not isinstance(parsed, Mapping):
            raise ValidationError(message="metadata must be a JSON object")
        return {str(key): str(item) for key, item in parsed.items()} or ""
    raise ValidationError(message="metadata must be an object")


class CouponService:
    """Coupon administration plus status derivation for listings."""

    def __init__(self, provider: CatalogProvider, *, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._provider = provider
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def list_coupons(self) -> List[Tuple[Coupon, CouponStatus]]:
        now = self._clock()
        coupons = _remote("coupons.list", self._provider.list_coupons)
        return [(coupon, derive_coupon_status(coupon, now=now)) for coupon in coupons]

    def create_coupon(self, draft: CouponDraft) -> Coupon:
        params = build_coupon_params(draft)
        coupon = _remote("coupons.create", self._provider.create_coupon, params)
        logger.info("Created coupon %s", coupon.id)
        return coupon

    def update_coupon(self, coupon_id: str, changes: Mapping[str, Any]) -> Coupon:
        if not coupon_id:
            raise ValidationError(message="couponId is required")
        unknown = set(changes) - _COUPON_PATCH_FIELDS
        if unknown:
            raise ValidationError(message=f"Unsupported fields: {', '.join(sorted(unknown))}")

        params: Dict[str, Any] = {}
        if "name" in changes:
            name = changes["name"]
            params["name"] = name.strip() if isinstance(name, str) else ""
        if "metadata" in changes:
            params["metadata"] = parse_coupon_metadata(changes["metadata"])
        if not params:
            raise ValidationError(message="Nothing to update")
        return _remote("coupons.update", self._provider.update_coupon, coupon_id, params)

    def delete_coupon(self, coupon_id: str) -> None:
        if not coupon_id:
            raise ValidationError(message="couponId is required")
        _remote("coupons.delete", self._provider.delete_coupon, coupon_id)
        logger.info("Deleted coupon %s", coupon_id)


__all__ = [
    "CatalogProvider",
    "CouponService",
    "OfferLifecycleService",
    "build_coupon_params",
    "derive_coupon_status",
    "parse_coupon_metadata",
    "validate_offer_draft",
]
