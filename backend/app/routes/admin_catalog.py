"""Admin routes managing prices, products and coupons."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import ValidationError as PydanticValidationError

from ..billing import BillingError
from ..catalog import CouponService, OfferLifecycleService
from ..schemas.catalog import (
    CouponListResponse,
    CouponOut,
    CreateCouponRequest,
    CreateOfferRequest,
    CreateProductRequest,
    CreateProductResponse,
    DeleteCouponRequest,
    OfferListResponse,
    OfferOut,
    PatchCouponRequest,
    PatchOfferRequest,
    ProductOut,
    ReplaceOfferRequest,
    ReplaceOfferResponse,
    SetDefaultOfferRequest,
)
from ..services.billing import ensure_admin
from ..services.catalog import get_coupon_service, get_offer_service
from .entitlements import _get_current_user


def _get_admin_user(current_user=Depends(_get_current_user)) -> Any:
    ensure_admin(current_user)
    return current_user


def _translate(exc: Exception) -> HTTPException:
    if isinstance(exc, BillingError):
        return exc.to_http_exception()
    if isinstance(exc, LookupError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


router = APIRouter(prefix="/api/admin/catalog", tags=["admin-catalog"])


@router.get("/prices", response_model=OfferListResponse)
def list_prices(
    product_id: Optional[str] = Query(default=None, alias="productId"),
    active: Optional[bool] = Query(default=None),
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> OfferListResponse:
    try:
        offers = service.list_offers(product_id=product_id, active=active)
    except BillingError as exc:
        raise _translate(exc) from exc
    return OfferListResponse(data=[OfferOut.from_offer(offer) for offer in offers])


@router.post("/prices", response_model=OfferOut, status_code=status.HTTP_201_CREATED)
def create_price(
    payload: CreateOfferRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> OfferOut:
    try:
        offer = service.create_offer(payload.to_draft())
    except BillingError as exc:
        raise _translate(exc) from exc
    return OfferOut.from_offer(offer)


@router.patch("/prices", response_model=OfferOut)
def patch_price(
    payload: PatchOfferRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> OfferOut:
    try:
        offer = service.patch_offer(payload.price_id, payload.changes())
    except (BillingError, LookupError) as exc:
        raise _translate(exc) from exc
    return OfferOut.from_offer(offer)


@router.post("/prices/{price_id}/replace", response_model=ReplaceOfferResponse)
def replace_price(
    price_id: str,
    payload: ReplaceOfferRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> ReplaceOfferResponse:
    try:
        replacement = service.replace_offer(
            price_id,
            amount=payload.amount,
            currency=payload.currency,
            offer_type=payload.type,
            interval=payload.interval,
            nickname=payload.nickname,
            make_default=payload.make_default,
        )
    except (BillingError, LookupError) as exc:
        raise _translate(exc) from exc
    return ReplaceOfferResponse.from_replacement(replacement)


@router.post("/products/{product_id}/default-price", response_model=ProductOut)
def set_default_price(
    product_id: str,
    payload: SetDefaultOfferRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> ProductOut:
    try:
        product = service.set_default_offer(product_id, payload.price_id)
    except (BillingError, LookupError) as exc:
        raise _translate(exc) from exc
    return ProductOut.from_product(product)


@router.post("/products", response_model=CreateProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: CreateProductRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> CreateProductResponse:
    try:
        creation = service.create_product(
            payload.name,
            description=payload.description,
            active=payload.active,
            default_amount=payload.price_amount if payload.create_price else None,
            currency=payload.price_currency,
        )
    except BillingError as exc:
        raise _translate(exc) from exc
    return CreateProductResponse.from_creation(creation)


@router.get("/products", response_model=list[ProductOut])
def list_products(
    *,
    admin_user=Depends(_get_admin_user),
    service: OfferLifecycleService = Depends(get_offer_service),
) -> list[ProductOut]:
    try:
        products = service.list_products()
    except BillingError as exc:
        raise _translate(exc) from exc
    return [ProductOut.from_product(product) for product in products]


@router.get("/coupons", response_model=CouponListResponse)
def list_coupons(
    *,
    admin_user=Depends(_get_admin_user),
    service: CouponService = Depends(get_coupon_service),
) -> CouponListResponse:
    try:
        entries = service.list_coupons()
    except BillingError as exc:
        raise _translate(exc) from exc
    return CouponListResponse(data=[CouponOut.from_coupon(coupon, coupon_status) for coupon, coupon_status in entries])


@router.post("/coupons", response_model=CouponOut, status_code=status.HTTP_201_CREATED)
def create_coupon(
    payload: CreateCouponRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: CouponService = Depends(get_coupon_service),
) -> CouponOut:
    try:
        draft = payload.to_draft()
    except PydanticValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="redeemBy must be a valid date") from exc
    try:
        coupon = service.create_coupon(draft)
    except BillingError as exc:
        raise _translate(exc) from exc
    return CouponOut.from_coupon(coupon)


@router.patch("/coupons", response_model=CouponOut)
def patch_coupon(
    payload: PatchCouponRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: CouponService = Depends(get_coupon_service),
) -> CouponOut:
    try:
        coupon = service.update_coupon(payload.coupon_id, payload.changes())
    except BillingError as exc:
        raise _translate(exc) from exc
    return CouponOut.from_coupon(coupon)


@router.delete("/coupons", status_code=status.HTTP_204_NO_CONTENT)
def delete_coupon(
    payload: DeleteCouponRequest,
    *,
    admin_user=Depends(_get_admin_user),
    service: CouponService = Depends(get_coupon_service),
) -> Response:
    try:
        service.delete_coupon(payload.coupon_id)
    except BillingError as exc:
        raise _translate(exc) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)
