"""API routes exposing the user's payment history."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..config import get_billing_config
from ..payments import PaymentHistoryService
from ..schemas.payments import PaymentListResponse
from ..services.payments import get_payment_history_service
from .entitlements import _get_current_user

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.get("/payments", response_model=PaymentListResponse)
def list_payments(
    sid: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    *,
    current_user=Depends(_get_current_user),
    service: PaymentHistoryService = Depends(get_payment_history_service),
) -> PaymentListResponse:
    page_size = get_billing_config().payments_page_size
    offset = (page - 1) * page_size
    try:
        result = service.fetch_user_payments(
            str(current_user.id),
            limit=page_size,
            offset=offset,
            subscription_id=sid or None,
            user_email=getattr(current_user, "email", None),
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return PaymentListResponse.from_page(result, page=page, page_size=page_size)
