"""API route creating dependent profiles against an entitlement."""
from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ..billing import BillingError
from ..entitlements import EntitlementRedemptionCoordinator
from ..schemas.entitlements import CreateDependentRequest, CreateDependentResponse
from ..services.entitlements import get_redemption_coordinator
from .entitlements import _get_current_user

router = APIRouter(prefix="/api/players", tags=["players"])


@router.post("", response_model=CreateDependentResponse, status_code=status.HTTP_201_CREATED)
def create_dependent(
    payload: CreateDependentRequest,
    *,
    current_user=Depends(_get_current_user),
    coordinator: EntitlementRedemptionCoordinator = Depends(get_redemption_coordinator),
) -> CreateDependentResponse:
    try:
        receipt = coordinator.create_dependent_profile(
            str(current_user.id),
            payload.to_draft(),
            access_code=payload.access_code,
        )
    except BillingError as exc:
        raise exc.to_http_exception() from exc
    return CreateDependentResponse.from_receipt(receipt)
