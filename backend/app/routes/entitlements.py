"""API routes exposing seat balances, subscription state and renewals."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import APIRouter, Cookie, Depends, Query

from ... import app_context
from ..entitlements import RenewalWindowCalculator, SeatLedgerResolver, renewal_flow
from ..schemas.entitlements import RenewalSummaryResponse, SeatStatusResponse, SubscriptionStateResponse
from ..services.entitlements import get_renewal_calculator, get_seat_ledger

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


router = APIRouter(prefix="/api/entitlements", tags=["entitlements"])


@router.get("/seats", response_model=SeatStatusResponse)
def get_seat_status(
    *,
    current_user=Depends(_get_current_user),
    ledger: SeatLedgerResolver = Depends(get_seat_ledger),
) -> SeatStatusResponse:
    return SeatStatusResponse.from_status(ledger.seat_status(str(current_user.id)))


@router.get("/subscription", response_model=SubscriptionStateResponse)
def get_subscription_state(
    *,
    current_user=Depends(_get_current_user),
    calculator: RenewalWindowCalculator = Depends(get_renewal_calculator),
) -> SubscriptionStateResponse:
    return SubscriptionStateResponse.from_state(calculator.subscription_state(str(current_user.id)))


@router.get("/renewals", response_model=RenewalSummaryResponse)
def get_renewals(
    window_days: Optional[int] = Query(default=None, alias="windowDays", ge=0, le=365),
    *,
    current_user=Depends(_get_current_user),
    calculator: RenewalWindowCalculator = Depends(get_renewal_calculator),
) -> RenewalSummaryResponse:
    days = calculator.window_days if window_days is None else window_days
    seats = calculator.renewable_seat_list(str(current_user.id), days)
    count = sum(seat.seats for seat in seats)
    return RenewalSummaryResponse.from_seats(seats, flow=renewal_flow(count), window_days=days)
