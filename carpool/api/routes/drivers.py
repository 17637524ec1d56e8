"""
Driver endpoints
================

GET /api/v1/drivers/me/earnings -- net earnings over completed rides
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_actor, get_engine
from carpool.api.middleware import limiter
from carpool.api.schemas import ERROR_RESPONSES, EarningsResponse
from carpool.config import settings
from carpool.domain.entities import Actor
from carpool.services.ride_engine import RideEngine

router = APIRouter(prefix="/drivers", tags=["drivers"], responses=ERROR_RESPONSES)


@router.get(
    "/me/earnings",
    response_model=EarningsResponse,
    summary="Earnings net of commission",
    description=(
        "Sums seats x booked price over completed bookings of completed "
        "rides, minus the platform commission from the policy store."
    ),
)
@limiter.limit(settings.rate_limit)
async def my_earnings(
    request: Request,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    return EarningsResponse.model_validate(await engine.driver_earnings(actor))
