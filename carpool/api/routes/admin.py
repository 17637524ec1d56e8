"""
Settings / observability endpoints
==================================

GET /api/v1/settings     -- effective booking & cancellation policy
GET /api/v1/admin/health -- simple health check
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_engine
from carpool.api.middleware import limiter
from carpool.api.schemas import HealthResponse, PolicyResponse
from carpool.config import settings
from carpool.services.ride_engine import RideEngine

router = APIRouter(tags=["admin"])


@router.get(
    "/settings",
    response_model=PolicyResponse,
    summary="Public policy values (defaults merged with the policy store)",
)
@limiter.limit(settings.rate_limit)
async def public_settings(
    request: Request,
    engine: RideEngine = Depends(get_engine),
):
    return PolicyResponse.model_validate(await engine.load_policy())


@router.get("/admin/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
