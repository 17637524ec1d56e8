"""
Maps-backed endpoints
=====================

POST /api/v1/fares/quote          -- suggested fare between two places
POST /api/v1/maps/reverse-geocode -- address for a coordinate
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_actor, get_engine
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ERROR_RESPONSES,
    AddressResponse,
    FareQuoteRequest,
    FareQuoteResponse,
    ReverseGeocodeRequest,
)
from carpool.config import settings
from carpool.domain.entities import Actor
from carpool.services.ride_engine import RideEngine

router = APIRouter(tags=["maps"], responses=ERROR_RESPONSES)


@router.post(
    "/fares/quote",
    response_model=FareQuoteResponse,
    summary="Suggested fare: base fare + distance x rate per km",
)
@limiter.limit(settings.rate_limit)
async def quote_fare(
    request: Request,
    body: FareQuoteRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    quote = await engine.quote_fare(body.origin, body.destination)
    return FareQuoteResponse.model_validate(quote)


@router.post(
    "/maps/reverse-geocode",
    response_model=AddressResponse,
    summary="Get address from coordinates",
)
@limiter.limit(settings.rate_limit)
async def reverse_geocode(
    request: Request,
    body: ReverseGeocodeRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    return AddressResponse(address=await engine.reverse_geocode(body.lat, body.lng))
