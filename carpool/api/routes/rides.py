"""
Ride endpoints
==============

POST  /api/v1/rides                                   -- post a ride (driver)
GET   /api/v1/rides                                   -- search active rides
GET   /api/v1/rides/mine/posted                       -- rides I posted (driver)
GET   /api/v1/rides/mine/booked                       -- rides I booked (rider)
GET   /api/v1/rides/{ride_id}                         -- ride with bookings
POST  /api/v1/rides/{ride_id}/bookings                -- book seats (rider)
POST  /api/v1/rides/{ride_id}/bookings/cancel         -- cancel my booking (rider)
POST  /api/v1/rides/{ride_id}/bookings/{id}/cancel    -- drop a passenger (driver)
POST  /api/v1/rides/{ride_id}/cancel                  -- cancel the ride (driver)
POST  /api/v1/rides/{ride_id}/complete                -- complete the ride (driver)
PATCH /api/v1/rides/{ride_id}/fare                    -- adjust the fare (driver)
POST  /api/v1/rides/{ride_id}/rating                  -- rate the driver (rider)
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_actor, get_engine
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ERROR_RESPONSES,
    AdjustFareRequest,
    BookingActionResponse,
    BookingResponse,
    BookSeatsRequest,
    BookSeatsResponse,
    CancelBookingRequest,
    CancelWithReasonRequest,
    PostRideResponse,
    RateDriverRequest,
    ReputationResponse,
    RideActionResponse,
    RideCreateRequest,
    RideDetailResponse,
    RideResponse,
    as_utc,
)
from carpool.config import settings
from carpool.domain.entities import Actor
from carpool.services.ride_engine import RideEngine

router = APIRouter(prefix="/rides", tags=["rides"], responses=ERROR_RESPONSES)


@router.post(
    "",
    status_code=201,
    response_model=PostRideResponse,
    summary="Post a ride",
    responses={502: {"description": "Origin/destination could not be resolved."}},
)
@limiter.limit(settings.rate_limit)
async def post_ride(
    request: Request,
    body: RideCreateRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    posted = await engine.post_ride(
        actor,
        origin=body.origin,
        destination=body.destination,
        price_per_seat=body.price_per_seat,
        total_seats=body.total_seats,
        departure_time=body.departure_time,
    )
    return PostRideResponse(
        ride=RideDetailResponse.model_validate(posted.ride),
        suggested_price=posted.suggested_price,
    )


@router.get(
    "",
    response_model=list[RideResponse],
    summary="Search active rides that have not departed yet",
)
@limiter.limit(settings.rate_limit)
async def list_rides(
    request: Request,
    origin: Optional[str] = Query(None, description="Origin substring"),
    destination: Optional[str] = Query(None, description="Destination substring"),
    departure_after: Optional[datetime] = Query(None),
    departure_before: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    rides = await engine.list_active_rides(
        origin=origin,
        destination=destination,
        departure_after=as_utc(departure_after),
        departure_before=as_utc(departure_before),
    )
    return [RideResponse.model_validate(r) for r in rides]


@router.get(
    "/mine/posted",
    response_model=list[RideDetailResponse],
    summary="Rides posted by the calling driver, newest first",
)
@limiter.limit(settings.rate_limit)
async def my_posted_rides(
    request: Request,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    rides = await engine.posted_rides(actor)
    return [RideDetailResponse.model_validate(r) for r in rides]


@router.get(
    "/mine/booked",
    response_model=list[RideDetailResponse],
    summary="Rides the calling rider has booked",
)
@limiter.limit(settings.rate_limit)
async def my_booked_rides(
    request: Request,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    rides = await engine.booked_rides(actor)
    return [RideDetailResponse.model_validate(r) for r in rides]


@router.get("/{ride_id}", response_model=RideDetailResponse, summary="Get a ride")
@limiter.limit(settings.rate_limit)
async def get_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    return RideDetailResponse.model_validate(await engine.get_ride(ride_id))


@router.post(
    "/{ride_id}/bookings",
    response_model=BookSeatsResponse,
    summary="Book seats for one or more passenger groups",
    description=(
        "All groups are booked together or not at all. On a seat shortage "
        "the 409 body carries ``seats_available``."
    ),
)
@limiter.limit(settings.rate_limit)
async def book_seats(
    request: Request,
    ride_id: int,
    body: BookSeatsRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    ride, created = await engine.book_seats(actor, ride_id, body.passengers)
    return BookSeatsResponse(
        ride=RideDetailResponse.model_validate(ride),
        bookings=[BookingResponse.model_validate(b) for b in created],
    )


@router.post(
    "/{ride_id}/bookings/cancel",
    response_model=BookingActionResponse,
    summary="Cancel one of my bookings",
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    ride_id: int,
    body: Optional[CancelBookingRequest] = None,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    body = body or CancelBookingRequest()
    ride, booking = await engine.cancel_booking(
        actor, ride_id, reason=body.reason, booking_id=body.booking_id
    )
    return BookingActionResponse(
        message="Ride booking cancelled successfully.",
        ride=RideDetailResponse.model_validate(ride),
        booking=BookingResponse.model_validate(booking),
    )


@router.post(
    "/{ride_id}/bookings/{booking_id}/cancel",
    response_model=BookingActionResponse,
    summary="Cancel a single passenger's booking (driver)",
)
@limiter.limit(settings.rate_limit)
async def cancel_passenger_booking(
    request: Request,
    ride_id: int,
    booking_id: int,
    body: CancelWithReasonRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    ride, booking = await engine.cancel_passenger_booking(
        actor, ride_id, booking_id, body.reason
    )
    return BookingActionResponse(
        message="Passenger booking cancelled successfully.",
        ride=RideDetailResponse.model_validate(ride),
        booking=BookingResponse.model_validate(booking),
    )


@router.post(
    "/{ride_id}/cancel",
    response_model=RideActionResponse,
    summary="Cancel a posted ride (driver)",
)
@limiter.limit(settings.rate_limit)
async def cancel_ride(
    request: Request,
    ride_id: int,
    body: CancelWithReasonRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    ride = await engine.cancel_ride(actor, ride_id, body.reason)
    return RideActionResponse(
        message="Ride cancelled successfully.",
        ride=RideDetailResponse.model_validate(ride),
    )


@router.post(
    "/{ride_id}/complete",
    response_model=RideActionResponse,
    summary="Mark a ride completed and settle its bookings (driver)",
)
@limiter.limit(settings.rate_limit)
async def complete_ride(
    request: Request,
    ride_id: int,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    ride = await engine.complete_ride(actor, ride_id)
    return RideActionResponse(
        message="Ride marked as completed successfully.",
        ride=RideDetailResponse.model_validate(ride),
    )


@router.patch(
    "/{ride_id}/fare",
    response_model=RideActionResponse,
    summary="Adjust the price per seat for future bookings (driver)",
)
@limiter.limit(settings.rate_limit)
async def adjust_fare(
    request: Request,
    ride_id: int,
    body: AdjustFareRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    ride = await engine.adjust_fare(actor, ride_id, body.new_price)
    return RideActionResponse(
        message="Fare adjusted successfully",
        ride=RideDetailResponse.model_validate(ride),
    )


@router.post(
    "/{ride_id}/rating",
    response_model=ReputationResponse,
    summary="Rate the driver of a completed ride (once per booking)",
)
@limiter.limit(settings.rate_limit)
async def rate_driver(
    request: Request,
    ride_id: int,
    body: RateDriverRequest,
    actor: Actor = Depends(get_actor),
    engine: RideEngine = Depends(get_engine),
):
    reputation = await engine.rate_driver(actor, ride_id, body.rating)
    return ReputationResponse(
        driver_id=reputation.driver_id,
        average_rating=reputation.average_rating,
        num_ratings=reputation.num_ratings,
    )
