"""Pydantic request / response schemas for the REST API.

Every operation has its own request model, validated here before the
engine sees it.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, Field, field_validator

from carpool.domain.enums import BookingStatus, RideStatus


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps are taken to be UTC; aware ones are converted."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


Label = Annotated[str, Field(min_length=1, max_length=255)]


# ── Requests ──────────────────────────────────────────────────────────


class RideCreateRequest(BaseModel):
    origin: Label
    destination: Label
    price_per_seat: float = Field(..., ge=0)
    total_seats: int = Field(..., ge=1)
    departure_time: datetime

    @field_validator("departure_time")
    @classmethod
    def _departure_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class PassengerGroup(BaseModel):
    booked_seats: int = Field(..., ge=1)
    pickup: Label
    dropoff: Label
    contact_phone: str = Field(..., min_length=3, max_length=32)


class BookSeatsRequest(BaseModel):
    passengers: list[PassengerGroup] = Field(..., min_length=1)


class CancelBookingRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)
    booking_id: Optional[int] = Field(
        None,
        description="Booking to cancel; defaults to your first accepted booking.",
    )


class CancelWithReasonRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("reason must not be blank")
        return value.strip()


class AdjustFareRequest(BaseModel):
    new_price: float = Field(..., gt=0)


class RateDriverRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)


class FareQuoteRequest(BaseModel):
    origin: Label
    destination: Label


class ReverseGeocodeRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# ── Responses ─────────────────────────────────────────────────────────


class CoordinatesResponse(BaseModel):
    lat: float
    lng: float

    model_config = {"from_attributes": True}


class BookingResponse(BaseModel):
    id: int
    rider_id: int
    booked_seats: int
    pickup: str
    dropoff: str
    contact_phone: str
    price_per_seat: float
    status: BookingStatus
    cancellation_reason: Optional[str] = None
    rated: bool = False
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideResponse(BaseModel):
    id: int
    driver_id: int
    driver_name: str
    driver_phone: str
    origin: str
    destination: str
    origin_coord: Optional[CoordinatesResponse] = None
    destination_coord: Optional[CoordinatesResponse] = None
    distance_label: Optional[str] = None
    duration_label: Optional[str] = None
    price_per_seat: float
    total_seats: int
    seats_available: int
    departure_time: datetime
    status: RideStatus
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideDetailResponse(RideResponse):
    bookings: list[BookingResponse] = []


class PostRideResponse(BaseModel):
    message: str = "Ride posted successfully"
    ride: RideDetailResponse
    suggested_price: float


class RideActionResponse(BaseModel):
    message: str
    ride: RideDetailResponse


class BookSeatsResponse(BaseModel):
    message: str = "Ride booked successfully!"
    ride: RideDetailResponse
    bookings: list[BookingResponse]


class BookingActionResponse(BaseModel):
    message: str
    ride: RideDetailResponse
    booking: BookingResponse


class EarningsResponse(BaseModel):
    total_earnings: float
    gross_earnings: float
    commission_rate: float
    completed_ride_count: int

    model_config = {"from_attributes": True}


class ReputationResponse(BaseModel):
    message: str = "Driver rated successfully."
    driver_id: int
    average_rating: float
    num_ratings: int


class FareQuoteResponse(BaseModel):
    suggested_price: float
    distance_km: float
    distance_label: str
    duration_label: str

    model_config = {"from_attributes": True}


class AddressResponse(BaseModel):
    address: str


class PolicyResponse(BaseModel):
    commission_rate: float
    booking_lead_time_minutes: float
    rider_cancellation_cutoff_hours: float
    driver_cancellation_cutoff_hours: float
    booking_enabled: bool

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    kind: str
    detail: str

    model_config = {"extra": "allow"}


ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 403, 404, 409, 502)
}
