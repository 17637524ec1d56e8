"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Ride`` and ``PassengerBooking``: enforces valid
  lifecycle transitions (ride: ACTIVE -> COMPLETED | CANCELLED; booking:
  ACCEPTED -> one terminal status).
- ``Ride`` is the aggregate root: every change to the seat inventory goes
  through one of its methods, which keep
  ``seats_available + sum(accepted booked_seats) == total_seats``.
- Methods are pure (the caller passes ``now`` and the ``Policy``), so the
  engine can re-run them against a fresh read after a write conflict.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional, Protocol

from .enums import BOOKING_TRANSITIONS, RIDE_TRANSITIONS, BookingStatus, RideStatus, Role
from .errors import (
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
    seats_shortage,
)
from .policy import Policy, window_open

DEFAULT_CANCELLATION_REASON = "No reason provided"


class PassengerGroupLike(Protocol):
    booked_seats: int
    pickup: str
    dropoff: str
    contact_phone: str


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller, as resolved by the identity provider."""

    id: int
    role: Role
    approved_to_drive: bool = False

    def require(self, role: Role, action: str) -> None:
        if self.role != role:
            raise PermissionDeniedError(f"Only {role.value}s can {action}.")


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class RouteEstimate:
    distance_meters: int
    duration_seconds: int
    distance_label: str
    duration_label: str

    @property
    def distance_km(self) -> float:
        return self.distance_meters / 1000.0


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class PassengerBooking:
    rider_id: int
    booked_seats: int
    pickup: str
    dropoff: str
    contact_phone: str
    price_per_seat: float
    status: BookingStatus = BookingStatus.ACCEPTED
    cancellation_reason: Optional[str] = None
    rated: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def is_accepted(self) -> bool:
        return self.status == BookingStatus.ACCEPTED

    def transition_to(
        self, new_status: BookingStatus, reason: Optional[str] = None
    ) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = BOOKING_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise StateConflictError(
                f"Cannot transition booking from {self.status.value} "
                f"to {new_status.value}"
            )
        self.status = new_status
        if reason is not None:
            self.cancellation_reason = reason

    def duplicates(self, rider_id: int, group: PassengerGroupLike) -> bool:
        return (
            self.is_accepted
            and self.rider_id == rider_id
            and self.contact_phone == group.contact_phone
            and self.pickup == group.pickup
            and self.dropoff == group.dropoff
        )


@dataclass
class Ride:
    driver_id: int
    driver_name: str
    driver_phone: str
    origin: str
    destination: str
    price_per_seat: float
    total_seats: int
    seats_available: int
    departure_time: datetime
    status: RideStatus = RideStatus.ACTIVE
    origin_coord: Optional[Coordinates] = None
    destination_coord: Optional[Coordinates] = None
    distance_label: Optional[str] = None
    duration_label: Optional[str] = None
    cancellation_reason: Optional[str] = None
    bookings: list[PassengerBooking] = field(default_factory=list)
    id: Optional[int] = None
    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def post(
        cls,
        *,
        driver_id: int,
        driver_name: str,
        driver_phone: str,
        origin: str,
        destination: str,
        price_per_seat: float,
        total_seats: int,
        departure_time: datetime,
        now: datetime,
        origin_coord: Optional[Coordinates] = None,
        destination_coord: Optional[Coordinates] = None,
        route: Optional[RouteEstimate] = None,
    ) -> Ride:
        if total_seats < 1:
            raise ValidationError("A ride needs at least one seat.")
        if price_per_seat < 0:
            raise ValidationError("Price per seat cannot be negative.")
        if departure_time <= now:
            raise ValidationError("Departure time must be in the future.")
        return cls(
            driver_id=driver_id,
            driver_name=driver_name,
            driver_phone=driver_phone,
            origin=origin,
            destination=destination,
            origin_coord=origin_coord,
            destination_coord=destination_coord,
            distance_label=route.distance_label if route else None,
            duration_label=route.duration_label if route else None,
            price_per_seat=price_per_seat,
            total_seats=total_seats,
            seats_available=total_seats,
            departure_time=departure_time,
            created_at=now,
            updated_at=now,
        )

    # ── State machine ─────────────────────────────────────────────

    @property
    def is_terminal(self) -> bool:
        return not RIDE_TRANSITIONS.get(self.status)

    def transition_to(self, new_status: RideStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        allowed = RIDE_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise StateConflictError(
                f"Cannot transition ride from {self.status.value} "
                f"to {new_status.value}",
                status=self.status.value,
            )
        self.status = new_status

    def ensure_owner(self, driver_id: int, action: str) -> None:
        if self.driver_id != driver_id:
            raise PermissionDeniedError(f"You are not authorized to {action} this ride.")

    # ── Seat inventory ────────────────────────────────────────────

    @property
    def accepted_seats(self) -> int:
        return sum(b.booked_seats for b in self.bookings if b.is_accepted)

    @property
    def seats_consistent(self) -> bool:
        return (
            0 <= self.seats_available <= self.total_seats
            and self.seats_available + self.accepted_seats == self.total_seats
        )

    def _release_seats(self, booking: PassengerBooking) -> None:
        self.seats_available += booking.booked_seats

    def find_booking(self, booking_id: int) -> PassengerBooking:
        for booking in self.bookings:
            if booking.id == booking_id:
                return booking
        raise NotFoundError("Booking not found on this ride.")

    def book(
        self,
        rider_id: int,
        groups: Iterable[PassengerGroupLike],
        now: datetime,
        policy: Policy,
    ) -> list[PassengerBooking]:
        """Append one accepted booking per passenger group, all or nothing."""
        groups = list(groups)
        if not groups:
            raise ValidationError("Please provide passenger details to book.")
        if self.status != RideStatus.ACTIVE:
            raise StateConflictError(
                f"Ride is {self.status.value} and cannot be booked.",
                status=self.status.value,
            )
        if rider_id == self.driver_id:
            raise PermissionDeniedError("Drivers cannot book their own rides.")
        if not policy.booking_enabled:
            raise StateConflictError("Booking is currently unavailable.")
        if not window_open(self.departure_time, now, policy.booking_lead_time):
            raise StateConflictError(
                "Booking closes "
                f"{policy.booking_lead_time_minutes:g} minutes before departure."
            )

        requested = 0
        for group in groups:
            if group.booked_seats <= 0:
                raise ValidationError("Each passenger group must book at least one seat.")
            if group.booked_seats > self.total_seats:
                raise ValidationError(
                    f"A group cannot book more than {self.total_seats} seats on this ride."
                )
            if any(b.duplicates(rider_id, group) for b in self.bookings):
                raise StateConflictError(
                    f"A booking for {group.contact_phone} with these details "
                    "already exists on this ride."
                )
            requested += group.booked_seats

        if requested > self.seats_available:
            raise seats_shortage(self.seats_available, requested)

        created = [
            PassengerBooking(
                rider_id=rider_id,
                booked_seats=group.booked_seats,
                pickup=group.pickup,
                dropoff=group.dropoff,
                contact_phone=group.contact_phone,
                price_per_seat=self.price_per_seat,
                created_at=now,
            )
            for group in groups
        ]
        self.seats_available -= requested
        self.bookings.extend(created)
        self.updated_at = now
        return created

    # ── Cancellation ──────────────────────────────────────────────

    def cancel_booking_by_rider(
        self,
        rider_id: int,
        now: datetime,
        policy: Policy,
        reason: Optional[str] = None,
        booking_id: Optional[int] = None,
    ) -> PassengerBooking:
        """Cancel *booking_id*, or the rider's first accepted booking."""
        if booking_id is not None:
            booking = self.find_booking(booking_id)
            if booking.rider_id != rider_id:
                raise PermissionDeniedError("This booking does not belong to you.")
            if not booking.is_accepted:
                raise StateConflictError(
                    f"Booking is already {booking.status.value}.",
                    status=booking.status.value,
                )
        else:
            booking = next(
                (b for b in self.bookings if b.rider_id == rider_id and b.is_accepted),
                None,
            )
            if booking is None:
                raise NotFoundError(
                    "Active booking not found for this ride by your account."
                )

        if not window_open(self.departure_time, now, policy.rider_cancellation_cutoff):
            raise StateConflictError(
                "Bookings can only be cancelled up to "
                f"{policy.rider_cancellation_cutoff_hours:g} hours before departure."
            )

        booking.transition_to(
            BookingStatus.CANCELLED_BY_RIDER, reason or DEFAULT_CANCELLATION_REASON
        )
        self._release_seats(booking)
        self.updated_at = now
        return booking

    def cancel(self, driver_id: int, reason: str, now: datetime, policy: Policy) -> None:
        """Driver cancels the whole ride.  Bookings keep their status."""
        self.ensure_owner(driver_id, "cancel")
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required.")
        if self.is_terminal:
            raise StateConflictError(
                "Ride is already cancelled or completed.", status=self.status.value
            )
        if not window_open(self.departure_time, now, policy.driver_cancellation_cutoff):
            raise StateConflictError(
                "Rides can only be cancelled up to "
                f"{policy.driver_cancellation_cutoff_hours:g} hours before departure."
            )
        self.transition_to(RideStatus.CANCELLED)
        self.cancellation_reason = reason
        self.updated_at = now

    def cancel_passenger(
        self, driver_id: int, booking_id: int, reason: str, now: datetime
    ) -> PassengerBooking:
        self.ensure_owner(driver_id, "manage passengers on")
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required.")
        booking = self.find_booking(booking_id)
        if not booking.is_accepted:
            raise StateConflictError(
                f"Booking is already {booking.status.value}.",
                status=booking.status.value,
            )
        booking.transition_to(BookingStatus.CANCELLED_BY_DRIVER, reason)
        self._release_seats(booking)
        self.updated_at = now
        return booking

    # ── Completion & fares ────────────────────────────────────────

    def complete(self, driver_id: int, now: datetime) -> list[PassengerBooking]:
        """Mark the ride completed and settle every accepted booking."""
        self.ensure_owner(driver_id, "complete")
        if self.status == RideStatus.COMPLETED:
            raise StateConflictError(
                "Ride is already marked as completed.", status=self.status.value
            )
        self.transition_to(RideStatus.COMPLETED)
        settled = [b for b in self.bookings if b.is_accepted]
        for booking in settled:
            booking.transition_to(BookingStatus.COMPLETED_BY_DRIVER)
        self.updated_at = now
        return settled

    def adjust_fare(self, driver_id: int, new_price: float, now: datetime) -> None:
        """Change the price for future bookings; existing ones keep theirs."""
        self.ensure_owner(driver_id, "adjust the fare of")
        if new_price <= 0:
            raise ValidationError("New price must be greater than zero.")
        self.price_per_seat = new_price
        self.updated_at = now

    def completed_seats(self) -> int:
        return sum(
            b.booked_seats
            for b in self.bookings
            if b.status == BookingStatus.COMPLETED_BY_DRIVER
        )

    def gross_fare(self) -> float:
        """Revenue from completed bookings at their booked price."""
        return sum(
            b.booked_seats * b.price_per_seat
            for b in self.bookings
            if b.status == BookingStatus.COMPLETED_BY_DRIVER
        )

    # ── Ratings ───────────────────────────────────────────────────

    def ratable_booking(self, rider_id: int) -> PassengerBooking:
        if self.status != RideStatus.COMPLETED:
            raise StateConflictError(
                "Ride must be completed to rate the driver.", status=self.status.value
            )
        completed = [
            b
            for b in self.bookings
            if b.rider_id == rider_id and b.status == BookingStatus.COMPLETED_BY_DRIVER
        ]
        if not completed:
            raise PermissionDeniedError("You did not complete this ride as a passenger.")
        for booking in completed:
            if not booking.rated:
                return booking
        raise StateConflictError("You have already rated the driver for this ride.")


@dataclass(frozen=True)
class DriverReputation:
    """
    Running rating aggregate for one driver.

    ``rating_total`` is the exact sum of every rating folded in, so
    ``average_rating == rating_total / num_ratings`` which is the same as
    ``(avg * n + rating) / (n + 1)`` without float drift.
    """

    driver_id: int
    average_rating: float = 0.0
    num_ratings: int = 0
    rating_total: int = 0
    version: int = 1

    def fold(self, rating: int) -> DriverReputation:
        if not 1 <= rating <= 5:
            raise ValidationError("Please provide a rating between 1 and 5.")
        num_ratings = self.num_ratings + 1
        rating_total = self.rating_total + rating
        return replace(
            self,
            average_rating=rating_total / num_ratings,
            num_ratings=num_ratings,
            rating_total=rating_total,
        )
