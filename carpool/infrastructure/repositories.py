"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Rides cross this boundary as domain
``Ride`` aggregates, never as ORM rows.

Writes are conditional: ``RideRepository.save`` only lands if the row
still carries the version that was read, so two writers that read the
same seat count can never both commit.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PassengerBookingModel, RideModel, UserModel
from carpool.domain.entities import Coordinates, DriverReputation, PassengerBooking, Ride
from carpool.domain.enums import RideStatus


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coord(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinates]:
    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)


def _booking_state(booking: PassengerBooking) -> tuple:
    return (booking.status, booking.cancellation_reason, booking.rated)


class RideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session
        # booking id -> mutable state as read, to detect what changed
        self._snapshots: dict[int, tuple] = {}

    # ── Mapping ───────────────────────────────────────────────────

    @staticmethod
    def _booking_to_domain(row: PassengerBookingModel) -> PassengerBooking:
        return PassengerBooking(
            id=row.id,
            rider_id=row.rider_id,
            booked_seats=row.booked_seats,
            pickup=row.pickup,
            dropoff=row.dropoff,
            contact_phone=row.contact_phone,
            price_per_seat=row.price_per_seat,
            status=row.status,
            cancellation_reason=row.cancellation_reason,
            rated=row.rated,
            created_at=_utc(row.created_at),
        )

    def _to_domain(self, row: RideModel) -> Ride:
        bookings = [self._booking_to_domain(b) for b in row.bookings]
        for booking in bookings:
            self._snapshots[booking.id] = _booking_state(booking)
        return Ride(
            id=row.id,
            driver_id=row.driver_id,
            driver_name=row.driver_name,
            driver_phone=row.driver_phone,
            origin=row.origin,
            destination=row.destination,
            origin_coord=_coord(row.origin_lat, row.origin_lng),
            destination_coord=_coord(row.destination_lat, row.destination_lng),
            distance_label=row.distance_label,
            duration_label=row.duration_label,
            price_per_seat=row.price_per_seat,
            total_seats=row.total_seats,
            seats_available=row.seats_available,
            departure_time=_utc(row.departure_time),
            status=row.status,
            cancellation_reason=row.cancellation_reason,
            bookings=bookings,
            version=row.version,
            created_at=_utc(row.created_at),
            updated_at=_utc(row.updated_at),
        )

    # ── Reads ─────────────────────────────────────────────────────

    async def get(self, ride_id: int) -> Optional[Ride]:
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id == ride_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._to_domain(row) if row else None

    async def list_active(
        self,
        now: datetime,
        *,
        origin: str | None = None,
        destination: str | None = None,
        departure_after: datetime | None = None,
        departure_before: datetime | None = None,
    ) -> list[Ride]:
        query = select(RideModel).where(
            RideModel.status == RideStatus.ACTIVE,
            RideModel.departure_time > now,
        )
        if origin:
            query = query.where(RideModel.origin.icontains(origin, autoescape=True))
        if destination:
            query = query.where(
                RideModel.destination.icontains(destination, autoescape=True)
            )
        if departure_after:
            query = query.where(RideModel.departure_time >= departure_after)
        if departure_before:
            query = query.where(RideModel.departure_time < departure_before)
        result = await self.session.execute(query.order_by(RideModel.departure_time))
        return [self._to_domain(r) for r in result.scalars().all()]

    async def list_by_driver(
        self, driver_id: int, status: RideStatus | None = None
    ) -> list[Ride]:
        query = select(RideModel).where(RideModel.driver_id == driver_id)
        if status is not None:
            query = query.where(RideModel.status == status)
        result = await self.session.execute(
            query.order_by(RideModel.created_at.desc(), RideModel.id.desc())
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    async def list_booked_by(self, rider_id: int) -> list[Ride]:
        booked = select(PassengerBookingModel.ride_id).where(
            PassengerBookingModel.rider_id == rider_id
        )
        result = await self.session.execute(
            select(RideModel)
            .where(RideModel.id.in_(booked))
            .order_by(RideModel.departure_time)
        )
        return [self._to_domain(r) for r in result.scalars().all()]

    # ── Writes ────────────────────────────────────────────────────

    async def add(self, ride: Ride) -> Ride:
        row = RideModel(
            driver_id=ride.driver_id,
            driver_name=ride.driver_name,
            driver_phone=ride.driver_phone,
            origin=ride.origin,
            destination=ride.destination,
            origin_lat=ride.origin_coord.lat if ride.origin_coord else None,
            origin_lng=ride.origin_coord.lng if ride.origin_coord else None,
            destination_lat=ride.destination_coord.lat if ride.destination_coord else None,
            destination_lng=ride.destination_coord.lng if ride.destination_coord else None,
            distance_label=ride.distance_label,
            duration_label=ride.duration_label,
            price_per_seat=ride.price_per_seat,
            total_seats=ride.total_seats,
            seats_available=ride.seats_available,
            departure_time=ride.departure_time,
            status=ride.status,
            version=ride.version,
            created_at=ride.created_at,
            updated_at=ride.updated_at,
        )
        self.session.add(row)
        await self.session.flush()
        ride.id = row.id
        return ride

    async def save(self, ride: Ride) -> bool:
        """
        Conditional write of the whole aggregate.

        Returns ``False`` (and writes nothing) if the ride's version moved
        since it was read; the caller must roll back and retry.
        """
        expected = ride.version
        result = await self.session.execute(
            update(RideModel)
            .where(RideModel.id == ride.id, RideModel.version == expected)
            .values(
                seats_available=ride.seats_available,
                status=ride.status,
                price_per_seat=ride.price_per_seat,
                cancellation_reason=ride.cancellation_reason,
                updated_at=ride.updated_at or func.now(),
                version=expected + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        for booking in ride.bookings:
            if booking.id is None:
                row = PassengerBookingModel(
                    ride_id=ride.id,
                    rider_id=booking.rider_id,
                    booked_seats=booking.booked_seats,
                    pickup=booking.pickup,
                    dropoff=booking.dropoff,
                    contact_phone=booking.contact_phone,
                    price_per_seat=booking.price_per_seat,
                    status=booking.status,
                    created_at=booking.created_at,
                )
                self.session.add(row)
                await self.session.flush()
                booking.id = row.id
            elif self._snapshots.get(booking.id) != _booking_state(booking):
                await self.session.execute(
                    update(PassengerBookingModel)
                    .where(PassengerBookingModel.id == booking.id)
                    .values(
                        status=booking.status,
                        cancellation_reason=booking.cancellation_reason,
                        rated=booking.rated,
                    )
                    .execution_options(synchronize_session=False)
                )
            self._snapshots[booking.id] = _booking_state(booking)

        ride.version = expected + 1
        return True


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_reputation(self, driver_id: int) -> Optional[DriverReputation]:
        result = await self.session.execute(
            select(
                UserModel.average_rating,
                UserModel.num_ratings,
                UserModel.rating_total,
                UserModel.version,
            ).where(UserModel.id == driver_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return DriverReputation(
            driver_id=driver_id,
            average_rating=row.average_rating,
            num_ratings=row.num_ratings,
            rating_total=row.rating_total,
            version=row.version,
        )

    async def save_reputation(self, reputation: DriverReputation) -> bool:
        """Version-checked write of a folded reputation."""
        result = await self.session.execute(
            update(UserModel)
            .where(
                UserModel.id == reputation.driver_id,
                UserModel.version == reputation.version,
            )
            .values(
                average_rating=reputation.average_rating,
                num_ratings=reputation.num_ratings,
                rating_total=reputation.rating_total,
                version=reputation.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
