"""
Ride Booking & Seat-Inventory Engine
====================================

Entry point for every ride operation.  Each call is a short unit of work:

1. Load the policy (Redis) and, when posting or quoting, the route (Maps).
2. Load the ``Ride`` aggregate in a fresh session.
3. Apply a pure domain transition (``Ride.book``, ``Ride.cancel`` ...).
4. Persist with a version-checked write and commit.

Concurrency safety
------------------
* **Optimistic check-and-set**: ``RideRepository.save`` only succeeds if
  the ride still has the version that was read.  On conflict the session
  is rolled back and steps 2-4 rerun against a fresh read, at most
  ``booking_retry_attempts`` times, then ``WriteConflictError``.
* **Per-ride asyncio lock**: writers on the same ride inside this process
  queue instead of conflicting.  Different rides never share a lock.
* Upstream calls (policy, maps) are retried ``upstream_retry_attempts``
  times; nothing is written until they have all succeeded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.config import Settings, settings as default_settings
from carpool.domain.entities import (
    Actor,
    Coordinates,
    DriverReputation,
    PassengerBooking,
    PassengerGroupLike,
    Ride,
    RouteEstimate,
)
from carpool.domain.enums import RideStatus, Role
from carpool.domain.errors import (
    NotFoundError,
    PermissionDeniedError,
    UpstreamDependencyError,
    ValidationError,
    WriteConflictError,
)
from carpool.domain.policy import Policy
from carpool.domain.pricing import DriverEarnings, PricingEngine, compute_earnings
from carpool.infrastructure.locks import KeyedLock
from carpool.infrastructure.repositories import RideRepository, UserRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Shared by every engine in the process so concurrent requests see the same locks
_ride_locks = KeyedLock()


class _StaleWrite(Exception):
    """A version-checked write matched no row."""


@dataclass(frozen=True)
class PostedRide:
    ride: Ride
    suggested_price: float


@dataclass(frozen=True)
class FareQuote:
    suggested_price: float
    distance_km: float
    distance_label: str
    duration_label: str


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RideEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy_store: Any,
        maps: Any,
        *,
        cfg: Settings = default_settings,
        clock: Callable[[], datetime] = utcnow,
        locks: Optional[KeyedLock] = None,
    ):
        self.session_factory = session_factory
        self.policy_store = policy_store
        self.maps = maps
        self.cfg = cfg
        self.clock = clock
        self.locks = locks if locks is not None else _ride_locks
        self.pricing = PricingEngine(cfg.base_fare, cfg.rate_per_km)

    # ── Upstream helpers ──────────────────────────────────────────

    async def _upstream(self, call: Callable[[], Awaitable[T]], what: str) -> T:
        attempts = max(1, self.cfg.upstream_retry_attempts)
        attempt = 1
        while True:
            try:
                return await call()
            except UpstreamDependencyError as exc:
                if not exc.retryable or attempt >= attempts:
                    raise
                logger.warning(
                    "%s failed (attempt %d/%d): %s", what, attempt, attempts, exc.message
                )
                attempt += 1

    async def load_policy(self) -> Policy:
        return await self._upstream(self.policy_store.load, "Policy lookup")

    async def _resolve_route(
        self, origin: str, destination: str
    ) -> tuple[Coordinates, Coordinates, RouteEstimate]:
        try:
            origin_coord = await self._upstream(
                lambda: self.maps.resolve_location(origin), "Geocoding origin"
            )
            destination_coord = await self._upstream(
                lambda: self.maps.resolve_location(destination), "Geocoding destination"
            )
            route = await self._upstream(
                lambda: self.maps.estimate_route(origin_coord, destination_coord),
                "Route estimate",
            )
        except UpstreamDependencyError as exc:
            raise UpstreamDependencyError(
                f"Could not resolve route: {exc.message}", **exc.extra
            ) from exc
        return origin_coord, destination_coord, route

    # ── Conditional write loop ────────────────────────────────────

    async def _mutate_ride(
        self,
        ride_id: int,
        mutation: Callable[[Ride], T],
        also: Optional[Callable[[AsyncSession, Ride, T], Awaitable[T]]] = None,
    ) -> tuple[Ride, T]:
        """
        Read ``ride_id``, apply *mutation*, write it back if nobody else
        did in between.  *also* runs inside the same transaction after the
        ride write and may raise ``_StaleWrite`` for its own conflicts.
        """
        attempts = max(1, self.cfg.booking_retry_attempts)
        async with self.locks.hold(ride_id):
            for attempt in range(1, attempts + 1):
                async with self.session_factory() as session:
                    repo = RideRepository(session)
                    ride = await repo.get(ride_id)
                    if ride is None:
                        raise NotFoundError("Ride not found.")
                    outcome = mutation(ride)
                    try:
                        if not await repo.save(ride):
                            raise _StaleWrite
                        if also is not None:
                            outcome = await also(session, ride, outcome)
                        await session.commit()
                        return ride, outcome
                    except _StaleWrite:
                        await session.rollback()
                logger.info(
                    "Write conflict on ride %s (attempt %d/%d)", ride_id, attempt, attempts
                )
        raise WriteConflictError(ride_id=ride_id)

    # ── Reads ─────────────────────────────────────────────────────

    async def get_ride(self, ride_id: int) -> Ride:
        async with self.session_factory() as session:
            ride = await RideRepository(session).get(ride_id)
        if ride is None:
            raise NotFoundError("Ride not found.")
        return ride

    async def list_active_rides(
        self,
        *,
        origin: str | None = None,
        destination: str | None = None,
        departure_after: datetime | None = None,
        departure_before: datetime | None = None,
    ) -> list[Ride]:
        if departure_after and departure_before and departure_after >= departure_before:
            raise ValidationError("departure_after must be earlier than departure_before.")
        async with self.session_factory() as session:
            return await RideRepository(session).list_active(
                self.clock(),
                origin=origin,
                destination=destination,
                departure_after=departure_after,
                departure_before=departure_before,
            )

    async def posted_rides(self, actor: Actor) -> list[Ride]:
        actor.require(Role.DRIVER, "view their posted rides")
        async with self.session_factory() as session:
            return await RideRepository(session).list_by_driver(actor.id)

    async def booked_rides(self, actor: Actor) -> list[Ride]:
        actor.require(Role.RIDER, "view their booked rides")
        async with self.session_factory() as session:
            return await RideRepository(session).list_booked_by(actor.id)

    async def driver_earnings(self, actor: Actor) -> DriverEarnings:
        actor.require(Role.DRIVER, "view earnings")
        policy = await self.load_policy()
        async with self.session_factory() as session:
            rides = await RideRepository(session).list_by_driver(
                actor.id, status=RideStatus.COMPLETED
            )
        return compute_earnings(rides, policy.commission_rate)

    # ── Driver operations ─────────────────────────────────────────

    async def post_ride(
        self,
        actor: Actor,
        *,
        origin: str,
        destination: str,
        price_per_seat: float,
        total_seats: int,
        departure_time: datetime,
    ) -> PostedRide:
        if actor.role != Role.DRIVER or not actor.approved_to_drive:
            raise PermissionDeniedError("Only approved drivers can post rides.")
        if departure_time <= self.clock():
            raise ValidationError("Departure time must be in the future.")

        async with self.session_factory() as session:
            driver = await UserRepository(session).get_by_id(actor.id)
        if driver is None:
            raise NotFoundError("Driver profile not found.")

        origin_coord, destination_coord, route = await self._resolve_route(
            origin, destination
        )

        ride = Ride.post(
            driver_id=actor.id,
            driver_name=driver.name,
            driver_phone=driver.phone,
            origin=origin,
            destination=destination,
            price_per_seat=price_per_seat,
            total_seats=total_seats,
            departure_time=departure_time,
            now=self.clock(),
            origin_coord=origin_coord,
            destination_coord=destination_coord,
            route=route,
        )
        async with self.session_factory() as session:
            await RideRepository(session).add(ride)
            await session.commit()

        logger.info("Driver %s posted ride %s (%d seats)", actor.id, ride.id, total_seats)
        return PostedRide(ride=ride, suggested_price=self.pricing.suggested_price(route))

    async def cancel_ride(self, actor: Actor, ride_id: int, reason: str) -> Ride:
        actor.require(Role.DRIVER, "cancel their posted rides")
        policy = await self.load_policy()
        ride, _ = await self._mutate_ride(
            ride_id, lambda r: r.cancel(actor.id, reason, self.clock(), policy)
        )
        logger.info("Driver %s cancelled ride %s: %s", actor.id, ride_id, reason)
        return ride

    async def cancel_passenger_booking(
        self, actor: Actor, ride_id: int, booking_id: int, reason: str
    ) -> tuple[Ride, PassengerBooking]:
        actor.require(Role.DRIVER, "cancel passenger bookings")
        ride, booking = await self._mutate_ride(
            ride_id,
            lambda r: r.cancel_passenger(actor.id, booking_id, reason, self.clock()),
        )
        logger.info(
            "Driver %s cancelled booking %s on ride %s", actor.id, booking_id, ride_id
        )
        return ride, booking

    async def complete_ride(self, actor: Actor, ride_id: int) -> Ride:
        actor.require(Role.DRIVER, "complete rides")
        ride, settled = await self._mutate_ride(
            ride_id, lambda r: r.complete(actor.id, self.clock())
        )
        logger.info(
            "Driver %s completed ride %s with %d bookings", actor.id, ride_id, len(settled)
        )
        return ride

    async def adjust_fare(self, actor: Actor, ride_id: int, new_price: float) -> Ride:
        actor.require(Role.DRIVER, "adjust fares")
        ride, _ = await self._mutate_ride(
            ride_id, lambda r: r.adjust_fare(actor.id, new_price, self.clock())
        )
        logger.info("Driver %s set ride %s price to %s", actor.id, ride_id, new_price)
        return ride

    # ── Rider operations ──────────────────────────────────────────

    async def book_seats(
        self, actor: Actor, ride_id: int, groups: Sequence[PassengerGroupLike]
    ) -> tuple[Ride, list[PassengerBooking]]:
        actor.require(Role.RIDER, "book rides")
        if not groups:
            raise ValidationError("Please provide passenger details to book.")
        policy = await self.load_policy()
        ride, created = await self._mutate_ride(
            ride_id, lambda r: r.book(actor.id, groups, self.clock(), policy)
        )
        logger.info(
            "Rider %s booked %d seats on ride %s (%d left)",
            actor.id,
            sum(b.booked_seats for b in created),
            ride_id,
            ride.seats_available,
        )
        return ride, created

    async def cancel_booking(
        self,
        actor: Actor,
        ride_id: int,
        reason: str | None = None,
        booking_id: int | None = None,
    ) -> tuple[Ride, PassengerBooking]:
        actor.require(Role.RIDER, "cancel bookings")
        policy = await self.load_policy()
        ride, booking = await self._mutate_ride(
            ride_id,
            lambda r: r.cancel_booking_by_rider(
                actor.id, self.clock(), policy, reason=reason, booking_id=booking_id
            ),
        )
        logger.info(
            "Rider %s cancelled booking %s on ride %s", actor.id, booking.id, ride_id
        )
        return ride, booking

    async def rate_driver(self, actor: Actor, ride_id: int, rating: int) -> DriverReputation:
        actor.require(Role.RIDER, "rate drivers")
        if not 1 <= rating <= 5:
            raise ValidationError("Please provide a rating between 1 and 5.")

        def mark_rated(ride: Ride) -> Any:
            booking = ride.ratable_booking(actor.id)
            booking.rated = True
            return booking

        async def fold_rating(session: AsyncSession, ride: Ride, _: Any) -> DriverReputation:
            users = UserRepository(session)
            current = await users.get_reputation(ride.driver_id)
            if current is None:
                raise NotFoundError("Driver not found.")
            updated = current.fold(rating)
            if not await users.save_reputation(updated):
                raise _StaleWrite
            return updated

        _, reputation = await self._mutate_ride(ride_id, mark_rated, also=fold_rating)
        logger.info(
            "Rider %s rated driver %s with %d (avg %.2f over %d)",
            actor.id,
            reputation.driver_id,
            rating,
            reputation.average_rating,
            reputation.num_ratings,
        )
        return reputation

    # ── Maps-backed helpers ───────────────────────────────────────

    async def quote_fare(self, origin: str, destination: str) -> FareQuote:
        _, _, route = await self._resolve_route(origin, destination)
        return FareQuote(
            suggested_price=self.pricing.quote(route),
            distance_km=route.distance_km,
            distance_label=route.distance_label,
            duration_label=route.duration_label,
        )

    async def reverse_geocode(self, lat: float, lng: float) -> str:
        return await self._upstream(
            lambda: self.maps.reverse_geocode(Coordinates(lat=lat, lng=lng)),
            "Reverse geocoding",
        )
