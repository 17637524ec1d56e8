"""
Concurrency safety tests.

Demonstrates:
1. Two riders racing for the last seats never oversell the ride.
2. A write based on a stale read is refused by the version check.
3. Conflicting writes are retried against a fresh read, then given up on.
4. Concurrent ratings are all folded into the driver's reputation.
5. The per-ride lock registry serializes same-ride writers only.
"""

import asyncio
from datetime import timedelta

import pytest

from carpool.api.schemas import PassengerGroup
from carpool.domain.errors import StateConflictError, WriteConflictError
from carpool.infrastructure.locks import KeyedLock
from carpool.infrastructure.repositories import RideRepository, UserRepository

from tests.conftest import DRIVER, NOW, OTHER_RIDER, RIDER


def passengers(seats: int, phone: str):
    return [
        PassengerGroup(booked_seats=seats, pickup="Circle", dropoff="Adum", contact_phone=phone)
    ]


async def post(engine, total_seats: int = 3):
    posted = await engine.post_ride(
        DRIVER,
        origin="Accra",
        destination="Kumasi",
        price_per_seat=100,
        total_seats=total_seats,
        departure_time=NOW + timedelta(days=1),
    )
    return posted.ride


class TestSeatRace:
    @pytest.mark.asyncio
    async def test_two_riders_race_for_last_seats(self, engine):
        ride = await post(engine, total_seats=3)

        results = await asyncio.gather(
            engine.book_seats(RIDER, ride.id, passengers(2, "+233200000002")),
            engine.book_seats(OTHER_RIDER, ride.id, passengers(2, "+233200000003")),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], StateConflictError)
        assert failures[0].extra["seats_available"] == 1

        stored = await engine.get_ride(ride.id)
        assert stored.seats_available == 1
        assert stored.seats_consistent
        assert len(stored.bookings) == 1

    @pytest.mark.asyncio
    async def test_many_single_seat_bookings_fill_exactly(self, engine):
        ride = await post(engine, total_seats=3)

        results = await asyncio.gather(
            *[
                engine.book_seats(RIDER, ride.id, passengers(1, f"+2332000001{i:02d}"))
                for i in range(5)
            ],
            return_exceptions=True,
        )

        assert sum(not isinstance(r, Exception) for r in results) == 3
        stored = await engine.get_ride(ride.id)
        assert stored.seats_available == 0
        assert stored.accepted_seats == 3


class TestVersionCheck:
    @pytest.mark.asyncio
    async def test_stale_write_is_refused(self, engine, session_factory):
        ride = await post(engine)
        async with session_factory() as session:
            stale = await RideRepository(session).get(ride.id)

        await engine.book_seats(RIDER, ride.id, passengers(1, "+233200000002"))

        stale.seats_available = 0
        async with session_factory() as session:
            assert await RideRepository(session).save(stale) is False
            await session.rollback()

        stored = await engine.get_ride(ride.id)
        assert stored.seats_available == 2
        assert stored.version == stale.version + 1

    @pytest.mark.asyncio
    async def test_stale_reputation_write_is_refused(self, session_factory):
        async with session_factory() as session:
            users = UserRepository(session)
            first = await users.get_reputation(DRIVER.id)
            assert await users.save_reputation(first.fold(5)) is True
            assert await users.save_reputation(first.fold(1)) is False
            await session.commit()

        async with session_factory() as session:
            current = await UserRepository(session).get_reputation(DRIVER.id)
        assert current.num_ratings == 1
        assert current.average_rating == 5.0


class TestRetryLoop:
    @pytest.mark.asyncio
    async def test_conflict_is_retried_against_fresh_read(self, engine, monkeypatch):
        ride = await post(engine)
        original = RideRepository.save
        calls = []

        async def flaky_save(self, aggregate):
            calls.append(aggregate.version)
            if len(calls) == 1:
                return False
            return await original(self, aggregate)

        monkeypatch.setattr(RideRepository, "save", flaky_save)
        booked, created = await engine.book_seats(
            RIDER, ride.id, passengers(1, "+233200000002")
        )

        assert len(calls) == 2
        assert booked.seats_available == 2
        assert len(created) == 1
        monkeypatch.setattr(RideRepository, "save", original)
        stored = await engine.get_ride(ride.id)
        assert stored.seats_available == 2
        assert len(stored.bookings) == 1

    @pytest.mark.asyncio
    async def test_retries_are_bounded(self, engine, monkeypatch, test_settings):
        ride = await post(engine)
        calls = []

        async def always_stale(self, aggregate):
            calls.append(aggregate.version)
            return False

        monkeypatch.setattr(RideRepository, "save", always_stale)
        with pytest.raises(WriteConflictError) as exc:
            await engine.book_seats(RIDER, ride.id, passengers(1, "+233200000002"))

        assert len(calls) == test_settings.booking_retry_attempts
        assert exc.value.extra["ride_id"] == ride.id
        monkeypatch.undo()
        stored = await engine.get_ride(ride.id)
        assert stored.seats_available == 3
        assert stored.bookings == []


class TestRatingRace:
    async def _completed_ride(self, engine):
        ride = await post(engine, total_seats=3)
        await engine.book_seats(RIDER, ride.id, passengers(1, "+233200000002"))
        await engine.book_seats(OTHER_RIDER, ride.id, passengers(1, "+233200000003"))
        await engine.complete_ride(DRIVER, ride.id)
        return ride

    @pytest.mark.asyncio
    async def test_concurrent_ratings_are_all_counted(self, engine, session_factory):
        ride = await self._completed_ride(engine)

        await asyncio.gather(
            engine.rate_driver(RIDER, ride.id, 5),
            engine.rate_driver(OTHER_RIDER, ride.id, 2),
        )

        async with session_factory() as session:
            rep = await UserRepository(session).get_reputation(DRIVER.id)
        assert rep.num_ratings == 2
        assert rep.rating_total == 7
        assert rep.average_rating == pytest.approx(3.5)

    @pytest.mark.asyncio
    async def test_reputation_conflict_reruns_whole_rating(
        self, engine, session_factory, monkeypatch
    ):
        ride = await self._completed_ride(engine)
        original = UserRepository.save_reputation
        calls = []

        async def flaky_save(self, reputation):
            calls.append(reputation.num_ratings)
            if len(calls) == 1:
                return False
            return await original(self, reputation)

        monkeypatch.setattr(UserRepository, "save_reputation", flaky_save)
        rep = await engine.rate_driver(RIDER, ride.id, 4)

        assert len(calls) == 2
        assert rep.num_ratings == 1
        stored = await engine.get_ride(ride.id)
        assert [b.rated for b in stored.bookings] == [True, False]


class TestKeyedLock:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = KeyedLock()
        order = []

        async def worker(name):
            async with locks.hold("ride-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        async with locks.hold(1):
            assert locks.locked(1)
            assert not locks.locked(2)
            async with locks.hold(2):
                assert locks.locked(2)

    @pytest.mark.asyncio
    async def test_registry_is_emptied_after_use(self):
        locks = KeyedLock()
        async with locks.hold(1):
            assert len(locks) == 1
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self):
        locks = KeyedLock()
        with pytest.raises(RuntimeError):
            async with locks.hold(1):
                raise RuntimeError("boom")
        assert not locks.locked(1)
        assert len(locks) == 0
