"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 approved drivers and 4 riders
  - 6 sample rides departing over the next few days
  - 2 sample bookings on the first ride
  - the default booking / cancellation policy in Redis
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from carpool.api.schemas import PassengerGroup
from carpool.config import settings
from carpool.domain.entities import Coordinates, Ride
from carpool.domain.enums import Role
from carpool.domain.policy import Policy
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.policy_store import RedisPolicyStore
from carpool.infrastructure.redis_client import get_redis
from carpool.infrastructure.repositories import RideRepository


USERS = [
    {"name": "Aarav Sharma", "email": "aarav@example.com", "phone": "+919800000001", "role": Role.DRIVER},
    {"name": "Priya Patel", "email": "priya@example.com", "phone": "+919800000002", "role": Role.DRIVER},
    {"name": "Rohan Mehta", "email": "rohan@example.com", "phone": "+919800000003", "role": Role.DRIVER},
    {"name": "Sneha Gupta", "email": "sneha@example.com", "phone": "+919800000004", "role": Role.RIDER},
    {"name": "Vikram Singh", "email": "vikram@example.com", "phone": "+919800000005", "role": Role.RIDER},
    {"name": "Ananya Reddy", "email": "ananya@example.com", "phone": "+919800000006", "role": Role.RIDER},
    {"name": "Karan Joshi", "email": "karan@example.com", "phone": "+919800000007", "role": Role.RIDER},
]

# (driver index, origin, destination, origin coord, destination coord, price, seats, hours ahead)
RIDES = [
    (0, "Mumbai Airport", "Pune Station", (19.0896, 72.8656), (18.5286, 73.8743), 450.0, 4, 26),
    (0, "Pune Station", "Mumbai Airport", (18.5286, 73.8743), (19.0896, 72.8656), 450.0, 4, 50),
    (1, "Andheri East", "Lonavala", (19.1136, 72.8697), (18.7546, 73.4062), 300.0, 3, 8),
    (1, "Bandra West", "Nashik Road", (19.0596, 72.8295), (19.9485, 73.8386), 600.0, 2, 30),
    (2, "Powai", "Thane West", (19.1176, 72.9060), (19.2183, 72.9781), 150.0, 6, 5),
    (2, "Dadar", "Alibag Jetty", (19.0178, 72.8478), (18.6414, 72.8722), 350.0, 4, 72),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(
                name=u["name"],
                email=u["email"],
                phone=u["phone"],
                role=u["role"],
                approved_to_drive=u["role"] == Role.DRIVER,
            )
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} users")

        # ── Rides ─────────────────────────────────────────────────────
        now = datetime.now(timezone.utc)
        repo = RideRepository(session)
        rides = []
        for driver_idx, origin, destination, o, d, price, seats, hours in RIDES:
            driver = user_models[driver_idx]
            ride = Ride.post(
                driver_id=driver.id,
                driver_name=driver.name,
                driver_phone=driver.phone,
                origin=origin,
                destination=destination,
                origin_coord=Coordinates(*o),
                destination_coord=Coordinates(*d),
                price_per_seat=price,
                total_seats=seats,
                departure_time=now + timedelta(hours=hours),
                now=now,
            )
            rides.append(await repo.add(ride))
        print(f"  Created {len(rides)} rides")

        # ── Bookings ──────────────────────────────────────────────────
        first = rides[0]
        first.book(
            user_models[3].id,
            [PassengerGroup(
                booked_seats=1, pickup="Terminal 2", dropoff="Pune Station", contact_phone=user_models[3].phone
            )],
            now,
            Policy(),
        )
        first.book(
            user_models[4].id,
            [PassengerGroup(
                booked_seats=2, pickup="Terminal 1", dropoff="Shivajinagar", contact_phone=user_models[4].phone
            )],
            now,
            Policy(),
        )
        await repo.save(first)
        print("  Created 2 bookings")

        await session.commit()

    # ── Policy ────────────────────────────────────────────────────────
    store = RedisPolicyStore(await get_redis())
    await store.save(
        commission_rate=settings.commission_rate,
        booking_lead_time_minutes=settings.booking_lead_time_minutes,
        rider_cancellation_cutoff_hours=settings.rider_cancellation_cutoff_hours,
        driver_cancellation_cutoff_hours=settings.driver_cancellation_cutoff_hours,
        booking_enabled=settings.booking_enabled,
    )
    print("  Stored booking policy")
    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
