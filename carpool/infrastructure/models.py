"""
SQLAlchemy ORM models  (maps to PostgreSQL).

Tables
------
* ``users``              -- identity mirror: display name, contact, driver reputation
* ``rides``              -- posted rides, the seat-inventory aggregate root
* ``passenger_bookings`` -- seat claims owned by a ride (append-only)

Concurrency
-----------
``rides.version`` and ``users.version`` are optimistic-concurrency counters.
Every write is ``UPDATE ... WHERE id = :id AND version = :read_version``
and bumps the counter; a zero row count means another writer got there
first.

Indexes
-------
* **B-Tree** on ``rides.status`` + ``departure_time`` for the active-ride
  search, on ``driver_id`` for earnings / posted rides, and on
  ``passenger_bookings.ride_id`` / ``rider_id``.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base
from carpool.domain.enums import BookingStatus, RideStatus, Role


def _values(enum_cls):
    return [member.value for member in enum_cls]


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    phone = Column(String(32), nullable=False)
    role = Column(Enum(Role, values_callable=_values), default=Role.RIDER, nullable=False)
    approved_to_drive = Column(Boolean, default=False, nullable=False)

    average_rating = Column(Float, default=0.0, nullable=False)
    num_ratings = Column(Integer, default=0, nullable=False)
    rating_total = Column(Integer, default=0, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class RideModel(Base):
    __tablename__ = "rides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    # Snapshotted at posting time so ride listings need no join
    driver_name = Column(String(120), nullable=False)
    driver_phone = Column(String(32), nullable=False)

    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    origin_lat = Column(Float, nullable=True)
    origin_lng = Column(Float, nullable=True)
    destination_lat = Column(Float, nullable=True)
    destination_lng = Column(Float, nullable=True)
    distance_label = Column(String(64), nullable=True)
    duration_label = Column(String(64), nullable=True)

    price_per_seat = Column(Float, nullable=False)
    total_seats = Column(Integer, nullable=False)
    seats_available = Column(Integer, nullable=False)
    departure_time = Column(DateTime(timezone=True), nullable=False)

    status = Column(
        Enum(RideStatus, values_callable=_values),
        default=RideStatus.ACTIVE,
        nullable=False,
    )
    cancellation_reason = Column(String(500), nullable=True)
    version = Column(Integer, default=1, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    bookings = relationship(
        "PassengerBookingModel",
        order_by="PassengerBookingModel.id",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "seats_available >= 0 AND seats_available <= total_seats",
            name="ck_rides_seats_in_range",
        ),
        Index("idx_rides_status_departure", "status", "departure_time"),
        Index("idx_rides_driver", "driver_id"),
    )


class PassengerBookingModel(Base):
    __tablename__ = "passenger_bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ride_id = Column(Integer, ForeignKey("rides.id"), nullable=False)
    rider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    booked_seats = Column(Integer, nullable=False)
    pickup = Column(String(255), nullable=False)
    dropoff = Column(String(255), nullable=False)
    contact_phone = Column(String(32), nullable=False)
    price_per_seat = Column(Float, nullable=False)
    status = Column(
        Enum(BookingStatus, values_callable=_values),
        default=BookingStatus.ACCEPTED,
        nullable=False,
    )
    cancellation_reason = Column(String(500), nullable=True)
    rated = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("booked_seats > 0", name="ck_bookings_seats_positive"),
        Index("idx_bookings_ride", "ride_id"),
        Index("idx_bookings_rider", "rider_id"),
    )
