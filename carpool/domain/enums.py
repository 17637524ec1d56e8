"""Domain enumerations and state-transition rules."""

import enum


class RideStatus(str, enum.Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# State machine: maps current status -> set of valid next statuses
RIDE_TRANSITIONS: dict[RideStatus, set[RideStatus]] = {
    RideStatus.ACTIVE: {RideStatus.COMPLETED, RideStatus.CANCELLED},
    RideStatus.COMPLETED: set(),
    RideStatus.CANCELLED: set(),
}


class BookingStatus(str, enum.Enum):
    ACCEPTED = "accepted"
    CANCELLED_BY_RIDER = "cancelled_by_rider"
    CANCELLED_BY_DRIVER = "cancelled_by_driver"
    COMPLETED_BY_DRIVER = "completed_by_driver"


# A booking moves exactly once, out of ACCEPTED
BOOKING_TRANSITIONS: dict[BookingStatus, set[BookingStatus]] = {
    BookingStatus.ACCEPTED: {
        BookingStatus.CANCELLED_BY_RIDER,
        BookingStatus.CANCELLED_BY_DRIVER,
        BookingStatus.COMPLETED_BY_DRIVER,
    },
    BookingStatus.CANCELLED_BY_RIDER: set(),
    BookingStatus.CANCELLED_BY_DRIVER: set(),
    BookingStatus.COMPLETED_BY_DRIVER: set(),
}


class Role(str, enum.Enum):
    RIDER = "rider"
    DRIVER = "driver"
    ADMIN = "admin"
