"""
Fare & Settlement Engine  (Strategy Pattern)
============================================

Suggested fares
---------------
* **Posting a ride**: ``Distance x Rate_Per_KM`` -- advisory only, the
  driver picks their own price per seat.
* **Fare quote**:     ``Base_Fare + Distance x Rate_Per_KM``

Settlement
----------
Gross = sum(booked_seats x booked price) over ``completed_by_driver``
bookings of completed rides.  Net = Gross x (1 - Commission_Rate).

Complexity: O(1) per fare, O(total bookings) per settlement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable

from .entities import Ride, RouteEstimate
from .enums import RideStatus


# ── Strategy hierarchy ────────────────────────────────────────────────


class PricingStrategy(ABC):
    @abstractmethod
    def calculate(self, distance_km: float) -> float: ...


class DistancePricing(PricingStrategy):
    def __init__(self, rate_per_km: float):
        self.rate_per_km = rate_per_km

    def calculate(self, distance_km: float) -> float:
        return round(distance_km * self.rate_per_km, 2)


class StandardPricing(PricingStrategy):
    def __init__(self, base_fare: float, rate_per_km: float):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    def calculate(self, distance_km: float) -> float:
        return round(self.base_fare + distance_km * self.rate_per_km, 2)


# ── Settlement ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class DriverEarnings:
    total_earnings: float
    gross_earnings: float
    commission_rate: float
    completed_ride_count: int


def compute_earnings(rides: Iterable[Ride], commission_rate: float) -> DriverEarnings:
    gross = 0.0
    completed_rides = 0
    for ride in rides:
        if ride.status != RideStatus.COMPLETED:
            continue
        if ride.completed_seats() > 0:
            completed_rides += 1
        gross += ride.gross_fare()
    return DriverEarnings(
        total_earnings=round(gross * (1 - commission_rate), 2),
        gross_earnings=round(gross, 2),
        commission_rate=commission_rate,
        completed_ride_count=completed_rides,
    )


# ── Engine facade ─────────────────────────────────────────────────────


class PricingEngine:
    """High-level API used by the ride engine."""

    def __init__(self, base_fare: float = 100.0, rate_per_km: float = 50.0):
        self.base_fare = base_fare
        self.rate_per_km = rate_per_km

    def suggested_price(self, route: RouteEstimate) -> float:
        """Advisory price per seat shown to a driver posting a ride."""
        return DistancePricing(self.rate_per_km).calculate(route.distance_km)

    def quote(self, route: RouteEstimate) -> float:
        return StandardPricing(self.base_fare, self.rate_per_km).calculate(
            route.distance_km
        )
