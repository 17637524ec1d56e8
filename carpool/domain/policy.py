"""
Policy parameters and the time windows derived from them.

All windows close *before* departure: an action is allowed only while
``now < departure_time - cutoff``.  Reaching the cutoff exactly closes
the window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Policy:
    commission_rate: float = 0.15
    booking_lead_time_minutes: float = 10
    rider_cancellation_cutoff_hours: float = 2
    driver_cancellation_cutoff_hours: float = 4
    booking_enabled: bool = True

    @property
    def booking_lead_time(self) -> timedelta:
        return timedelta(minutes=self.booking_lead_time_minutes)

    @property
    def rider_cancellation_cutoff(self) -> timedelta:
        return timedelta(hours=self.rider_cancellation_cutoff_hours)

    @property
    def driver_cancellation_cutoff(self) -> timedelta:
        return timedelta(hours=self.driver_cancellation_cutoff_hours)


def window_open(departure_time: datetime, now: datetime, cutoff: timedelta) -> bool:
    """True while *now* is strictly earlier than ``departure_time - cutoff``."""
    return now < departure_time - cutoff
