"""
clock.py - Time sources for the sale engine

The engine never schedules anything; it asks a Clock for the current time
whenever it resolves phase expiry.

Classes:
- Clock: Protocol defining the time interface
- SystemClock: Wall-clock UTC time
- ManualClock: Explicitly advanced time, for simulations and tests
- LedgerClock: Follows a Ledger's logical time
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Protocol for time sources: now() returns the current timestamp."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall-clock time as a timezone-aware UTC datetime."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def __repr__(self):
        return "SystemClock()"


class ManualClock:
    """
    Clock that only moves when told to.

    Like the ledger's logical time, it never moves backwards.
    """

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2025, 1, 1)

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> datetime:
        """Move forward by delta and return the new time."""
        if delta < timedelta(0):
            raise ValueError(f"Cannot move time backwards by {delta}")
        self._now = self._now + delta
        return self._now

    def set(self, new_time: datetime) -> None:
        """Jump to an absolute time at or after the current one."""
        if new_time < self._now:
            raise ValueError(f"Cannot move time backwards: {new_time} < {self._now}")
        self._now = new_time

    def __repr__(self):
        return f"ManualClock({self._now.isoformat()})"


class LedgerClock:
    """Reads the current time from a ledger, so one advance_time() drives both."""

    def __init__(self, ledger):
        self.ledger = ledger

    def now(self) -> datetime:
        return self.ledger.current_time

    def __repr__(self):
        return f"LedgerClock({self.ledger.name})"
