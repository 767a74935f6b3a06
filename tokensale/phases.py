"""
phases.py - Sale phases and the pure functions that move them along

ARCHITECTURE (Pure Function Pattern):
=====================================

1. FROZEN DATACLASSES:
   - Phase: immutable snapshot of one phase; each change creates a new one
   - Resolution: outcome of resolving the active phase at a point in time

2. PURE FUNCTIONS (no engine, no ledger, all inputs explicit):
   - validate_new_phase(): creation checks
   - resolve_phases(): lazy expiry rollover
   - apply_purchase(): supply decrement and exhaustion rollover

The engine holds a tuple of Phase values and replaces it wholesale only
when an operation succeeds, so a rejected operation leaves nothing behind.
"""

from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import List, Optional, Tuple

from .core import InvalidDiscount, InvalidEndTime, InsufficientUnallocatedSupply
from .events import CloseReason, PhaseClosed
from .pricing import MAX_DISCOUNT_BPS


@dataclass(frozen=True, slots=True)
class Phase:
    """
    Immutable snapshot of a sale phase.

    discount_bps, end_time and supply are fixed at creation;
    remaining_supply only decreases and closed only goes False -> True.
    """
    discount_bps: int
    end_time: datetime
    supply: int                 # Original allocation
    remaining_supply: int
    closed: bool = False
    close_reason: Optional[CloseReason] = None

    @property
    def sold(self) -> int:
        return self.supply - self.remaining_supply

    @property
    def exhausted(self) -> bool:
        return self.remaining_supply == 0

    def expired(self, now: datetime) -> bool:
        return now >= self.end_time

    def is_open(self, now: datetime) -> bool:
        """True if the phase can serve a purchase at `now`."""
        return not self.closed and not self.exhausted and not self.expired(now)


# Phases handed out by read queries are immutable, so they are snapshots as-is.
PhaseSnapshot = Phase


@dataclass(frozen=True, slots=True)
class Resolution:
    phases: Tuple[Phase, ...]
    current_index: int
    events: Tuple[PhaseClosed, ...] = ()

    @property
    def active_index(self) -> Optional[int]:
        """Index of the phase open for purchases, or None when the sale is closed."""
        return self.current_index if self.current_index < len(self.phases) else None


def validate_new_phase(
    discount_bps: int,
    end_time: datetime,
    supply: int,
    now: datetime,
    unallocated: int,
) -> None:
    """
    Check a phase request against the sale.

    Raises:
        InvalidDiscount: discount_bps outside 0..1000
        InvalidEndTime: end_time not strictly after now
        InsufficientUnallocatedSupply: supply larger than what is left
        ValueError: non-integer or negative arguments, or end_time and now
            not both naive or both timezone-aware
    """
    for name, value in (("discount_bps", discount_bps), ("supply", supply)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if not isinstance(end_time, datetime):
        raise ValueError(f"end_time must be a datetime, got {type(end_time).__name__}")
    if (end_time.tzinfo is None) != (now.tzinfo is None):
        raise ValueError(
            f"end_time ({end_time!r}) and the clock ({now!r}) must both be "
            "timezone-aware or both be naive"
        )
    if supply < 0:
        raise ValueError(f"supply must be non-negative, got {supply}")

    if discount_bps < 0 or discount_bps > MAX_DISCOUNT_BPS:
        raise InvalidDiscount(f"Discount cannot be greater than 100% (got {discount_bps} bps)")
    if end_time <= now:
        raise InvalidEndTime(f"The end of the phase ({end_time}) should be after now ({now})")
    if supply > unallocated:
        raise InsufficientUnallocatedSupply(
            f"Not enough supply: asked {supply}, {unallocated} unallocated"
        )


def resolve_phases(phases: Tuple[Phase, ...], current_index: int, now: datetime) -> Resolution:
    """
    Advance past every phase that cannot sell at `now`.

    Starting at current_index, skips phases that are closed, exhausted or
    expired. An expired phase that is still open is closed with reason
    EXPIRED on the way. Supply is never touched, and resolving twice at the
    same time yields the same result with no new events.
    """
    updated: List[Phase] = list(phases)
    events: List[PhaseClosed] = []
    index = current_index
    while index < len(updated) and not updated[index].is_open(now):
        phase = updated[index]
        if phase.expired(now) and not phase.closed:
            updated[index] = replace(phase, closed=True, close_reason=CloseReason.EXPIRED)
            events.append(PhaseClosed(index, CloseReason.EXPIRED))
        index += 1
    return Resolution(tuple(updated), index, tuple(events))


def next_unsold_index(phases: Tuple[Phase, ...], start: int) -> int:
    """First index at or after start with supply left and not closed, else len(phases)."""
    index = start
    while index < len(phases) and (phases[index].closed or phases[index].exhausted):
        index += 1
    return index


def apply_purchase(
    phases: Tuple[Phase, ...],
    index: int,
    amount: int,
) -> Resolution:
    """
    Take amount units from phase `index`.

    When the phase runs out it is closed with reason EXHAUSTED and the
    current index moves to the next phase that still has supply. Expiry of
    later phases is left to the next resolution.
    """
    phase = phases[index]
    if amount > phase.remaining_supply:
        raise ValueError(f"phase {index} has {phase.remaining_supply} left, asked {amount}")
    updated = list(phases)
    remaining = phase.remaining_supply - amount
    if remaining:
        updated[index] = replace(phase, remaining_supply=remaining)
        return Resolution(tuple(updated), index)

    updated[index] = replace(
        phase, remaining_supply=0, closed=True, close_reason=CloseReason.EXHAUSTED,
    )
    closed = (PhaseClosed(index, CloseReason.EXHAUSTED),)
    return Resolution(tuple(updated), next_unsold_index(tuple(updated), index + 1), closed)
