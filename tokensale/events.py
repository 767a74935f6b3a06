"""
events.py - Events emitted by the sale engine

Events are just data. The engine appends every event it commits to its
event log and hands it to each subscribed listener, in order.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Union


class CloseReason(Enum):
    """Why a phase stopped selling."""
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"


@dataclass(frozen=True, slots=True)
class PhaseCreated:
    index: int
    discount_bps: int
    end_time: datetime
    supply: int


@dataclass(frozen=True, slots=True)
class PhaseClosed:
    index: int
    reason: CloseReason


@dataclass(frozen=True, slots=True)
class Purchased:
    """
    A completed purchase.

    Attributes:
        buyer: Account that paid
        recipient: Account that received the tokens
        amount: Token base units delivered
        phase_index: Phase that served the purchase
        cost_paid: Currency base units forwarded for the tokens
        refunded: Excess payment returned to the buyer (0 when retained)
    """
    buyer: str
    recipient: str
    amount: int
    phase_index: int
    cost_paid: int
    refunded: int = 0


SaleEvent = Union[PhaseCreated, PhaseClosed, Purchased]

EventListener = Callable[[SaleEvent], None]


def describe(event: SaleEvent) -> str:
    """One-line description used by verbose output."""
    if isinstance(event, PhaseCreated):
        return (f"phase {event.index} created: {event.discount_bps / 10:.1f}% off, "
                f"{event.supply} units until {event.end_time.isoformat()}")
    if isinstance(event, PhaseClosed):
        return f"phase {event.index} closed ({event.reason.value})"
    return (f"{event.buyer} bought {event.amount} for {event.recipient} "
            f"in phase {event.phase_index}, paid {event.cost_paid}"
            + (f", refunded {event.refunded}" if event.refunded else ""))
