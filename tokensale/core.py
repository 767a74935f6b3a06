"""
Core types for the token-sale system.

This module provides the data structures shared by the ledger, the
settlement adapters and the sale engine:
1. Immutable records: Move, PendingTransaction, Transaction, Unit
2. Exceptions: LedgerError / SaleError and their specific kinds
3. Unit factories: the settlement currency and the sale token

Amounts everywhere are whole numbers of a unit's smallest denomination,
carried as Decimal on the ledger and as int in the engine.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, getcontext
from enum import Enum
import copy
from typing import Any, Dict, List, Optional, Tuple


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# 18-decimal tokens reach ~1e22 base units for a modest supply; the
# context keeps every balance exact well beyond that.
#
_SALE_DECIMAL_CONTEXT = getcontext()
_SALE_DECIMAL_CONTEXT.prec = 78


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance (minting). Exempt from balance validation.
SYSTEM_WALLET = "system"

# Wallet holding a buyer's attached payment while a purchase is in flight.
SALE_ESCROW_WALLET = "sale_escrow"

UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_TOKEN = "TOKEN"

UnitState = Dict[str, Any]


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """Outcome of Ledger.execute()."""
    APPLIED = "applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Who asked for a transaction."""
    USER_ACTION = "user_action"
    SALE = "sale"
    SYSTEM = "system"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a move would take a wallet below the unit's minimum balance."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered."""
    pass


class AllowanceExceeded(LedgerError):
    """Raised when a spender moves more tokens than the owner approved."""
    pass


class SaleError(Exception):
    """Base exception for every rejected sale operation."""
    pass


class Unauthorized(SaleError):
    """Raised when a non-administrator calls an administrator-only operation."""
    pass


class InvalidDiscount(SaleError):
    """Raised when a phase discount is outside 0..1000 basis points."""
    pass


class InvalidEndTime(SaleError):
    """Raised when a phase would end at or before the current time."""
    pass


class InsufficientUnallocatedSupply(SaleError):
    """Raised when a phase asks for more supply than is left unallocated."""
    pass


class BelowMinimumPurchase(SaleError):
    """Raised when a purchase is smaller than the sale minimum."""
    pass


class SaleClosed(SaleError):
    """Raised when no phase is open for purchases."""
    pass


class InsufficientPayment(SaleError):
    """Raised when the attached payment does not cover the cost."""
    pass


class InsufficientPhaseSupply(SaleError):
    """Raised when a purchase exceeds what is left in the active phase."""
    pass


class LedgerTransferFailed(SaleError):
    """Raised when the token ledger refuses the token transfer."""
    pass


class CurrencyTransferFailed(SaleError):
    """Raised when a settlement-currency transfer fails."""
    pass


class ListenerError(Exception):
    """
    Raised when event listeners fail after an operation was committed.

    Not a SaleError: the operation succeeded and is not undone.

    Attributes:
        events: Events committed by the operation
        failures: Exceptions raised by listeners, in call order
    """

    def __init__(self, message: str, events, failures):
        super().__init__(message)
        self.events = tuple(events)
        self.failures = list(failures)


# ============================================================================
# TRANSACTION RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Audit tag of a transaction.

    Attributes:
        origin_type: Who asked for it
        source_id: Wallet or component that asked
        event_type: What it was for (e.g., "MINT", "PAYMENT")
    """
    origin_type: OriginType
    source_id: str
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        if self.event_type:
            return f"Origin({self.origin_type.value}:{self.source_id}, event={self.event_type})"
        return f"Origin({self.origin_type.value}:{self.source_id})"


@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Replacement of a unit's state.

    old_state must equal the unit's state when the transaction executes,
    otherwise the transaction is rejected as stale.
    """
    unit: str
    old_state: UnitState
    new_state: UnitState


@dataclass(frozen=True, slots=True)
class Move:
    """
    A transfer of whole base units between two wallets.

    Attributes:
        quantity: Positive, integral amount
        unit_symbol: The unit being transferred (e.g., "ETH", "SPACE")
        source: Wallet debited
        dest: Wallet credited
        contract_id: Identifier of whatever generated this move
    """
    quantity: Decimal
    unit_symbol: str
    source: str
    dest: str
    contract_id: str

    def __post_init__(self):
        for name in ("source", "dest", "unit_symbol", "contract_id"):
            value = getattr(self, name)
            if not value or not value.strip():
                raise ValueError(f"Move {name} cannot be empty")
        if not isinstance(self.quantity, Decimal):
            raise ValueError(f"Move quantity must be Decimal, got {type(self.quantity)}")
        if not self.quantity.is_finite() or self.quantity != self.quantity.to_integral_value():
            raise ValueError(f"Move quantity must be a whole number of base units, got {self.quantity}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    Moves and state changes to apply together; nothing has happened yet.

    Built by build_transaction() and submitted to Ledger.execute().
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime

    def is_empty(self) -> bool:
        return not self.moves and not self.state_changes


def build_transaction(
    ledger,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction stamped with the ledger's current time.

    State dicts are deep-copied so later edits by the caller cannot leak
    into the pending transaction.
    """
    if origin is None:
        origin = TransactionOrigin(OriginType.SALE, "sale")
    copied = tuple(
        UnitStateChange(sc.unit, copy.deepcopy(sc.old_state), copy.deepcopy(sc.new_state))
        for sc in state_changes or ()
    )
    return PendingTransaction(tuple(moves), copied, origin, ledger.current_time)


@dataclass(frozen=True, slots=True)
class Transaction:
    """An applied PendingTransaction, as kept in the ledger's log."""
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: datetime
    sequence_number: int
    ledger_name: str

    def summary(self) -> str:
        """One-line description used by verbose output."""
        moves = ", ".join(
            f"{m.quantity} {m.unit_symbol} {m.source}→{m.dest}" for m in self.moves
        )
        return f"#{self.sequence_number} {self.origin} [{moves or 'state only'}]"


# ============================================================================
# UNITS
# ============================================================================

def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    return tuple(sorted((state or {}).items()))


@dataclass(frozen=True, slots=True)
class Unit:
    """
    An asset held on the ledger.

    Attributes:
        symbol: Short identifier (e.g., "ETH", "SPACE")
        name: Human-readable name
        unit_type: CASH or TOKEN
        min_balance: Floor for every wallet except the system wallet
        _frozen_state: Unit state (the allowance table for tokens)
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: Decimal = Decimal("0")
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("symbol cannot be empty")

    @property
    def state(self) -> UnitState:
        """A deep copy of the unit's state."""
        return copy.deepcopy(dict(self._frozen_state))

    def with_state(self, state: UnitState) -> Unit:
        return Unit(self.symbol, self.name, self.unit_type, self.min_balance,
                    _freeze_state(copy.deepcopy(state)))


def cash(symbol: str, name: str) -> Unit:
    """The settlement currency, counted in its smallest denomination (wei-like)."""
    return Unit(symbol=symbol, name=name, unit_type=UNIT_TYPE_CASH)


def sale_token(symbol: str, name: str) -> Unit:
    """
    The fungible token being sold.

    Its state carries the allowance table used by transfer-from:
    {'allowances': {owner: {spender: quantity}}}.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_TOKEN,
        _frozen_state=_freeze_state({'allowances': {}}),
    )
