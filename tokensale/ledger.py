"""
ledger.py - Double-entry balances behind the sale's token and currency

The Ledger is the only place balances change. Every change arrives as a
PendingTransaction, is checked, and is either applied whole or refused.

Key responsibilities:
    - Registers units and wallets
    - Executes a transaction's moves and unit-state changes together
    - Keeps the applied-transaction log and sequence counter
    - Provides atomic() scopes so a caller can group several transactions
      and roll all of them back if a later step fails
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Set, Optional, Tuple, Any
from decimal import Decimal

from .core import (
    Move, Transaction, Unit, UnitState,
    PendingTransaction,
    ExecuteResult,
    SYSTEM_WALLET,
    UnitNotRegistered, WalletNotRegistered,
)


def _zero_balances(initial=()) -> Dict[str, Decimal]:
    return defaultdict(lambda: Decimal("0"), initial)


class Ledger:
    """
    Double-entry ledger with validation and an audit log.

    Every unit nets to zero across all wallets: issuance debits the
    system wallet, which is the only wallet allowed below a unit's
    minimum balance.

    Not thread-safe.

    Example:
        ledger = Ledger("main")
        ledger.register_unit(cash("ETH", "Ether"))
        ledger.register_wallet("alice")

        tx = build_transaction(ledger, [
            Move(Decimal("100"), "ETH", SYSTEM_WALLET, "alice", "issue")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Args:
            name: Ledger identifier
            initial_time: Starting time for the ledger (default: 1970-01-01)
            verbose: Print each applied or rejected transaction (default: True)
        """
        self.name = name
        self.balances: Dict[str, Dict[str, Decimal]] = {SYSTEM_WALLET: _zero_balances()}
        self.units: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = {SYSTEM_WALLET}
        self.transaction_log: List[Transaction] = []
        self._current_time: datetime = initial_time or datetime(1970, 1, 1)
        self._next_sequence: int = 0
        self.verbose = verbose

    # ========================================================================
    # QUERIES
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        return self._current_time

    @property
    def next_sequence(self) -> int:
        """Sequence number the next applied transaction will receive."""
        return self._next_sequence

    def get_balance(self, wallet_id: str, unit_symbol: str) -> Decimal:
        """
        Balance of one unit in one wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        self.get_unit(unit_symbol)
        return self.balances[wallet_id].get(unit_symbol, Decimal("0"))

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """A copy of a unit's state; editing it changes nothing."""
        return self.get_unit(unit_symbol).state

    def list_wallets(self) -> Set[str]:
        return set(self.registered_wallets)

    def get_unit(self, symbol: str) -> Unit:
        try:
            return self.units[symbol]
        except KeyError:
            raise UnitNotRegistered(f"Unit {symbol} not registered") from None

    def total_supply(self, unit_symbol: str) -> Decimal:
        """
        Sum of a unit over every wallet, the system wallet included.

        Zero whenever value has been conserved.
        """
        self.get_unit(unit_symbol)
        return sum(
            (bals.get(unit_symbol, Decimal("0")) for bals in self.balances.values()),
            Decimal("0"),
        )

    def circulating_supply(self, unit_symbol: str) -> Decimal:
        """Amount held outside the system wallet, i.e. everything issued."""
        return -self.get_balance(SYSTEM_WALLET, unit_symbol)

    def verify_double_entry(self) -> Dict[str, Any]:
        """
        Check that every unit nets to zero.

        Returns:
            Dict with keys:
            - 'valid': bool
            - 'supplies': Dict[str, Decimal] - net total per unit
            - 'discrepancies': List[Dict] - units whose total is not zero
        """
        supplies = {symbol: self.total_supply(symbol) for symbol in self.units}
        discrepancies = [
            {'unit': symbol, 'actual': total}
            for symbol, total in supplies.items() if total != 0
        ]
        return {
            'valid': not discrepancies,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME AND REGISTRATION
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Move the ledger's logical clock forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    def register_wallet(self, wallet_id: str) -> str:
        """
        Raises:
            ValueError: If wallet is already registered
        """
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = _zero_balances()
        return wallet_id

    def ensure_wallet(self, wallet_id: str) -> str:
        """Register a wallet unless it already exists."""
        if wallet_id not in self.registered_wallets:
            self.register_wallet(wallet_id)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        if self.verbose:
            print(f"Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Apply a PendingTransaction: all of it, or none of it.

        Returns:
            ExecuteResult.APPLIED if applied (or empty)
            ExecuteResult.REJECTED if a check failed; nothing changed
        """
        if pending.is_empty():
            return ExecuteResult.APPLIED

        reason = self._rejection_reason(pending)
        if reason:
            if self.verbose:
                print(f"✗ REJECTED: {reason}")
            return ExecuteResult.REJECTED

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            sequence_number=self._next_sequence,
            ledger_name=self.name,
        )
        self._next_sequence += 1

        self._apply_moves(tx.moves)
        for sc in tx.state_changes:
            self.units[sc.unit] = self.units[sc.unit].with_state(sc.new_state)
        self.transaction_log.append(tx)

        if self.verbose:
            print(f"✓ APPLIED {tx.summary()}")
        return ExecuteResult.APPLIED

    def _rejection_reason(self, pending: PendingTransaction) -> str:
        """
        Why a pending transaction cannot be applied; empty if it can.

        Checked in order: timestamp not in the future, units and wallets
        registered, unit state not stale, balances not below minimum.
        """
        if pending.timestamp > self._current_time:
            return "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return f"unit not registered: {move.unit_symbol}"
            for wallet in (move.source, move.dest):
                if wallet not in self.registered_wallets:
                    return f"wallet not registered: {wallet}"

        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return f"unit not registered: {sc.unit}"
            if sc.old_state != self.units[sc.unit].state:
                return f"stale state for {sc.unit}"

        net: Dict[Tuple[str, str], Decimal] = defaultdict(lambda: Decimal("0"))
        for move in pending.moves:
            net[move.source, move.unit_symbol] -= move.quantity
            net[move.dest, move.unit_symbol] += move.quantity

        for (wallet, symbol), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue
            floor = self.units[symbol].min_balance
            proposed = self.balances[wallet].get(symbol, Decimal("0")) + delta
            if proposed < floor:
                return f"{wallet} {symbol}: {proposed} < min {floor}"
        return ""

    def _apply_moves(self, moves: Tuple[Move, ...]) -> None:
        for move in moves:
            self.balances[move.source][move.unit_symbol] -= move.quantity
            self.balances[move.dest][move.unit_symbol] += move.quantity

    # ========================================================================
    # SNAPSHOTS AND ROLLBACK
    # ========================================================================

    def clone(self) -> Ledger:
        """
        An independent copy: units, wallets, balances, log, sequence, time.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned._current_time = self._current_time
        cloned.verbose = self.verbose
        # Units are frozen and hand out copies of their state.
        cloned.units = dict(self.units)
        cloned.registered_wallets = set(self.registered_wallets)
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence
        cloned.balances = {
            wallet: _zero_balances(bals) for wallet, bals in self.balances.items()
        }
        return cloned

    def _restore(self, snapshot: Ledger) -> None:
        self.units = snapshot.units
        self.registered_wallets = snapshot.registered_wallets
        self.transaction_log = snapshot.transaction_log
        self._next_sequence = snapshot._next_sequence
        self.balances = snapshot.balances

    @contextmanager
    def atomic(self) -> Iterator[Ledger]:
        """
        Group several executions into one all-or-nothing unit.

        If the block raises, every transaction applied inside it is undone
        (balances, unit state, log and sequence) and the exception
        propagates. Time is not rolled back. Scopes may nest.

        Example:
            with ledger.atomic():
                ledger.execute(first)
                ledger.execute(second)   # raising here also undoes `first`
        """
        snapshot = self.clone()
        try:
            yield self
        except BaseException:
            self._restore(snapshot)
            if self.verbose:
                print(f"✗ ROLLED BACK to sequence {snapshot._next_sequence}")
            raise
