"""
settlement.py - Token and currency collaborators of the sale engine

The sale engine only knows two narrow interfaces:
1. TokenLedger: moves sold tokens from the beneficiary to the recipient
2. CurrencyTransfer: collects the attached payment and forwards it

This module defines both protocols and ships Ledger-backed implementations.
Each operation is built as a PendingTransaction and executed on the Ledger,
so every single call is atomic; atomic() lets the engine group the calls
of one purchase into a single all-or-nothing unit.

Pattern (one purchase):
    with token.atomic(), currency.atomic():
        currency.receive(buyer, payment)                 # buyer -> escrow
        token.transfer_from(beneficiary, recipient, n)   # uses allowance
        currency.send(beneficiary, cost)                 # escrow -> beneficiary
        currency.send(buyer, payment - cost)             # refund
"""

from __future__ import annotations
from contextlib import AbstractContextManager
from decimal import Decimal
from typing import Protocol, runtime_checkable

from .core import (
    Move, UnitStateChange, TransactionOrigin, OriginType, ExecuteResult,
    SYSTEM_WALLET, SALE_ESCROW_WALLET,
    AllowanceExceeded, InsufficientFunds,
    build_transaction,
)
from .ledger import Ledger


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class TokenLedger(Protocol):
    """What the sale engine needs from the token."""

    def transfer_from(self, source: str, dest: str, amount: int) -> None:
        """Move amount tokens from source to dest on the engine's allowance."""
        ...

    def balance_of(self, account: str) -> int:
        ...


@runtime_checkable
class CurrencyTransfer(Protocol):
    """What the sale engine needs from the settlement currency."""

    def receive(self, payer: str, amount: int) -> None:
        """Collect a purchase's attached payment into the sale escrow."""
        ...

    def send(self, to: str, amount: int) -> None:
        """Pay amount out of the sale escrow."""
        ...


@runtime_checkable
class Transactional(Protocol):
    """Collaborators that can roll back everything done inside a scope."""

    def atomic(self) -> AbstractContextManager:
        ...


def _to_quantity(amount: int) -> Decimal:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"amount must be an integer, got {type(amount).__name__}")
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    return Decimal(amount)


# ============================================================================
# LEDGER-BACKED TOKEN
# ============================================================================

class LedgerToken:
    """
    Fungible token living on a Ledger, with ERC20-style allowances.

    Allowances are kept in the token unit's state and every change to them
    travels in the same transaction as the moves it authorises.

    Args:
        ledger: Ledger holding the token unit
        symbol: Token unit symbol (must be registered)
        operator: Spender identity used by transfer_from (the sale engine)
    """

    def __init__(self, ledger: Ledger, symbol: str, operator: str):
        self.ledger = ledger
        self.symbol = symbol
        self.operator = operator
        ledger.get_unit(symbol)

    def _origin(self, event_type: str) -> TransactionOrigin:
        return TransactionOrigin(OriginType.SALE, self.operator, event_type)

    def _contract_id(self, action: str) -> str:
        return f"{self.symbol}:{action}:{self.ledger.next_sequence}"

    def balance_of(self, account: str) -> int:
        if not self.ledger.is_registered(account):
            return 0
        return int(self.ledger.get_balance(account, self.symbol))

    def allowance(self, owner: str, spender: str) -> int:
        allowances = self.ledger.get_unit_state(self.symbol).get('allowances', {})
        return int(allowances.get(owner, {}).get(spender, 0))

    def mint(self, to: str, amount: int) -> None:
        """Issue new tokens to `to` out of the system wallet."""
        quantity = _to_quantity(amount)
        if not quantity:
            return
        self.ledger.ensure_wallet(to)
        pending = build_transaction(
            self.ledger,
            [Move(quantity, self.symbol, SYSTEM_WALLET, to, self._contract_id("mint"))],
            origin=TransactionOrigin(OriginType.SYSTEM, to, "MINT"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise InsufficientFunds(f"mint of {amount} {self.symbol} to {to} rejected")

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set how many of owner's tokens spender may move."""
        _to_quantity(amount)
        old_state = self.ledger.get_unit_state(self.symbol)
        allowances = dict(old_state.get('allowances', {}))
        allowances[owner] = {**allowances.get(owner, {}), spender: amount}
        new_state = {**old_state, 'allowances': allowances}
        pending = build_transaction(
            self.ledger, [],
            [UnitStateChange(self.symbol, old_state, new_state)],
            origin=TransactionOrigin(OriginType.USER_ACTION, owner, f"APPROVE:{spender}:{amount}"),
        )
        if self.ledger.execute(pending) == ExecuteResult.REJECTED:
            raise AllowanceExceeded(f"approve {owner}->{spender} rejected")

    def transfer(self, source: str, dest: str, amount: int) -> None:
        """Move tokens on the holder's own authority."""
        quantity = _to_quantity(amount)
        if not quantity:
            return
        self.ledger.ensure_wallet(dest)
        pending = build_transaction(
            self.ledger,
            [Move(quantity, self.symbol, source, dest, self._contract_id("transfer"))],
            origin=TransactionOrigin(OriginType.USER_ACTION, source, "TRANSFER"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise InsufficientFunds(f"{source} cannot transfer {amount} {self.symbol}")

    def transfer_from(self, source: str, dest: str, amount: int) -> None:
        """
        Move tokens from source to dest, spending operator's allowance.

        Raises:
            AllowanceExceeded: If the operator's allowance is too small
            InsufficientFunds: If source does not hold enough tokens
        """
        quantity = _to_quantity(amount)
        if not quantity:
            return
        approved = self.allowance(source, self.operator)
        if approved < amount:
            raise AllowanceExceeded(
                f"{self.operator} may move {approved} {self.symbol} of {source}, asked {amount}"
            )
        self.ledger.ensure_wallet(dest)

        old_state = self.ledger.get_unit_state(self.symbol)
        allowances = dict(old_state['allowances'])
        allowances[source] = {**allowances[source], self.operator: approved - amount}
        new_state = {**old_state, 'allowances': allowances}

        pending = build_transaction(
            self.ledger,
            [Move(quantity, self.symbol, source, dest, self._contract_id("transfer_from"))],
            [UnitStateChange(self.symbol, old_state, new_state)],
            origin=self._origin("TRANSFER_FROM"),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise InsufficientFunds(f"{source} cannot deliver {amount} {self.symbol} to {dest}")

    def atomic(self):
        return self.ledger.atomic()

    def __repr__(self):
        return f"LedgerToken({self.symbol} on {self.ledger.name}, operator={self.operator})"


# ============================================================================
# LEDGER-BACKED SETTLEMENT CURRENCY
# ============================================================================

class LedgerCurrency:
    """
    Settlement currency on a Ledger, paid through the sale's escrow wallet.

    Args:
        ledger: Ledger holding the currency unit
        symbol: Currency unit symbol (must be registered)
        escrow: Wallet that holds attached payments during a purchase
    """

    def __init__(self, ledger: Ledger, symbol: str, escrow: str = SALE_ESCROW_WALLET):
        self.ledger = ledger
        self.symbol = symbol
        self.escrow = escrow
        ledger.get_unit(symbol)
        ledger.ensure_wallet(escrow)

    def _move(self, source: str, dest: str, amount: int, event_type: str) -> None:
        quantity = _to_quantity(amount)
        if not quantity:
            return
        self.ledger.ensure_wallet(dest)
        pending = build_transaction(
            self.ledger,
            [Move(quantity, self.symbol, source, dest,
                  f"{self.symbol}:{event_type.lower()}:{self.ledger.next_sequence}")],
            origin=TransactionOrigin(OriginType.SALE, self.escrow, event_type),
        )
        if self.ledger.execute(pending) != ExecuteResult.APPLIED:
            raise InsufficientFunds(f"{source} cannot pay {amount} {self.symbol} to {dest}")

    def balance_of(self, account: str) -> int:
        if not self.ledger.is_registered(account):
            return 0
        return int(self.ledger.get_balance(account, self.symbol))

    def issue(self, to: str, amount: int) -> None:
        """Fund an account out of the system wallet."""
        self._move(SYSTEM_WALLET, to, amount, "ISSUE")

    def receive(self, payer: str, amount: int) -> None:
        if not self.ledger.is_registered(payer):
            raise InsufficientFunds(f"{payer} holds no {self.symbol}")
        self._move(payer, self.escrow, amount, "PAYMENT")

    def send(self, to: str, amount: int) -> None:
        self._move(self.escrow, to, amount, "PAYOUT")

    def atomic(self):
        return self.ledger.atomic()

    def __repr__(self):
        return f"LedgerCurrency({self.symbol} on {self.ledger.name}, escrow={self.escrow})"
