"""
engine.py - Phased Token Sale Engine

The SaleEngine sells a fixed token allocation in successive phases, each
with its own discount, expiry and supply cap. It is the only object that
changes sale state.

Every operation follows the same shape:
1. Resolve the active phase at the current time (pure, see phases.py)
2. Run all checks against the resolved state
3. Perform external effects inside the collaborators' atomic scopes
4. Commit the new phase tuple and emit the buffered events

A failure at any step leaves the engine and both collaborators exactly as
they were. A listener failing after step 4 does not undo the operation.
"""

from __future__ import annotations
from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .clock import Clock
from .core import (
    ListenerError,
    Unauthorized, BelowMinimumPurchase, SaleClosed, InsufficientPayment,
    InsufficientPhaseSupply, LedgerTransferFailed, CurrencyTransferFailed,
)
from .events import EventListener, PhaseCreated, Purchased, SaleEvent, describe
from .phases import (
    Phase, PhaseSnapshot, Resolution,
    apply_purchase, resolve_phases, validate_new_phase,
)
from .pricing import cost_due
from .settlement import CurrencyTransfer, TokenLedger, Transactional


class ExcessPolicy(Enum):
    """What happens to payment beyond the cost of the tokens."""
    REFUND = "refund"     # returned to the buyer
    RETAIN = "retain"     # forwarded to the beneficiary with the cost


class ReadResolution(Enum):
    """
    Whether read queries resolve expiry themselves.

    EAGER: current_phase() and phase() resolve (and commit) first.
    LAZY: they show the state left by the last create_phase() or buy().
    """
    EAGER = "eager"
    LAZY = "lazy"


@dataclass(frozen=True, slots=True)
class SaleTerms:
    """
    Immutable sale parameters, fixed at construction.

    Attributes:
        max_supply: Token base units ever sellable
        base_price: Token base units per currency base unit, before discount
        min_purchase: Smallest purchase in token base units
        administrator: Account allowed to create phases
        beneficiary: Account supplying the tokens and receiving the payments
    """
    max_supply: int
    base_price: int
    min_purchase: int
    administrator: str
    beneficiary: str

    def __post_init__(self):
        for name in ("max_supply", "base_price", "min_purchase"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
        if self.max_supply < 0:
            raise ValueError(f"max_supply must be non-negative, got {self.max_supply}")
        if self.base_price < 1:
            raise ValueError(f"base_price must be positive, got {self.base_price}")
        if self.min_purchase < 1:
            raise ValueError(f"min_purchase must be positive, got {self.min_purchase}")
        if not self.administrator or not self.administrator.strip():
            raise ValueError("administrator cannot be empty")
        if not self.beneficiary or not self.beneficiary.strip():
            raise ValueError("beneficiary cannot be empty")


class SaleEngine:
    """
    Phased token sale.

    Thread Safety:
        Not thread-safe. Operations must be serialized by the caller.

    Example:
        terms = SaleTerms(max_supply=10_000, base_price=5, min_purchase=2,
                          administrator="owner", beneficiary="owner")
        engine = SaleEngine(terms, token, currency, clock)
        engine.create_phase("owner", 505, clock.now() + timedelta(hours=1), 1_000)
        engine.buy("alice", 400, "alice", payment=40)
    """

    def __init__(
        self,
        terms: SaleTerms,
        token_ledger: TokenLedger,
        currency: CurrencyTransfer,
        clock: Clock,
        excess_policy: ExcessPolicy = ExcessPolicy.REFUND,
        read_resolution: ReadResolution = ReadResolution.EAGER,
        verbose: bool = True,
    ):
        """
        Raises:
            TypeError: If token_ledger or currency has no atomic() scope
        """
        for role, collaborator in (("token_ledger", token_ledger), ("currency", currency)):
            if not isinstance(collaborator, Transactional):
                raise TypeError(
                    f"{role} must provide atomic() so a failed purchase can be undone, "
                    f"got {type(collaborator).__name__}"
                )
        self.terms = terms
        self.token_ledger = token_ledger
        self.currency = currency
        self.clock = clock
        self.excess_policy = excess_policy
        self.read_resolution = read_resolution
        self.verbose = verbose

        self._unallocated: int = terms.max_supply
        self._phases: Tuple[Phase, ...] = ()
        self._current_index: int = 0
        self.events: List[SaleEvent] = []
        self._listeners: List[EventListener] = []

    # ========================================================================
    # TERMS
    # ========================================================================

    @property
    def max_supply(self) -> int:
        return self.terms.max_supply

    @property
    def base_price(self) -> int:
        return self.terms.base_price

    @property
    def min_purchase(self) -> int:
        return self.terms.min_purchase

    @property
    def administrator(self) -> str:
        return self.terms.administrator

    @property
    def beneficiary(self) -> str:
        return self.terms.beneficiary

    # ========================================================================
    # EVENTS
    # ========================================================================

    def subscribe(self, listener: EventListener) -> None:
        """Call listener with every event committed from now on."""
        self._listeners.append(listener)

    def _commit(self, resolution: Resolution, events: Tuple[SaleEvent, ...]) -> None:
        """
        Install the resolved phases and record events, then notify listeners.

        Everything is recorded before the first listener runs. Each listener
        sees each event even if an earlier call failed; failures are raised
        afterwards as one ListenerError.
        """
        self._phases = resolution.phases
        self._current_index = resolution.current_index
        self.events.extend(events)
        if self.verbose:
            for event in events:
                print(f"• {describe(event)}")

        failures = []
        for event in events:
            for listener in self._listeners:
                try:
                    listener(event)
                except Exception as exc:
                    failures.append(exc)
        if failures:
            raise ListenerError(
                f"{len(failures)} listener call(s) failed after commit: {failures[0]!r}",
                events, failures,
            ) from failures[0]

    def _resolve(self) -> Resolution:
        return resolve_phases(self._phases, self._current_index, self.clock.now())

    def _refresh(self) -> None:
        if self.read_resolution is ReadResolution.EAGER:
            resolution = self._resolve()
            self._commit(resolution, resolution.events)

    # ========================================================================
    # PHASE CREATION
    # ========================================================================

    def create_phase(self, caller: str, discount_bps: int, end_time, supply: int) -> int:
        """
        Allocate supply to a new phase.

        Args:
            caller: Account making the request (must be the administrator)
            discount_bps: Discount in tenths of a percent, 0..1000
            end_time: Expiry; must be after the current time
            supply: Token base units taken from the unallocated supply

        Returns:
            Index of the new phase

        Raises:
            Unauthorized, InvalidDiscount, InvalidEndTime,
            InsufficientUnallocatedSupply
        """
        if caller != self.terms.administrator:
            raise Unauthorized(f"{caller} is not the sale administrator")
        now = self.clock.now()
        validate_new_phase(discount_bps, end_time, supply, now, self._unallocated)

        index = len(self._phases)
        phase = Phase(discount_bps=discount_bps, end_time=end_time,
                      supply=supply, remaining_supply=supply)
        resolution = resolve_phases(self._phases + (phase,), self._current_index, now)

        self._unallocated -= supply
        created = PhaseCreated(index, discount_bps, end_time, supply)
        self._commit(resolution, resolution.events + (created,))
        return index

    # ========================================================================
    # PURCHASE
    # ========================================================================

    def quote(self, amount: int) -> int:
        """
        Cost in currency base units of amount tokens in the phase open now.

        Does not change any state.

        Raises:
            SaleClosed: If no phase is open
        """
        resolution = self._resolve()
        active = resolution.active_index
        if active is None:
            raise SaleClosed("No phase is open")
        return cost_due(amount, self.terms.base_price, resolution.phases[active].discount_bps)

    def buy(self, buyer: str, amount: int, recipient: str, payment: int) -> Purchased:
        """
        Sell amount tokens to recipient, paid by buyer.

        Checks run in this order, before any effect:
            amount >= min_purchase      else BelowMinimumPurchase
            a phase is open             else SaleClosed
            payment >= cost             else InsufficientPayment
            amount <= phase remaining   else InsufficientPhaseSupply

        Args:
            buyer: Account paying (and receiving any refund)
            amount: Token base units requested
            recipient: Account receiving the tokens
            payment: Currency base units attached to the purchase

        Returns:
            The Purchased event

        Raises:
            The errors above, or LedgerTransferFailed / CurrencyTransferFailed
            when a collaborator raises; nothing is changed in either case.
            ListenerError if a listener failed; the purchase stands.
        """
        for name, value in (("amount", amount), ("payment", payment)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
        if payment < 0:
            raise ValueError(f"payment must be non-negative, got {payment}")

        if amount < self.terms.min_purchase:
            raise BelowMinimumPurchase(
                f"Minimum purchase is {self.terms.min_purchase}, asked {amount}"
            )

        resolution = self._resolve()
        active = resolution.active_index
        if active is None:
            raise SaleClosed("No phase is open")
        phase = resolution.phases[active]

        cost = cost_due(amount, self.terms.base_price, phase.discount_bps)
        if payment < cost:
            raise InsufficientPayment(f"Not enough payment: {amount} units cost {cost}, got {payment}")
        if amount > phase.remaining_supply:
            raise InsufficientPhaseSupply(
                f"There are too few tokens in phase {active}: "
                f"{phase.remaining_supply} left, asked {amount}"
            )

        after = apply_purchase(resolution.phases, active, amount)
        refund = payment - cost if self.excess_policy is ExcessPolicy.REFUND else 0

        self._settle(buyer, recipient, amount, payment, payment - refund, refund)

        purchased = Purchased(buyer, recipient, amount, active, cost, refund)
        self._commit(after, resolution.events + after.events + (purchased,))
        return purchased

    def _settle(
        self,
        buyer: str,
        recipient: str,
        amount: int,
        payment: int,
        forwarded: int,
        refund: int,
    ) -> None:
        """Collect payment, deliver tokens and pay out, all or nothing."""
        with ExitStack() as scope:
            scope.enter_context(self.token_ledger.atomic())
            scope.enter_context(self.currency.atomic())

            try:
                self.currency.receive(buyer, payment)
            except Exception as exc:
                raise CurrencyTransferFailed(f"could not collect {payment} from {buyer}: {exc}") from exc

            try:
                self.token_ledger.transfer_from(self.terms.beneficiary, recipient, amount)
            except Exception as exc:
                raise LedgerTransferFailed(f"could not deliver {amount} to {recipient}: {exc}") from exc

            try:
                self.currency.send(self.terms.beneficiary, forwarded)
                if refund:
                    self.currency.send(buyer, refund)
            except Exception as exc:
                raise CurrencyTransferFailed(f"could not pay out {payment}: {exc}") from exc

    # ========================================================================
    # QUERIES
    # ========================================================================

    def supply(self) -> int:
        """Token base units not yet allocated to any phase."""
        return self._unallocated

    def total_phases(self) -> int:
        return len(self._phases)

    def current_phase(self) -> int:
        """
        Index of the active phase.

        Equals total_phases() when no phase is open. Resolves expiry first
        under ReadResolution.EAGER.
        """
        self._refresh()
        return self._current_index

    def phase(self, index: int) -> PhaseSnapshot:
        """
        Snapshot of phase `index`.

        Raises:
            IndexError: If no such phase exists
        """
        self._refresh()
        if not 0 <= index < len(self._phases):
            raise IndexError(f"phase {index} does not exist ({len(self._phases)} phases)")
        return self._phases[index]

    def phases(self) -> Tuple[PhaseSnapshot, ...]:
        self._refresh()
        return self._phases

    def is_open(self) -> bool:
        """True if a purchase could be served right now."""
        return self._resolve().active_index is not None

    def total_sold(self) -> int:
        return sum(p.sold for p in self._phases)

    def __repr__(self):
        return (f"SaleEngine({len(self._phases)} phases, current={self._current_index}, "
                f"unallocated={self._unallocated}/{self.terms.max_supply})")
