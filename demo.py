#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: A Phased Token Sale Step by Step

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-2: Setup        - Ledger, token with allowance, funded buyers
  3-4: Phases       - Creating discounted phases, rejected requests
  5-6: Buying       - Pricing, refunds, rejected purchases
  7-8: Rollover     - Exhaustion and expiry move the sale forward
  9:   Atomicity    - A failed delivery leaves nothing behind

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from tokensale import (
    Ledger, cash, sale_token,
    LedgerToken, LedgerCurrency, LedgerClock,
    SaleEngine, SaleTerms, SaleError,
    effective_rate, SALE_ESCROW_WALLET,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    start_time: datetime = datetime(2025, 3, 1, 9, 0, 0)

    max_supply: int = 10_000
    base_price: int = 5            # tokens per currency unit
    min_purchase: int = 2

    buyer_funds: int = 1_000


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_balances(token: LedgerToken, currency: LedgerCurrency, *accounts: str):
    print(f"{'account':<12} {'SPACE':>10} {'ETH':>10}")
    for account in accounts:
        print(f"{account:<12} {token.balance_of(account):>10} {currency.balance_of(account):>10}")


def try_it(label: str, fn, *args, **kwargs):
    """Run a call expected to be rejected and print why."""
    try:
        fn(*args, **kwargs)
        print(f"  {label}: accepted")
    except SaleError as e:
        print(f"  {label}: {type(e).__name__} - {e}")


# ============================================================================
# SETUP (Steps 1-2)
# ============================================================================

def step_01_ledger():
    step_header(1, "The Ledger",
        "Register the settlement currency and the token on one ledger.")

    print(">>> ledger = Ledger('spacelens', initial_time=...)")
    ledger = Ledger("spacelens", initial_time=CONFIG.start_time, verbose=True)
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_unit(sale_token("SPACE", "Spacelens"))
    ledger.register_wallet("owner")
    return ledger


def step_02_collaborators(ledger: Ledger):
    step_header(2, "Token and Currency",
        "The owner holds the supply and lets the sale spend it.")

    token = LedgerToken(ledger, "SPACE", operator="sale")
    token.mint("owner", CONFIG.max_supply)
    token.approve("owner", "sale", CONFIG.max_supply)

    currency = LedgerCurrency(ledger, "ETH")
    for buyer in ("alice", "bob"):
        currency.issue(buyer, CONFIG.buyer_funds)

    section_header("Balances")
    show_balances(token, currency, "owner", "alice", "bob")
    print(f"\nAllowance owner -> sale: {token.allowance('owner', 'sale')}")
    return token, currency


# ============================================================================
# PHASES (Steps 3-4)
# ============================================================================

def step_03_create_phases(ledger: Ledger, token, currency):
    step_header(3, "Creating Phases",
        "Each phase takes supply from the unallocated pool.")

    terms = SaleTerms(
        max_supply=CONFIG.max_supply,
        base_price=CONFIG.base_price,
        min_purchase=CONFIG.min_purchase,
        administrator="owner",
        beneficiary="owner",
    )
    engine = SaleEngine(terms, token, currency, LedgerClock(ledger))

    start = ledger.current_time
    engine.create_phase("owner", 505, start + timedelta(hours=1), 1_000)
    engine.create_phase("owner", 250, start + timedelta(hours=2), 3_000)

    section_header("Rates")
    for index, phase in enumerate(engine.phases()):
        rate = effective_rate(CONFIG.base_price, phase.discount_bps)
        print(f"  phase {index}: {phase.discount_bps / 10:.1f}% off -> {rate} tokens per ETH")
    print(f"\nUnallocated: {engine.supply()}")
    return engine


def step_04_rejected_phases(ledger: Ledger, engine: SaleEngine):
    step_header(4, "Rejected Phase Requests",
        "Only the administrator, with a sane discount, future end and free supply.")

    end = ledger.current_time + timedelta(hours=3)
    try_it("alice creates a phase", engine.create_phase, "alice", 0, end, 10)
    try_it("200% discount", engine.create_phase, "owner", 2_000, end, 10)
    try_it("end in the past", engine.create_phase, "owner", 0, ledger.current_time, 10)
    try_it("more than unallocated", engine.create_phase, "owner", 0, end, 10_000)


# ============================================================================
# BUYING (Steps 5-6)
# ============================================================================

def step_05_buy(engine: SaleEngine, token, currency):
    step_header(5, "Buying",
        "Cost rounds up; excess payment comes back to the buyer.")

    print(f">>> engine.quote(401) = {engine.quote(401)}")
    print(">>> engine.buy('alice', 401, 'alice', payment=100)")
    engine.buy("alice", 401, "alice", payment=100)

    section_header("Balances")
    show_balances(token, currency, "owner", "alice", SALE_ESCROW_WALLET)


def step_06_rejected_buys(engine: SaleEngine):
    step_header(6, "Rejected Purchases",
        "Checks run in a fixed order, before anything moves.")

    try_it("below minimum", engine.buy, "bob", 1, "bob", payment=10)
    try_it("underpaid", engine.buy, "bob", 100, "bob", payment=9)
    try_it("more than the phase holds", engine.buy, "bob", 600, "bob", payment=100)


# ============================================================================
# ROLLOVER (Steps 7-8)
# ============================================================================

def step_07_exhaustion(engine: SaleEngine):
    step_header(7, "Exhaustion",
        "Selling a phase out moves the sale to the next one at once.")

    engine.buy("bob", 599, "bob", payment=60)
    print(f"current phase: {engine.current_phase()}")
    print(f"phase 0: {engine.phase(0)}")


def step_08_expiry(ledger: Ledger, engine: SaleEngine):
    step_header(8, "Expiry",
        "Nothing happens at the end time; the next operation notices.")

    ledger.advance_time(ledger.current_time + timedelta(hours=3))
    print(f"is_open(): {engine.is_open()}")
    print(f"current_phase(): {engine.current_phase()} of {engine.total_phases()}")
    try_it("buy after every phase ended", engine.buy, "bob", 10, "bob", payment=10)

    engine.create_phase("owner", 0, ledger.current_time + timedelta(days=30), engine.supply())
    print(f"\nnew phase opened, current_phase(): {engine.current_phase()}")


# ============================================================================
# ATOMICITY (Step 9)
# ============================================================================

def step_09_atomicity(ledger: Ledger, engine: SaleEngine, token, currency):
    step_header(9, "Atomicity",
        "Payment is collected first; a failed delivery puts it back.")

    token.approve("owner", "sale", 5)
    log_before = len(ledger.transaction_log)
    try_it("buy more than the allowance covers", engine.buy, "alice", 10, "alice", payment=10)
    print(f"\ntransactions added: {len(ledger.transaction_log) - log_before}")
    show_balances(token, currency, "owner", "alice", SALE_ESCROW_WALLET)

    section_header("Conservation")
    print(ledger.verify_double_entry())


def main():
    print("\n" + "=" * 70)
    print("       PHASED TOKEN SALE TUTORIAL")
    print("=" * 70)

    ledger = step_01_ledger()
    wait_for_enter()
    token, currency = step_02_collaborators(ledger)
    wait_for_enter()

    engine = step_03_create_phases(ledger, token, currency)
    wait_for_enter()
    step_04_rejected_phases(ledger, engine)
    wait_for_enter()

    step_05_buy(engine, token, currency)
    wait_for_enter()
    step_06_rejected_buys(engine)
    wait_for_enter()

    step_07_exhaustion(engine)
    wait_for_enter()
    step_08_expiry(ledger, engine)
    wait_for_enter()

    step_09_atomicity(ledger, engine, token, currency)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)


if __name__ == "__main__":
    main()
