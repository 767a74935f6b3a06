"""
conftest.py - Shared pytest fixtures for token-sale tests

Provides common fixtures used across unit and functional tests:
- A ledger with the settlement currency and the sale token registered
- Ledger-backed token and currency collaborators, funded
- A sale engine factory with the default sale terms
"""

import pytest
from datetime import datetime, timedelta

from tokensale import (
    Ledger, cash, sale_token,
    LedgerToken, LedgerCurrency, LedgerClock,
    SaleEngine, SaleTerms, ExcessPolicy, ReadResolution,
)


START = datetime(2025, 1, 1, 12, 0)


# =============================================================================
# HELPER FIXTURES
# =============================================================================

@pytest.fixture
def later(ledger):
    """later(hours) -> timestamp `hours` after the ledger's current time."""
    def _later(hours: float) -> datetime:
        return ledger.current_time + timedelta(hours=hours)
    return _later


@pytest.fixture
def sale_state(ledger):
    """sale_state(engine) -> everything a rejected operation must leave untouched."""
    def _capture(engine: SaleEngine) -> dict:
        return {
            "phases": engine._phases,
            "current_index": engine._current_index,
            "unallocated": engine.supply(),
            "events": list(engine.events),
            "balances": {w: dict(b) for w, b in ledger.balances.items()},
            "wallets": ledger.list_wallets(),
            "token_state": ledger.get_unit_state("SPACE"),
            "log_length": len(ledger.transaction_log),
        }
    return _capture


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Ledger with ETH and the SPACE token registered."""
    ledger = Ledger("sale", START, verbose=False)
    ledger.register_unit(cash("ETH", "Ether"))
    ledger.register_unit(sale_token("SPACE", "Spacelens"))
    for wallet in ("owner", "alice", "bob"):
        ledger.register_wallet(wallet)
    return ledger


@pytest.fixture
def clock(ledger):
    return LedgerClock(ledger)


@pytest.fixture
def token(ledger):
    """SPACE token: owner holds the whole sale supply and lets the sale spend it."""
    token = LedgerToken(ledger, "SPACE", operator="sale")
    token.mint("owner", 10_000)
    token.approve("owner", "sale", 10_000)
    return token


@pytest.fixture
def currency(ledger):
    """ETH paid through the sale escrow; alice and bob are funded."""
    currency = LedgerCurrency(ledger, "ETH")
    currency.issue("alice", 1_000_000)
    currency.issue("bob", 1_000_000)
    return currency


# =============================================================================
# ENGINE FIXTURES
# =============================================================================

@pytest.fixture
def make_engine(token, currency, clock):
    """Factory for engines over the shared ledger; keyword args override terms."""
    def _make(
        excess_policy=ExcessPolicy.REFUND,
        read_resolution=ReadResolution.EAGER,
        **terms,
    ) -> SaleEngine:
        params = dict(
            max_supply=10_000,
            base_price=5,
            min_purchase=2,
            administrator="owner",
            beneficiary="owner",
        )
        params.update(terms)
        return SaleEngine(
            SaleTerms(**params), token, currency, clock,
            excess_policy=excess_policy,
            read_resolution=read_resolution,
            verbose=False,
        )
    return _make


@pytest.fixture
def engine(make_engine):
    """Engine with the default terms: 10,000 supply, 5 tokens per wei, minimum 2."""
    return make_engine()


@pytest.fixture
def two_phase_engine(engine, later):
    """
    Engine with two phases:
        phase 0: 50.5% off, 1,000 units, ends in 1 hour (rate 10)
        phase 1: 25% off, 3,000 units, ends in 2 hours (rate 6)
    """
    engine.create_phase("owner", 505, later(1), 1_000)
    engine.create_phase("owner", 250, later(2), 3_000)
    return engine
