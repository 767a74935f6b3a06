"""
Atomicity Conformance Tests

INVARIANT: Sale operations are all-or-nothing.

    ∀ operation op:
        op succeeds ⟹ phase state, events and ledger change together
        op fails    ⟹ nothing changes, not even expiry bookkeeping

A buy whose token delivery or payout fails after the payment was
collected must leave the buyer's funds where they were.
"""

from datetime import timedelta

from hypothesis import given, settings
from hypothesis import strategies as st

from tokensale import (
    LedgerTransferFailed, CurrencyTransferFailed, SALE_ESCROW_WALLET,
)

from .sale_builder import build_sale, apply_op, operations


def _snapshot(ledger, engine):
    return (
        engine._phases,
        engine._current_index,
        engine.supply(),
        len(engine.events),
        {w: dict(b) for w, b in ledger.balances.items()},
        ledger.list_wallets(),
        ledger.get_unit_state("SPACE"),
        len(ledger.transaction_log),
    )


class TestAtomicityProperties:

    @given(operations)
    @settings(max_examples=150, deadline=None)
    def test_failed_operation_leaves_no_trace(self, ops):
        ledger, token, currency, engine = build_sale()
        for op in ops:
            before = _snapshot(ledger, engine)
            error = apply_op(ledger, engine, op)
            if error is not None:
                assert _snapshot(ledger, engine) == before, f"{op} raised {error!r} but changed state"

    @given(operations)
    @settings(max_examples=100, deadline=None)
    def test_escrow_is_always_empty(self, ops):
        ledger, token, currency, engine = build_sale()
        for op in ops:
            apply_op(ledger, engine, op)
            assert currency.balance_of(SALE_ESCROW_WALLET) == 0

    @given(
        allowance=st.integers(min_value=0, max_value=399),
        minutes=st.integers(min_value=0, max_value=120),
    )
    @settings(max_examples=50, deadline=None)
    def test_failed_delivery_refunds_everything(self, allowance, minutes):
        ledger, token, currency, engine = build_sale()
        engine.create_phase("owner", 505, ledger.current_time + timedelta(hours=1), 1_000)
        engine.create_phase("owner", 250, ledger.current_time + timedelta(hours=3), 3_000)
        token.approve("owner", "sale", allowance)
        ledger.advance_time(ledger.current_time + timedelta(minutes=minutes))

        before = _snapshot(ledger, engine)
        try:
            engine.buy("alice", 400, "dave", payment=10_000)
        except LedgerTransferFailed:
            pass
        else:
            raise AssertionError("delivery over the allowance succeeded")

        assert _snapshot(ledger, engine) == before
        assert currency.balance_of("alice") == 100_000
        assert not ledger.is_registered("dave")

    @given(payment=st.integers(min_value=100_001, max_value=10 ** 9))
    @settings(max_examples=30, deadline=None)
    def test_unpayable_purchase_changes_nothing(self, payment):
        ledger, token, currency, engine = build_sale()
        engine.create_phase("owner", 0, ledger.current_time + timedelta(hours=1), 1_000)
        before = _snapshot(ledger, engine)
        try:
            engine.buy("bob", 10, "bob", payment=payment)
        except CurrencyTransferFailed:
            pass
        else:
            raise AssertionError("payment above the buyer's balance succeeded")
        assert _snapshot(ledger, engine) == before
