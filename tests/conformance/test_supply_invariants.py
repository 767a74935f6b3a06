"""
Supply Conformance Tests

INVARIANTS, after every operation (successful or not):

    Σ phase.supply + unallocated = max_supply
    0 ≤ phase.remaining_supply ≤ phase.supply
    remaining_supply never increases; closed never reverts
    current_phase never decreases and never exceeds total_phases
    every phase before current_phase is unable to sell
    total_sold = tokens delivered to buyers
"""

from hypothesis import given, settings
from hypothesis import strategies as st

from tokensale import ReadResolution, ExcessPolicy

from .sale_builder import BUYERS, MAX_SUPPLY, build_sale, apply_op, operations


def _check_supply(engine, ledger):
    phases = engine.phases()
    assert sum(p.supply for p in phases) + engine.supply() == MAX_SUPPLY
    for phase in phases:
        assert 0 <= phase.remaining_supply <= phase.supply
        if phase.closed:
            assert phase.close_reason is not None

    current = engine.current_phase()
    assert 0 <= current <= len(phases)
    now = ledger.current_time
    for phase in phases[:current]:
        assert not phase.is_open(now)


class TestSupplyInvariants:

    @given(operations)
    @settings(max_examples=150, deadline=None)
    def test_allocation_is_conserved(self, ops):
        ledger, token, currency, engine = build_sale()
        for op in ops:
            apply_op(ledger, engine, op)
            _check_supply(engine, ledger)

    @given(operations)
    @settings(max_examples=100, deadline=None)
    def test_phases_only_move_forward(self, ops):
        ledger, token, currency, engine = build_sale()
        previous_phases = engine.phases()
        previous_index = engine.current_phase()

        for op in ops:
            apply_op(ledger, engine, op)
            phases = engine.phases()
            index = engine.current_phase()

            assert index >= previous_index
            for old, new in zip(previous_phases, phases):
                assert new.remaining_supply <= old.remaining_supply
                assert new.supply == old.supply
                assert new.discount_bps == old.discount_bps
                assert new.end_time == old.end_time
                if old.closed:
                    assert new.closed
                    assert new.close_reason == old.close_reason
            previous_phases, previous_index = phases, index

    @given(operations, st.sampled_from(list(ExcessPolicy)))
    @settings(max_examples=100, deadline=None)
    def test_sold_matches_delivered(self, ops, policy):
        ledger, token, currency, engine = build_sale(excess_policy=policy)
        for op in ops:
            apply_op(ledger, engine, op)
        delivered = sum(token.balance_of(b) for b in BUYERS)
        assert engine.total_sold() == delivered
        assert token.balance_of("owner") == MAX_SUPPLY - delivered

    @given(operations)
    @settings(max_examples=100, deadline=None)
    def test_lazy_and_eager_sell_the_same(self, ops):
        """Read resolution changes what queries show, never what is sold."""
        eager = build_sale(read_resolution=ReadResolution.EAGER)
        lazy = build_sale(read_resolution=ReadResolution.LAZY)

        for op in ops:
            eager_error = apply_op(eager[0], eager[3], op)
            lazy_error = apply_op(lazy[0], lazy[3], op)
            assert type(eager_error) is type(lazy_error)

        assert eager[3].total_sold() == lazy[3].total_sold()
        assert eager[3].supply() == lazy[3].supply()
