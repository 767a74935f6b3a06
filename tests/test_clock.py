"""
test_clock.py - Unit tests for the time sources
"""

import pytest
from datetime import datetime, timedelta, timezone

from tokensale import Clock, SystemClock, ManualClock, LedgerClock, Ledger


class TestClocks:

    def test_all_satisfy_protocol(self):
        ledger = Ledger("t", verbose=False)
        for clock in (SystemClock(), ManualClock(), LedgerClock(ledger)):
            assert isinstance(clock, Clock)

    def test_system_clock_is_utc(self):
        assert SystemClock().now().tzinfo == timezone.utc

    def test_manual_clock_advance_and_set(self):
        clock = ManualClock(datetime(2025, 1, 1))
        assert clock.advance(timedelta(hours=2)) == datetime(2025, 1, 1, 2, 0)
        clock.set(datetime(2025, 2, 1))
        assert clock.now() == datetime(2025, 2, 1)

    def test_manual_clock_never_goes_back(self):
        clock = ManualClock(datetime(2025, 1, 1))
        with pytest.raises(ValueError):
            clock.advance(timedelta(seconds=-1))
        with pytest.raises(ValueError):
            clock.set(datetime(2024, 12, 31))

    def test_ledger_clock_follows_ledger(self):
        ledger = Ledger("t", datetime(2025, 1, 1), verbose=False)
        clock = LedgerClock(ledger)
        ledger.advance_time(datetime(2025, 1, 3))
        assert clock.now() == datetime(2025, 1, 3)
