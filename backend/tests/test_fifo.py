"""FIFO matching tests."""

from __future__ import annotations

import pytest

from journal_engine.fifo import match_fifo, unrealized_pl
from journal_engine.models import Lot, Side


def test_exit_spanning_two_entry_lots():
    result = match_fifo(
        [Lot(price=100, quantity=10), Lot(price=110, quantity=10)],
        [Lot(price=120, quantity=15)],
    )
    assert [match.quantity for match in result.matches] == [10, 5]
    assert result.realized_pl == pytest.approx(10 * 20 + 5 * 10)
    assert result.exit_pl == pytest.approx((250,))
    assert result.matched_qty == 15


def test_per_exit_pl_is_aligned_with_exit_slots():
    result = match_fifo(
        [Lot(price=10, quantity=100)],
        [Lot(price=15, quantity=60), Lot(price=12, quantity=40), Lot(price=0, quantity=0)],
    )
    assert result.exit_pl == pytest.approx((300, 80, 0))
    assert result.realized_pl == pytest.approx(380)


def test_exit_beyond_entries_is_left_unmatched():
    result = match_fifo([Lot(price=50, quantity=5)], [Lot(price=60, quantity=8)])
    assert result.matched_qty == 5
    assert result.unmatched_exit_qty == 3
    assert result.realized_pl == pytest.approx(50)


def test_short_side_reverses_sign():
    result = match_fifo([Lot(price=100, quantity=10)], [Lot(price=90, quantity=10)], Side.SELL)
    assert result.realized_pl == pytest.approx(100)


def test_unrealized_pl_needs_a_price():
    assert unrealized_pl(100, 0, 10) == 0.0
    assert unrealized_pl(100, 105, 10) == pytest.approx(50)
    assert unrealized_pl(100, 105, 10, Side.SELL) == pytest.approx(-50)
