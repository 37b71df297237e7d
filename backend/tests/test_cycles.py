"""Trading-cycle reducer tests."""

from __future__ import annotations

from datetime import date, time

from journal_engine.cycles import CycleState, detect_all, detect_cycles, sort_transactions, step
from journal_engine.models import RawTransaction, Side


def _tx(day: int, side: Side, quantity: float, price: float = 100.0, symbol: str = "INFY", at: time | None = None):
    return RawTransaction(
        symbol=symbol,
        date=date(2024, 1, day),
        side=side,
        quantity=quantity,
        price=price,
        time=at,
    )


def test_flat_to_flat_forms_one_closed_cycle():
    detection = detect_cycles(
        [
            _tx(1, Side.BUY, 50),
            _tx(2, Side.BUY, 50),
            _tx(3, Side.SELL, 60),
            _tx(4, Side.SELL, 40),
        ]
    )
    (cycle,) = detection.cycles
    assert not cycle.is_open
    assert cycle.buy_quantity == 100
    assert cycle.sell_quantity == 100
    assert detection.orphans == ()


def test_reentry_after_flat_starts_new_cycle_and_tail_stays_open():
    detection = detect_cycles(
        [
            _tx(1, Side.BUY, 10),
            _tx(2, Side.SELL, 10),
            _tx(3, Side.BUY, 5),
            _tx(4, Side.SELL, 2),
        ]
    )
    first, second = detection.cycles
    assert not first.is_open
    assert second.is_open
    assert second.buy_quantity == 5
    assert second.sell_quantity == 2


def test_oversell_is_split_into_covering_fill_and_orphan():
    detection = detect_cycles([_tx(1, Side.BUY, 10), _tx(2, Side.SELL, 15, price=120)])
    (cycle,) = detection.cycles
    assert cycle.sell_quantity == 10
    (orphan,) = detection.orphans
    assert orphan.quantity == 5
    assert orphan.price == 120


def test_sell_while_flat_is_orphaned():
    detection = detect_cycles([_tx(1, Side.SELL, 5), _tx(2, Side.BUY, 5)])
    (cycle,) = detection.cycles
    assert cycle.is_open
    assert len(detection.orphans) == 1


def test_fractional_dust_counts_as_flat():
    detection = detect_cycles([_tx(1, Side.BUY, 0.3), _tx(2, Side.BUY, 0.6), _tx(3, Side.SELL, 0.9)])
    (cycle,) = detection.cycles
    assert not cycle.is_open


def test_step_is_a_pure_reducer():
    state = CycleState()
    result = step(state, _tx(1, Side.BUY, 10))
    assert state == CycleState()
    assert result.state.running_position == 10
    assert result.closed is None


def test_sorting_is_stable_within_a_timestamp():
    buy = _tx(1, Side.BUY, 10, at=time(9, 15))
    sell = _tx(1, Side.SELL, 10, at=time(9, 15))
    early = _tx(1, Side.BUY, 1, at=time(9, 0))
    assert sort_transactions([buy, sell, early]) == [early, buy, sell]


def test_symbols_are_detected_independently():
    detections = detect_all(
        [
            _tx(1, Side.BUY, 10, symbol="INFY"),
            _tx(1, Side.BUY, 5, symbol="TCS"),
            _tx(2, Side.SELL, 10, symbol="INFY"),
        ]
    )
    assert not detections["INFY"].cycles[0].is_open
    assert detections["TCS"].cycles[0].is_open
