"""Cash/accrual projection and cumulative PF tests."""

from __future__ import annotations

from datetime import date

import pytest

from journal_engine.accounting import (
    accounting_date,
    apply_cumulative_pf,
    deduplicate_for_exposure,
    group_by_month,
    original_id,
    project,
)
from journal_engine.assembler import recompute_trade
from journal_engine.models import CashBasisExit, Lot, PositionStatus, Trade

AS_OF = date(2024, 6, 30)


def _trade(trade_id: str, trade_no: int, entry: date, exits: list[Lot], quantity: float = 100) -> Trade:
    slots = (exits + [None, None, None])[:3]
    trade = Trade(
        id=trade_id,
        trade_no=trade_no,
        symbol=trade_id.upper(),
        entry_date=entry,
        entries=(Lot(price=10.0, quantity=quantity, date=entry), None, None),
        exits=(slots[0], slots[1], slots[2]),
    )
    return recompute_trade(trade, as_of=AS_OF)


def _closed_two_exits() -> Trade:
    return _trade(
        "t1",
        1,
        date(2024, 1, 1),
        [Lot(price=15.0, quantity=60, date=date(2024, 1, 20)), Lot(price=12.0, quantity=40, date=date(2024, 2, 5))],
    )


def test_accrual_projection_is_one_record_per_trade():
    trade = _closed_two_exits()
    assert project([trade]) == [trade]


def test_cash_basis_expands_each_exit():
    trade = _closed_two_exits()
    open_trade = _trade("t2", 2, date(2024, 1, 5), [])
    records = project([trade, open_trade], use_cash_basis=True)

    first, second, third = records
    assert isinstance(first, CashBasisExit)
    assert first.id == "t1_exit_1"
    assert second.id == "t1_exit_2"
    assert first.pl == pytest.approx(300)
    assert second.pl == pytest.approx(80)
    assert second.date == date(2024, 2, 5)
    assert third is open_trade
    assert sum(record.pl for record in (first, second)) == pytest.approx(trade.realized_pl)


def test_exit_numbering_skips_empty_slots():
    trade = _trade("t3", 3, date(2024, 1, 1), [None, Lot(price=11.0, quantity=10, date=date(2024, 1, 9))])
    (record,) = project([trade], use_cash_basis=True)
    assert record.id == "t3_exit_1"
    assert record.pl == pytest.approx(10)


def test_deduplication_keeps_first_occurrence():
    trade = _closed_two_exits()
    records = project([trade], use_cash_basis=True)
    (unique,) = deduplicate_for_exposure(records)
    assert unique.id == "t1_exit_1"
    assert original_id("t1_exit_2") == "t1"


def test_group_by_month_per_basis():
    trade = _closed_two_exits()
    assert list(group_by_month([trade])) == ["Jan 2024"]

    cash = group_by_month([trade], use_cash_basis=True)
    assert sorted(cash) == ["Feb 2024", "Jan 2024"]
    assert cash["Feb 2024"][0].pl == pytest.approx(80)


def test_accounting_date_follows_basis():
    trade = _closed_two_exits()
    assert accounting_date(trade) == date(2024, 1, 1)
    assert accounting_date(trade, use_cash_basis=True) == date(2024, 1, 20)


def test_cumulative_pf_skips_open_trades_and_keeps_input_order():
    first = _trade("a", 1, date(2024, 1, 1), [Lot(price=15.0, quantity=100, date=date(2024, 1, 10))])
    still_open = _trade("b", 2, date(2024, 1, 2), [])
    third = _trade("c", 3, date(2024, 1, 3), [Lot(price=8.0, quantity=100, date=date(2024, 1, 12))])

    result = apply_cumulative_pf([third, still_open, first])

    assert [trade.id for trade in result] == ["c", "b", "a"]
    by_id = {trade.id: trade for trade in result}
    assert still_open.status is PositionStatus.OPEN
    assert by_id["a"].cum_pf == pytest.approx(0.5)
    assert by_id["b"].cum_pf == pytest.approx(0.5)
    assert by_id["c"].cum_pf == pytest.approx(0.3)
