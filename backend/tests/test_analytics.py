"""Drawdown and monthly P/L analytics tests."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from journal_engine.accounting import apply_cumulative_pf, project
from journal_engine.analytics import (
    compute_portfolio_analytics,
    drawdown_breakdown,
    drawdown_metrics,
    monthly_pl,
)
from journal_engine.assembler import recompute_trade
from journal_engine.models import Lot, Trade

AS_OF = date(2024, 12, 31)


def _trade(trade_no: int, entry: date, exit_price: float | None, exit_day: date | None = None) -> Trade:
    exits = (Lot(price=exit_price, quantity=100, date=exit_day or entry), None, None) if exit_price else (None, None, None)
    trade = Trade(
        id=f"t{trade_no}",
        trade_no=trade_no,
        symbol="INFY",
        entry_date=entry,
        entries=(Lot(price=100.0, quantity=100, date=entry), None, None),
        exits=exits,
    )
    return recompute_trade(trade, as_of=AS_OF)


def test_breakdown_tracks_running_peak():
    base = _trade(1, date(2024, 1, 1), 110.0)
    trades = [
        replace(base, id=f"t{index}", entry_date=date(2024, 1, index + 1), cum_pf=value)
        for index, value in enumerate([5.0, 8.0, 3.0, 3.0, 6.0])
    ]
    points = drawdown_breakdown(trades)

    assert [point.drawdown_from_peak for point in points] == pytest.approx([0, 0, 5, 5, 2])
    assert [point.running_max for point in points] == pytest.approx([5, 8, 8, 8, 8])
    assert [point.commentary_type for point in points] == ["start", "peak", "moderate", "moderate", "mild"]
    assert drawdown_metrics([5.0, 8.0, 3.0, 3.0, 6.0]) == pytest.approx((8, 3, 5, 2))


def test_recovery_and_severity_commentary():
    base = _trade(1, date(2024, 1, 1), 110.0)
    trades = [replace(base, id=f"t{i}", cum_pf=value) for i, value in enumerate([20.0, 5.0, 20.0, 19.0])]
    points = drawdown_breakdown(trades)
    assert [(point.commentary, point.commentary_type) for point in points] == [
        ("Portfolio inception", "start"),
        ("Deep drawdown", "severe"),
        ("Full recovery achieved", "recovery"),
        ("Minor correction", "mild"),
    ]


def test_metrics_when_never_above_zero():
    assert drawdown_metrics([-1.0, -4.0, -2.0]) == pytest.approx((-1, -4, 4, 2))
    assert drawdown_metrics([]) == (0.0, 0.0, 0.0, 0.0)


def test_monthly_gross_taxes_and_net():
    trades = [
        _trade(1, date(2024, 1, 3), 110.0),
        _trade(2, date(2024, 1, 20), 95.0),
        _trade(3, date(2024, 3, 2), 120.0),
        _trade(4, date(2023, 3, 2), 120.0),
    ]
    rows = {row.month: row for row in monthly_pl(trades, year=2024, taxes_by_month={"january": 100.0, "Mar": 50.0})}

    assert len(rows) == 12
    assert rows["Jan"].gross_pl == pytest.approx(500)
    assert rows["Jan"].taxes == pytest.approx(100)
    assert rows["Jan"].net_pl == pytest.approx(400)
    assert rows["Jan"].trade_count == 2
    assert rows["Mar"].gross_pl == pytest.approx(2000)
    assert rows["Feb"].net_pl == 0


def test_monthly_cash_basis_buckets_by_exit_date():
    trade = _trade(1, date(2024, 1, 28), 110.0, exit_day=date(2024, 2, 2))
    accrual = {row.month: row.gross_pl for row in monthly_pl([trade], year=2024)}
    cash = {row.month: row.gross_pl for row in monthly_pl([trade], year=2024, use_cash_basis=True)}
    assert accrual["Jan"] == pytest.approx(1000)
    assert cash["Jan"] == 0
    assert cash["Feb"] == pytest.approx(1000)


def test_portfolio_analytics_counts_cash_expansions_once():
    trades = apply_cumulative_pf(
        [
            _trade(1, date(2024, 1, 2), 110.0),
            _trade(2, date(2024, 2, 2), 90.0),
            _trade(3, date(2024, 3, 2), None),
        ],
        use_cash_basis=True,
    )
    result = compute_portfolio_analytics(
        project(trades, use_cash_basis=True),
        use_cash_basis=True,
        taxes_by_month={"Feb": 10.0},
        year=2024,
    )

    assert [point.trade_id for point in result.drawdown_breakdown] == ["t1", "t2"]
    assert result.max_cum_pf == pytest.approx(1.0)
    assert result.min_cum_pf == pytest.approx(0.0)
    assert result.max_drawdown == pytest.approx(1.0)
    assert result.current_drawdown == pytest.approx(1.0)
    assert result.total_gross_pl == pytest.approx(0)
    assert result.total_taxes == pytest.approx(10)
    assert result.total_net_pl == pytest.approx(-10)


def test_cash_basis_year_split_keeps_every_exit():
    trade = recompute_trade(
        Trade(
            id="t1",
            trade_no=1,
            symbol="INFY",
            entry_date=date(2023, 12, 1),
            entries=(Lot(price=100.0, quantity=100, date=date(2023, 12, 1)), None, None),
            exits=(
                Lot(price=110.0, quantity=50, date=date(2023, 12, 20)),
                Lot(price=120.0, quantity=50, date=date(2024, 1, 10)),
                None,
            ),
        ),
        as_of=AS_OF,
    )
    records = project(apply_cumulative_pf([trade], use_cash_basis=True), use_cash_basis=True)

    by_year = {
        year: compute_portfolio_analytics(records, use_cash_basis=True, year=year) for year in (2023, 2024)
    }

    assert by_year[2023].total_gross_pl == pytest.approx(500)
    assert by_year[2024].total_gross_pl == pytest.approx(1000)
    assert {row.month: row.gross_pl for row in by_year[2024].monthly}["Jan"] == pytest.approx(1000)
    assert [point.trade_id for point in by_year[2023].drawdown_breakdown] == ["t1"]
    assert by_year[2024].drawdown_breakdown == []


def test_drawdown_walks_trades_in_cumulative_order():
    later_numbered_first = _trade(2, date(2024, 1, 5), 120.0)
    earlier_numbered_later = _trade(1, date(2024, 2, 5), 90.0)
    trades = apply_cumulative_pf([earlier_numbered_later, later_numbered_first])

    result = compute_portfolio_analytics(trades, year=2024)

    assert [point.trade_id for point in result.drawdown_breakdown] == ["t2", "t1"]
    assert [point.cum_pf for point in result.drawdown_breakdown] == pytest.approx([2.0, 1.0])
    assert result.max_drawdown == pytest.approx(1.0)
