"""Portfolio analytics over the cumulative PF series.

Produces the drawdown breakdown table, the peak/trough/drawdown headline
numbers and the per-month gross, tax and net P/L rows for one period.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .accounting import (
    Record,
    accounting_date,
    accounting_pf_impact,
    accounting_pl,
    chronological_key,
    deduplicate_for_exposure,
    group_by_month,
    is_realized,
)
from .models import CashBasisExit, DrawdownPoint, MonthlyPL, PortfolioAnalyticsResult, Trade
from .portfolio import MONTH_KEYS, normalize_month

logger = logging.getLogger(__name__)

SEVERE_DRAWDOWN = 10.0
SIGNIFICANT_DRAWDOWN = 5.0
MODERATE_DRAWDOWN = 2.0


def classify_point(index: int, is_new_peak: bool, is_recovery: bool, drawdown: float) -> tuple[str, str]:
    """Commentary text and tag for one point of the breakdown."""

    if index == 0:
        return "Portfolio inception", "start"
    if is_new_peak:
        return "New peak achieved", "peak"
    if is_recovery:
        return "Full recovery achieved", "recovery"
    if drawdown == 0:
        return "At peak level", "neutral"
    if drawdown > SEVERE_DRAWDOWN:
        return "Deep drawdown", "severe"
    if drawdown > SIGNIFICANT_DRAWDOWN:
        return "Significant drawdown", "moderate"
    if drawdown > MODERATE_DRAWDOWN:
        return "Moderate drawdown", "moderate"
    return "Minor correction", "mild"


def _as_trades(records: Iterable[Record]) -> List[Trade]:
    return [
        record.trade if isinstance(record, CashBasisExit) else record
        for record in deduplicate_for_exposure(records)
    ]


def realized_in_order(records: Iterable[Record]) -> List[Trade]:
    """Closed and partial trades in the order their ``cum_pf`` was accumulated."""

    realized = [trade for trade in _as_trades(records) if is_realized(trade)]
    return sorted(realized, key=chronological_key)


def drawdown_breakdown(trades: Sequence[Trade], use_cash_basis: bool = False) -> List[DrawdownPoint]:
    """Walk the cumulative PF series tracking the running peak.

    ``trades`` must already be realized and in chronological order, each
    carrying its ``cum_pf``.
    """

    points: List[DrawdownPoint] = []
    running_max = 0.0
    was_in_drawdown = False
    for index, trade in enumerate(trades):
        current = trade.cum_pf
        if index == 0:
            running_max = max(0.0, current)

        is_new_peak = current > running_max
        if is_new_peak:
            running_max = current
            was_in_drawdown = False

        drawdown = max(0.0, running_max - current)
        is_recovery = was_in_drawdown and drawdown == 0 and not is_new_peak
        commentary, commentary_type = classify_point(index, is_new_peak, is_recovery, drawdown)
        if drawdown > 0:
            was_in_drawdown = True

        points.append(
            DrawdownPoint(
                trade_id=trade.id,
                date=accounting_date(trade, use_cash_basis),
                symbol=trade.symbol,
                pf_impact=accounting_pf_impact(trade, use_cash_basis),
                cum_pf=current,
                running_max=running_max,
                drawdown_from_peak=drawdown,
                is_new_peak=is_new_peak,
                commentary=commentary,
                commentary_type=commentary_type,
            )
        )
    return points


def drawdown_metrics(cum_pfs: Sequence[float]) -> tuple[float, float, float, float]:
    """Return ``(max_cum_pf, min_cum_pf, max_drawdown, current_drawdown)``.

    When the series never rises above zero the drawdowns are the absolute
    trough and the absolute last value instead of peak-minus-current.
    """

    if not cum_pfs:
        return 0.0, 0.0, 0.0, 0.0
    max_cum_pf = max(cum_pfs)
    min_cum_pf = min(cum_pfs)
    current = cum_pfs[-1]
    if max_cum_pf <= 0:
        return max_cum_pf, min_cum_pf, abs(min_cum_pf), abs(current)

    max_drawdown = 0.0
    running_max = cum_pfs[0]
    for value in cum_pfs:
        running_max = max(running_max, value)
        max_drawdown = max(max_drawdown, running_max - value)
    return max_cum_pf, min_cum_pf, max_drawdown, max(0.0, max_cum_pf - current)


def _normalize_taxes(taxes_by_month: Optional[Mapping[str, float]]) -> Dict[str, float]:
    taxes: Dict[str, float] = {}
    for month, amount in (taxes_by_month or {}).items():
        key = normalize_month(month)
        taxes[key] = taxes.get(key, 0.0) + float(amount or 0)
    return taxes


def monthly_pl(
    trades: Sequence[Trade],
    *,
    year: Optional[int] = None,
    use_cash_basis: bool = False,
    taxes_by_month: Optional[Mapping[str, float]] = None,
) -> List[MonthlyPL]:
    """Gross, tax and net P/L for each calendar month of ``year``.

    With ``year=None`` months are pooled across every year in the data.
    """

    taxes = _normalize_taxes(taxes_by_month)
    gross: Dict[str, float] = {month: 0.0 for month in MONTH_KEYS}
    counts: Dict[str, int] = {month: 0 for month in MONTH_KEYS}
    for key, records in group_by_month(trades, use_cash_basis).items():
        month, _, record_year = key.partition(" ")
        if year is not None and int(record_year) != year:
            continue
        gross[month] += sum(accounting_pl(record) for record in records)
        counts[month] += len(records)

    return [
        MonthlyPL(
            month=month,
            gross_pl=gross[month],
            taxes=taxes.get(month, 0.0),
            net_pl=gross[month] - taxes.get(month, 0.0),
            trade_count=counts[month],
        )
        for month in MONTH_KEYS
    ]


def compute_portfolio_analytics(
    records: Sequence[Record],
    *,
    taxes_by_month: Optional[Mapping[str, float]] = None,
    use_cash_basis: bool = False,
    year: Optional[int] = None,
) -> PortfolioAnalyticsResult:
    """Drawdown breakdown plus headline and monthly P/L figures for a period.

    ``records`` may be plain trades or a cash-basis expansion; expansions are
    folded back to their parent trades first so no trade is counted twice.
    Trades must already carry ``cum_pf`` for the chosen basis. The drawdown
    series keeps trades dated in ``year``; monthly figures bucket every exit
    by its own date, so a cash-basis trade spanning two years is split
    between them.
    """

    trades = _as_trades(records)
    in_period = trades
    if year is not None:
        in_period = [trade for trade in trades if accounting_date(trade, use_cash_basis).year == year]

    realized = realized_in_order(in_period)
    breakdown = drawdown_breakdown(realized, use_cash_basis)
    max_cum_pf, min_cum_pf, max_drawdown, current_drawdown = drawdown_metrics(
        [trade.cum_pf for trade in realized]
    )

    monthly = monthly_pl(trades, year=year, use_cash_basis=use_cash_basis, taxes_by_month=taxes_by_month)
    total_gross = sum(row.gross_pl for row in monthly)
    total_taxes = sum(row.taxes for row in monthly)
    logger.debug(
        "Analytics over %s realized trades: max drawdown %.2f, current %.2f",
        len(realized),
        max_drawdown,
        current_drawdown,
    )
    return PortfolioAnalyticsResult(
        drawdown_breakdown=breakdown,
        max_cum_pf=max_cum_pf,
        min_cum_pf=min_cum_pf,
        max_drawdown=max_drawdown,
        current_drawdown=current_drawdown,
        total_gross_pl=total_gross,
        total_taxes=total_taxes,
        total_net_pl=total_gross - total_taxes,
        monthly=monthly,
    )


__all__ = [
    "classify_point",
    "compute_portfolio_analytics",
    "drawdown_breakdown",
    "drawdown_metrics",
    "monthly_pl",
    "realized_in_order",
]
