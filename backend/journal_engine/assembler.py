"""Assemble canonical trades from cycles and recompute their derived fields.

Everything below ``Trade.avg_entry`` is derived. When an input lot, the
stop levels, the market price or the portfolio-size context changes, callers
run :func:`recompute_trade` again on the edited trade instead of patching
individual fields. Missing or zero inputs turn the affected percentage or
ratio into ``0`` rather than raising.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Optional, Sequence

from .consolidation import consolidate_entries, consolidate_exits
from .fifo import match_fifo, unrealized_pl
from .models import Lot, PositionStatus, Side, Trade, TradeCycle
from .portfolio import DEFAULT_PORTFOLIO_SIZE, PortfolioSizeLookup, resolve_portfolio_size

logger = logging.getLogger(__name__)

_EMPTY_LOT = Lot(price=0.0, quantity=0.0)


def percent_of(value: float, base: float) -> float:
    return (value / base) * 100 if base else 0.0


def weighted_average(lots: Sequence[Lot]) -> float:
    quantity = sum(lot.quantity for lot in lots)
    return sum(lot.price * lot.quantity for lot in lots) / quantity if quantity else 0.0


def position_status(exited_qty: float, total_qty: float) -> PositionStatus:
    if exited_qty <= 0:
        return PositionStatus.OPEN
    if exited_qty >= total_qty:
        return PositionStatus.CLOSED
    return PositionStatus.PARTIAL


def _directional_move(reference: float, avg_entry: float, side: Side) -> float:
    move = (reference - avg_entry) / avg_entry * 100
    return move if side is Side.BUY else -move


def stock_move(
    avg_entry: float,
    avg_exit: float,
    cmp: float,
    open_qty: float,
    exited_qty: float,
    status: PositionStatus,
    side: Side = Side.BUY,
) -> float:
    """Percentage move from entry, weighting realized and open legs for partials."""

    if avg_entry <= 0 or open_qty < 0 or exited_qty < 0:
        return 0.0
    total = open_qty + exited_qty
    if total == 0:
        return 0.0

    if status is PositionStatus.CLOSED:
        return _directional_move(avg_exit, avg_entry, side) if avg_exit > 0 else 0.0
    if status is PositionStatus.OPEN:
        return _directional_move(cmp, avg_entry, side) if cmp > 0 else 0.0

    weighted = 0.0
    if exited_qty > 0 and avg_exit > 0:
        weighted += _directional_move(avg_exit, avg_entry, side) * exited_qty
    if open_qty > 0 and cmp > 0:
        weighted += _directional_move(cmp, avg_entry, side) * open_qty
    return weighted / total


def holding_days(entry_date: date, last_exit: Optional[date], status: PositionStatus, as_of: date) -> int:
    end = last_exit if status is PositionStatus.CLOSED and last_exit is not None else as_of
    return max(0, (end - entry_date).days)


def sl_percent(sl: float, entry: float) -> float:
    if not entry or not sl:
        return 0.0
    return abs(percent_of(sl - entry, entry))


def reward_risk(
    entry: float,
    stop: float,
    cmp: float,
    avg_exit: float,
    status: PositionStatus,
    side: Side = Side.BUY,
) -> float:
    """Signed reward:risk of a single entry against one stop level."""

    if not entry or not stop:
        return 0.0
    risk = abs(entry - stop)
    if risk == 0:
        return 0.0
    reference = avg_exit if status is PositionStatus.CLOSED else cmp
    ratio = abs(reference - entry) / risk
    profitable = reference > entry if side is Side.BUY else reference < entry
    return ratio if profitable else -ratio


def weighted_reward_risk(
    entries: Sequence[Lot],
    sl: float,
    tsl: float,
    cmp: float,
    avg_exit: float,
    status: PositionStatus,
    exited_qty: float,
    open_qty: float,
    side: Side = Side.BUY,
) -> float:
    """Quantity-weighted R:R across entry lots.

    The initial entry is measured against the stop loss and pyramids against
    the trailing stop when one is set. Without any stop the ratio is ``0``.
    """

    lots = [lot for lot in entries if lot.price > 0 and lot.quantity > 0]
    total = sum(lot.quantity for lot in lots)
    if not lots or total == 0 or (sl <= 0 and tsl <= 0):
        return 0.0

    weighted = 0.0
    for index, lot in enumerate(lots):
        if index == 0:
            stop = sl if sl > 0 else tsl
        else:
            stop = tsl if tsl > 0 else sl
        risk = abs(lot.price - stop)
        if status is PositionStatus.OPEN:
            reward = _signed_reward(cmp, lot.price, side)
        elif status is PositionStatus.CLOSED:
            reward = _signed_reward(avg_exit, lot.price, side)
        else:
            realized = _signed_reward(avg_exit, lot.price, side)
            potential = _signed_reward(cmp, lot.price, side)
            reward = (realized * exited_qty + potential * open_qty) / total
        ratio = reward / risk if risk else 0.0
        weighted += ratio * lot.quantity
    return weighted / total


def _signed_reward(reference: float, price: float, side: Side) -> float:
    return reference - price if side is Side.BUY else price - reference


def is_risky_position(sl: float, tsl: float, side: Side = Side.BUY) -> bool:
    """A position is risk-free only when a trailing stop locks in better than the SL."""

    if tsl <= 0:
        return True
    if sl <= 0:
        return False
    return tsl <= sl if side is Side.BUY else tsl >= sl


def recompute_trade(
    trade: Trade,
    *,
    as_of: date,
    portfolio_size: Optional[PortfolioSizeLookup] = None,
    default_portfolio_size: float = DEFAULT_PORTFOLIO_SIZE,
) -> Trade:
    """Return a copy of ``trade`` with every derived field recalculated."""

    entries = trade.entry_lots
    exits = trade.exit_lots
    total_qty = sum(lot.quantity for lot in entries)
    exited_qty = sum(lot.quantity for lot in exits)
    open_qty = max(0.0, total_qty - exited_qty)
    avg_entry = weighted_average(entries)
    avg_exit = weighted_average(exits)
    status = position_status(exited_qty, total_qty)

    fifo = match_fifo(
        [lot or _EMPTY_LOT for lot in trade.entries],
        [lot or _EMPTY_LOT for lot in trade.exits],
        trade.side,
    )
    if fifo.unmatched_exit_qty > 0:
        logger.debug("Trade %s exits exceed entries by %s", trade.id, fifo.unmatched_exit_qty)

    entry_capital = resolve_portfolio_size(portfolio_size, trade.entry_date, default_portfolio_size)
    position_size = avg_entry * total_qty

    exit_pf_impact = [0.0, 0.0, 0.0]
    for index, (slot, pl) in enumerate(zip(trade.exits, fifo.exit_pl)):
        if slot is None or slot.quantity <= 0:
            continue
        # Cash basis measures each exit against the capital of the month it landed in.
        exit_capital = resolve_portfolio_size(portfolio_size, slot.date or trade.entry_date, default_portfolio_size)
        exit_pf_impact[index] = percent_of(pl, exit_capital)

    primary = entries[0].price if entries else 0.0
    return replace(
        trade,
        avg_entry=avg_entry,
        avg_exit_price=avg_exit,
        total_qty=total_qty,
        position_size=position_size,
        allocation=percent_of(position_size, entry_capital),
        exited_qty=exited_qty,
        open_qty=open_qty,
        realized_pl=fifo.realized_pl,
        unrealized_pl=unrealized_pl(avg_entry, trade.cmp, open_qty, trade.side),
        exit_pl=(fifo.exit_pl[0], fifo.exit_pl[1], fifo.exit_pl[2]),
        stock_move=stock_move(avg_entry, avg_exit, trade.cmp, open_qty, exited_qty, status, trade.side),
        holding_days=holding_days(trade.entry_date, trade.last_exit_date, status, as_of),
        status=status,
        sl_percent=sl_percent(trade.sl, primary),
        reward_risk=weighted_reward_risk(
            entries, trade.sl, trade.tsl, trade.cmp, avg_exit, status, exited_qty, open_qty, trade.side
        ),
        pf_impact=percent_of(fifo.realized_pl, entry_capital),
        exit_pf_impact=(exit_pf_impact[0], exit_pf_impact[1], exit_pf_impact[2]),
    )


def trade_id_for(cycle: TradeCycle, trade_no: int) -> str:
    first = cycle.transactions[0]
    return f"{first.source}-{cycle.symbol}-{first.date.isoformat()}-{trade_no}"


def assemble_trade(
    cycle: TradeCycle,
    *,
    trade_no: int,
    as_of: date,
    portfolio_size: Optional[PortfolioSizeLookup] = None,
    default_portfolio_size: float = DEFAULT_PORTFOLIO_SIZE,
    cmp: float = 0.0,
) -> Trade:
    """Build a canonical long trade from one cycle."""

    buys = cycle.buys
    sells = cycle.sells
    if not buys:
        raise ValueError(f"Cycle for {cycle.symbol} has no entry fills")
    trade = Trade(
        id=trade_id_for(cycle, trade_no),
        trade_no=trade_no,
        symbol=cycle.symbol,
        entry_date=min(tx.date for tx in buys),
        side=Side.BUY,
        entries=consolidate_entries(buys),
        exits=consolidate_exits(sells),
        cmp=cmp,
        source=buys[0].source,
        buy_tranches=buys,
        sell_tranches=sells,
    )
    return recompute_trade(
        trade,
        as_of=as_of,
        portfolio_size=portfolio_size,
        default_portfolio_size=default_portfolio_size,
    )


__all__ = [
    "assemble_trade",
    "holding_days",
    "is_risky_position",
    "percent_of",
    "position_status",
    "recompute_trade",
    "reward_risk",
    "sl_percent",
    "stock_move",
    "trade_id_for",
    "weighted_average",
    "weighted_reward_risk",
]
