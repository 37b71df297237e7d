import asyncio
import gc
from datetime import date

import pytest

from journal_engine import pipeline
from journal_engine.errors import StaleResultError
from journal_engine.models import CashBasisExit, Lot, PositionStatus, RawTransaction, Side
from journal_engine.normalizers import BrokerFormat
from journal_engine.pipeline import PipelineOptions, PipelineRunner, run_import, run_pipeline, run_pipeline_async

AS_OF = date(2024, 6, 30)


def _tx(symbol, day, side, quantity, price, month=1):
    return RawTransaction(
        symbol=symbol,
        date=date(2024, month, day),
        side=side,
        quantity=quantity,
        price=price,
        source="zerodha",
    )


def _make_transactions():
    return [
        _tx("TCS", 3, Side.BUY, 10, 3500.0),
        _tx("INFY", 1, Side.BUY, 100, 10.0),
        _tx("INFY", 2, Side.SELL, 60, 15.0),
        _tx("INFY", 3, Side.SELL, 40, 12.0),
        _tx("INFY", 10, Side.BUY, 20, 11.0),
        _tx("TCS", 5, Side.SELL, 4, 3600.0, month=2),
    ]


def test_oversold_exit_is_capped_in_third_slot():
    transactions = [
        _tx("RELIANCE", 1, Side.BUY, 50, 100.0),
        _tx("RELIANCE", 2, Side.SELL, 20, 110.0),
        _tx("RELIANCE", 3, Side.SELL, 20, 90.0),
        _tx("RELIANCE", 4, Side.SELL, 20, 95.0),
    ]
    result = run_pipeline(transactions, PipelineOptions(as_of=AS_OF))

    (trade,) = result.trades
    assert trade.exits == (
        Lot(price=110.0, quantity=20, date=date(2024, 1, 2)),
        Lot(price=90.0, quantity=20, date=date(2024, 1, 3)),
        Lot(price=95.0, quantity=10, date=date(2024, 1, 4)),
    )
    assert trade.exited_qty == 50
    assert trade.status is PositionStatus.CLOSED
    assert trade.realized_pl == pytest.approx(200 - 200 - 50)
    assert result.orphan_fills == 1


def test_trades_are_numbered_across_symbols_by_first_fill():
    result = run_pipeline(_make_transactions(), PipelineOptions(as_of=AS_OF))

    assert [(trade.trade_no, trade.symbol, trade.status) for trade in result.trades] == [
        (1, "INFY", PositionStatus.CLOSED),
        (2, "TCS", PositionStatus.PARTIAL),
        (3, "INFY", PositionStatus.OPEN),
    ]
    assert result.trades[0].id == "zerodha-INFY-2024-01-01-1"
    assert result.trades[0].realized_pl == pytest.approx(380)
    assert result.open_positions == 2
    assert result.trades[2].cum_pf == pytest.approx(result.trades[1].cum_pf)


def test_pipeline_is_idempotent():
    options = PipelineOptions(as_of=AS_OF)
    assert run_pipeline(_make_transactions(), options) == run_pipeline(_make_transactions(), options)


def test_cash_basis_conserves_exit_quantity():
    result = run_pipeline(_make_transactions(), PipelineOptions(as_of=AS_OF, use_cash_basis=True))

    exits = [record for record in result.records if isinstance(record, CashBasisExit)]
    for trade in result.trades:
        children = [record for record in exits if record.parent_id == trade.id]
        assert sum(record.quantity for record in children) == pytest.approx(trade.exited_qty)
        assert sum(record.pl for record in children) == pytest.approx(trade.realized_pl)
    assert result.open_positions == 2


def test_cash_basis_monthly_pl_follows_exit_dates():
    result = run_pipeline(_make_transactions(), PipelineOptions(as_of=AS_OF, use_cash_basis=True, year=2024))
    monthly = {row.month: row.gross_pl for row in result.analytics.monthly}
    assert monthly["Jan"] == pytest.approx(380)
    assert monthly["Feb"] == pytest.approx(400)


async def test_chunked_run_matches_batch_run():
    options = PipelineOptions(as_of=AS_OF, chunk_size=1)
    batch = run_pipeline(_make_transactions(), options)
    chunked = await run_pipeline_async(_make_transactions(), options)
    assert chunked == batch


async def test_runner_delivers_only_latest_submission():
    delivered = []
    runner = PipelineRunner(on_result=lambda token, result: delivered.append((token, len(result.trades))))
    options = PipelineOptions(as_of=AS_OF)

    first = runner.submit(_make_transactions(), options)
    second = runner.submit(_make_transactions()[:2], options)

    with pytest.raises(StaleResultError):
        await runner.result(first)
    latest = await runner.result(second)
    pending = [task for task in asyncio.all_tasks() if task is not asyncio.current_task()]
    await asyncio.gather(*pending)

    assert runner.generation == second
    assert len(latest.trades) == 2
    assert delivered == [(second, 2)]


def test_run_import_normalizes_then_reconciles():
    headers = ["symbol", "isin", "trade_date", "exchange", "series", "trade_type", "quantity", "price", "trade_id", "order_id"]
    rows = [
        ["INFY", "INE009A01021", "2024-01-01", "NSE", "EQ", "buy", "100", "10", "T1", "O1"],
        ["INFY", "INE009A01021", "2024-01-02", "NSE", "EQ", "sell", "100", "12", "T2", "O2"],
        ["INFY", "INE009A01021", "", "NSE", "EQ", "sell", "5", "12", "T3", "O3"],
    ]
    result = run_import(headers, rows, PipelineOptions(as_of=AS_OF))

    assert result.broker is BrokerFormat.ZERODHA
    assert result.rejected_rows == 1
    (trade,) = result.trades
    assert trade.realized_pl == pytest.approx(200)
    assert result.analytics.total_gross_pl == pytest.approx(200)


async def test_runner_releases_completed_runs():
    runner = PipelineRunner()
    options = PipelineOptions(as_of=AS_OF)

    for _ in range(5):
        token = runner.submit(_make_transactions(), options)
        await runner.result(token)
        await asyncio.sleep(0)

    assert runner.pending_runs == 0
    assert len((await runner.latest()).trades) == 3


async def test_runner_retrieves_failures_of_superseded_runs(monkeypatch):
    async def failing_run(*args, **kwargs):
        raise ValueError("unreadable tradebook")

    monkeypatch.setattr(pipeline, "run_pipeline_async", failing_run)
    loop = asyncio.get_running_loop()
    unhandled = []
    loop.set_exception_handler(lambda _loop, context: unhandled.append(context))
    runner = PipelineRunner()
    options = PipelineOptions(as_of=AS_OF)

    runner.submit(_make_transactions(), options)
    latest = runner.submit(_make_transactions(), options)
    with pytest.raises(ValueError):
        await runner.result(latest)
    await asyncio.sleep(0)
    gc.collect()
    loop.set_exception_handler(None)

    assert runner.pending_runs == 0
    assert unhandled == []
