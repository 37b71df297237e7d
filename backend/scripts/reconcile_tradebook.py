"""Reconcile a broker tradebook file and print the resulting journal."""

from __future__ import annotations

import argparse
import logging
from datetime import date

from app.config import get_settings
from app.core.logging import setup_logging
from app.services.journal import read_tradebook
from journal_engine.errors import JournalEngineError
from journal_engine.normalizers import BrokerFormat, NormalizationOptions
from journal_engine.parsing import DateFormat
from journal_engine.pipeline import PipelineOptions, run_import
from journal_engine.portfolio import StaticPortfolioSizes

logger = logging.getLogger(__name__)


def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    headers, rows = read_tradebook(args.file)
    portfolio_size = args.portfolio_size or settings.default_portfolio_size
    options = PipelineOptions(
        as_of=date.today(),
        use_cash_basis=args.cash_basis,
        default_portfolio_size=portfolio_size,
        year=args.year,
        chunk_size=settings.chunk_size,
    )
    try:
        result = run_import(
            headers,
            rows,
            options,
            broker=args.broker,
            normalization_options=NormalizationOptions(date_format=DateFormat(args.date_format)),
            portfolio_size=StaticPortfolioSizes(default=portfolio_size),
        )
    except JournalEngineError as exc:
        logger.error("Could not reconcile %s: %s", args.file, exc)
        return 1

    broker = result.broker.value if result.broker else "unknown"
    print(f"Broker: {broker}  trades: {len(result.trades)}  open: {result.open_positions}")
    print(
        f"Rejected rows: {result.rejected_rows}  orphan fills: {result.orphan_fills}"
        f"  ambiguous dates: {result.ambiguous_dates}"
    )
    for trade in result.trades:
        print(
            f"{trade.trade_no:>4} {trade.symbol:<14} {trade.entry_date.isoformat()} {trade.status.value:<8}"
            f" qty={trade.total_qty:g} avg={trade.avg_entry:.2f} realized={trade.realized_pl:.2f}"
            f" pf={trade.pf_impact:.2f}% cum={trade.cum_pf:.2f}%"
        )

    analytics = result.analytics
    print(
        f"Gross P/L {analytics.total_gross_pl:.2f}  net {analytics.total_net_pl:.2f}"
        f"  max drawdown {analytics.max_drawdown:.2f}%  current {analytics.current_drawdown:.2f}%"
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Reconcile a broker tradebook into journal trades")
    parser.add_argument("file", help="CSV or Excel tradebook export")
    parser.add_argument("--broker", choices=[fmt.value for fmt in BrokerFormat if fmt is not BrokerFormat.GENERIC])
    parser.add_argument("--cash-basis", action="store_true", help="Attribute P/L to exit dates")
    parser.add_argument("--portfolio-size", type=float, default=None)
    parser.add_argument("--date-format", default=DateFormat.AUTO.value, choices=[fmt.value for fmt in DateFormat])
    parser.add_argument("--year", type=int, default=None)
    args = parser.parse_args()
    setup_logging(get_settings().log_level)
    raise SystemExit(_run(args))


if __name__ == "__main__":
    main()
