"""Trade reconciliation and P/L engine for the trading journal."""

from .accounting import apply_cumulative_pf, deduplicate_for_exposure, expand_cash_basis, project
from .analytics import compute_portfolio_analytics, drawdown_breakdown, monthly_pl
from .assembler import assemble_trade, recompute_trade
from .charges import distribute_charges_by_month, parse_zerodha_charges
from .consolidation import consolidate_entries, consolidate_exits
from .cycles import detect_cycles
from .errors import ColumnMappingError, JournalEngineError, StaleResultError, UnrecognizedFormatError
from .fifo import match_fifo
from .models import (
    AccountingMethod,
    CashBasisExit,
    DrawdownPoint,
    Lot,
    MonthlyPL,
    PortfolioAnalyticsResult,
    PortfolioSnapshot,
    PositionStatus,
    RawTransaction,
    Side,
    Trade,
    TradeCycle,
)
from .normalizers import BrokerFormat, FormatDetection, NormalizationOptions, detect_format, normalize
from .parsing import DateFormat, parse_date, parse_number
from .pipeline import PipelineOptions, PipelineResult, PipelineRunner, run_import, run_pipeline, run_pipeline_async
from .portfolio import StaticPortfolioSizes

__all__ = [
    "AccountingMethod",
    "BrokerFormat",
    "CashBasisExit",
    "ColumnMappingError",
    "DateFormat",
    "DrawdownPoint",
    "FormatDetection",
    "JournalEngineError",
    "Lot",
    "MonthlyPL",
    "NormalizationOptions",
    "PipelineOptions",
    "PipelineResult",
    "PipelineRunner",
    "PortfolioAnalyticsResult",
    "PortfolioSnapshot",
    "PositionStatus",
    "RawTransaction",
    "Side",
    "StaleResultError",
    "StaticPortfolioSizes",
    "Trade",
    "TradeCycle",
    "UnrecognizedFormatError",
    "apply_cumulative_pf",
    "assemble_trade",
    "compute_portfolio_analytics",
    "consolidate_entries",
    "consolidate_exits",
    "deduplicate_for_exposure",
    "detect_cycles",
    "detect_format",
    "distribute_charges_by_month",
    "drawdown_breakdown",
    "expand_cash_basis",
    "match_fifo",
    "monthly_pl",
    "normalize",
    "parse_date",
    "parse_number",
    "parse_zerodha_charges",
    "project",
    "recompute_trade",
    "run_import",
    "run_pipeline",
    "run_pipeline_async",
]
