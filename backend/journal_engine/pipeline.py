"""End-to-end reconciliation pipeline and its background runner.

``run_pipeline`` is the pure batch path: fills in, trades plus analytics out.
``run_pipeline_async`` computes the same result in fixed-size chunks on a
worker thread, yielding to the event loop between chunks. ``PipelineRunner``
wraps the async path with a generation token so only the latest submission's
result is ever delivered.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from opentelemetry import trace

from .accounting import Record, apply_cumulative_pf, deduplicate_for_exposure, project
from .analytics import compute_portfolio_analytics
from .assembler import assemble_trade
from .cycles import CycleDetection, detect_cycles, group_by_symbol
from .errors import StaleResultError
from .models import PortfolioAnalyticsResult, PositionStatus, RawTransaction, Trade, TradeCycle
from .normalizers import BrokerFormat, NormalizationOptions, NormalizationResult, normalize
from .portfolio import DEFAULT_PORTFOLIO_SIZE, PortfolioSizeLookup

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DEFAULT_CHUNK_SIZE = 100
LARGE_BATCH_THRESHOLD = 500


@dataclass(frozen=True)
class PipelineOptions:
    as_of: date
    use_cash_basis: bool = False
    default_portfolio_size: float = DEFAULT_PORTFOLIO_SIZE
    taxes_by_month: Mapping[str, float] = field(default_factory=dict)
    year: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    cmp_by_symbol: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineResult:
    trades: tuple[Trade, ...]
    records: tuple[Record, ...]
    analytics: PortfolioAnalyticsResult
    open_positions: int = 0
    rejected_rows: int = 0
    orphan_fills: int = 0
    ambiguous_dates: int = 0
    broker: Optional[BrokerFormat] = None


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _detect_chunk(grouped: Mapping[str, List[RawTransaction]], symbols: Sequence[str]) -> Dict[str, CycleDetection]:
    return {symbol: detect_cycles(grouped[symbol]) for symbol in symbols}


def _ordered_cycles(detections: Mapping[str, CycleDetection]) -> List[TradeCycle]:
    cycles = [cycle for detection in detections.values() for cycle in detection.cycles]
    return sorted(cycles, key=lambda cycle: (cycle.transactions[0].timestamp, cycle.symbol))


def _assemble_chunk(
    numbered: Sequence[tuple[int, TradeCycle]],
    options: PipelineOptions,
    portfolio_size: Optional[PortfolioSizeLookup],
) -> List[Trade]:
    return [
        assemble_trade(
            cycle,
            trade_no=trade_no,
            as_of=options.as_of,
            portfolio_size=portfolio_size,
            default_portfolio_size=options.default_portfolio_size,
            cmp=options.cmp_by_symbol.get(cycle.symbol, 0.0),
        )
        for trade_no, cycle in numbered
    ]


def _finalize(
    trades: Sequence[Trade],
    detections: Mapping[str, CycleDetection],
    options: PipelineOptions,
    *,
    rejected_rows: int = 0,
    ambiguous_dates: int = 0,
    broker: Optional[BrokerFormat] = None,
) -> PipelineResult:
    trades = apply_cumulative_pf(trades, options.use_cash_basis)
    records = project(trades, options.use_cash_basis)
    open_positions = sum(
        1 for record in deduplicate_for_exposure(records) if record.status is not PositionStatus.CLOSED
    )
    analytics = compute_portfolio_analytics(
        records,
        taxes_by_month=options.taxes_by_month,
        use_cash_basis=options.use_cash_basis,
        year=options.year,
    )
    orphans = sum(len(detection.orphans) for detection in detections.values())
    logger.info(
        "Reconciled %s trades (%s open, %s orphan fills, %s rejected rows)",
        len(trades),
        open_positions,
        orphans,
        rejected_rows,
    )
    return PipelineResult(
        trades=tuple(trades),
        records=tuple(records),
        analytics=analytics,
        open_positions=open_positions,
        rejected_rows=rejected_rows,
        orphan_fills=orphans,
        ambiguous_dates=ambiguous_dates,
        broker=broker,
    )


def run_pipeline(
    transactions: Sequence[RawTransaction],
    options: PipelineOptions,
    *,
    portfolio_size: Optional[PortfolioSizeLookup] = None,
    normalization: Optional[NormalizationResult] = None,
) -> PipelineResult:
    """Reconcile fills into trades and analytics in one synchronous pass."""

    with tracer.start_as_current_span("journal.run_pipeline") as span:
        span.set_attribute("journal.transactions", len(transactions))
        grouped = group_by_symbol(transactions)
        detections = _detect_chunk(grouped, list(grouped))
        numbered = list(enumerate(_ordered_cycles(detections), start=1))
        trades = _assemble_chunk(numbered, options, portfolio_size)
        return _finalize(trades, detections, options, **_normalization_counts(normalization))


async def run_pipeline_async(
    transactions: Sequence[RawTransaction],
    options: PipelineOptions,
    *,
    portfolio_size: Optional[PortfolioSizeLookup] = None,
    normalization: Optional[NormalizationResult] = None,
) -> PipelineResult:
    """Chunked equivalent of :func:`run_pipeline` that never blocks the loop.

    Symbols are cycled and trades assembled ``options.chunk_size`` at a
    time on a worker thread. Chunk boundaries do not change the result.
    """

    grouped = group_by_symbol(transactions)
    symbols = list(grouped)
    if len(transactions) > LARGE_BATCH_THRESHOLD:
        logger.info("Large batch of %s fills across %s symbols", len(transactions), len(symbols))

    detections: Dict[str, CycleDetection] = {}
    for chunk in _chunks(symbols, options.chunk_size):
        detections.update(await asyncio.to_thread(_detect_chunk, grouped, chunk))
        await asyncio.sleep(0)

    numbered = list(enumerate(_ordered_cycles(detections), start=1))
    trades: List[Trade] = []
    for chunk in _chunks(numbered, options.chunk_size):
        trades.extend(await asyncio.to_thread(_assemble_chunk, chunk, options, portfolio_size))
        await asyncio.sleep(0)

    counts = _normalization_counts(normalization)
    return await asyncio.to_thread(_finalize, trades, detections, options, **counts)


def _normalization_counts(normalization: Optional[NormalizationResult]) -> Dict[str, Any]:
    if normalization is None:
        return {}
    return {
        "rejected_rows": normalization.rejected_rows,
        "ambiguous_dates": normalization.ambiguous_dates,
        "broker": normalization.format,
    }


def run_import(
    headers: Sequence[object],
    rows: Sequence[Sequence[Any]],
    options: PipelineOptions,
    *,
    broker: BrokerFormat | str | None = None,
    column_mapping: Mapping[str, str] | None = None,
    normalization_options: NormalizationOptions | None = None,
    portfolio_size: Optional[PortfolioSizeLookup] = None,
) -> PipelineResult:
    """Normalize a raw tradebook and run the full pipeline over it."""

    normalized = normalize(
        headers,
        rows,
        broker=broker,
        column_mapping=column_mapping,
        options=normalization_options,
    )
    return run_pipeline(
        normalized.transactions,
        options,
        portfolio_size=portfolio_size,
        normalization=normalized,
    )


ResultCallback = Callable[[int, PipelineResult], None]


class PipelineRunner:
    """Run pipelines in the background, honouring only the newest submission.

    Each :meth:`submit` bumps the generation. Results of older generations
    are dropped: they never reach ``on_result`` and :meth:`result` raises
    :class:`StaleResultError` for them. Only in-flight runs and the newest
    run are kept referenced.
    """

    def __init__(self, on_result: Optional[ResultCallback] = None):
        self._generation = 0
        self._pending: Dict[int, asyncio.Task[PipelineResult]] = {}
        self._latest: Optional[asyncio.Task[PipelineResult]] = None
        self._on_result = on_result

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending_runs(self) -> int:
        return len(self._pending)

    def submit(
        self,
        transactions: Sequence[RawTransaction],
        options: PipelineOptions,
        *,
        portfolio_size: Optional[PortfolioSizeLookup] = None,
        normalization: Optional[NormalizationResult] = None,
    ) -> int:
        self._generation += 1
        token = self._generation
        task = asyncio.create_task(
            run_pipeline_async(
                transactions,
                options,
                portfolio_size=portfolio_size,
                normalization=normalization,
            )
        )
        task.add_done_callback(lambda done, token=token: self._deliver(token, done))
        self._pending[token] = task
        self._latest = task
        return token

    def _deliver(self, token: int, task: asyncio.Task[PipelineResult]) -> None:
        self._pending.pop(token, None)
        if task.cancelled():
            return
        error = task.exception()
        if token != self._generation:
            logger.debug("Discarding result of superseded run %s", token)
            return
        if error is not None:
            logger.error("Pipeline run %s failed: %s", token, error)
            return
        if self._on_result is not None:
            self._on_result(token, task.result())

    async def result(self, token: int) -> PipelineResult:
        """Await run ``token``; raise :class:`StaleResultError` once superseded."""

        if token != self._generation or self._latest is None:
            raise StaleResultError(f"Run {token} was superseded by run {self._generation}")
        result = await self._latest
        if token != self._generation:
            raise StaleResultError(f"Run {token} was superseded by run {self._generation}")
        return result

    async def latest(self) -> PipelineResult:
        return await self.result(self._generation)


__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "PipelineOptions",
    "PipelineResult",
    "PipelineRunner",
    "run_import",
    "run_pipeline",
    "run_pipeline_async",
]
