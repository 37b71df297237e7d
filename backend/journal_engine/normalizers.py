"""Broker tradebook normalizers.

Each supported broker export (Zerodha, Dhan, Upstox) plus a caller-mapped
generic CSV is turned into a flat list of :class:`RawTransaction` values.
Detection is a pure scoring function over the header row; rows that cannot
describe an executed fill are dropped and counted, never raised.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import ColumnMappingError, UnrecognizedFormatError
from .models import RawTransaction, Side
from .parsing import DateFormat, is_ambiguous_date, parse_date, parse_number, parse_time

logger = logging.getLogger(__name__)

UPSTOX_HEADER_SCAN_ROWS = 15


class BrokerFormat(str, Enum):
    ZERODHA = "zerodha"
    DHAN = "dhan"
    UPSTOX = "upstox"
    GENERIC = "generic"


@dataclass(frozen=True)
class _Signature:
    unique: tuple[str, ...]
    required: tuple[str, ...]
    min_unique: int
    min_required: int


SIGNATURES: Dict[BrokerFormat, _Signature] = {
    BrokerFormat.ZERODHA: _Signature(
        unique=("trade_type", "trade_id", "order_id", "isin", "series"),
        required=("symbol", "trade_date", "quantity", "price"),
        min_unique=2,
        min_required=3,
    ),
    BrokerFormat.DHAN: _Signature(
        unique=("buy/sell", "quantity/lot", "trade price", "trade value", "status"),
        required=("date", "time", "name", "exchange"),
        min_unique=3,
        min_required=3,
    ),
    BrokerFormat.UPSTOX: _Signature(
        unique=("company", "side", "trade time", "scrip code", "trade num"),
        required=("date", "quantity", "price", "exchange"),
        min_unique=2,
        min_required=3,
    ),
}

# Canonical generic field -> header spellings seen in hand-maintained journals.
COLUMN_ALIASES: Dict[str, List[str]] = {
    "symbol": ["symbol", "stock", "scrip", "name", "ticker", "company", "instrument"],
    "date": ["date", "trade_date", "tradedate", "trade date", "txn_date", "entry date"],
    "time": ["time", "trade time", "execution time", "order_execution_time"],
    "side": ["side", "buy/sell", "buysell", "action", "type", "trade_type", "transaction type"],
    "quantity": ["quantity", "qty", "shares", "quantity/lot", "units"],
    "price": ["price", "trade price", "rate", "unitprice", "avg price", "entry"],
    "trade_id": ["trade_id", "trade id", "trade num", "tradeid"],
    "order_id": ["order_id", "order id", "orderid"],
    "exchange": ["exchange", "exch"],
}
REQUIRED_GENERIC_FIELDS = ("symbol", "date", "side", "quantity", "price")

_CURRENCY_SUFFIX = re.compile(r"\s*[\(\[][^\)\]]*[\)\]]\s*$")


@dataclass(frozen=True)
class FormatDetection:
    """Result of classifying a header row."""

    format: BrokerFormat
    confidence: float
    scores: Dict[str, tuple[int, int]] = field(default_factory=dict)

    @property
    def recognized(self) -> bool:
        return self.format is not BrokerFormat.GENERIC


@dataclass(frozen=True)
class NormalizationOptions:
    date_format: DateFormat = DateFormat.AUTO
    default_year: Optional[int] = None


@dataclass(frozen=True)
class NormalizationResult:
    format: BrokerFormat
    transactions: tuple[RawTransaction, ...]
    total_rows: int
    rejected_rows: int
    ambiguous_dates: int = 0


def _clean_header(header: object) -> str:
    return str(header if header is not None else "").strip().lower()


def _token_variants(token: str) -> set[str]:
    return {token, token.replace("_", " "), token.replace("_", "")}


def _count_matches(tokens: Sequence[str], headers: Sequence[str]) -> int:
    count = 0
    for token in tokens:
        variants = _token_variants(token)
        if any(variant in header for header in headers for variant in variants):
            count += 1
    return count


def detect_format(headers: Sequence[object]) -> FormatDetection:
    """Classify a header row as one of the broker formats or ``GENERIC``."""

    cleaned = [_clean_header(h) for h in headers if _clean_header(h)]
    scores: Dict[str, tuple[int, int]] = {}
    best: tuple[float, BrokerFormat] | None = None
    for broker, signature in SIGNATURES.items():
        unique = _count_matches(signature.unique, cleaned)
        required = _count_matches(signature.required, cleaned)
        scores[broker.value] = (unique, required)
        if unique < signature.min_unique or required < signature.min_required:
            continue
        confidence = (unique / len(signature.unique) + required / len(signature.required)) / 2
        if best is None or confidence > best[0]:
            best = (confidence, broker)

    if best is None:
        return FormatDetection(format=BrokerFormat.GENERIC, confidence=0.0, scores=scores)
    return FormatDetection(format=best[1], confidence=best[0], scores=scores)


def locate_header_row(rows: Sequence[Sequence[object]], *, scan_rows: int = UPSTOX_HEADER_SCAN_ROWS) -> Optional[int]:
    """Find the Upstox header row below the account preamble, if any."""

    for index, row in enumerate(rows[:scan_rows]):
        joined = "|".join(_clean_header(cell) for cell in row)
        if all(token in joined for token in ("date", "company", "side", "quantity")):
            return index
    return None


def suggest_column_mapping(headers: Sequence[object]) -> Dict[str, str]:
    """Propose a canonical-field to header mapping for a generic CSV."""

    cleaned = {_clean_header(h): str(h) for h in headers if _clean_header(h)}
    stripped = {_CURRENCY_SUFFIX.sub("", key): original for key, original in cleaned.items()}
    mapping: Dict[str, str] = {}
    used: set[str] = set()
    for canonical, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            original = cleaned.get(alias) or stripped.get(alias)
            if original is not None and original not in used:
                mapping[canonical] = original
                used.add(original)
                break
    return mapping


class _Columns:
    """Case-insensitive header lookup tolerant of ``Price (Rs.)`` style suffixes."""

    def __init__(self, headers: Sequence[object]):
        self._index: Dict[str, int] = {}
        for position, header in enumerate(headers):
            name = _clean_header(header)
            if not name:
                continue
            # First occurrence wins for duplicated headers.
            self._index.setdefault(name, position)
            self._index.setdefault(_CURRENCY_SUFFIX.sub("", name), position)

    def find(self, *aliases: str) -> Optional[int]:
        for alias in aliases:
            position = self._index.get(alias.lower())
            if position is not None:
                return position
        return None


def _cell(row: Sequence[Any], position: Optional[int]) -> Any:
    if position is None or position >= len(row):
        return None
    return row[position]


def _text(row: Sequence[Any], position: Optional[int]) -> str:
    value = _cell(row, position)
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


class TradebookNormalizer:
    """Base class for one broker variant.

    Subclasses resolve their column positions once per batch in
    :meth:`_resolve` and turn one row into a transaction (or ``None``) in
    :meth:`_convert`.
    """

    format: BrokerFormat = BrokerFormat.GENERIC

    def __init__(self, options: NormalizationOptions | None = None):
        self.options = options or NormalizationOptions()

    def _resolve(self, columns: _Columns) -> Dict[str, Optional[int]]:
        raise NotImplementedError

    def _convert(self, row: Sequence[Any], cols: Dict[str, Optional[int]], row_number: int) -> Optional[RawTransaction]:
        raise NotImplementedError

    def _date(self, value: Any) -> Optional[date]:
        return parse_date(value, self.options.date_format, default_year=self.options.default_year)

    def _build(
        self,
        *,
        symbol: str,
        trade_date: Optional[date],
        side: Optional[Side],
        quantity: float,
        price: float,
        trade_time: Optional[time] = None,
        trade_id: Optional[str] = None,
        order_id: Optional[str] = None,
        exchange: Optional[str] = None,
    ) -> Optional[RawTransaction]:
        if not symbol or trade_date is None or side is None or quantity <= 0 or price <= 0:
            return None
        return RawTransaction(
            symbol=symbol.upper(),
            date=trade_date,
            side=side,
            quantity=quantity,
            price=price,
            time=trade_time,
            trade_id=trade_id or None,
            order_id=order_id or None,
            exchange=exchange or None,
            source=self.format.value,
        )

    def normalize(self, headers: Sequence[object], rows: Sequence[Sequence[Any]]) -> NormalizationResult:
        cols = self._resolve(_Columns(headers))
        transactions: List[RawTransaction] = []
        total = 0
        ambiguous = 0
        for row_number, row in enumerate(rows, start=1):
            if not row or all(cell is None or str(cell).strip() == "" for cell in row):
                continue
            total += 1
            tx = self._convert(row, cols, row_number)
            if tx is None:
                logger.debug("Dropping %s row %s: %r", self.format.value, row_number, list(row))
                continue
            if self.options.date_format is DateFormat.AUTO and is_ambiguous_date(_cell(row, cols.get("date"))):
                ambiguous += 1
            transactions.append(tx)

        rejected = total - len(transactions)
        if ambiguous:
            logger.warning(
                "%s import contains %s dates readable as both DD/MM and MM/DD; assumed DD/MM",
                self.format.value,
                ambiguous,
            )
        logger.info(
            "Normalized %s %s rows into %s transactions (%s rejected)",
            total,
            self.format.value,
            len(transactions),
            rejected,
        )
        return NormalizationResult(
            format=self.format,
            transactions=tuple(transactions),
            total_rows=total,
            rejected_rows=rejected,
            ambiguous_dates=ambiguous,
        )


class ZerodhaNormalizer(TradebookNormalizer):
    format = BrokerFormat.ZERODHA

    def _resolve(self, columns: _Columns) -> Dict[str, Optional[int]]:
        return {
            "symbol": columns.find("symbol", "tradingsymbol"),
            "date": columns.find("trade_date", "trade date"),
            "exchange": columns.find("exchange"),
            "side": columns.find("trade_type", "trade type"),
            "quantity": columns.find("quantity", "qty"),
            "price": columns.find("price"),
            "trade_id": columns.find("trade_id", "trade id"),
            "order_id": columns.find("order_id", "order id"),
            "time": columns.find("order_execution_time", "order execution time"),
        }

    def _convert(self, row, cols, row_number):
        return self._build(
            symbol=_text(row, cols["symbol"]),
            trade_date=self._date(_cell(row, cols["date"])),
            side=Side.parse(_text(row, cols["side"])),
            quantity=parse_number(_cell(row, cols["quantity"])),
            price=parse_number(_cell(row, cols["price"])),
            trade_time=parse_time(_cell(row, cols["time"])),
            trade_id=_text(row, cols["trade_id"]),
            order_id=_text(row, cols["order_id"]),
            exchange=_text(row, cols["exchange"]),
        )


class DhanNormalizer(TradebookNormalizer):
    format = BrokerFormat.DHAN

    def _resolve(self, columns: _Columns) -> Dict[str, Optional[int]]:
        return {
            "symbol": columns.find("name"),
            "date": columns.find("date"),
            "time": columns.find("time"),
            "side": columns.find("buy/sell", "buysell"),
            "quantity": columns.find("quantity/lot", "quantity"),
            "price": columns.find("trade price", "tradeprice", "price"),
            "value": columns.find("trade value", "tradevalue", "value"),
            "status": columns.find("status"),
            "exchange": columns.find("exchange"),
        }

    def _convert(self, row, cols, row_number):
        if _text(row, cols["status"]).lower() != "traded":
            return None
        quantity = parse_number(_cell(row, cols["quantity"]))
        price = parse_number(_cell(row, cols["price"]))
        if price <= 0 and quantity > 0:
            # Some exports leave Trade Price blank but keep the value column.
            price = parse_number(_cell(row, cols["value"])) / quantity
        return self._build(
            symbol=_text(row, cols["symbol"]),
            trade_date=self._date(_cell(row, cols["date"])),
            side=Side.parse(_text(row, cols["side"])),
            quantity=quantity,
            price=price,
            trade_time=parse_time(_cell(row, cols["time"])),
            trade_id=f"DHAN-{row_number}",
            exchange=_text(row, cols["exchange"]),
        )


class UpstoxNormalizer(TradebookNormalizer):
    format = BrokerFormat.UPSTOX

    def _resolve(self, columns: _Columns) -> Dict[str, Optional[int]]:
        return {
            "symbol": columns.find("company"),
            "date": columns.find("date"),
            "time": columns.find("trade time"),
            "side": columns.find("side"),
            "quantity": columns.find("quantity"),
            "price": columns.find("price"),
            "exchange": columns.find("exchange"),
            "trade_id": columns.find("trade num", "trade id"),
            "order_id": columns.find("order id", "order num"),
        }

    def _convert(self, row, cols, row_number):
        return self._build(
            symbol=_text(row, cols["symbol"]),
            trade_date=self._date(_cell(row, cols["date"])),
            side=Side.parse(_text(row, cols["side"])),
            quantity=parse_number(_cell(row, cols["quantity"])),
            price=parse_number(_cell(row, cols["price"])),
            trade_time=parse_time(_cell(row, cols["time"])),
            trade_id=_text(row, cols["trade_id"]) or f"UPSTOX-{row_number}",
            order_id=_text(row, cols["order_id"]),
            exchange=_text(row, cols["exchange"]),
        )

    def normalize(self, headers, rows):
        # Upstox sheets often arrive with the preamble still attached.
        if locate_header_row([headers]) is None:
            header_index = locate_header_row(rows)
            if header_index is not None:
                headers, rows = rows[header_index], rows[header_index + 1 :]
        return super().normalize(headers, rows)


class GenericNormalizer(TradebookNormalizer):
    """Free-form CSV normalized through a canonical-field -> header mapping."""

    format = BrokerFormat.GENERIC

    def __init__(self, column_mapping: Mapping[str, str], options: NormalizationOptions | None = None):
        super().__init__(options)
        missing = [name for name in REQUIRED_GENERIC_FIELDS if not column_mapping.get(name)]
        if missing:
            raise ColumnMappingError(missing)
        self.column_mapping = dict(column_mapping)

    def _resolve(self, columns: _Columns) -> Dict[str, Optional[int]]:
        resolved = {name: columns.find(header) for name, header in self.column_mapping.items()}
        missing = [name for name in REQUIRED_GENERIC_FIELDS if resolved.get(name) is None]
        if missing:
            raise ColumnMappingError(missing)
        return resolved

    def _convert(self, row, cols, row_number):
        return self._build(
            symbol=_text(row, cols.get("symbol")),
            trade_date=self._date(_cell(row, cols.get("date"))),
            side=Side.parse(_text(row, cols.get("side"))),
            quantity=abs(parse_number(_cell(row, cols.get("quantity")))),
            price=parse_number(_cell(row, cols.get("price"))),
            trade_time=parse_time(_cell(row, cols.get("time"))),
            trade_id=_text(row, cols.get("trade_id")) or f"ROW-{row_number}",
            order_id=_text(row, cols.get("order_id")),
            exchange=_text(row, cols.get("exchange")),
        )


NORMALIZERS: Dict[BrokerFormat, type[TradebookNormalizer]] = {
    BrokerFormat.ZERODHA: ZerodhaNormalizer,
    BrokerFormat.DHAN: DhanNormalizer,
    BrokerFormat.UPSTOX: UpstoxNormalizer,
}


def get_normalizer(
    broker: BrokerFormat | str,
    *,
    column_mapping: Mapping[str, str] | None = None,
    options: NormalizationOptions | None = None,
) -> TradebookNormalizer:
    broker = BrokerFormat(broker)
    if broker is BrokerFormat.GENERIC:
        if not column_mapping:
            raise ColumnMappingError(list(REQUIRED_GENERIC_FIELDS))
        return GenericNormalizer(column_mapping, options)
    return NORMALIZERS[broker](options)


def normalize(
    headers: Sequence[object],
    rows: Sequence[Sequence[Any]],
    *,
    broker: BrokerFormat | str | None = None,
    column_mapping: Mapping[str, str] | None = None,
    options: NormalizationOptions | None = None,
) -> NormalizationResult:
    """Normalize a tradebook, detecting the broker when not given.

    A ``column_mapping`` forces the generic path. Without one, an
    unrecognized header row raises :class:`UnrecognizedFormatError` so the
    caller can fall back to manual mapping.
    """

    if broker is None:
        if column_mapping:
            broker = BrokerFormat.GENERIC
        else:
            detection = detect_format(headers)
            if not detection.recognized:
                header_index = locate_header_row(rows)
                if header_index is not None:
                    detection = detect_format(rows[header_index])
            if not detection.recognized:
                raise UnrecognizedFormatError(detection.scores)
            broker = detection.format
            logger.info("Detected %s tradebook (confidence %.2f)", broker.value, detection.confidence)
    normalizer = get_normalizer(broker, column_mapping=column_mapping, options=options)
    return normalizer.normalize(headers, rows)


__all__ = [
    "BrokerFormat",
    "COLUMN_ALIASES",
    "DhanNormalizer",
    "FormatDetection",
    "GenericNormalizer",
    "NormalizationOptions",
    "NormalizationResult",
    "SIGNATURES",
    "TradebookNormalizer",
    "UpstoxNormalizer",
    "ZerodhaNormalizer",
    "detect_format",
    "get_normalizer",
    "locate_header_row",
    "normalize",
    "suggest_column_mapping",
]
