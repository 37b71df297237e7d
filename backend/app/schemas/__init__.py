"""Pydantic schema exports."""

from .journal import (
    AnalyticsRequest,
    AnalyticsSchema,
    CashBasisExitSchema,
    ChargesRequest,
    ChargesResponse,
    DetectRequest,
    DetectResponse,
    DrawdownPointSchema,
    ImportRequest,
    LotSchema,
    MonthlyPLSchema,
    PortfolioContext,
    ReconciliationResponse,
    TradeInputSchema,
    TradeSchema,
    TransactionSchema,
)

__all__ = [
    "AnalyticsRequest",
    "AnalyticsSchema",
    "CashBasisExitSchema",
    "ChargesRequest",
    "ChargesResponse",
    "DetectRequest",
    "DetectResponse",
    "DrawdownPointSchema",
    "ImportRequest",
    "LotSchema",
    "MonthlyPLSchema",
    "PortfolioContext",
    "ReconciliationResponse",
    "TradeInputSchema",
    "TradeSchema",
    "TransactionSchema",
]
