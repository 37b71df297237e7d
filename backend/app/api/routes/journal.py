"""Tradebook reconciliation and journal analytics endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from app.config import get_settings
from app.schemas import (
    AnalyticsRequest,
    ChargesRequest,
    ChargesResponse,
    DetectRequest,
    DetectResponse,
    ImportRequest,
    ReconciliationResponse,
)
from app.services import journal as journal_service
from journal_engine.errors import JournalEngineError, UnrecognizedFormatError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/detect", response_model=DetectResponse)
async def detect_tradebook(payload: DetectRequest) -> DetectResponse:
    return journal_service.detect(payload.headers)


@router.post("/import", response_model=ReconciliationResponse)
async def import_tradebook(payload: ImportRequest) -> ReconciliationResponse:
    settings = get_settings()
    if len(payload.rows) > settings.max_upload_rows:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Tradebook exceeds {settings.max_upload_rows} rows",
        )
    try:
        return await journal_service.import_tradebook(payload, settings)
    except UnrecognizedFormatError as exc:
        logger.info("Rejected unrecognized tradebook upload: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": str(exc), "scores": exc.scores},
        ) from exc
    except JournalEngineError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/analytics", response_model=ReconciliationResponse)
async def journal_analytics(payload: AnalyticsRequest) -> ReconciliationResponse:
    settings = get_settings()
    try:
        return journal_service.analyze_trades(payload, settings)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc


@router.post("/charges", response_model=ChargesResponse)
async def zerodha_charges(payload: ChargesRequest) -> ChargesResponse:
    response = journal_service.parse_charges(payload.statement, payload.year)
    if response is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="No 'Account Head,Amount' section found in statement",
        )
    return response
