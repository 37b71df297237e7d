"""Route registration helpers."""

from __future__ import annotations

from fastapi import APIRouter

from .journal import router as journal_router

api_router = APIRouter()
api_router.include_router(journal_router, prefix="/journal", tags=["journal"])

__all__ = ["api_router"]
