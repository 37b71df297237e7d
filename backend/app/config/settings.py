"""Application configuration and environment helpers."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings

from journal_engine.parsing import DateFormat
from journal_engine.portfolio import DEFAULT_PORTFOLIO_SIZE

DEFAULT_TIMEZONE = "Asia/Kolkata"


class AppSettings(BaseSettings):
    """Configuration options for the trade journal engine service."""

    app_name: str = Field(default="Trade Journal Engine")
    timezone: str = Field(default=DEFAULT_TIMEZONE)
    log_level: str = Field(default="INFO")

    default_portfolio_size: float = Field(
        default=DEFAULT_PORTFOLIO_SIZE,
        gt=0,
        description="Capital used when no monthly portfolio size is supplied.",
    )
    accounting_method: Literal["cash", "accrual"] = Field(default="accrual")
    date_format: DateFormat = Field(
        default=DateFormat.AUTO,
        description="Default date layout hint for tradebook imports.",
    )
    chunk_size: int = Field(
        default=100,
        gt=0,
        description="Symbols or trades handled per background chunk.",
    )
    max_upload_rows: int = Field(default=50_000, gt=0)
    cors_origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ],
        description="Journal frontends allowed to call the API.",
    )

    telemetry_enabled: bool = Field(default=False)
    telemetry_service_name: str = Field(default="trade-journal-engine")
    telemetry_otlp_endpoint: str | None = Field(default=None)
    telemetry_otlp_insecure: bool = Field(default=True)
    telemetry_sample_ratio: float = Field(default=1.0, ge=0.0, le=1.0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    def dict_for_logging(self) -> dict[str, Any]:
        """Return a sanitized dict for logging purposes."""

        hidden = {"telemetry_otlp_endpoint"}
        return {k: ("***" if k in hidden and v else v) for k, v in self.model_dump().items()}


@lru_cache(maxsize=1)
def get_settings(**overrides: Any) -> AppSettings:
    """Return cached application settings with optional overrides."""

    if overrides:
        return AppSettings(**overrides)
    return AppSettings()


__all__ = [
    "AppSettings",
    "DEFAULT_TIMEZONE",
    "get_settings",
]
