"""OpenTelemetry tracing for the journal service.

Request spans come from the FastAPI instrumentation; the reconciliation
pipeline opens its own ``journal.run_pipeline`` span on the global tracer, so
both land in the same trace once a provider is installed here.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter
from opentelemetry.sdk.trace.sampling import ParentBased, TraceIdRatioBased
from opentelemetry.semconv.resource import ResourceAttributes

from app.config import AppSettings

logger = logging.getLogger(__name__)

SERVICE_NAMESPACE = "trade-journal"
UNTRACED_URLS = "health"

_tracer_provider: TracerProvider | None = None


def _span_exporter(settings: AppSettings) -> SpanExporter:
    # Without a collector endpoint spans are printed, which is enough for local runs.
    if not settings.telemetry_otlp_endpoint:
        return ConsoleSpanExporter()
    return OTLPSpanExporter(
        endpoint=settings.telemetry_otlp_endpoint,
        insecure=settings.telemetry_otlp_insecure,
    )


def build_tracer_provider(settings: AppSettings, version: str = "0.1.0") -> TracerProvider:
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: settings.telemetry_service_name or settings.app_name,
            ResourceAttributes.SERVICE_NAMESPACE: SERVICE_NAMESPACE,
            ResourceAttributes.SERVICE_VERSION: version,
        }
    )
    provider = TracerProvider(
        resource=resource,
        sampler=ParentBased(TraceIdRatioBased(settings.telemetry_sample_ratio)),
    )
    provider.add_span_processor(BatchSpanProcessor(_span_exporter(settings)))
    return provider


def setup_telemetry(app: FastAPI, settings: AppSettings) -> bool:
    """Install tracing and instrument ``app`` when telemetry is enabled.

    Returns ``True`` when instrumentation is active. Repeated calls reuse the
    provider installed by the first one.
    """

    global _tracer_provider  # noqa: PLW0603 - process-wide provider

    if not settings.telemetry_enabled:
        logger.info("Telemetry disabled via configuration")
        return False

    if _tracer_provider is None:
        _tracer_provider = build_tracer_provider(settings, app.version)
        trace.set_tracer_provider(_tracer_provider)
        logger.info(
            "Tracing %s to %s",
            settings.telemetry_service_name,
            settings.telemetry_otlp_endpoint or "console",
        )

    FastAPIInstrumentor.instrument_app(app, tracer_provider=_tracer_provider, excluded_urls=UNTRACED_URLS)
    return True


__all__ = ["build_tracer_provider", "setup_telemetry"]
