"""Configuration du tracing OpenTelemetry pour l'observabilité.

Les étapes de l'orchestrateur ouvrent des spans; ce module branche l'exporteur OTLP lorsque
`OTLP_ENDPOINT` est configuré, sinon le tracer reste le no-op par défaut.
"""

from __future__ import annotations

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from natalstore.core.settings import Settings


def setup_tracing(settings: Settings) -> bool:
    """Configure le provider de tracing; retourne False si aucun endpoint n'est défini."""
    if not settings.OTLP_ENDPOINT:
        return False

    provider = TracerProvider(resource=Resource.create({"service.name": settings.APP_NAME}))
    processor = BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.OTLP_ENDPOINT, insecure=True))
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    return True
