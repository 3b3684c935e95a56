"""OpenTelemetry tracing configuration for Object Client."""

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SpanExporter

from object_client.infrastructure.config import Config, get_config

_provider: TracerProvider | None = None


def _build_exporter(config: Config) -> SpanExporter:
    if config.observability.otlp_endpoint:
        return OTLPSpanExporter(
            endpoint=config.observability.otlp_endpoint,
            insecure=True,
        )
    return ConsoleSpanExporter()


def setup_tracing(config: Config | None = None) -> trace.Tracer:
    """Configure OpenTelemetry tracing for the object client.

    The global tracer provider can only be set once per process, so
    repeated calls reuse the first provider.
    """
    global _provider
    config = config or get_config()

    if _provider is None:
        resource = Resource.create(
            {
                "service.name": "object_client",
                "service.version": "0.1.0",
                "deployment.environment": config.observability.environment,
                "object_client.node": config.node.endpoint,
            }
        )
        _provider = TracerProvider(resource=resource)
        _provider.add_span_processor(BatchSpanProcessor(_build_exporter(config)))
        trace.set_tracer_provider(_provider)

    return trace.get_tracer("object_client")


def shutdown_tracing() -> None:
    """Flush pending spans before the process exits."""
    if _provider is not None:
        _provider.shutdown()


def get_tracer(name: str = "object_client") -> trace.Tracer:
    """Get a tracer instance."""
    return trace.get_tracer(name)
