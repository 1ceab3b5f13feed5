"""OpenTelemetry helpers for metrics instrumentation."""

from opentelemetry import metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, PeriodicExportingMetricReader


_meter_provider_initialized = False


def init_metrics() -> None:
    """Initialize OpenTelemetry metrics with a console exporter."""
    global _meter_provider_initialized
    if _meter_provider_initialized:
        return
    reader = PeriodicExportingMetricReader(ConsoleMetricExporter())
    provider = MeterProvider(metric_readers=[reader])
    metrics.set_meter_provider(provider)
    _meter_provider_initialized = True


def _meter() -> metrics.Meter:
    return metrics.get_meter("query_guard")


def get_request_duration_histogram() -> metrics.Histogram:
    """Return a histogram for guarded request duration."""
    return _meter().create_histogram(
        name="query_guard.request.duration",
        unit="ms",
        description="Duration of guarded requests, retries included",
    )


def get_blocked_counter() -> metrics.Counter:
    """Return a counter of requests refused because their key was blocked."""
    return _meter().create_counter(
        name="query_guard.blocked",
        unit="1",
        description="Requests short-circuited by the failure guard",
    )


def get_failure_counter() -> metrics.Counter:
    """Return a counter of failed attempts reported to the guard."""
    return _meter().create_counter(
        name="query_guard.failures",
        unit="1",
        description="Failed attempts recorded against query keys",
    )
