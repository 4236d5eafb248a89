"""
Monitoring Infrastructure: Structured Logging and Prometheus Metrics

Configures structlog for JSON log output in the API process and provides the
MetricsCollector used by the orchestrator, provider gateway and discovery
tasks.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


def configure_structlog(log_level: str = "INFO", log_format: str = "json") -> None:
    """
    Configure structlog for production logging.

    Sets up processors for:
    - Timestamping (ISO 8601)
    - Log level formatting
    - Exception formatting with stack traces
    - JSON or console rendering
    """
    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structlog logger instance bound with a name context.

    Args:
        name: Logger name (typically module __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class MetricsCollector:
    """
    Prometheus metrics collector for generation observability.

    Each instance owns its CollectorRegistry, so several collectors (one per
    test, one per app) can coexist in a process.

    Tracks:
    - Generation duration, outcomes and attempts
    - Provider call outcomes and latency
    - Circuit breaker openings
    - Discovery yield, link injection and healing strategy usage
    - Cache performance
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()

        # Generation metrics
        self.generation_duration_seconds = Histogram(
            "generation_duration_seconds",
            "End-to-end article generation time",
            buckets=[1, 5, 10, 30, 60, 120, 300, 600],
            labelnames=["provider"],
            registry=self.registry,
        )

        self.generation_success_total = Counter(
            "generation_success_total",
            "Total successful generations",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.generation_failure_total = Counter(
            "generation_failure_total",
            "Total failed generations",
            labelnames=["provider", "category"],
            registry=self.registry,
        )

        self.generation_attempts = Histogram(
            "generation_attempts",
            "Attempts consumed per generation",
            buckets=[1, 2, 3, 4, 5, 10],
            labelnames=["provider"],
            registry=self.registry,
        )

        # Provider metrics
        self.provider_requests_total = Counter(
            "provider_requests_total",
            "Total provider requests",
            labelnames=["provider", "status"],
            registry=self.registry,
        )

        self.provider_latency_seconds = Histogram(
            "provider_latency_seconds",
            "Provider request latency",
            buckets=[0.5, 1.0, 5.0, 15.0, 30.0, 60.0, 120.0, 180.0],
            labelnames=["provider"],
            registry=self.registry,
        )

        self.circuit_open_total = Counter(
            "circuit_open_total",
            "Times a provider circuit opened",
            labelnames=["provider"],
            registry=self.registry,
        )

        self.circuit_rejections_total = Counter(
            "circuit_rejections_total",
            "Calls rejected because the circuit was open",
            labelnames=["provider"],
            registry=self.registry,
        )

        # Pipeline metrics
        self.discovery_results = Histogram(
            "discovery_results",
            "Items returned by a discovery task",
            buckets=[0, 1, 3, 5, 10, 20],
            labelnames=["kind"],
            registry=self.registry,
        )

        self.links_injected = Histogram(
            "links_injected",
            "Internal links inserted per article",
            buckets=[0, 1, 3, 5, 10, 15, 20],
            registry=self.registry,
        )

        self.heal_strategy_total = Counter(
            "heal_strategy_total",
            "Successful response healing by strategy",
            labelnames=["strategy"],
            registry=self.registry,
        )

        # Cache metrics
        self.cache_hits_total = Counter(
            "cache_hits_total", "Total cache hits", labelnames=["cache_type"], registry=self.registry
        )

        self.cache_misses_total = Counter(
            "cache_misses_total",
            "Total cache misses",
            labelnames=["cache_type"],
            registry=self.registry,
        )

        self.active_generations = Gauge(
            "active_generations", "Generations currently running", registry=self.registry
        )

        log = get_logger(__name__)
        log.debug("metrics_collector_initialized", metrics_type="prometheus")

    def record_generation(
        self,
        provider: str,
        duration_seconds: float,
        attempts: int,
        success: bool,
        category: Optional[str] = None,
    ) -> None:
        """
        Record generation completion metrics.

        Args:
            provider: Provider name
            duration_seconds: Wall time of the generation
            attempts: Attempts consumed
            success: Whether generation succeeded
            category: Error category if failed
        """
        self.generation_duration_seconds.labels(provider=provider).observe(duration_seconds)
        self.generation_attempts.labels(provider=provider).observe(attempts)

        if success:
            self.generation_success_total.labels(provider=provider).inc()
        else:
            self.generation_failure_total.labels(
                provider=provider, category=category or "unknown"
            ).inc()

    def record_provider_call(self, provider: str, status: str, latency_seconds: float) -> None:
        """Record a provider call ("success", "http_<code>", "timeout", ...)."""
        self.provider_requests_total.labels(provider=provider, status=status).inc()
        self.provider_latency_seconds.labels(provider=provider).observe(latency_seconds)

    def record_circuit_open(self, provider: str) -> None:
        self.circuit_open_total.labels(provider=provider).inc()

    def record_circuit_rejection(self, provider: str) -> None:
        self.circuit_rejections_total.labels(provider=provider).inc()

    def record_discovery(self, kind: str, count: int) -> None:
        self.discovery_results.labels(kind=kind).observe(count)

    def record_links_injected(self, count: int) -> None:
        self.links_injected.observe(count)

    def record_heal_strategy(self, strategy: str) -> None:
        self.heal_strategy_total.labels(strategy=strategy).inc()

    def record_cache_hit(self, cache_type: str) -> None:
        """Record cache hit."""
        self.cache_hits_total.labels(cache_type=cache_type).inc()

    def record_cache_miss(self, cache_type: str) -> None:
        """Record cache miss."""
        self.cache_misses_total.labels(cache_type=cache_type).inc()

    def export_metrics(self) -> bytes:
        """
        Export metrics in Prometheus format.

        Returns:
            Prometheus exposition payload
        """
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read a single sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Summary of metric families for health checks."""
        families = [metric.name for metric in self.registry.collect()]
        return {"metrics_initialized": True, "total_metrics": len(families)}
