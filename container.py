"""
Dependency Injection Container: Centralized Object Lifecycle Management

Wires the generation pipeline with dependency-injector: settings feed the
infrastructure layer (metrics, cache, circuit breakers, provider gateway,
search client), which feeds the execution layer (discovery, assembly,
linking) and finally the orchestrator.

Architecture: Container Pattern + Dependency Injection + Singleton Registry
"""

from typing import Optional

from dependency_injector import containers, providers
from loguru import logger

from config.settings import Settings, get_settings
from execution.document_assembler import DocumentAssembler
from execution.link_injector import LinkInjector
from execution.reference_discovery import ReferenceDiscovery
from execution.video_discovery import VideoDiscovery
from infrastructure.llm_client import CircuitBreakerRegistry, ProviderGateway
from infrastructure.monitoring import MetricsCollector
from infrastructure.search_client import SerperSearchClient
from optimization.cache_manager import ResponseCache
from orchestration.content_agent import ContentOrchestrator


class Container(containers.DeclarativeContainer):
    """
    Application dependency container.

    Dependency Graph (DAG):
    Settings -> Infrastructure -> Execution -> Orchestration
    """

    # Configuration
    config: providers.Singleton[Settings] = providers.Singleton(get_settings)

    # Infrastructure layer
    metrics: providers.Singleton[MetricsCollector] = providers.Singleton(MetricsCollector)

    response_cache: providers.Singleton[ResponseCache] = providers.Singleton(
        ResponseCache,
        max_entries=config.provided.discovery.cache_max_entries,
        default_ttl=config.provided.discovery.cache_ttl,
        metrics_collector=metrics,
    )

    breakers: providers.Singleton[CircuitBreakerRegistry] = providers.Singleton(
        CircuitBreakerRegistry,
        failure_threshold=config.provided.circuit_breaker.failure_threshold,
        recovery_timeout=config.provided.circuit_breaker.recovery_timeout,
    )

    gateway: providers.Singleton[ProviderGateway] = providers.Singleton(
        ProviderGateway,
        breakers=breakers,
        metrics_collector=metrics,
        openrouter_referer=config.provided.llm.openrouter_referer,
        openrouter_title=config.provided.llm.openrouter_title,
    )

    search_client: providers.Singleton[SerperSearchClient] = providers.Singleton(
        SerperSearchClient,
        base_url=config.provided.discovery.search_base_url,
        cache=response_cache,
        max_attempts=config.provided.discovery.search_max_attempts,
        results_per_query=config.provided.discovery.results_per_query,
    )

    # Execution layer
    reference_discovery: providers.Singleton[ReferenceDiscovery] = providers.Singleton(
        ReferenceDiscovery,
        search_client=search_client,
        query_delay=config.provided.discovery.query_delay,
        timeout=config.provided.discovery.reference_timeout,
        metrics_collector=metrics,
    )

    video_discovery: providers.Singleton[VideoDiscovery] = providers.Singleton(
        VideoDiscovery,
        search_client=search_client,
        min_views=config.provided.discovery.min_video_views,
        query_delay=config.provided.discovery.query_delay,
        timeout=config.provided.discovery.video_timeout,
        metrics_collector=metrics,
    )

    link_injector: providers.Singleton[LinkInjector] = providers.Singleton(
        LinkInjector,
        limits=config.provided.links,
        metrics_collector=metrics,
    )

    assembler: providers.Singleton[DocumentAssembler] = providers.Singleton(DocumentAssembler)

    # Orchestration layer
    orchestrator: providers.Singleton[ContentOrchestrator] = providers.Singleton(
        ContentOrchestrator,
        gateway=gateway,
        reference_discovery=reference_discovery,
        video_discovery=video_discovery,
        link_injector=link_injector,
        assembler=assembler,
        generation=config.provided.generation,
        discovery=config.provided.discovery,
        metrics_collector=metrics,
    )


container = Container()


class ContainerManager:
    """
    Container lifecycle manager.

    Closes network clients held by singletons on shutdown.
    """

    def __init__(self, target: Optional[Container] = None) -> None:
        self._container = target or container

    async def cleanup(self) -> None:
        """
        Close provider and search clients.

        Idempotent; errors are logged so one failing client does not keep the
        others open.
        """
        for name in ("gateway", "search_client"):
            provider = getattr(self._container, name)
            try:
                await provider().aclose()
                logger.debug(f"Closed {name}")
            except Exception as e:
                logger.error(f"{name} cleanup failed: {e}")

        cache = self._container.response_cache()
        stats = cache.get_statistics()
        logger.info(
            f"Response cache final stats | hit_rate={stats['hit_rate']:.1f}% "
            f"size={stats['size']} evictions={stats['evictions']} expirations={stats['expirations']}"
        )
        cache.clear()

        self._container.reset_singletons()
        logger.info("✓ Container cleanup completed")


container_manager = ContainerManager()


def get_orchestrator() -> ContentOrchestrator:
    """Get the shared orchestrator instance."""
    return container.orchestrator()


def get_metrics() -> MetricsCollector:
    """Get the shared metrics collector."""
    return container.metrics()


__all__ = [
    "Container",
    "ContainerManager",
    "container",
    "container_manager",
    "get_orchestrator",
    "get_metrics",
]
