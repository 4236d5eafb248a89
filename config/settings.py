"""
Configuration Management System
================================
Environment-driven configuration for the article generation pipeline with
type-safe validation and per-component overrides through Pydantic.

Architecture: Strategy Pattern + Singleton + Functional Composition
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Default provider credentials used when a request carries none."""

    provider: str = Field(default="openai", alias="LLM_PROVIDER")
    google_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_GOOGLE_API_KEY")
    openrouter_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_OPENROUTER_API_KEY")
    openai_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_OPENAI_API_KEY")
    anthropic_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_ANTHROPIC_API_KEY")
    groq_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_GROQ_API_KEY")
    serper_api_key: Optional[SecretStr] = Field(default=None, alias="LLM_SERPER_API_KEY")
    openrouter_model: Optional[str] = Field(default=None, alias="LLM_OPENROUTER_MODEL")
    groq_model: Optional[str] = Field(default=None, alias="LLM_GROQ_MODEL")
    openrouter_referer: str = Field(
        default="https://localhost", alias="LLM_OPENROUTER_REFERER"
    )
    openrouter_title: str = Field(default="Article Generator", alias="LLM_OPENROUTER_TITLE")

    model_config = SettingsConfigDict(case_sensitive=False, extra="ignore")


class GenerationSettings(BaseSettings):
    """Retry policy, sampling schedule and acceptance gates for a generation."""

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=2.0, ge=0.0, le=60.0)
    min_word_count: int = Field(default=2000, ge=0)
    min_draft_words: int = Field(default=1500, ge=0)
    target_word_count: int = Field(default=4000, ge=500, le=20000)
    draft_timeout: float = Field(default=180.0, ge=1.0, le=900.0)
    max_output_tokens: int = Field(default=16000, ge=256, le=128000)
    base_temperature: float = Field(default=0.78, ge=0.0, le=2.0)
    temperature_step: float = Field(default=0.04, ge=0.0, le=0.5)

    model_config = SettingsConfigDict(
        env_prefix="GENERATION_", case_sensitive=False, extra="ignore"
    )

    @model_validator(mode="after")
    def validate_gates(self) -> "GenerationSettings":
        if self.min_draft_words > self.target_word_count:
            raise ValueError("min_draft_words cannot exceed target_word_count")
        return self

    def temperature_for_attempt(self, attempt: int) -> float:
        """Sampling temperature for a 1-based attempt number."""
        return round(self.base_temperature + (attempt - 1) * self.temperature_step, 4)


class CircuitBreakerSettings(BaseSettings):
    """Per-provider circuit breaker thresholds."""

    failure_threshold: int = Field(default=3, ge=1, le=50)
    recovery_timeout: float = Field(default=60.0, ge=0.0, le=3600.0)

    model_config = SettingsConfigDict(env_prefix="CIRCUIT_", case_sensitive=False, extra="ignore")


class LinkInjectionSettings(BaseSettings):
    """Bounds for contextual internal linking."""

    max_total: int = Field(default=15, ge=0, le=100)
    max_per_section: int = Field(default=2, ge=0, le=20)
    min_words_between: int = Field(default=120, ge=0)
    min_paragraph_chars: int = Field(default=60, ge=0)
    candidate_pool: int = Field(default=30, ge=1, le=500)
    targets_per_paragraph: int = Field(default=5, ge=1, le=50)
    min_anchor_words: int = Field(default=2, ge=1)
    max_anchor_words: int = Field(default=7, ge=1)
    min_anchor_chars: int = Field(default=8, ge=1)
    max_anchor_chars: int = Field(default=60, ge=1)

    model_config = SettingsConfigDict(env_prefix="LINKS_", case_sensitive=False, extra="ignore")

    @model_validator(mode="after")
    def validate_anchor_bounds(self) -> "LinkInjectionSettings":
        if self.min_anchor_words > self.max_anchor_words:
            raise ValueError("min_anchor_words cannot exceed max_anchor_words")
        if self.min_anchor_chars > self.max_anchor_chars:
            raise ValueError("min_anchor_chars cannot exceed max_anchor_chars")
        return self


class DiscoverySettings(BaseSettings):
    """Search API access for reference and video discovery."""

    search_base_url: str = Field(default="https://google.serper.dev")
    reference_target_count: int = Field(default=10, ge=1, le=50)
    min_authority_score: int = Field(default=60, ge=0, le=100)
    min_video_views: int = Field(default=5000, ge=0)
    results_per_query: int = Field(default=10, ge=1, le=100)
    query_delay: float = Field(default=0.3, ge=0.0, le=10.0)
    reference_timeout: float = Field(default=30.0, ge=1.0, le=300.0)
    video_timeout: float = Field(default=20.0, ge=1.0, le=300.0)
    search_max_attempts: int = Field(default=2, ge=1, le=10)
    cache_ttl: int = Field(default=300, ge=0)
    cache_max_entries: int = Field(default=100, ge=1)
    min_validated_references: int = Field(default=5, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="DISCOVERY_", case_sensitive=False, extra="ignore"
    )


class MonitoringSettings(BaseSettings):
    """Observability and monitoring configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")
    enable_prometheus: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_prefix="MONITORING_", case_sensitive=False, extra="ignore"
    )


class Settings(BaseSettings):
    """
    Master configuration orchestrator.

    Composes the component settings; each component reads its own
    environment prefix.
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    debug: bool = Field(default=False, alias="DEBUG")

    app_name: str = Field(default="Article Generation Orchestrator")
    app_version: str = Field(default="1.0.0")

    llm: LLMSettings = Field(default_factory=LLMSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    circuit_breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    links: LinkInjectionSettings = Field(default_factory=LinkInjectionSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    cors_origins: list[str] = Field(default=["http://localhost:3000"])

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Singleton factory for global settings access.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


settings = get_settings()

__all__ = [
    "Settings",
    "LLMSettings",
    "GenerationSettings",
    "CircuitBreakerSettings",
    "LinkInjectionSettings",
    "DiscoverySettings",
    "MonitoringSettings",
    "get_settings",
    "settings",
]
