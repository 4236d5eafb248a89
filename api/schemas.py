"""
API Schemas: Request and Response Models

Pydantic models for the HTTP surface, kept apart from the domain models so the
wire format can evolve independently.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr

from config.settings import LLMSettings
from core.enums import ContentTone, ProviderName
from core.exceptions import InvalidRequestError
from core.models import (
    DiscoveredReference,
    DiscoveredVideo,
    FAQItem,
    GenerationRequest,
    GenerationResult,
    LinkPlacement,
    LinkTarget,
    ProviderCredentials,
    ValidatedReference,
)


class CredentialsPayload(BaseModel):
    """Per-request API keys; omitted keys fall back to server configuration."""

    google: Optional[SecretStr] = None
    openrouter: Optional[SecretStr] = None
    openai: Optional[SecretStr] = None
    anthropic: Optional[SecretStr] = None
    groq: Optional[SecretStr] = None
    serper: Optional[SecretStr] = None
    openrouter_model: Optional[str] = None
    groq_model: Optional[str] = None

    def merged_with(self, defaults: LLMSettings) -> ProviderCredentials:
        return ProviderCredentials(
            google=self.google or defaults.google_api_key,
            openrouter=self.openrouter or defaults.openrouter_api_key,
            openai=self.openai or defaults.openai_api_key,
            anthropic=self.anthropic or defaults.anthropic_api_key,
            groq=self.groq or defaults.groq_api_key,
            serper=self.serper or defaults.serper_api_key,
            openrouter_model=self.openrouter_model or defaults.openrouter_model,
            groq_model=self.groq_model or defaults.groq_model,
        )


class GenerateContentRequest(BaseModel):
    """Command: generate one article synchronously."""

    topic: str = Field(..., min_length=1, max_length=500, description="Article topic")
    provider: Optional[str] = Field(
        None, description="gemini|google|openrouter|openai|anthropic|groq; defaults to server setting"
    )
    model: Optional[str] = Field(None, description="Model override")
    credentials: CredentialsPayload = Field(default_factory=CredentialsPayload)
    target_word_count: Optional[int] = Field(None, ge=300, le=20000)
    tone: ContentTone = ContentTone.CONVERSATIONAL
    link_targets: List[LinkTarget] = Field(default_factory=list)
    validated_references: List[ValidatedReference] = Field(default_factory=list)
    current_url: Optional[str] = None

    def to_domain(self, defaults: LLMSettings) -> GenerationRequest:
        try:
            provider = ProviderName(self.provider or defaults.provider)
        except ValueError as e:
            raise InvalidRequestError(
                f"Unsupported provider: {self.provider!r}", field="provider"
            ) from e

        return GenerationRequest(
            topic=self.topic,
            provider=provider,
            model=self.model,
            credentials=self.credentials.merged_with(defaults),
            target_word_count=self.target_word_count,
            tone=self.tone,
            link_targets=tuple(self.link_targets),
            validated_references=tuple(self.validated_references),
            current_url=self.current_url,
        )


class GenerationResponse(BaseModel):
    """Query result: generated article with execution metadata."""

    title: str
    meta_description: str
    slug: str
    html_content: str
    excerpt: str
    word_count: int
    faqs: List[FAQItem]
    references: List[DiscoveredReference]
    internal_links: List[LinkPlacement]
    video: Optional[DiscoveredVideo]
    method: str
    attempts: int
    elapsed_ms: int
    provider: str
    model: str

    @classmethod
    def from_result(cls, result: GenerationResult) -> "GenerationResponse":
        contract = result.contract
        return cls(
            title=contract.title,
            meta_description=contract.meta_description,
            slug=contract.slug,
            html_content=contract.html_content,
            excerpt=contract.excerpt,
            word_count=contract.word_count,
            faqs=contract.faqs,
            references=contract.references,
            internal_links=contract.internal_links,
            video=contract.video,
            method=result.method.value,
            attempts=result.attempts,
            elapsed_ms=result.elapsed_ms,
            provider=result.provider.value,
            model=result.model,
        )


class HealthCheckResponse(BaseModel):
    """System health status."""

    status: str
    timestamp: datetime
    version: str
    dependencies: Dict[str, str]


class CircuitStatusResponse(BaseModel):
    circuits: Dict[str, Dict[str, Any]]


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: Any
    error_code: Optional[str] = None
    category: Optional[str] = None
    timestamp: datetime
    request_id: Optional[str] = None
