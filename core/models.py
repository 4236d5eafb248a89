"""
Domain Data Models
==================
Pydantic v2 schema definitions for generation requests, parsed drafts,
discovered references and videos, link placements and final results.

Architecture: Domain-Driven Design + Value Objects
"""

from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
    field_validator,
)

from core.enums import ContentTone, GenerationMethod, ProviderName

# =============================================================================
# CONFIGURATION
# =============================================================================


class BaseModelConfig(BaseModel):
    """Base configuration for all mutable models."""

    model_config = ConfigDict(
        validate_assignment=True,
        use_enum_values=False,
        populate_by_name=True,
    )


class FrozenModel(BaseModel):
    """Base configuration for value objects."""

    model_config = ConfigDict(frozen=True, use_enum_values=False, populate_by_name=True)


# =============================================================================
# REQUEST MODELS
# =============================================================================


class LinkTarget(FrozenModel):
    """An internal page that may be linked from the generated article."""

    url: str
    title: str
    slug: Optional[str] = None
    category: Optional[str] = None
    excerpt: Optional[str] = None


class ProviderCredentials(FrozenModel):
    """Per-provider secrets plus the search API key."""

    google: Optional[SecretStr] = None
    openrouter: Optional[SecretStr] = None
    openai: Optional[SecretStr] = None
    anthropic: Optional[SecretStr] = None
    groq: Optional[SecretStr] = None
    serper: Optional[SecretStr] = None
    openrouter_model: Optional[str] = None
    groq_model: Optional[str] = None

    def key_for(self, provider: ProviderName) -> Optional[str]:
        """Plain API key for the provider, or None when absent/blank."""
        secret: Optional[SecretStr] = getattr(self, provider.credential_field)
        if secret is None:
            return None
        value = secret.get_secret_value().strip()
        return value or None

    @property
    def search_key(self) -> Optional[str]:
        if self.serper is None:
            return None
        return self.serper.get_secret_value().strip() or None


class SamplingConfig(FrozenModel):
    """Backend-neutral sampling parameters."""

    temperature: float = Field(default=0.78, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=16000, ge=1)


class DiscoveredReference(FrozenModel):
    """An external authoritative source found for the topic."""

    url: str
    title: str
    source: str
    authority_score: int = Field(..., ge=0, le=100)
    snippet: Optional[str] = None
    year: Optional[int] = None
    favicon: Optional[str] = None


class ValidatedReference(FrozenModel):
    """A caller-supplied reference that skips discovery."""

    url: str
    title: str
    source: Optional[str] = None
    snippet: Optional[str] = None
    year: Optional[int] = None
    is_authority: bool = False


class GenerationRequest(FrozenModel):
    """Immutable input to a single article generation."""

    topic: str
    provider: ProviderName
    model: Optional[str] = None
    credentials: ProviderCredentials = Field(default_factory=ProviderCredentials)
    target_word_count: Optional[int] = Field(default=None, ge=300, le=20000)
    tone: ContentTone = ContentTone.CONVERSATIONAL
    link_targets: tuple[LinkTarget, ...] = ()
    validated_references: tuple[ValidatedReference, ...] = ()
    current_url: Optional[str] = None

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        if isinstance(v, str):
            return ProviderName(v)
        return v

    @field_validator("topic")
    @classmethod
    def strip_topic(cls, v: str) -> str:
        return v.strip()


# =============================================================================
# DRAFT MODELS
# =============================================================================


class FAQItem(FrozenModel):
    question: str
    answer: str


class ParsedDraft(BaseModelConfig):
    """
    Structured article draft decoded from model output.

    Field aliases match the camelCase keys the prompt asks the model for.
    """

    title: str = ""
    meta_description: str = Field(default="", alias="metaDescription")
    slug: str = ""
    html_content: str = Field(..., alias="htmlContent")
    excerpt: str = ""
    word_count: int = Field(default=0, alias="wordCount")
    faqs: list[FAQItem] = Field(default_factory=list)

    @field_validator("faqs", mode="before")
    @classmethod
    def keep_substantive_faqs(cls, v):
        """Drop FAQ entries that are malformed or too thin to publish."""
        if not isinstance(v, list):
            return []
        kept = []
        for item in v:
            if isinstance(item, FAQItem):
                item = item.model_dump()
            if not isinstance(item, dict):
                continue
            question = str(item.get("question") or "").strip()
            answer = str(item.get("answer") or "").strip()
            if len(question) > 5 and len(answer) > 20:
                kept.append({"question": question, "answer": answer})
        return kept

    @field_validator("word_count", mode="before")
    @classmethod
    def coerce_word_count(cls, v):
        try:
            return max(0, int(v))
        except (TypeError, ValueError):
            return 0

    @field_validator("title", "meta_description", "slug", "excerpt", mode="before")
    @classmethod
    def coerce_text(cls, v):
        return "" if v is None else str(v)


# =============================================================================
# DISCOVERY & LINKING MODELS
# =============================================================================


class DiscoveredVideo(FrozenModel):
    """A YouTube video selected for embedding."""

    video_id: str = Field(..., min_length=11, max_length=11)
    title: str
    channel: str = ""
    views: int = Field(default=0, ge=0)
    relevance_score: int = Field(default=0, ge=0, le=100)
    duration: Optional[str] = None
    thumbnail_url: str
    embed_url: str


class LinkPlacement(FrozenModel):
    """One inserted internal link."""

    url: str
    anchor_text: str
    position: int = Field(..., ge=0)
    relevance_score: float = Field(default=0.9, ge=0.0, le=1.0)


class LinkInjectionResult(BaseModelConfig):
    html: str
    placements: list[LinkPlacement] = Field(default_factory=list)

    @computed_field
    @property
    def total_count(self) -> int:
        return len(self.placements)


# =============================================================================
# RESULT MODELS
# =============================================================================


class ContentContract(BaseModelConfig):
    """Publishable article produced by a successful generation."""

    title: str
    meta_description: str
    slug: str
    html_content: str
    excerpt: str
    word_count: int = Field(..., ge=0)
    faqs: list[FAQItem] = Field(default_factory=list)
    references: list[DiscoveredReference] = Field(default_factory=list)
    internal_links: list[LinkPlacement] = Field(default_factory=list)
    video: Optional[DiscoveredVideo] = None


class GenerationResult(BaseModelConfig):
    """Contract plus execution metadata."""

    contract: ContentContract
    method: GenerationMethod = GenerationMethod.SINGLE_SHOT
    attempts: int = Field(..., ge=1)
    elapsed_ms: int = Field(..., ge=0)
    provider: ProviderName
    model: str

    @property
    def video(self) -> Optional[DiscoveredVideo]:
        return self.contract.video

    @property
    def references(self) -> list[DiscoveredReference]:
        return self.contract.references


__all__ = [
    "BaseModelConfig",
    "FrozenModel",
    "LinkTarget",
    "ProviderCredentials",
    "SamplingConfig",
    "DiscoveredReference",
    "ValidatedReference",
    "GenerationRequest",
    "FAQItem",
    "ParsedDraft",
    "DiscoveredVideo",
    "LinkPlacement",
    "LinkInjectionResult",
    "ContentContract",
    "GenerationResult",
]
