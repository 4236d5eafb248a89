"""
LLM Client: Provider Adapters with Fault Isolation

Uniform asynchronous access to five text-generation backends:
- One adapter per provider behind AbstractProviderAdapter
- Closed response envelopes normalized to plain text
- Per-provider circuit breaker registry with cooldown and a single half-open trial call
- ProviderGateway as the single entry point that consults the breaker

Every adapter performs exactly one outbound request per call; SDK-internal
retries are disabled so that retry policy lives in the orchestrator alone.
"""

import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
from anthropic import (
    AnthropicError,
    APIConnectionError as AnthropicConnectionError,
    APIStatusError as AnthropicStatusError,
    APITimeoutError as AnthropicTimeoutError,
    AsyncAnthropic,
)
from loguru import logger
from openai import (
    APIConnectionError as OpenAIConnectionError,
    APIStatusError as OpenAIStatusError,
    APITimeoutError as OpenAITimeoutError,
    AsyncOpenAI,
    OpenAIError,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from config.constants import (
    ANTHROPIC_API_VERSION,
    DEFAULT_MODELS,
    GROQ_MAX_OUTPUT_TOKENS,
    PROVIDER_ENDPOINTS,
)
from core.enums import CircuitState, ProviderName
from core.exceptions import (
    CircuitOpenError,
    InvalidRequestError,
    ProviderConnectionError,
    ProviderError,
    ProviderHTTPError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from core.models import ProviderCredentials, SamplingConfig

# HTTP statuses that indicate provider distress rather than a bad request
BREAKER_STATUS_CODES = frozenset({401, 429})

# Per-adapter bound on cached SDK clients (one per distinct API key)
SDK_CLIENT_CACHE_SIZE = 32


@dataclass(frozen=True)
class LLMResponse:
    """Normalized provider response."""

    content: str
    provider: ProviderName
    model: str
    latency_ms: float


# =============================================================================
# CIRCUIT BREAKER REGISTRY
# =============================================================================


@dataclass
class CircuitRecord:
    """Breaker state for one provider."""

    failures: int = 0
    last_failure: Optional[float] = None
    state: CircuitState = CircuitState.CLOSED
    opened_at: Optional[float] = None
    trial_in_flight: bool = False


def is_breaker_failure(exc: BaseException) -> bool:
    """
    True when an error should count against a provider's circuit.

    Timeouts, 401, 429 and any 5xx count. Other 4xx responses reflect the
    request, not the provider's health.
    """
    if isinstance(exc, ProviderTimeoutError):
        return True
    if isinstance(exc, ProviderHTTPError) and exc.status_code is not None:
        return exc.status_code in BREAKER_STATUS_CODES or exc.status_code >= 500
    return False


class CircuitBreakerRegistry:
    """
    Per-provider circuit breakers.

    State Transitions:
    CLOSED → OPEN: After failure_threshold consecutive failures
    OPEN → HALF_OPEN: After recovery_timeout has elapsed since opening
    HALF_OPEN → CLOSED: On the first success
    HALF_OPEN → OPEN: On any failure

    A half-open circuit admits exactly one trial call. Callers arriving while
    the trial is in flight are rejected as if the circuit were open.

    Records are created on first use. Every method is synchronous, so
    concurrent coroutines on one event loop cannot interleave inside an update.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._records: Dict[str, CircuitRecord] = {}

    def _record(self, provider: Union[str, ProviderName]) -> CircuitRecord:
        key = provider.value if isinstance(provider, ProviderName) else str(provider)
        record = self._records.get(key)
        if record is None:
            record = CircuitRecord()
            self._records[key] = record
        return record

    def _refresh(self, record: CircuitRecord) -> None:
        if (
            record.state == CircuitState.OPEN
            and record.opened_at is not None
            and self._clock() - record.opened_at >= self.recovery_timeout
        ):
            record.state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker transitioning to HALF_OPEN")

    def state(self, provider: Union[str, ProviderName]) -> CircuitState:
        record = self._record(provider)
        self._refresh(record)
        return record.state

    def is_open(self, provider: Union[str, ProviderName]) -> bool:
        """
        Check whether calls to the provider must be rejected.

        An open circuit whose cooldown has elapsed moves to HALF_OPEN and
        admits a trial call.
        """
        return self.state(provider) == CircuitState.OPEN

    def try_acquire(self, provider: Union[str, ProviderName]) -> bool:
        """
        Ask permission to send one call.

        CLOSED always admits. HALF_OPEN admits a single trial and marks it in
        flight until record_success, record_failure or release_trial.

        Returns:
            False if the call must be rejected
        """
        record = self._record(provider)
        self._refresh(record)
        if record.state == CircuitState.OPEN:
            return False
        if record.state == CircuitState.HALF_OPEN:
            if record.trial_in_flight:
                return False
            record.trial_in_flight = True
        return True

    def release_trial(self, provider: Union[str, ProviderName]) -> None:
        """End a half-open trial that produced no health signal."""
        self._record(provider).trial_in_flight = False

    def retry_after(self, provider: Union[str, ProviderName]) -> float:
        """Seconds until an open circuit admits a trial call; 0 if not open."""
        record = self._record(provider)
        self._refresh(record)
        if record.state != CircuitState.OPEN or record.opened_at is None:
            return 0.0
        return max(0.0, self.recovery_timeout - (self._clock() - record.opened_at))

    def record_success(self, provider: Union[str, ProviderName]) -> None:
        record = self._record(provider)
        if record.state != CircuitState.CLOSED:
            logger.info(f"Circuit breaker transitioning to CLOSED | provider={provider}")
        record.failures = 0
        record.state = CircuitState.CLOSED
        record.opened_at = None
        record.trial_in_flight = False

    def record_failure(self, provider: Union[str, ProviderName]) -> bool:
        """
        Count a failure against the provider.

        Returns:
            True if this failure opened the circuit
        """
        record = self._record(provider)
        self._refresh(record)
        now = self._clock()
        record.failures += 1
        record.last_failure = now
        record.trial_in_flight = False

        if record.state == CircuitState.HALF_OPEN:
            logger.warning(f"Circuit breaker transitioning to OPEN (failed trial) | provider={provider}")
            record.state = CircuitState.OPEN
            record.opened_at = now
            return True

        if record.state == CircuitState.CLOSED and record.failures >= self.failure_threshold:
            logger.error(
                f"Circuit breaker transitioning to OPEN | provider={provider} failures={record.failures}"
            )
            record.state = CircuitState.OPEN
            record.opened_at = now
            return True

        return False

    def reset(self, provider: Optional[Union[str, ProviderName]] = None) -> None:
        if provider is None:
            self._records.clear()
        else:
            key = provider.value if isinstance(provider, ProviderName) else str(provider)
            self._records.pop(key, None)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Current state of every known circuit."""
        result = {}
        for name, record in self._records.items():
            self._refresh(record)
            result[name] = {
                "state": record.state.value,
                "failures": record.failures,
                "trial_in_flight": record.trial_in_flight,
                "retry_after": self.retry_after(name),
            }
        return result


# =============================================================================
# RESPONSE ENVELOPES
# =============================================================================


class GeminiPart(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: Optional[str] = None


class GeminiContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    parts: List[GeminiPart] = Field(default_factory=list)


class GeminiCandidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    content: Optional[GeminiContent] = None
    finish_reason: Optional[str] = Field(default=None, alias="finishReason")


class GeminiResponseEnvelope(BaseModel):
    """generateContent response body; only the fields we read."""

    model_config = ConfigDict(extra="ignore")

    candidates: List[GeminiCandidate] = Field(default_factory=list)

    def extract_text(self) -> str:
        if not self.candidates or self.candidates[0].content is None:
            return ""
        return "".join(part.text or "" for part in self.candidates[0].content.parts)


def extract_chat_completion_text(response: Any) -> str:
    """Text of the first choice of an OpenAI-style chat completion."""
    choices = getattr(response, "choices", None) or []
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    return (getattr(message, "content", None) or "") if message is not None else ""


def extract_anthropic_text(response: Any) -> str:
    """Text of the first text block of an Anthropic message."""
    for block in getattr(response, "content", None) or []:
        if getattr(block, "type", "text") == "text":
            return getattr(block, "text", None) or ""
    return ""


# =============================================================================
# PROVIDER ADAPTERS
# =============================================================================


def resolve_model(
    provider: ProviderName,
    model: Optional[str],
    credentials: Optional[ProviderCredentials] = None,
) -> str:
    """Explicit model, then provider-specific credential override, then default."""
    if model:
        return model
    if credentials is not None:
        if provider is ProviderName.OPENROUTER and credentials.openrouter_model:
            return credentials.openrouter_model
        if provider is ProviderName.GROQ and credentials.groq_model:
            return credentials.groq_model
    return DEFAULT_MODELS[provider.value]


class AbstractProviderAdapter(ABC):
    """One backend, one request per call, plain text out."""

    provider: ProviderName

    def _require_key(self, credentials: ProviderCredentials) -> str:
        key = credentials.key_for(self.provider)
        if not key:
            raise InvalidRequestError(
                f"Missing API key for provider '{self.provider.value}'",
                field=f"credentials.{self.provider.credential_field}",
            )
        return key

    @abstractmethod
    async def call(
        self,
        prompt: str,
        system_prompt: str,
        sampling: SamplingConfig,
        credentials: ProviderCredentials,
        model: str,
        timeout: float,
    ) -> str:
        """Send one request and return the normalized text."""

    async def aclose(self) -> None:
        return None


class SDKClientAdapter(AbstractProviderAdapter):
    """
    Base for adapters built on a vendor SDK client.

    SDK clients are cached per API key in a bounded LRU and all share one
    httpx connection pool, so evicting a client releases nothing.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()
        self._clients: "OrderedDict[str, Any]" = OrderedDict()

    def _build_client(self, api_key: str, timeout: float) -> Any:
        raise NotImplementedError

    def _client_for(self, api_key: str, timeout: float) -> Any:
        client = self._clients.get(api_key)
        if client is not None:
            self._clients.move_to_end(api_key)
            return client

        client = self._build_client(api_key, timeout)
        self._clients[api_key] = client
        while len(self._clients) > SDK_CLIENT_CACHE_SIZE:
            self._clients.popitem(last=False)
        return client

    async def aclose(self) -> None:
        self._clients.clear()
        if self._owns_client:
            await self._http_client.aclose()


class OpenAICompatibleAdapter(SDKClientAdapter):
    """Chat-completions adapter for OpenAI, OpenRouter and Groq."""

    def __init__(
        self,
        provider: ProviderName,
        base_url: str,
        default_headers: Optional[Dict[str, str]] = None,
        max_output_tokens_cap: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(http_client)
        self.provider = provider
        self.base_url = base_url
        self.default_headers = default_headers or {}
        self.max_output_tokens_cap = max_output_tokens_cap

    def _build_client(self, api_key: str, timeout: float) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=api_key,
            base_url=self.base_url,
            default_headers=self.default_headers or None,
            timeout=httpx.Timeout(timeout),
            max_retries=0,
            http_client=self._http_client,
        )

    def _max_tokens(self, sampling: SamplingConfig) -> int:
        if self.max_output_tokens_cap is not None:
            return min(sampling.max_output_tokens, self.max_output_tokens_cap)
        return sampling.max_output_tokens

    async def call(
        self,
        prompt: str,
        system_prompt: str,
        sampling: SamplingConfig,
        credentials: ProviderCredentials,
        model: str,
        timeout: float,
    ) -> str:
        client = self._client_for(self._require_key(credentials), timeout)
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": prompt},
                ],
                temperature=sampling.temperature,
                max_tokens=self._max_tokens(sampling),
                timeout=timeout,
            )
        except OpenAITimeoutError as e:
            raise ProviderTimeoutError(
                f"Request timeout: {e}", provider=self.provider.value, timeout_seconds=timeout
            ) from e
        except OpenAIStatusError as e:
            raise ProviderHTTPError(
                e.status_code, f"Provider error: {e}", provider=self.provider.value
            ) from e
        except OpenAIConnectionError as e:
            raise ProviderConnectionError(
                f"Connection error: {e}", provider=self.provider.value
            ) from e
        except OpenAIError as e:
            raise ProviderResponseError(f"Provider error: {e}", provider=self.provider.value) from e

        return extract_chat_completion_text(response)


class AnthropicAdapter(SDKClientAdapter):
    """Messages API adapter; the system prompt travels as a top-level field."""

    provider = ProviderName.ANTHROPIC

    def _build_client(self, api_key: str, timeout: float) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=api_key,
            timeout=httpx.Timeout(timeout),
            max_retries=0,
            default_headers={"anthropic-version": ANTHROPIC_API_VERSION},
            http_client=self._http_client,
        )

    async def call(
        self,
        prompt: str,
        system_prompt: str,
        sampling: SamplingConfig,
        credentials: ProviderCredentials,
        model: str,
        timeout: float,
    ) -> str:
        client = self._client_for(self._require_key(credentials), timeout)
        try:
            response = await client.messages.create(
                model=model,
                system=system_prompt,
                messages=[{"role": "user", "content": prompt}],
                temperature=min(sampling.temperature, 1.0),
                max_tokens=sampling.max_output_tokens,
                timeout=timeout,
            )
        except AnthropicTimeoutError as e:
            raise ProviderTimeoutError(
                f"Request timeout: {e}", provider=self.provider.value, timeout_seconds=timeout
            ) from e
        except AnthropicStatusError as e:
            raise ProviderHTTPError(
                e.status_code, f"Provider error: {e}", provider=self.provider.value
            ) from e
        except AnthropicConnectionError as e:
            raise ProviderConnectionError(
                f"Connection error: {e}", provider=self.provider.value
            ) from e
        except AnthropicError as e:
            raise ProviderResponseError(f"Provider error: {e}", provider=self.provider.value) from e

        return extract_anthropic_text(response)


class GeminiAdapter(AbstractProviderAdapter):
    """generateContent over plain httpx; the body is decoded into a closed envelope."""

    provider = ProviderName.GEMINI

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = PROVIDER_ENDPOINTS.GEMINI,
    ):
        self._owns_client = http_client is None
        self._http_client = http_client or httpx.AsyncClient()
        self.base_url = base_url.rstrip("/")

    async def call(
        self,
        prompt: str,
        system_prompt: str,
        sampling: SamplingConfig,
        credentials: ProviderCredentials,
        model: str,
        timeout: float,
    ) -> str:
        api_key = self._require_key(credentials)
        payload = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": sampling.temperature,
                "maxOutputTokens": sampling.max_output_tokens,
                "responseMimeType": "application/json",
            },
        }

        try:
            response = await self._http_client.post(
                f"{self.base_url}/models/{model}:generateContent",
                json=payload,
                headers={"x-goog-api-key": api_key, "Content-Type": "application/json"},
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"Request timeout: {e}", provider=self.provider.value, timeout_seconds=timeout
            ) from e
        except httpx.TransportError as e:
            raise ProviderConnectionError(
                f"Connection error: {e}", provider=self.provider.value
            ) from e

        if response.status_code >= 400:
            raise ProviderHTTPError(
                response.status_code,
                f"Gemini returned HTTP {response.status_code}: {response.text[:200]}",
                provider=self.provider.value,
            )

        try:
            envelope = GeminiResponseEnvelope.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProviderResponseError(
                f"Unreadable Gemini envelope: {e}", provider=self.provider.value
            ) from e

        return envelope.extract_text()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http_client.aclose()


def get_provider_adapter(
    provider: Union[str, ProviderName],
    http_client: Optional[httpx.AsyncClient] = None,
    openrouter_referer: str = "https://localhost",
    openrouter_title: str = "Article Generator",
) -> AbstractProviderAdapter:
    """
    Adapter factory.

    Raises:
        ValueError: If the provider is not supported
    """
    try:
        name = ProviderName(provider)
    except ValueError:
        supported = ", ".join(p.value for p in ProviderName)
        raise ValueError(f"Unsupported provider '{provider}'. Supported: {supported}") from None

    if name is ProviderName.GEMINI:
        return GeminiAdapter(http_client=http_client)
    if name is ProviderName.ANTHROPIC:
        return AnthropicAdapter(http_client=http_client)
    if name is ProviderName.OPENROUTER:
        return OpenAICompatibleAdapter(
            name,
            PROVIDER_ENDPOINTS.OPENROUTER,
            default_headers={"HTTP-Referer": openrouter_referer, "X-Title": openrouter_title},
            http_client=http_client,
        )
    if name is ProviderName.GROQ:
        return OpenAICompatibleAdapter(
            name,
            PROVIDER_ENDPOINTS.GROQ,
            max_output_tokens_cap=GROQ_MAX_OUTPUT_TOKENS,
            http_client=http_client,
        )
    return OpenAICompatibleAdapter(name, PROVIDER_ENDPOINTS.OPENAI, http_client=http_client)


# =============================================================================
# GATEWAY
# =============================================================================


def _status_label(exc: ProviderError) -> str:
    if isinstance(exc, ProviderTimeoutError):
        return "timeout"
    if isinstance(exc, ProviderHTTPError):
        return f"http_{exc.status_code}"
    if isinstance(exc, ProviderConnectionError):
        return "connection"
    return "bad_response"


@dataclass
class ProviderGateway:
    """
    The only path from the orchestrator to a provider.

    Consults the circuit breaker before every call and reports the outcome
    back to it.
    """

    breakers: CircuitBreakerRegistry
    metrics_collector: Optional[Any] = None
    http_client: Optional[httpx.AsyncClient] = None
    openrouter_referer: str = "https://localhost"
    openrouter_title: str = "Article Generator"
    adapters: Dict[ProviderName, AbstractProviderAdapter] = field(default_factory=dict)

    def adapter_for(self, provider: ProviderName) -> AbstractProviderAdapter:
        adapter = self.adapters.get(provider)
        if adapter is None:
            adapter = get_provider_adapter(
                provider,
                http_client=self.http_client,
                openrouter_referer=self.openrouter_referer,
                openrouter_title=self.openrouter_title,
            )
            self.adapters[provider] = adapter
        return adapter

    async def complete(
        self,
        provider: ProviderName,
        prompt: str,
        system_prompt: str,
        sampling: SamplingConfig,
        credentials: ProviderCredentials,
        model: Optional[str] = None,
        timeout: float = 180.0,
    ) -> LLMResponse:
        """
        Call a provider through its circuit breaker.

        Raises:
            CircuitOpenError: Breaker open; no request was sent
            ProviderError: Request failed
            InvalidRequestError: Credential missing for the provider
        """
        name = provider.value
        if not self.breakers.try_acquire(provider):
            if self.metrics_collector:
                self.metrics_collector.record_circuit_rejection(name)
            raise CircuitOpenError(name, retry_after=self.breakers.retry_after(provider) or None)

        started = time.perf_counter()
        try:
            adapter = self.adapter_for(provider)
            resolved_model = resolve_model(provider, model, credentials)
            content = await adapter.call(
                prompt, system_prompt, sampling, credentials, resolved_model, timeout
            )
        except ProviderError as e:
            latency = time.perf_counter() - started
            if is_breaker_failure(e):
                if self.breakers.record_failure(provider) and self.metrics_collector:
                    self.metrics_collector.record_circuit_open(name)
            else:
                self.breakers.release_trial(provider)
            if self.metrics_collector:
                self.metrics_collector.record_provider_call(name, _status_label(e), latency)
            logger.warning(f"Provider call failed | provider={name} error={e.error_code} status={e.status_code}")
            raise
        except BaseException:
            # Missing key, cancellation: no verdict on the provider's health
            self.breakers.release_trial(provider)
            raise

        latency = time.perf_counter() - started
        self.breakers.record_success(provider)
        if self.metrics_collector:
            self.metrics_collector.record_provider_call(name, "success", latency)

        logger.debug(
            f"Provider call succeeded | provider={name} model={resolved_model} "
            f"chars={len(content)} latency={latency:.2f}s"
        )
        return LLMResponse(
            content=content,
            provider=provider,
            model=resolved_model,
            latency_ms=latency * 1000,
        )

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()
        self.adapters.clear()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
