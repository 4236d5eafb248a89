"""
Content Orchestrator

Drives one article generation end to end: launches reference and video
discovery, requests a draft from the selected provider through the circuit
breaker, heals the response, assembles the document, injects internal links
and applies the final word-count gate. Attempts are retried with a linearly
growing delay; input errors fail immediately.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from uuid import uuid4

from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from config.constants import BANNED_PHRASES, SYSTEM_PROMPT
from config.settings import DiscoverySettings, GenerationSettings
from core.enums import GenerationStage
from core.exceptions import (
    ContentAutomationException,
    DraftValidationError,
    GenerationError,
    InvalidRequestError,
    classify_error,
)
from core.models import (
    ContentContract,
    DiscoveredReference,
    DiscoveredVideo,
    GenerationRequest,
    GenerationResult,
    ParsedDraft,
    SamplingConfig,
)
from execution.document_assembler import DocumentAssembler, count_words
from execution.link_injector import LinkInjector
from execution.reference_discovery import ReferenceDiscovery, references_from_validated
from execution.response_healer import heal_with_strategy
from execution.video_discovery import VideoDiscovery
from infrastructure.llm_client import CircuitBreakerRegistry, ProviderGateway
from infrastructure.monitoring import MetricsCollector

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")


@dataclass
class StageEvent:
    """Stage transition record for one generation."""

    timestamp: datetime
    stage: GenerationStage
    attempt: int
    message: str = ""


@dataclass
class GenerationRun:
    """Mutable bookkeeping for a single generate() call."""

    run_id: str
    topic: str
    stage: GenerationStage = GenerationStage.IDLE
    attempts: int = 0
    events: List[StageEvent] = field(default_factory=list)

    def transition(self, stage: GenerationStage, message: str = "") -> None:
        if not self.stage.can_transition_to(stage):
            raise RuntimeError(f"Invalid stage transition {self.stage.value} → {stage.value}")
        logger.debug(f"Generation stage transition | run_id={self.run_id} | {self.stage.value} → {stage.value}")
        self.stage = stage
        self.events.append(
            StageEvent(
                timestamp=datetime.now(timezone.utc),
                stage=stage,
                attempt=self.attempts,
                message=message,
            )
        )


def slugify(text: str) -> str:
    return SLUG_PATTERN.sub("-", text.lower()).strip("-")[:80]


def build_article_prompt(request: GenerationRequest, target_words: int) -> str:
    """User prompt asking for the article as a single JSON object."""
    banned = ", ".join(f'"{phrase}"' for phrase in BANNED_PHRASES)
    return (
        f'Write a comprehensive, original article about "{request.topic}".\n\n'
        f"Tone: {request.tone}. Length: about {target_words} words of body text.\n\n"
        "Structure:\n"
        "- Open with a short hook introduction (no heading).\n"
        "- Then 8 to 12 sections, each starting with an <h2> heading; use <h3> for subsections.\n"
        "- Use <p>, <ul>/<ol> and <strong> for body content. Never use <h1>.\n"
        "- Do not include a FAQ section in the HTML; put questions in the faqs array.\n"
        f"- Never use these phrases: {banned}.\n\n"
        "Return ONLY a JSON object with exactly these keys:\n"
        '{"title": string, "metaDescription": string (max 160 chars), "slug": string, '
        '"htmlContent": string (the article HTML), "excerpt": string, '
        '"faqs": [{"question": string, "answer": string}] (5 to 8 items), '
        '"wordCount": number}'
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ContentAutomationException) and exc.retryable


def _log_retry(retry_state: RetryCallState) -> None:
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    logger.warning(
        f"Retrying generation | attempt={retry_state.attempt_number} | "
        f"delay={delay:.1f}s | error={retry_state.outcome.exception()}"
    )


class ContentOrchestrator:
    """
    Single entry point for article generation.

    Owns its circuit breakers (through the gateway) so separate orchestrator
    instances never share provider health state.

    Pipeline per attempt:
    1. Launch reference and video discovery tasks
    2. Request the draft from the provider
    3. Heal and validate the draft
    4. Join discovery (failures degrade to empty results)
    5. Assemble the document and inject internal links
    6. Recount words and apply the final gate
    """

    def __init__(
        self,
        gateway: ProviderGateway,
        reference_discovery: ReferenceDiscovery,
        video_discovery: VideoDiscovery,
        link_injector: Optional[LinkInjector] = None,
        assembler: Optional[DocumentAssembler] = None,
        generation: Optional[GenerationSettings] = None,
        discovery: Optional[DiscoverySettings] = None,
        metrics_collector: Optional[MetricsCollector] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.gateway = gateway
        self.reference_discovery = reference_discovery
        self.video_discovery = video_discovery
        self.link_injector = link_injector or LinkInjector()
        self.assembler = assembler or DocumentAssembler()
        self.generation = generation or GenerationSettings()
        self.discovery = discovery or DiscoverySettings()
        self.metrics = metrics_collector
        self._sleep = sleep

        logger.info(
            "ContentOrchestrator initialized | "
            f"max_attempts={self.generation.max_attempts} | "
            f"min_word_count={self.generation.min_word_count}"
        )

    @property
    def breakers(self) -> CircuitBreakerRegistry:
        return self.gateway.breakers

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def validate_request(self, request: GenerationRequest) -> None:
        """
        Reject requests that no number of retries could satisfy.

        Raises:
            InvalidRequestError: Empty topic, missing provider credential or a
                word target below the acceptance gates
        """
        if not request.topic or not request.topic.strip():
            raise InvalidRequestError("Topic must not be empty", field="topic")
        floor = max(self.generation.min_word_count, self.generation.min_draft_words)
        if request.target_word_count is not None and request.target_word_count < floor:
            raise InvalidRequestError(
                f"target_word_count {request.target_word_count} is below the minimum "
                f"accepted article length of {floor} words",
                field="target_word_count",
            )
        if not request.credentials.key_for(request.provider):
            raise InvalidRequestError(
                f"Missing API key for provider '{request.provider.value}'",
                field=f"credentials.{request.provider.credential_field}",
            )

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """
        Generate one article.

        Raises:
            InvalidRequestError: Request is unusable; nothing was attempted
            GenerationError: Every attempt failed
        """
        self.validate_request(request)

        run = GenerationRun(run_id=uuid4().hex[:12], topic=request.topic)
        started = time.perf_counter()
        provider = request.provider.value

        logger.info(
            f"Generation initiated | run_id={run.run_id} | provider={provider} | topic={request.topic!r}"
        )
        if self.metrics:
            self.metrics.active_generations.inc()

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.generation.max_attempts),
            wait=wait_incrementing(start=self.generation.base_delay, increment=self.generation.base_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    contract, model = await self._attempt(
                        request, run, attempt.retry_state.attempt_number
                    )
        except InvalidRequestError as e:
            self._record_failure(run, request, started, e)
            raise
        except Exception as e:
            category = self._record_failure(run, request, started, e)
            raise GenerationError(
                f"Generation failed after {run.attempts} attempt(s): {e}",
                attempts=run.attempts,
                category=category,
                last_error=e,
            ) from e
        finally:
            if self.metrics:
                self.metrics.active_generations.dec()

        run.transition(GenerationStage.DONE)
        elapsed = time.perf_counter() - started
        if self.metrics:
            self.metrics.record_generation(provider, elapsed, run.attempts, success=True)

        logger.success(
            f"Generation completed | run_id={run.run_id} | attempts={run.attempts} | "
            f"words={contract.word_count} | links={len(contract.internal_links)} | "
            f"references={len(contract.references)} | elapsed={elapsed:.2f}s"
        )

        return GenerationResult(
            contract=contract,
            attempts=run.attempts,
            elapsed_ms=int(elapsed * 1000),
            provider=request.provider,
            model=model,
        )

    # =========================================================================
    # ATTEMPT
    # =========================================================================

    async def _attempt(
        self, request: GenerationRequest, run: GenerationRun, attempt_number: int
    ) -> Tuple[ContentContract, str]:
        run.attempts = attempt_number
        run.transition(GenerationStage.REQUESTING_DRAFT, f"attempt {attempt_number}")

        search_key = request.credentials.search_key
        reference_task = asyncio.create_task(self._discover_references(request, search_key))
        video_task = asyncio.create_task(self._discover_video(request, search_key))
        tasks = (reference_task, video_task)

        try:
            target_words = request.target_word_count or self.generation.target_word_count
            sampling = SamplingConfig(
                temperature=self.generation.temperature_for_attempt(attempt_number),
                max_output_tokens=self.generation.max_output_tokens,
            )
            response = await self.gateway.complete(
                request.provider,
                build_article_prompt(request, target_words),
                SYSTEM_PROMPT,
                sampling,
                request.credentials,
                model=request.model,
                timeout=self.generation.draft_timeout,
            )

            run.transition(GenerationStage.HEALING)
            healed = heal_with_strategy(response.content)
            if self.metrics:
                self.metrics.record_heal_strategy(healed.strategy)
            draft = healed.draft
            self._validate_draft(draft)

            run.transition(GenerationStage.AWAITING_DISCOVERY)
            references, video = await self._join_discovery(reference_task, video_task)

            run.transition(GenerationStage.ASSEMBLING)
            html = self.assembler.assemble(draft, references, video)

            run.transition(GenerationStage.LINK_INJECTING)
            injection = self.link_injector.inject(html, request.link_targets, request.current_url)

            word_count = count_words(injection.html)
            if word_count < self.generation.min_word_count:
                raise DraftValidationError(
                    f"Article too short: {word_count} words",
                    word_count=word_count,
                    minimum=self.generation.min_word_count,
                )

            title = draft.title.strip() or request.topic
            contract = ContentContract(
                title=title,
                meta_description=draft.meta_description,
                slug=slugify(draft.slug or title),
                html_content=injection.html,
                excerpt=draft.excerpt,
                word_count=word_count,
                faqs=draft.faqs,
                references=references,
                internal_links=injection.placements,
                video=video,
            )
            return contract, response.model
        except Exception as e:
            logger.warning(
                f"Generation attempt failed | run_id={run.run_id} | attempt={attempt_number} | "
                f"stage={run.stage.value} | category={classify_error(e).value} | error={e}"
            )
            raise
        finally:
            await self._cancel_pending(tasks)

    def _validate_draft(self, draft: ParsedDraft) -> None:
        words = count_words(draft.html_content)
        if words < self.generation.min_draft_words:
            raise DraftValidationError(
                f"Draft too short: {words} words",
                word_count=words,
                minimum=self.generation.min_draft_words,
            )

    # =========================================================================
    # DISCOVERY
    # =========================================================================

    async def _discover_references(
        self, request: GenerationRequest, search_key: Optional[str]
    ) -> List[DiscoveredReference]:
        target = self.discovery.reference_target_count
        if len(request.validated_references) >= self.discovery.min_validated_references:
            logger.info(f"Using validated references | count={len(request.validated_references)}")
            return references_from_validated(request.validated_references, target)

        return await asyncio.wait_for(
            self.reference_discovery.discover(
                request.topic,
                search_key,
                target_count=target,
                min_authority_score=self.discovery.min_authority_score,
            ),
            timeout=self.discovery.reference_timeout,
        )

    async def _discover_video(
        self, request: GenerationRequest, search_key: Optional[str]
    ) -> Optional[DiscoveredVideo]:
        return await asyncio.wait_for(
            self.video_discovery.discover(request.topic, search_key),
            timeout=self.discovery.video_timeout,
        )

    async def _join_discovery(
        self, reference_task: asyncio.Task, video_task: asyncio.Task
    ) -> Tuple[List[DiscoveredReference], Optional[DiscoveredVideo]]:
        """All-settled join; a failed or timed-out task contributes nothing."""
        reference_result, video_result = await asyncio.gather(
            reference_task, video_task, return_exceptions=True
        )

        references: List[DiscoveredReference] = []
        if isinstance(reference_result, BaseException):
            logger.warning(f"Reference discovery did not complete | error={reference_result!r}")
        else:
            references = reference_result

        video: Optional[DiscoveredVideo] = None
        if isinstance(video_result, BaseException):
            logger.warning(f"Video discovery did not complete | error={video_result!r}")
        else:
            video = video_result

        return references, video

    @staticmethod
    async def _cancel_pending(tasks) -> None:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Settles cancelled tasks and retrieves any stored exception
        await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # BOOKKEEPING
    # =========================================================================

    def _record_failure(
        self,
        run: GenerationRun,
        request: GenerationRequest,
        started: float,
        error: BaseException,
    ):
        category = classify_error(error)
        if not run.stage.is_terminal:
            run.transition(GenerationStage.FAILED, str(error))
        elapsed = time.perf_counter() - started
        if self.metrics:
            self.metrics.record_generation(
                request.provider.value,
                elapsed,
                max(run.attempts, 1),
                success=False,
                category=category.value,
            )
        logger.error(
            f"Generation failed | run_id={run.run_id} | attempts={run.attempts} | "
            f"category={category.value} | error={error}"
        )
        return category

    def circuit_status(self) -> Dict[str, Dict[str, Any]]:
        return self.breakers.snapshot()
