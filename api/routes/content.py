"""
Content Routes: Synchronous Article Generation

Single endpoint that runs one generation to completion and returns the
publishable contract. Failures surface through the handlers registered in
api.exceptions.

Design Pattern: Command Query Responsibility Segregation (CQRS)
"""

from fastapi import APIRouter, Depends, Request, status
from loguru import logger

from api.schemas import ErrorResponse, GenerateContentRequest, GenerationResponse
from config.settings import Settings
from container import container, get_orchestrator
from orchestration.content_agent import ContentOrchestrator

router = APIRouter(prefix="/content", tags=["Content"])


# Simple dependency functions for FastAPI
def get_orchestrator_dependency() -> ContentOrchestrator:
    """Get ContentOrchestrator instance for FastAPI dependency injection."""
    return get_orchestrator()


def get_settings_dependency() -> Settings:
    """Get Settings instance for FastAPI dependency injection."""
    return container.config()


@router.post(
    "/generate",
    response_model=GenerationResponse,
    status_code=status.HTTP_200_OK,
    summary="Generate an article",
    responses={
        422: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    },
)
async def generate_content(
    payload: GenerateContentRequest,
    request: Request,
    orchestrator: ContentOrchestrator = Depends(get_orchestrator_dependency),
    app_settings: Settings = Depends(get_settings_dependency),
) -> GenerationResponse:
    """
    Generate one article end to end.

    Credentials omitted from the payload fall back to the server's LLM_*
    configuration.
    """
    generation_request = payload.to_domain(app_settings.llm)
    logger.info(
        f"Generate request received | request_id={getattr(request.state, 'request_id', None)} | "
        f"provider={generation_request.provider.value} | topic={generation_request.topic!r}"
    )

    result = await orchestrator.generate(generation_request)
    return GenerationResponse.from_result(result)
