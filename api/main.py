"""
FastAPI application for the article generation orchestrator.

Wires routers, domain error handlers, request-id/gzip/CORS middleware and the
lifespan hooks that warn about missing default credentials and close network
clients on shutdown.
"""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from api.exceptions import add_exception_handlers
from api.routes import content, system
from config.settings import settings
from container import container_manager
from infrastructure.monitoring import configure_structlog, get_logger

configure_structlog(settings.monitoring.log_level, settings.monitoring.log_format)
logger = get_logger(__name__)

# ============================================================================
# MIDDLEWARE STACK (Cross-Cutting Concerns)
# ============================================================================


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID for distributed tracing and correlation."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ============================================================================
# FASTAPI APPLICATION INITIALIZATION
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup validation and shutdown cleanup."""
    configured = [
        name
        for name in ("google", "openrouter", "openai", "anthropic", "groq")
        if getattr(settings.llm, f"{name}_api_key") is not None
    ]
    if not configured:
        logger.warning("no_default_provider_keys", hint="requests must carry credentials")
    if settings.llm.serper_api_key is None:
        logger.warning("no_default_search_key", hint="discovery disabled unless requests carry one")
    logger.info(
        "application_startup_complete",
        environment=settings.environment,
        default_provider=settings.llm.provider,
        configured_providers=configured,
    )

    yield

    await container_manager.cleanup()
    logger.info("application_shutdown_complete")


app = FastAPI(
    title=settings.app_name,
    description="Single-shot long-form article generation with discovery and internal linking",
    version=settings.app_version,
    debug=settings.debug,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

add_exception_handlers(app)

app.include_router(content.router)
app.include_router(system.router)


@app.get("/")
async def root():
    """Redirect root to API documentation."""
    return RedirectResponse(url="/docs")


# Middleware stack (order matters: last added = first executed)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "Authorization", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=8000, log_level="info", access_log=True)
