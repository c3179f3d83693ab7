"""FastAPI application for the geocrawl REST API.

Provides the crawl trigger, the variation analysis trigger and health
monitoring.

Example:
    uvicorn geocrawl.api.app:app --host 0.0.0.0 --port 8000
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from geocrawl.api.dependencies import verify_api_key
from geocrawl.api.routes.crawl import router as crawl_router
from geocrawl.api.routes.health import router as health_router
from geocrawl.api.routes.variations import router as variations_router
from geocrawl.core.config import Settings
from geocrawl.core.errors import GenerationError, InternalError, ValidationError
from geocrawl.core.logger import get_logger
from geocrawl.services.analysis_orchestrator import BatchAnalysisOrchestrator
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator
from geocrawl.services.engines import build_engines
from geocrawl.services.store import InMemoryRecordStore
from geocrawl.services.variations import ChatVariationGenerator, VariationService

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle events.

    Handles startup and shutdown operations for the API:
    - Startup: Configure logging, open the shared HTTP client, build services
    - Shutdown: Close the HTTP client

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings: Settings = app.state.settings
    get_logger("geocrawl", log_level=settings.log_level, log_file=settings.log_file)

    async with httpx.AsyncClient() as client:
        store = InMemoryRecordStore()
        app.state.store = store
        app.state.coordinator = BatchCrawlCoordinator.from_settings(
            client, settings, store
        )
        app.state.orchestrator = BatchAnalysisOrchestrator(
            engines=build_engines(
                settings.engines,
                client,
                settings.analysis_endpoint,
                api_key=settings.analysis_api_key,
            ),
            store=store,
            engine_timeout=settings.engine_timeout,
        )
        app.state.variation_service = VariationService(
            ChatVariationGenerator(
                client,
                settings.variation_endpoint,
                api_key=settings.variation_api_key,
                model=settings.variation_model,
            )
        )
        logger.info("geocrawl API started with engines %s", settings.engines)
        yield
    logger.info("geocrawl API stopped")


async def handle_request_validation(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": _describe_validation_errors(exc)},
    )


async def handle_http_error(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


async def handle_validation_error(
    request: Request, exc: ValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(exc)}
    )


async def handle_generation_error(
    request: Request, exc: GenerationError
) -> JSONResponse:
    logger.error("Variation generation failed: %s", exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY, content={"error": str(exc)}
    )


async def handle_internal_error(request: Request, exc: Exception) -> JSONResponse:
    # Batch boundaries already logged InternalError with its traceback
    if not isinstance(exc, InternalError):
        logger.error(
            "Unhandled error on %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": INTERNAL_ERROR_MESSAGE},
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(
        str(part) for part in first.get("loc", ()) if part != "body"
    )
    message = first.get("msg", "Invalid value")
    return f"{location}: {message}" if location else message


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings to use; loaded from the environment when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="geocrawl API",
        description="REST API for page crawling and query variation analysis",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or Settings()

    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(ValidationError, handle_validation_error)
    app.add_exception_handler(GenerationError, handle_generation_error)
    app.add_exception_handler(InternalError, handle_internal_error)
    app.add_exception_handler(Exception, handle_internal_error)

    # Health endpoint is public
    app.include_router(health_router)
    app.include_router(crawl_router, dependencies=[Depends(verify_api_key)])
    app.include_router(variations_router, dependencies=[Depends(verify_api_key)])
    return app


app = create_app()
