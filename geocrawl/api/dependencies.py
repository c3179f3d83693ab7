"""FastAPI dependencies shared by the routers.

Services are created by the application lifespan and kept on ``app.state``;
tests replace them through ``app.dependency_overrides``.
"""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from geocrawl.core.config import Settings
from geocrawl.services.analysis_orchestrator import BatchAnalysisOrchestrator
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator
from geocrawl.services.variations import VariationService

logger = logging.getLogger(__name__)

# API key authentication
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

DISCONNECT_POLL_INTERVAL = 0.5


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_coordinator(request: Request) -> BatchCrawlCoordinator:
    return request.app.state.coordinator


def get_orchestrator(request: Request) -> BatchAnalysisOrchestrator:
    return request.app.state.orchestrator


def get_variation_service(request: Request) -> VariationService:
    return request.app.state.variation_service


async def verify_api_key(
    api_key: str | None = Security(API_KEY_HEADER),
    settings: Settings = Depends(get_settings),
) -> str:
    """Verify API key from request header.

    Args:
        api_key: API key from X-API-Key header
        settings: Application settings holding the expected key

    Returns:
        Validated API key

    Raises:
        HTTPException: 401 if API key is missing or invalid
    """
    # Allow unauthenticated access if no API key is configured
    if not settings.api_key:
        return ""

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if api_key != settings.api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key


@contextlib.asynccontextmanager
async def cancel_on_disconnect(
    request: Request, interval: float = DISCONNECT_POLL_INTERVAL
) -> AsyncIterator[asyncio.Event]:
    """Yield an event that is set once the client goes away.

    A background task polls ``request.is_disconnected()`` every ``interval``
    seconds while the block runs and is cancelled when it exits. Batch
    services take the event as ``cancel_event`` and stop starting new work.

    Example:
        async with cancel_on_disconnect(request) as cancel_event:
            result = await coordinator.crawl_batch(
                urls, analysis_id, cancel_event=cancel_event
            )
    """
    cancel_event = asyncio.Event()

    async def _watch() -> None:
        while not cancel_event.is_set():
            if await request.is_disconnected():
                logger.info(
                    "Client disconnected from %s, cancelling batch", request.url.path
                )
                cancel_event.set()
                return
            await asyncio.sleep(interval)

    watcher = asyncio.create_task(_watch())
    try:
        yield cancel_event
    finally:
        watcher.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await watcher
