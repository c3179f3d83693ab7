"""Crawl trigger endpoint.

Example:
    POST /crawl-pages
    {"urls": ["https://example.com/a"], "analysisId": "analysis-1"}
    Response: {"analysisId": "analysis-1", "results": [...], "summary": {...},
               "progress": [...], "cancelled": false}
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from geocrawl.api.dependencies import cancel_on_disconnect, get_coordinator
from geocrawl.api.models.requests import CrawlPagesRequest
from geocrawl.api.models.responses import ErrorResponse
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator

router = APIRouter(tags=["crawl"])


@router.post(
    "/crawl-pages",
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def crawl_pages(
    payload: CrawlPagesRequest,
    request: Request,
    coordinator: BatchCrawlCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Check robots.txt for and crawl up to 10 URLs.

    Validation failures raise ValidationError, which the application turns
    into a 400 response before any network call is made. When the client
    disconnects, fetches that have not started are recorded as cancelled.
    """
    async with cancel_on_disconnect(request) as cancel_event:
        result = await coordinator.crawl_batch(
            payload.urls or [],
            payload.analysis_id or "",
            cancel_event=cancel_event,
        )
    return result.to_dict()
