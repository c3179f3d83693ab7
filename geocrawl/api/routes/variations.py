"""Variation generation and analysis endpoint.

Example:
    POST /generate-variations
    {"baseQuery": "cancer insurance", "count": 10, "analyze": true,
     "myDomain": "example.com", "myBrand": "Example", "crawlCitations": true}
    Response: {"variations": [...], "warnings": [], "modelUsed": "gpt-4o",
               "tokensUsed": 812, "analysis": {...}, "citedPages": {...}}
"""

import logging

from fastapi import APIRouter, Depends, Request

from geocrawl.api.dependencies import (
    cancel_on_disconnect,
    get_coordinator,
    get_orchestrator,
    get_variation_service,
)
from geocrawl.api.models.requests import GenerateVariationsRequest
from geocrawl.api.models.responses import ErrorResponse, VariationsResponse
from geocrawl.services.analysis_orchestrator import BatchAnalysisOrchestrator
from geocrawl.services.crawl_coordinator import BatchCrawlCoordinator
from geocrawl.services.models import Competitor, VisibilityTarget
from geocrawl.services.variations import VariationRequest, VariationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["variations"])


def _visibility_target(payload: GenerateVariationsRequest) -> VisibilityTarget:
    return VisibilityTarget(
        my_domain=payload.my_domain or None,
        my_brand=payload.my_brand or None,
        brand_aliases=tuple(alias for alias in payload.brand_aliases if alias.strip()),
        competitors=tuple(
            Competitor(competitor.name, tuple(competitor.aliases))
            for competitor in payload.competitors
            if competitor.name.strip()
        ),
    )


@router.post(
    "/generate-variations",
    response_model=VariationsResponse,
    response_model_exclude_none=True,
    responses={
        400: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
)
async def generate_variations(
    payload: GenerateVariationsRequest,
    request: Request,
    service: VariationService = Depends(get_variation_service),
    orchestrator: BatchAnalysisOrchestrator = Depends(get_orchestrator),
    coordinator: BatchCrawlCoordinator = Depends(get_coordinator),
) -> VariationsResponse:
    """Generate query variations and optionally analyze them.

    With ``analyze`` the variations run through every engine; with
    ``crawlCitations`` as well, the pages the engines cited are crawled and
    split into own and competitor pages. A client disconnect stops both
    batches from starting further work.
    """
    variation_request = VariationRequest(
        base_query=payload.base_query or "",
        count=payload.count if payload.count is not None else 0,
        product_category=payload.product_category,
        product_name=payload.product_name,
    )
    generated = await service.generate(variation_request)
    logger.info(
        "Generated %d variations for %r with %s",
        len(generated.variations),
        variation_request.base_query,
        generated.model_used,
    )

    analysis = None
    cited_pages = None
    if payload.analyze and generated.variations:
        target = _visibility_target(payload)
        async with cancel_on_disconnect(request) as cancel_event:
            batch = await orchestrator.analyze_variations(
                generated.variations,
                variation_request.base_query.strip(),
                cancel_event=cancel_event,
                target=target,
            )
            analysis = batch.to_dict()
            if payload.crawl_citations:
                crawled = await coordinator.crawl_cited_pages(
                    batch.results,
                    batch.analysis_id,
                    my_domain=target.my_domain,
                    cancel_event=cancel_event,
                )
                cited_pages = crawled.to_dict()

    return VariationsResponse(
        variations=[variation.to_dict() for variation in generated.variations],
        warnings=generated.warnings,
        model_used=generated.model_used,
        tokens_used=generated.tokens_used,
        analysis=analysis,
        cited_pages=cited_pages,
    )
