"""Response models for API endpoints.

Pydantic models defining the structure of API responses. Batch results are
serialized by their own ``to_dict`` methods.

Example:
    from geocrawl.api.models.responses import HealthResponse

    response = HealthResponse(status="healthy")
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Current health status ('healthy' or 'unhealthy')

    Example:
        >>> response = HealthResponse(status="healthy")
        >>> response.model_dump()
        {"status": "healthy"}
    """

    status: str


class ErrorResponse(BaseModel):
    """Error body returned for 4xx and 5xx responses."""

    error: str


class VariationsResponse(BaseModel):
    """Generated variations, optionally with their analysis.

    Attributes:
        variations: Generated variations as dicts
        warnings: Quality problems found in the generated set
        model_used: Model that generated the variations
        tokens_used: Tokens consumed by the generator
        analysis: Batch analysis result when analysis was requested
        cited_pages: Crawled cited pages when crawlCitations was requested
    """

    model_config = ConfigDict(populate_by_name=True)

    variations: list[dict[str, Any]]
    warnings: list[str] = Field(default_factory=list)
    model_used: str = Field(alias="modelUsed")
    tokens_used: int = Field(default=0, alias="tokensUsed")
    analysis: dict[str, Any] | None = None
    cited_pages: dict[str, Any] | None = Field(default=None, alias="citedPages")
