"""Request models for API endpoints.

Field shapes are checked here; ranges and required values are checked by the
services so the API and CLI share one set of rules.

Example:
    from geocrawl.api.models.requests import CrawlPagesRequest

    payload = CrawlPagesRequest.model_validate(
        {"urls": ["https://example.com"], "analysisId": "analysis-1"}
    )
"""

from pydantic import BaseModel, ConfigDict, Field


class CrawlPagesRequest(BaseModel):
    """Body of POST /crawl-pages.

    Attributes:
        urls: URLs to crawl (1-10)
        analysis_id: Analysis the crawl belongs to
    """

    model_config = ConfigDict(populate_by_name=True)

    urls: list[str] | None = None
    analysis_id: str | None = Field(default=None, alias="analysisId")


class CompetitorPayload(BaseModel):
    """A competing brand and its aliases."""

    name: str
    aliases: list[str] = Field(default_factory=list)


class GenerateVariationsRequest(BaseModel):
    """Body of POST /generate-variations.

    Attributes:
        base_query: Query to derive variations from
        product_category: Optional product category
        product_name: Optional product name
        count: Number of variations (5-30)
        analyze: Also run the generated variations through the engines
        my_domain: Own domain whose citations are tracked
        my_brand: Own brand whose mentions are tracked
        brand_aliases: Other spellings of the brand
        competitors: Competing brands sent to the engines
        crawl_citations: After analysis, crawl the cited pages
    """

    model_config = ConfigDict(populate_by_name=True)

    base_query: str | None = Field(default=None, alias="baseQuery")
    product_category: str | None = Field(default=None, alias="productCategory")
    product_name: str | None = Field(default=None, alias="productName")
    count: int | None = None
    analyze: bool = False
    my_domain: str | None = Field(default=None, alias="myDomain")
    my_brand: str | None = Field(default=None, alias="myBrand")
    brand_aliases: list[str] = Field(default_factory=list, alias="brandAliases")
    competitors: list[CompetitorPayload] = Field(default_factory=list)
    crawl_citations: bool = Field(default=False, alias="crawlCitations")
