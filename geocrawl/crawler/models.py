"""Data models for policy checks, page fetches and crawl outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def _default_timestamp() -> str:
    """Generate default ISO8601 timestamp string."""
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class PolicyDecision:
    """Whether robots.txt permits fetching a URL.

    Attributes:
        allowed: True if the URL may be fetched
        reason: Why the decision was made (fallbacks and blocks)
        raw_policy_text: The robots.txt body the decision was based on
    """

    allowed: bool
    reason: str | None = None
    raw_policy_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason}


class FetchFailureKind(str, Enum):
    """Classification of a failed page fetch."""

    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    NETWORK = "network"
    MALFORMED_URL = "malformed_url"
    TOO_LARGE = "too_large"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class FetchSuccess:
    """A fetched page.

    Attributes:
        url: URL that was requested
        content: Decoded response body
        status_code: HTTP status code (2xx)
        final_url: URL after redirects
        content_type: Response Content-Type header
    """

    url: str
    content: str
    status_code: int
    final_url: str | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class FetchFailure:
    """A page fetch that did not produce content.

    Attributes:
        url: URL that was requested
        kind: Failure classification
        message: Human-readable description
        status_code: HTTP status code for http_status failures
    """

    url: str
    kind: FetchFailureKind
    message: str
    status_code: int | None = None


FetchResult = FetchSuccess | FetchFailure


@dataclass(frozen=True)
class MetaTags:
    """Meta information extracted from a page head."""

    title: str | None = None
    description: str | None = None
    keywords: str | None = None
    author: str | None = None
    robots: str | None = None
    og_title: str | None = None
    og_description: str | None = None
    og_image: str | None = None
    canonical: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "keywords": self.keywords,
            "author": self.author,
            "robots": self.robots,
            "ogTitle": self.og_title,
            "ogDescription": self.og_description,
            "ogImage": self.og_image,
            "canonical": self.canonical,
        }


@dataclass(frozen=True)
class ContentStructure:
    """Structural summary of a page body."""

    h1: list[str] = field(default_factory=list)
    h2: list[str] = field(default_factory=list)
    h3: list[str] = field(default_factory=list)
    word_count: int = 0
    paragraph_count: int = 0
    image_count: int = 0
    link_count: int = 0
    has_table_of_contents: bool = False
    has_faq: bool = False
    faq_count: int | None = None
    has_product_info: bool = False
    has_reviews: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "headings": {"h1": self.h1, "h2": self.h2, "h3": self.h3},
            "wordCount": self.word_count,
            "paragraphCount": self.paragraph_count,
            "imageCount": self.image_count,
            "linkCount": self.link_count,
            "hasTableOfContents": self.has_table_of_contents,
            "hasFAQ": self.has_faq,
            "faqCount": self.faq_count,
            "hasProductInfo": self.has_product_info,
            "hasReviews": self.has_reviews,
        }


@dataclass(frozen=True)
class PageContent:
    """Parsed view of a fetched HTML page."""

    meta_tags: MetaTags
    schema_markup: list[Any]
    content_structure: ContentStructure


class CrawlOutcomeStatus(str, Enum):
    """Terminal state of one URL in a crawl batch."""

    FETCHED = "fetched"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class CrawlOutcome:
    """Terminal record for one URL of a crawl batch.

    Attributes:
        url: Input URL
        index: Position of the URL in the batch input
        status: fetched, skipped (by robots.txt) or failed
        policy: The robots.txt decision, None if never checked
        status_code: HTTP status code when a response was received
        failure: Classified fetch failure for failed outcomes
        page: Parsed page content for fetched outcomes
        html: Leading part of the raw HTML for fetched outcomes
        crawled_at: When the outcome was recorded (ISO8601 string)
    """

    url: str
    index: int
    status: CrawlOutcomeStatus
    policy: PolicyDecision | None = None
    status_code: int | None = None
    failure: FetchFailure | None = None
    page: PageContent | None = None
    html: str | None = None
    crawled_at: str = field(default_factory=_default_timestamp)

    @property
    def error(self) -> str | None:
        if self.failure is not None:
            return self.failure.message
        if self.status is CrawlOutcomeStatus.SKIPPED and self.policy is not None:
            return self.policy.reason
        return None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "url": self.url,
            "status": self.status.value,
            "statusCode": self.status_code,
            "robotsAllowed": None if self.policy is None else self.policy.allowed,
            "error": self.error,
        }
        if self.failure is not None:
            data["failureKind"] = self.failure.kind.value
        if self.page is not None:
            data["metaTags"] = self.page.meta_tags.to_dict()
            data["schemaMarkup"] = self.page.schema_markup
            data["contentStructure"] = self.page.content_structure.to_dict()
        return data


@dataclass(frozen=True)
class CrawlSummary:
    """Counts over the outcomes of a crawl batch."""

    total: int
    fetched: int
    failed: int
    skipped: int
    success_rate: int

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "fetched": self.fetched,
            "failed": self.failed,
            "skipped": self.skipped,
            "successRate": self.success_rate,
        }
