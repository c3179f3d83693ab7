"""Policy checking, page fetching and HTML parsing for geocrawl."""

from geocrawl.crawler.fetcher import PageFetcher
from geocrawl.crawler.models import (
    CrawlOutcome,
    CrawlOutcomeStatus,
    CrawlSummary,
    FetchFailure,
    FetchFailureKind,
    FetchSuccess,
    PageContent,
    PolicyDecision,
)
from geocrawl.crawler.page_parser import parse_page
from geocrawl.crawler.robots import RobotsPolicyChecker, parse_disallow_rules

__all__ = [
    "CrawlOutcome",
    "CrawlOutcomeStatus",
    "CrawlSummary",
    "FetchFailure",
    "FetchFailureKind",
    "FetchSuccess",
    "PageContent",
    "PageFetcher",
    "PolicyDecision",
    "RobotsPolicyChecker",
    "parse_disallow_rules",
    "parse_page",
]
