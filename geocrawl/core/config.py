"""Configuration module for the geocrawl pipeline.

Provides Pydantic-based configuration management with environment variable
support and field validation.

Example:
    >>> from geocrawl.core.config import Settings
    >>> settings = Settings(max_concurrent_fetches=5)
    >>> print(settings.user_agent)
    'GEOAnalyzer/1.0 (Educational Research Tool)'
"""

import logging
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = "GEOAnalyzer/1.0 (Educational Research Tool)"
DEFAULT_ENGINES = ["perplexity", "chatgpt", "gemini", "claude"]


class Settings(BaseSettings):
    """geocrawl service configuration.

    Attributes:
        user_agent: Identifying User-Agent sent with every outbound request
        robots_timeout: Timeout in seconds for robots.txt requests
        fetch_timeout: Timeout in seconds for page fetches
        max_concurrent_fetches: Worker pool size for the crawling stage
        max_batch_size: Maximum URLs accepted by a single crawl batch
        max_content_bytes: Largest page body accepted by the fetch worker
        html_snippet_chars: Characters of raw HTML kept on a crawl record
        allow_private_hosts: Allow crawling localhost and private IP ranges
        max_cited_pages: Most cited pages crawled after a variation analysis
        analysis_endpoint: URL of the per-query analysis service
        analysis_api_key: Bearer token for the analysis service (optional)
        engines: Ordered list of analysis engine names
        engine_timeout: Timeout in seconds for one engine call
        variation_endpoint: Base URL of an OpenAI-compatible API
        variation_api_key: API key for the variation generator (optional)
        variation_model: Chat model used to generate query variations
        api_key: Key required in the X-API-Key header (unset allows all requests)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to the rotating log file

    Raises:
        ValidationError: If values are invalid

    Example:
        >>> settings = Settings(fetch_timeout=10.0, engines=["claude"])
        >>> settings.engines
        ['claude']
    """

    # Outbound HTTP
    user_agent: str = DEFAULT_USER_AGENT
    robots_timeout: float = 5.0
    fetch_timeout: float = 30.0

    # Crawl batches
    max_concurrent_fetches: int = 3
    max_batch_size: int = 10
    max_content_bytes: int = 5 * 1024 * 1024
    html_snippet_chars: int = 50_000
    allow_private_hosts: bool = False
    max_cited_pages: int = 30

    # Analysis engines
    analysis_endpoint: str = "http://localhost:54321/functions/v1/analyze-query"
    analysis_api_key: str | None = None
    engines: list[str] = DEFAULT_ENGINES
    engine_timeout: float = 120.0

    # Variation generation
    variation_endpoint: str = "https://api.openai.com/v1"
    variation_api_key: str | None = None
    variation_model: str = "gpt-4o"

    # REST API
    api_key: str | None = None

    # Logging
    log_level: str = "INFO"
    log_file: Path = Path(".cache/geocrawl.log")

    model_config = SettingsConfigDict(
        env_prefix="GEOCRAWL_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    @field_validator("robots_timeout", "fetch_timeout", "engine_timeout")
    @classmethod
    def validate_timeout(cls: type["Settings"], v: float) -> float:
        """Validate timeouts are positive.

        Every network suspension point is bounded by one of these values, so
        zero or negative timeouts would make requests fail immediately.

        Args:
            cls: The Settings class (provided by Pydantic)
            v: Timeout in seconds

        Returns:
            Validated timeout

        Raises:
            ValueError: If the timeout is not positive
        """
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v

    @field_validator("max_concurrent_fetches")
    @classmethod
    def validate_max_concurrent_fetches(cls: type["Settings"], v: int) -> int:
        """Validate max_concurrent_fetches is positive.

        Controls how many pages are fetched at once during the crawling
        stage.

        Args:
            cls: The Settings class (provided by Pydantic)
            v: Worker pool size

        Returns:
            Validated max_concurrent_fetches

        Raises:
            ValueError: If max_concurrent_fetches is not positive
        """
        # At least one worker is needed to make progress
        if v <= 0:
            raise ValueError("max_concurrent_fetches must be positive")
        return v

    @field_validator(
        "max_batch_size", "max_content_bytes", "html_snippet_chars", "max_cited_pages"
    )
    @classmethod
    def validate_positive_limit(cls: type["Settings"], v: int) -> int:
        """Validate size limits are positive."""
        if v <= 0:
            raise ValueError("size limits must be positive")
        return v

    @field_validator("engines")
    @classmethod
    def validate_engines(cls: type["Settings"], v: list[str]) -> list[str]:
        """Validate the engine list is non-empty and free of duplicates."""
        names = [name.strip() for name in v if name.strip()]
        if not names:
            raise ValueError("at least one engine must be configured")
        if len(set(names)) != len(names):
            raise ValueError("engine names must be unique")
        return names

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls: type["Settings"], v: str) -> str:
        """Validate log_level names a standard logging level."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level
