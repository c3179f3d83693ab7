"""Shared pytest fixtures for geocrawl unit tests."""

import logging
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import httpx
import pytest


@pytest.fixture(autouse=True)
def isolated_settings_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep tests away from the developer's .env and .cache directory."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "GEOCRAWL_API_KEY",
        "GEOCRAWL_ENGINES",
        "GEOCRAWL_MAX_CONCURRENT_FETCHES",
        "GEOCRAWL_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("GEOCRAWL_LOG_FILE", str(tmp_path / "logs" / "geocrawl.log"))


@pytest.fixture
async def http_client() -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture(autouse=True)
def reset_geocrawl_logger() -> Iterator[None]:
    """Drop handlers CLI commands attach to the package logger."""
    yield
    logger = logging.getLogger("geocrawl")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
