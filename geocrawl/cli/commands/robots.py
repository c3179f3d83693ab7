"""Robots command for checking crawl permission without fetching pages."""

from __future__ import annotations

import asyncio

import httpx
import typer
from rich.console import Console
from rich.table import Table

from geocrawl.core.config import Settings
from geocrawl.core.logger import get_logger
from geocrawl.core.url_validation import UrlValidator
from geocrawl.crawler.models import PolicyDecision
from geocrawl.crawler.robots import RobotsPolicyChecker


def robots_command(
    urls: list[str] = typer.Argument(..., help="URLs to check"),
) -> None:
    """Check robots.txt permission for URLs."""
    resolved_urls = [url.strip() for url in urls if url.strip()]
    if not resolved_urls:
        typer.echo("No URLs provided")
        raise typer.Exit(code=1)

    settings = Settings()
    get_logger(
        "geocrawl",
        log_level=settings.log_level,
        log_file=settings.log_file,
        console_level="WARNING",
    )

    decisions = asyncio.run(_check(settings, resolved_urls))

    table = Table(title="robots.txt")
    table.add_column("URL", overflow="fold")
    table.add_column("Allowed")
    table.add_column("Reason", overflow="fold")
    for url in resolved_urls:
        decision = decisions[url]
        allowed = "[green]yes[/green]" if decision.allowed else "[red]no[/red]"
        table.add_row(url, allowed, decision.reason or "")

    console = Console()
    console.print(table)
    blocked = sum(1 for url in resolved_urls if not decisions[url].allowed)
    console.print(f"Checked {len(resolved_urls)} URLs: {blocked} disallowed")


async def _check(settings: Settings, urls: list[str]) -> dict[str, PolicyDecision]:
    async with httpx.AsyncClient() as client:
        checker = RobotsPolicyChecker(
            client,
            user_agent=settings.user_agent,
            timeout=settings.robots_timeout,
            validator=UrlValidator(settings.allow_private_hosts),
        )
        return await checker.check_policy_batch(urls)
