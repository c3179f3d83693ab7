"""Typer application entry point for the geocrawl CLI."""

import typer

from geocrawl.cli.commands import crawl as crawl_command
from geocrawl.cli.commands import robots as robots_command
from geocrawl.cli.commands import variations as variations_command

app = typer.Typer(no_args_is_help=True, name="geocrawl")

app.command(name="crawl", help="Check robots.txt and crawl a batch of pages")(
    crawl_command.crawl_command
)
app.command(name="robots", help="Check robots.txt permission for URLs")(
    robots_command.robots_command
)
app.command(
    name="variations", help="Generate query variations and optionally analyze them"
)(variations_command.variations_command)


if __name__ == "__main__":
    app()
