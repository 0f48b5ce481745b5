"""Main Typer application: imports and registers all CLI commands.

Entry point: ``roundflow`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from roundflow.cli.commands.demo import demo_cmd
from roundflow.cli.commands.topics_cmd import topics_cmd
from roundflow.cli.commands.validate import validate_cmd
from roundflow.config import RoundflowConfig

app = typer.Typer(
    name="roundflow",
    help="Roundflow: event-driven round lifecycle sagas.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="topics", help="List routed topics and their handlers.")(topics_cmd)
app.command(name="validate", help="Validate an envelope JSON file.")(validate_cmd)
app.command(name="demo", help="Run a complete round on the in-process bus.")(demo_cmd)


def configure_logging(config: RoundflowConfig | None = None) -> None:
    """Route stdlib logging through Rich at the configured level."""
    config = config or RoundflowConfig()
    level = "DEBUG" if config.debug else config.log_level.upper()
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def main() -> None:
    """CLI entry point."""
    configure_logging()
    app()


if __name__ == "__main__":
    main()
