"""Entry point for running the Saleengine CLI.

This module defines a top-level Click group that aggregates all subcommands
defined in the ``saleengine.interfaces.cli`` package. Executing
``python -m saleengine.interfaces.cli`` will invoke this group.
"""

import logging

import click

from saleengine.infrastructure.observability import configure_logging

from .bid import bid
from .line import line
from .settle import settle


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level for engine messages.",
)
def cli(log_level: str | None) -> None:
    """Saleengine command-line interface."""
    if log_level:
        configure_logging(level=getattr(logging, log_level.upper()))


cli.add_command(bid)
cli.add_command(settle)
cli.add_command(line)


if __name__ == "__main__":
    cli()
