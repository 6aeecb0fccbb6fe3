"""zkharness command-line interface."""

from pathlib import Path

import click
from rich.console import Console

from zkharness import __version__
from zkharness.commands import admin_cmd, allocate, range_cmd
from zkharness.config import HarnessConfig
from zkharness.exceptions import ConfigurationError
from zkharness.logging import setup_logging

console = Console(stderr=True)


@click.group()
@click.version_option(version=__version__, prog_name="zkharness")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: .zkharness/config.yaml)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warn", "error"]),
    default=None,
    help="Override the configured log level",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """zkharness - port assignment and watch reports for coordination server tests.

    Gives each parallel test process its own slice of the port space.
    """
    ctx.ensure_object(dict)

    try:
        config = HarnessConfig.load(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None

    setup_logging(
        level=log_level or config.logging.level,
        log_dir=config.logging.directory if config.logging.json_output else None,
        json_output=config.logging.json_output,
        console_output=True,
    )
    ctx.obj["config"] = config


cli.add_command(admin_cmd, name="admin")
cli.add_command(allocate)
cli.add_command(range_cmd, name="range")


if __name__ == "__main__":
    cli()
