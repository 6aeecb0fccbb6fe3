"""zkharness allocate command - assign ports from this worker's range."""

import click
from rich.console import Console

from zkharness.commands._utils import get_config
from zkharness.exceptions import RangeExhaustedError
from zkharness.logging import get_logger
from zkharness.ports import PortAllocator

console = Console(stderr=True)
logger = get_logger("allocate")


@click.command()
@click.option("--count", "-n", default=1, type=click.IntRange(min=1), help="Number of ports to assign")
@click.pass_context
def allocate(ctx: click.Context, count: int) -> None:
    """Assign bindable ports and print one per line.

    Examples:

        zkharness allocate

        ZKHARNESS_PROCESS_COUNT=4 zkharness allocate -n 3
    """
    allocator = PortAllocator.from_environment(get_config(ctx).ports)
    logger.debug("Allocating %d ports from %s", count, allocator.port_range)
    try:
        ports = allocator.allocate_many(count)
    except RangeExhaustedError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None

    for port in ports:
        click.echo(port)
