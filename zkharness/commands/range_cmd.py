"""zkharness range command - show the port range this worker owns."""

import click
from rich.console import Console
from rich.table import Table

from zkharness.commands._utils import get_config
from zkharness.partition import parse_process_count, parse_worker_index, setup_port_range
from zkharness.ports import read_worker_identity

console = Console()


@click.command("range")
@click.option("--process-count", "count_str", default=None, help="Number of worker processes")
@click.option("--command-line", "cmd_line", default=None, help="Command line containing threadid=<n>")
@click.pass_context
def range_cmd(ctx: click.Context, count_str: str | None, cmd_line: str | None) -> None:
    """Show the port range a worker process allocates from.

    Values not given on the command line are read from the environment.

    Examples:

        zkharness range

        zkharness range --process-count 8 --command-line "pytest threadid=3"
    """
    ports_config = get_config(ctx).ports
    env_count, env_cmd_line = read_worker_identity(ports_config)
    if count_str is None:
        count_str = env_count
    if cmd_line is None:
        cmd_line = env_cmd_line

    port_range = setup_port_range(
        count_str,
        cmd_line,
        global_base=ports_config.global_base,
        global_max=ports_config.global_max,
        token=ports_config.worker_token,
    )

    process_count = parse_process_count(count_str)
    worker_index = parse_worker_index(cmd_line, ports_config.worker_token)

    table = Table(title="Port Range")
    table.add_column("Processes", justify="center")
    table.add_column("Worker", justify="center")
    table.add_column("Minimum", justify="right")
    table.add_column("Maximum", justify="right")
    table.add_column("Size", justify="right")
    table.add_row(
        str(process_count) if process_count is not None else "-",
        str(worker_index) if worker_index is not None else "-",
        str(port_range.minimum),
        str(port_range.maximum),
        str(port_range.size),
    )
    console.print(table)
