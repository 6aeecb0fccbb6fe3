"""zkharness admin command - render watch reports from a snapshot file."""

from pathlib import Path

import click
from rich.console import Console

from zkharness.admin import run_command
from zkharness.constants import AdminCommand
from zkharness.exceptions import SnapshotError, UnknownCommandError
from zkharness.watches import WatchesSnapshot

console = Console(stderr=True)


@click.command("admin")
@click.argument("command")
@click.option(
    "--snapshot",
    "-s",
    "snapshot_path",
    required=True,
    type=click.Path(path_type=Path),
    help="YAML or JSON file with data and children watch mappings",
)
def admin_cmd(command: str, snapshot_path: Path) -> None:
    """Run a watch admin command (wchs, wchc, wchp) against a snapshot.

    Examples:

        zkharness admin wchs --snapshot watches.yaml

        zkharness admin wchp -s watches.json
    """
    try:
        snapshot = WatchesSnapshot.load(snapshot_path)
        output = run_command(command, snapshot)
    except UnknownCommandError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        console.print("Known commands: " + ", ".join(c.value for c in AdminCommand))
        raise SystemExit(1) from None
    except SnapshotError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1) from None

    click.echo(output, nl=False)
