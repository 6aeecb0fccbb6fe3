"""Text rendering for the watch admin commands (wchs, wchc, wchp)."""

from __future__ import annotations

from collections.abc import Callable

from zkharness.constants import CHILD_PATH_SUFFIX, AdminCommand
from zkharness.exceptions import UnknownCommandError
from zkharness.logging import get_logger
from zkharness.watches import WatchesSnapshot, WatchesSummary

logger = get_logger("admin")


def _session_hex(session_id: int) -> str:
    # Session ids are signed 64-bit; print them unsigned
    return f"0x{session_id & 0xFFFFFFFFFFFFFFFF:x}"


def _summary_lines(title: str, summary: WatchesSummary) -> list[str]:
    return [
        title,
        f"{summary.num_connections} connections watching {summary.num_paths} paths",
        f"Total watches:{summary.total_watches}",
    ]


def render_summary(snapshot: WatchesSnapshot) -> str:
    """Render ``wchs``: counts for data watches, then child watches."""
    lines = _summary_lines("Data watches", snapshot.data_summary())
    lines += _summary_lines("Children watches", snapshot.child_summary())
    return "\n".join(lines) + "\n"


def render_by_session(snapshot: WatchesSnapshot) -> str:
    """Render ``wchc``: each session followed by the paths it watches."""
    report = snapshot.session_report()
    lines: list[str] = []
    for session_id in report.session_ids():
        lines.append(_session_hex(session_id))
        lines.extend(f"\t{path}" for path in sorted(report.get_paths(session_id) or ()))
    return "".join(f"{line}\n" for line in lines)


def render_by_path(snapshot: WatchesSnapshot) -> str:
    """Render ``wchp``: each path followed by the sessions watching it.

    Data-watch paths come first, then child-watch paths with a trailing ``/``.
    """
    report = snapshot.path_report().to_dict()
    data_paths = sorted(snapshot.data)
    child_paths = sorted(path + CHILD_PATH_SUFFIX for path in snapshot.children)
    lines: list[str] = []
    for path in data_paths + child_paths:
        session_ids = report.get(path)
        if not session_ids:
            continue
        lines.append(path)
        lines.extend(f"\t{_session_hex(session_id)}" for session_id in sorted(session_ids))
    return "".join(f"{line}\n" for line in lines)


COMMANDS: dict[AdminCommand, Callable[[WatchesSnapshot], str]] = {
    AdminCommand.WCHS: render_summary,
    AdminCommand.WCHC: render_by_session,
    AdminCommand.WCHP: render_by_path,
}


def run_command(name: str, snapshot: WatchesSnapshot) -> str:
    """Run an admin command against a snapshot.

    Args:
        name: Command word, e.g. ``wchs``
        snapshot: Watch registrations to report on

    Returns:
        Command output text

    Raises:
        UnknownCommandError: If the command word is not recognised
    """
    try:
        command = AdminCommand(name.strip().lower())
    except ValueError:
        raise UnknownCommandError(name, [c.value for c in AdminCommand]) from None

    logger.debug("Running admin command %s", command.value, extra={"command": command.value})
    return COMMANDS[command](snapshot)
