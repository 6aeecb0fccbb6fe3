"""Split the global test port interval into per-worker ranges.

Each test process learns two strings at startup: how many worker processes
share the machine, and a command line carrying its own 1-based worker index
as ``threadid=<n>``. From those it derives a private slice of the global
interval so concurrent workers never probe each other's ports.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from zkharness.constants import GLOBAL_PORT_BASE, GLOBAL_PORT_MAX, WORKER_TOKEN
from zkharness.logging import get_logger

logger = get_logger("partition")


@dataclass(frozen=True)
class PortRange:
    """Inclusive range of ports one process may allocate from."""

    minimum: int
    maximum: int

    def __post_init__(self) -> None:
        if self.minimum > self.maximum:
            raise ValueError(f"minimum ({self.minimum}) must be <= maximum ({self.maximum})")

    @property
    def size(self) -> int:
        """Number of ports in the range."""
        return self.maximum - self.minimum + 1

    def __contains__(self, port: object) -> bool:
        return isinstance(port, int) and self.minimum <= port <= self.maximum

    def __str__(self) -> str:
        return f"{self.minimum} - {self.maximum}"


def parse_process_count(count_str: str | None) -> int | None:
    """Parse the worker process count.

    Args:
        count_str: Raw count string, possibly missing or empty

    Returns:
        The count, or None when absent or not an integer
    """
    if not count_str:
        return None
    try:
        return int(count_str.strip())
    except ValueError:
        logger.warning("Error parsing test process count '%s', using single process", count_str)
        return None


def parse_worker_index(cmd_line: str | None, token: str = WORKER_TOKEN) -> int | None:
    """Find ``<token>=<digits>`` in a command line.

    Args:
        cmd_line: Raw command line text
        token: Identifier preceding the worker index

    Returns:
        The first matching index, or None when absent
    """
    if not cmd_line:
        return None
    match = re.search(rf"{re.escape(token)}=(\d+)", cmd_line)
    if match is None:
        return None
    return int(match.group(1))


def setup_port_range(
    count_str: str | None,
    cmd_line: str | None,
    global_base: int = GLOBAL_PORT_BASE,
    global_max: int = GLOBAL_PORT_MAX,
    token: str = WORKER_TOKEN,
) -> PortRange:
    """Compute the port range for this test process.

    The interval is divided into ``process_count`` equal slices using integer
    division. The last slice does not absorb the remainder, so the top few
    ports of the global interval stay unused when the division is uneven.
    Anything short of a usable ``(count > 1, index)`` pair gives the whole
    global interval.

    Args:
        count_str: Number of worker processes, as configured
        cmd_line: Command line containing the worker index
        global_base: Lowest port any worker may use
        global_max: Highest port any worker may use
        token: Identifier marking the worker index in ``cmd_line``

    Returns:
        The inclusive PortRange owned by this process
    """
    process_count = parse_process_count(count_str)
    worker_index = parse_worker_index(cmd_line, token) if process_count is not None else None

    if process_count is not None and process_count > 1 and worker_index is not None:
        size = (global_max - global_base) // process_count
        if size < 1:
            logger.warning(
                "Process count %d leaves no ports per worker, using the whole port range",
                process_count,
            )
        elif not 1 <= worker_index <= process_count:
            logger.warning(
                "Worker index %d outside 1..%d, using the whole port range",
                worker_index,
                process_count,
            )
        else:
            minimum = global_base + (worker_index - 1) * size
            port_range = PortRange(minimum, minimum + size - 1)
            logger.info(
                "Test process %d/%d using ports from %s",
                worker_index,
                process_count,
                port_range,
                extra={"worker_index": worker_index, "process_count": process_count},
            )
            return port_range

    port_range = PortRange(global_base, global_max)
    logger.info("Single test process using ports from %s", port_range)
    return port_range
