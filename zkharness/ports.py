"""Port assignment for concurrent test workers.

Ports come from the range this process owns (see ``zkharness.partition``).
Allocation walks the range circularly from the last assigned port and
returns the first port that can actually be bound. The probe socket is
closed before the port is returned, so a faster process elsewhere on the
host can still grab it before the caller binds. Callers should bind
promptly.
"""

from __future__ import annotations

import os
import socket
import sys
import threading

from zkharness.config import HarnessConfig, PortsConfig
from zkharness.exceptions import RangeExhaustedError
from zkharness.logging import get_logger, set_worker_context
from zkharness.partition import PortRange, parse_process_count, parse_worker_index, setup_port_range

logger = get_logger("ports")


def read_worker_identity(config: PortsConfig) -> tuple[str | None, str | None]:
    """Read the process count and command line strings from the environment.

    The command line falls back to this process's own argv when the
    configured variable is unset.

    Args:
        config: Ports configuration naming the variables

    Returns:
        Tuple of (count string, command line string)
    """
    count_str = os.environ.get(config.process_count_env)
    cmd_line = os.environ.get(config.command_line_env)
    if cmd_line is None:
        cmd_line = " ".join(sys.argv)
    return count_str, cmd_line


class PortAllocator:
    """Hand out unique, bindable ports from a fixed range. Thread-safe.

    The cursor holds the last assigned port and starts on
    ``port_range.minimum``, so the first allocation probes ``minimum + 1``
    and ``minimum`` is only reached after wrapping. Ports are never
    released back; a port handed out earlier is skipped on the next pass
    only if its holder still has it bound.
    """

    def __init__(self, port_range: PortRange) -> None:
        self._port_range = port_range
        self._cursor = port_range.minimum
        self._lock = threading.Lock()

    @classmethod
    def from_environment(cls, config: PortsConfig | None = None) -> PortAllocator:
        """Build an allocator for the range this process owns.

        When the range is a worker slice, the worker index and process count
        become the logging context.

        Args:
            config: Ports configuration, defaults to PortsConfig()

        Returns:
            PortAllocator seeded from the environment
        """
        config = config or PortsConfig()
        count_str, cmd_line = read_worker_identity(config)
        port_range = setup_port_range(
            count_str,
            cmd_line,
            global_base=config.global_base,
            global_max=config.global_max,
            token=config.worker_token,
        )
        if port_range != PortRange(config.global_base, config.global_max):
            set_worker_context(
                worker_id=parse_worker_index(cmd_line, config.worker_token),
                process_count=parse_process_count(count_str),
            )
        return cls(port_range)

    @property
    def port_range(self) -> PortRange:
        """The range this allocator draws from."""
        return self._port_range

    @property
    def cursor(self) -> int:
        """The last assigned port, or the range minimum before any assignment."""
        with self._lock:
            return self._cursor

    def is_bindable(self, port: int) -> bool:
        """Check whether a listening socket can be bound to a port.

        Args:
            port: Port number to probe

        Returns:
            True if the bind succeeded
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(("", port))
                sock.listen(1)
                return True
        except OSError as e:
            logger.debug("Port %d not bindable: %s", port, e)
            return False

    def allocate(self) -> int:
        """Assign the next bindable port.

        The probe and the cursor update happen under one lock, so two
        threads can never both settle on the same candidate.

        Returns:
            Assigned port number

        Raises:
            RangeExhaustedError: If the scan came back to the cursor without
                finding a bindable port
        """
        with self._lock:
            candidate = self._cursor
            while True:
                candidate += 1
                if candidate > self._port_range.maximum:
                    candidate = self._port_range.minimum
                if candidate == self._cursor:
                    raise RangeExhaustedError(self._port_range)
                if self.is_bindable(candidate):
                    self._cursor = candidate
                    logger.info(
                        "Assigned port %d from range %s",
                        candidate,
                        self._port_range,
                        extra={"port": candidate, "port_range": str(self._port_range)},
                    )
                    return candidate

    def allocate_many(self, count: int) -> list[int]:
        """Assign several ports in sequence.

        Args:
            count: Number of ports to assign

        Returns:
            Assigned port numbers in allocation order

        Raises:
            RangeExhaustedError: If the range runs out part way
        """
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        return [self.allocate() for _ in range(count)]


_allocator: PortAllocator | None = None
_allocator_lock = threading.Lock()


def get_allocator() -> PortAllocator:
    """Return the process-wide allocator, creating it on first use.

    The range is computed once from the loaded configuration and the
    environment; later changes to either are ignored until
    ``reset_allocator()`` is called.
    """
    global _allocator
    if _allocator is None:
        with _allocator_lock:
            if _allocator is None:
                _allocator = PortAllocator.from_environment(HarnessConfig.load().ports)
    return _allocator


def reset_allocator() -> None:
    """Drop the process-wide allocator so the next use rebuilds it."""
    global _allocator
    with _allocator_lock:
        _allocator = None


def unique() -> int:
    """Assign a port that no other worker on this host will be handed.

    Returns:
        Assigned port number

    Raises:
        RangeExhaustedError: If this process's range is fully occupied
    """
    return get_allocator().allocate()
