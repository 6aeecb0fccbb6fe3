"""zkharness exception hierarchy."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from zkharness.partition import PortRange


class HarnessError(Exception):
    """Base exception for all zkharness errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConfigurationError(HarnessError):
    """Error in zkharness configuration."""

    pass


class PortAllocationError(HarnessError):
    """Base error for port allocation failures."""

    pass


class RangeExhaustedError(PortAllocationError):
    """Every port in the configured range is currently unbindable."""

    def __init__(self, port_range: PortRange) -> None:
        super().__init__(
            f"Could not assign port from range {port_range}. The entire range has been exhausted."
        )
        self.port_range = port_range


class UnknownCommandError(HarnessError):
    """Admin dispatcher received a command word it does not know."""

    def __init__(self, command: str, known: list[str] | None = None) -> None:
        super().__init__(f"Unknown admin command '{command}'", {"known": known} if known else None)
        self.command = command


class SnapshotError(HarnessError):
    """Watches snapshot file is missing, unreadable or malformed."""

    def __init__(self, message: str, path: str | None = None, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, details)
        self.path = path
