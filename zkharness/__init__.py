"""zkharness - test harness utilities for a coordination server.

Partitioned port assignment for parallel test workers, plus the watch
reports behind the wchs/wchc/wchp admin commands.
"""

__version__ = "0.1.0"

from zkharness.exceptions import HarnessError, RangeExhaustedError
from zkharness.partition import PortRange, setup_port_range
from zkharness.ports import PortAllocator, get_allocator, unique
from zkharness.watches import WatchesPathReport, WatchesReport, WatchesSnapshot, WatchesSummary

__all__ = [
    "__version__",
    "HarnessError",
    "RangeExhaustedError",
    # Ports
    "PortRange",
    "PortAllocator",
    "setup_port_range",
    "get_allocator",
    "unique",
    # Watches
    "WatchesPathReport",
    "WatchesReport",
    "WatchesSnapshot",
    "WatchesSummary",
]
