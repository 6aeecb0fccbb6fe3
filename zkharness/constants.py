"""zkharness constants and enumerations."""

from enum import Enum


class WatchKind(Enum):
    """Kind of watch a session can set on a path."""

    DATA = "data"
    CHILD = "child"


class AdminCommand(Enum):
    """Four-letter admin commands that render watch reports."""

    WCHS = "wchs"  # summary counts
    WCHC = "wchc"  # watches grouped by session
    WCHP = "wchp"  # watches grouped by path


# Global port interval every test process shares
GLOBAL_PORT_BASE = 11221
GLOBAL_PORT_MAX = 65535

# Worker identity sources
PROCESS_COUNT_ENV = "ZKHARNESS_PROCESS_COUNT"
COMMAND_LINE_ENV = "ZKHARNESS_COMMAND_LINE"
WORKER_TOKEN = "threadid"

# Marker appended to child-watch paths in reports
CHILD_PATH_SUFFIX = "/"

# Config and log locations
CONFIG_FILE = ".zkharness/config.yaml"
LOGS_DIR = ".zkharness/logs"
