"""zkharness CLI commands."""

from zkharness.commands.admin_cmd import admin_cmd
from zkharness.commands.allocate import allocate
from zkharness.commands.range_cmd import range_cmd

__all__ = [
    "admin_cmd",
    "allocate",
    "range_cmd",
]
