"""Shared helpers for zkharness commands."""

import click

from zkharness.config import HarnessConfig


def get_config(ctx: click.Context) -> HarnessConfig:
    """Return the config loaded by the CLI group, or load the default one."""
    ctx.ensure_object(dict)
    config = ctx.obj.get("config")
    if config is None:
        config = HarnessConfig.load()
        ctx.obj["config"] = config
    return config
