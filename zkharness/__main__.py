"""Allow ``python -m zkharness``."""

from zkharness.cli import cli

if __name__ == "__main__":
    cli()
