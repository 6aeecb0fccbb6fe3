"""Pytest configuration and fixtures for zkharness tests."""

import socket
from collections.abc import Generator
from pathlib import Path

import pytest

from tests.helpers.sockets import hold_port
from zkharness.config import HarnessConfig
from zkharness.logging import clear_worker_context, setup_logging
from zkharness.ports import reset_allocator


@pytest.fixture(autouse=True)
def _isolate_process_state() -> Generator[None, None, None]:
    """Reset process-wide allocator, config cache and logging around each test."""
    reset_allocator()
    HarnessConfig.invalidate_cache()
    clear_worker_context()
    yield
    reset_allocator()
    HarnessConfig.invalidate_cache()
    clear_worker_context()
    setup_logging(console_output=True, json_output=False)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> pytest.MonkeyPatch:
    """Run in an empty directory with no worker identity in the environment."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ZKHARNESS_PROCESS_COUNT", raising=False)
    monkeypatch.delenv("ZKHARNESS_COMMAND_LINE", raising=False)
    return monkeypatch


@pytest.fixture
def held_socket() -> Generator[socket.socket, None, None]:
    """A listening socket on an OS-assigned port."""
    sock = hold_port()
    yield sock
    sock.close()


@pytest.fixture
def watch_snapshot_data() -> dict[str, dict[str, list[int]]]:
    """Two sessions, each with two data watches and two child watches."""
    return {
        "data": {"/1": [1], "/2": [1], "/5": [2], "/6": [2]},
        "children": {"/3": [1], "/4": [1], "/7": [2], "/8": [2]},
    }
