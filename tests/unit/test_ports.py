"""Tests for zkharness port allocation module."""

import socket
import sys
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from tests.helpers.sockets import hold_port, port_is_free
from zkharness import ports
from zkharness.config import PortsConfig
from zkharness.exceptions import PortAllocationError, RangeExhaustedError
from zkharness.logging import get_worker_context
from zkharness.partition import PortRange
from zkharness.ports import PortAllocator, get_allocator, read_worker_identity, reset_allocator, unique


def _allocator(minimum: int = 50000, maximum: int = 50004) -> PortAllocator:
    return PortAllocator(PortRange(minimum, maximum))


class TestPortAllocatorInit:
    """Tests for PortAllocator initialization."""

    def test_cursor_starts_at_minimum(self) -> None:
        allocator = _allocator()
        assert allocator.cursor == 50000

    def test_port_range_exposed(self) -> None:
        allocator = _allocator()
        assert allocator.port_range == PortRange(50000, 50004)


class TestIsBindable:
    """Tests for the bind probe."""

    def test_successful_bind(self) -> None:
        allocator = _allocator()
        mock_sock = MagicMock()
        mock_sock.__enter__ = MagicMock(return_value=mock_sock)
        mock_sock.__exit__ = MagicMock(return_value=False)

        with patch("zkharness.ports.socket.socket", return_value=mock_sock):
            result = allocator.is_bindable(50001)

        assert result is True
        mock_sock.setsockopt.assert_called_once_with(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        mock_sock.bind.assert_called_once_with(("", 50001))
        mock_sock.listen.assert_called_once()

    def test_address_in_use(self) -> None:
        allocator = _allocator()
        mock_sock = MagicMock()
        mock_sock.__enter__ = MagicMock(return_value=mock_sock)
        mock_sock.__exit__ = MagicMock(return_value=False)
        mock_sock.bind.side_effect = OSError("Address already in use")

        with patch("zkharness.ports.socket.socket", return_value=mock_sock):
            result = allocator.is_bindable(50001)

        assert result is False

    def test_held_port_not_bindable(self, held_socket: socket.socket) -> None:
        port = held_socket.getsockname()[1]
        assert _allocator().is_bindable(port) is False


class TestAllocate:
    """Tests for sequential allocation."""

    @pytest.mark.smoke
    def test_first_allocation_is_one_past_minimum(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=True):
            assert allocator.allocate() == 50001
        assert allocator.cursor == 50001

    def test_allocations_increase(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=True):
            assert [allocator.allocate() for _ in range(4)] == [50001, 50002, 50003, 50004]

    def test_wraps_to_minimum_after_maximum(self) -> None:
        allocator = _allocator(50000, 50002)
        with patch.object(allocator, "is_bindable", return_value=True):
            assert [allocator.allocate() for _ in range(5)] == [50001, 50002, 50000, 50001, 50002]

    def test_skips_unbindable_ports(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", side_effect=lambda port: port != 50001) as probe:
            assert allocator.allocate() == 50002

        assert [c.args[0] for c in probe.call_args_list] == [50001, 50002]

    def test_unbindable_port_skipped_on_later_pass(self) -> None:
        allocator = _allocator(50000, 50002)
        held = {50001}
        with patch.object(allocator, "is_bindable", side_effect=lambda port: port not in held):
            assert allocator.allocate() == 50002
            assert allocator.allocate() == 50000
            assert allocator.allocate() == 50002

    def test_never_returns_port_outside_range(self) -> None:
        allocator = _allocator(50000, 50009)
        with patch.object(allocator, "is_bindable", return_value=True):
            for _ in range(35):
                assert allocator.allocate() in allocator.port_range


class TestRangeExhausted:
    """Tests for exhaustion handling."""

    def test_raises_when_nothing_bindable(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=False) as probe:
            with pytest.raises(RangeExhaustedError):
                allocator.allocate()

        # Every port except the cursor is probed exactly once
        assert [c.args[0] for c in probe.call_args_list] == [50001, 50002, 50003, 50004]

    def test_cursor_unchanged_after_exhaustion(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=True):
            allocator.allocate()
            allocator.allocate()
        with patch.object(allocator, "is_bindable", return_value=False) as probe:
            with pytest.raises(RangeExhaustedError):
                allocator.allocate()

        assert allocator.cursor == 50002
        assert [c.args[0] for c in probe.call_args_list] == [50003, 50004, 50000, 50001]

    def test_single_port_range_is_exhausted(self) -> None:
        allocator = _allocator(50000, 50000)
        with patch.object(allocator, "is_bindable", return_value=True) as probe:
            with pytest.raises(RangeExhaustedError):
                allocator.allocate()
        probe.assert_not_called()

    def test_error_carries_range(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=False):
            with pytest.raises(RangeExhaustedError) as exc_info:
                allocator.allocate()

        assert exc_info.value.port_range == PortRange(50000, 50004)
        assert "50000 - 50004" in str(exc_info.value)
        assert "exhausted" in str(exc_info.value)
        assert isinstance(exc_info.value, PortAllocationError)

    def test_real_sockets_exhaust_range(self, held_socket: socket.socket) -> None:
        port = held_socket.getsockname()[1]
        if port >= 65535:
            pytest.skip("OS assigned the top port")
        try:
            neighbour = hold_port(port + 1)
        except OSError:
            pytest.skip(f"port {port + 1} already in use")

        try:
            allocator = PortAllocator(PortRange(port, port + 1))
            with pytest.raises(RangeExhaustedError):
                allocator.allocate()
        finally:
            neighbour.close()


class TestAllocateMany:
    """Tests for allocating several ports at once."""

    def test_allocate_many(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", return_value=True):
            assert allocator.allocate_many(3) == [50001, 50002, 50003]

    def test_allocate_zero(self) -> None:
        assert _allocator().allocate_many(0) == []

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            _allocator().allocate_many(-1)

    def test_propagates_exhaustion(self) -> None:
        allocator = _allocator()
        with patch.object(allocator, "is_bindable", side_effect=lambda port: port == 50001):
            with pytest.raises(RangeExhaustedError):
                allocator.allocate_many(2)


class TestRealSockets:
    """Tests that bind real sockets on the loopback host."""

    def test_allocated_ports_are_bindable(self, held_socket: socket.socket) -> None:
        base = held_socket.getsockname()[1]
        if base + 50 > 65535:
            pytest.skip("OS assigned a port too close to the top")
        allocator = PortAllocator(PortRange(base, base + 50))

        holders = []
        try:
            for _ in range(5):
                port = allocator.allocate()
                assert port in allocator.port_range
                holders.append(hold_port(port))
        finally:
            for sock in holders:
                sock.close()

        assert len(holders) == 5

    def test_skips_held_port(self, held_socket: socket.socket) -> None:
        port = held_socket.getsockname()[1]
        if port >= 65535 or not port_is_free(port + 1):
            pytest.skip(f"port {port + 1} unavailable")

        allocator = PortAllocator(PortRange(port - 1, port + 1))
        assert allocator.allocate() == port + 1


class TestThreadSafety:
    """Tests for concurrent allocation."""

    def test_concurrent_allocations_unique(self) -> None:
        allocator = _allocator(50000, 50100)
        allocated: list[int] = []
        lock = threading.Lock()

        def allocate_port() -> None:
            port = allocator.allocate()
            with lock:
                allocated.append(port)

        with patch.object(allocator, "is_bindable", return_value=True):
            threads = [threading.Thread(target=allocate_port) for _ in range(20)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        assert len(allocated) == 20
        assert len(set(allocated)) == 20
        assert allocator.cursor == 50020

    def test_concurrent_allocations_with_held_ports(self, held_socket: socket.socket) -> None:
        base = held_socket.getsockname()[1]
        if base + 200 > 65535:
            pytest.skip("OS assigned a port too close to the top")
        allocator = PortAllocator(PortRange(base, base + 200))
        holders: list[socket.socket] = []
        errors: list[Exception] = []
        lock = threading.Lock()

        def allocate_and_hold() -> None:
            try:
                port = allocator.allocate()
                sock = hold_port(port)
            except Exception as e:  # noqa: BLE001 - surfaced via errors list
                with lock:
                    errors.append(e)
                return
            with lock:
                holders.append(sock)

        threads = [threading.Thread(target=allocate_and_hold) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        try:
            assert errors == []
            held_ports = [sock.getsockname()[1] for sock in holders]
            assert len(set(held_ports)) == 10
        finally:
            for sock in holders:
                sock.close()


class TestReadWorkerIdentity:
    """Tests for reading identity strings from the environment."""

    def test_reads_configured_variables(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "4")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "pytest threadid=2")
        assert read_worker_identity(PortsConfig()) == ("4", "pytest threadid=2")

    def test_custom_variable_names(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("TEST_THREADS", "3")
        clean_env.setenv("TEST_CMD", "threadid=1")
        config = PortsConfig(process_count_env="TEST_THREADS", command_line_env="TEST_CMD")
        assert read_worker_identity(config) == ("3", "threadid=1")

    def test_falls_back_to_argv(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setattr(sys, "argv", ["pytest", "threadid=4"])
        assert read_worker_identity(PortsConfig()) == (None, "pytest threadid=4")


class TestFromEnvironment:
    """Tests for building an allocator from the environment."""

    def test_partitioned(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=8")
        allocator = PortAllocator.from_environment()
        assert allocator.port_range == PortRange(58744, 65532)
        assert allocator.cursor == 58744

    def test_unpartitioned(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=8")
        allocator = PortAllocator.from_environment()
        assert allocator.port_range == PortRange(11221, 65535)

    def test_custom_global_range(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "2")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=2")
        allocator = PortAllocator.from_environment(PortsConfig(global_base=30000, global_max=30100))
        assert allocator.port_range == PortRange(30050, 30099)

    def test_partitioned_sets_worker_context(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "pytest threadid=3")
        PortAllocator.from_environment()
        assert get_worker_context() == {"worker_id": 3, "process_count": 8}

    def test_unpartitioned_leaves_worker_context(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "1")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=1")
        PortAllocator.from_environment()
        assert get_worker_context() == {}

    def test_out_of_range_index_leaves_worker_context(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=9")
        PortAllocator.from_environment()
        assert get_worker_context() == {}


class TestProcessWideAllocator:
    """Tests for the module-level allocator and unique()."""

    def test_get_allocator_is_cached(self, clean_env: pytest.MonkeyPatch) -> None:
        assert get_allocator() is get_allocator()

    def test_reset_allocator_rebuilds(self, clean_env: pytest.MonkeyPatch) -> None:
        first = get_allocator()
        reset_allocator()
        assert get_allocator() is not first

    def test_unique_uses_worker_range(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "pytest threadid=2")
        with patch.object(PortAllocator, "is_bindable", return_value=True):
            assert unique() == 18011
            assert unique() == 18012

    def test_get_allocator_sets_worker_context(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=3")
        assert get_allocator().port_range == PortRange(24799, 31587)
        assert get_worker_context()["worker_id"] == 3

    def test_range_fixed_after_first_use(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("ZKHARNESS_PROCESS_COUNT", "8")
        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=1")
        first_range = get_allocator().port_range

        clean_env.setenv("ZKHARNESS_COMMAND_LINE", "threadid=5")
        assert get_allocator().port_range == first_range

    def test_uses_config_file(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        config_dir = tmp_path / ".zkharness"
        config_dir.mkdir()
        (config_dir / "config.yaml").write_text("ports:\n  global_base: 40000\n  global_max: 40999\n")
        assert get_allocator().port_range == PortRange(40000, 40999)

    def test_concurrent_first_use_builds_one_allocator(self, clean_env: pytest.MonkeyPatch) -> None:
        seen: list[PortAllocator] = []
        lock = threading.Lock()

        def grab() -> None:
            allocator = get_allocator()
            with lock:
                seen.append(allocator)

        threads = [threading.Thread(target=grab) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(a) for a in seen}) == 1
        assert ports._allocator is seen[0]
