"""Immutable watch reports for the admin commands.

A server keeps two raw mappings, ``path -> session ids``, one for data
watches and one for child watches. The reports here copy those mappings
once and answer lookups by path or by session. Child-watch paths are shown
with a trailing ``/`` so they can be told apart from a data watch on the
same path.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from zkharness.constants import CHILD_PATH_SUFFIX, WatchKind
from zkharness.exceptions import SnapshotError
from zkharness.logging import get_logger

logger = get_logger("watches")

KEY_NUM_CHILD_WATCHES = "num_child_watches"
KEY_NUM_DATA_WATCHES = "num_data_watches"
KEY_NUM_CONNECTIONS = "num_connections"
KEY_NUM_PATHS = "num_paths"
KEY_NUM_TOTAL_WATCHES = "num_total_watches"


def _freeze(mapping: Mapping[Any, Iterable[Any]]) -> MappingProxyType:
    return MappingProxyType({key: frozenset(values) for key, values in mapping.items()})


def _split_child_path(path: str) -> tuple[WatchKind, str]:
    # "/" alone is the root data path; "//" is a child watch on the root
    if path != "/" and path.endswith(CHILD_PATH_SUFFIX):
        return WatchKind.CHILD, path[: -len(CHILD_PATH_SUFFIX)]
    return WatchKind.DATA, path


class WatchesPathReport:
    """Sessions watching each path."""

    def __init__(
        self,
        data_path_to_ids: Mapping[str, Iterable[int]],
        child_path_to_ids: Mapping[str, Iterable[int]],
    ) -> None:
        self._data_path_to_ids = _freeze(data_path_to_ids)
        self._child_path_to_ids = _freeze(child_path_to_ids)

    def _lookup(self, path: str | None) -> frozenset[int] | None:
        if path is None:
            return None
        kind, key = _split_child_path(path)
        source = self._child_path_to_ids if kind is WatchKind.CHILD else self._data_path_to_ids
        return source.get(key)

    def has_sessions(self, path: str | None) -> bool:
        """Check whether any session watches a path.

        A trailing ``/`` asks about child watches on the path.
        """
        return self._lookup(path) is not None

    def get_sessions(self, path: str | None) -> frozenset[int] | None:
        """Return the sessions watching a path, or None if there are none."""
        return self._lookup(path)

    def to_dict(self) -> dict[str, set[int]]:
        """Convert to a mutable dict; changes do not reflect back into the report."""
        result = {path: set(ids) for path, ids in self._data_path_to_ids.items()}
        for path, ids in self._child_path_to_ids.items():
            result[path + CHILD_PATH_SUFFIX] = set(ids)
        return result


class WatchesReport:
    """Paths watched by each session."""

    def __init__(
        self,
        id_to_data_paths: Mapping[int, Iterable[str]],
        id_to_child_paths: Mapping[int, Iterable[str]],
    ) -> None:
        self._id_to_data_paths = _freeze(id_to_data_paths)
        self._id_to_child_paths = MappingProxyType(
            {
                session_id: frozenset(path + CHILD_PATH_SUFFIX for path in paths)
                for session_id, paths in id_to_child_paths.items()
            }
        )

    def has_paths(self, session_id: int) -> bool:
        """Check whether a session has any watches set."""
        return session_id in self._id_to_data_paths or session_id in self._id_to_child_paths

    def get_paths(self, session_id: int) -> frozenset[str] | None:
        """Return every path a session watches, or None if it watches nothing.

        Child-watch paths carry a trailing ``/``.
        """
        if not self.has_paths(session_id):
            return None
        return self._id_to_data_paths.get(session_id, frozenset()) | self._id_to_child_paths.get(
            session_id, frozenset()
        )

    def session_ids(self) -> list[int]:
        """Return all session ids with watches, ascending."""
        return sorted(set(self._id_to_data_paths) | set(self._id_to_child_paths))

    def to_dict(self) -> dict[int, set[str]]:
        """Convert to a mutable dict; changes do not reflect back into the report."""
        return {session_id: set(self.get_paths(session_id) or ()) for session_id in self.session_ids()}


@dataclass(frozen=True)
class WatchesSummary:
    """Watch counts for one kind of watch, or both combined."""

    num_connections: int
    num_paths: int
    total_watches: int
    data_watches: int = 0
    child_watches: int = 0

    @classmethod
    def from_path_map(cls, path_to_ids: Mapping[str, Iterable[int]]) -> WatchesSummary:
        """Count sessions, paths and watches in a ``path -> ids`` mapping."""
        sessions: set[int] = set()
        num_paths = 0
        total = 0
        for ids in path_to_ids.values():
            id_set = set(ids)
            if not id_set:
                continue
            sessions |= id_set
            num_paths += 1
            total += len(id_set)
        return cls(num_connections=len(sessions), num_paths=num_paths, total_watches=total)

    @classmethod
    def combine(cls, data_summary: WatchesSummary, child_summary: WatchesSummary) -> WatchesSummary:
        """Merge a data-watch summary and a child-watch summary.

        Connections and paths are added without de-duplication, so a session
        holding both kinds of watch counts twice.
        """
        return cls(
            num_connections=data_summary.num_connections + child_summary.num_connections,
            num_paths=data_summary.num_paths + child_summary.num_paths,
            total_watches=data_summary.total_watches + child_summary.total_watches,
            data_watches=data_summary.total_watches,
            child_watches=child_summary.total_watches,
        )

    def to_dict(self) -> dict[str, int]:
        """Convert to a mutable dict."""
        return {
            KEY_NUM_CHILD_WATCHES: self.child_watches,
            KEY_NUM_DATA_WATCHES: self.data_watches,
            KEY_NUM_CONNECTIONS: self.num_connections,
            KEY_NUM_PATHS: self.num_paths,
            KEY_NUM_TOTAL_WATCHES: self.total_watches,
        }


def _invert(path_to_ids: Mapping[str, Iterable[int]]) -> dict[int, set[str]]:
    id_to_paths: dict[int, set[str]] = defaultdict(set)
    for path, ids in path_to_ids.items():
        for session_id in ids:
            id_to_paths[session_id].add(path)
    return dict(id_to_paths)


class WatchesSnapshot(BaseModel):
    """Raw watch registrations captured from a server."""

    data: dict[str, set[int]] = Field(default_factory=dict)
    children: dict[str, set[int]] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: str | Path) -> WatchesSnapshot:
        """Load a snapshot from a YAML or JSON file.

        Args:
            path: File with ``data`` and ``children`` mappings

        Returns:
            WatchesSnapshot instance

        Raises:
            SnapshotError: If the file is missing, unreadable or malformed
        """
        path = Path(path)
        try:
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise SnapshotError(f"Cannot read snapshot {path}", str(path), {"error": str(e)}) from e

        if not isinstance(raw, dict):
            raise SnapshotError(f"Snapshot {path} must be a mapping", str(path))
        try:
            snapshot = cls(**raw)
        except ValidationError as e:
            raise SnapshotError(f"Invalid snapshot {path}", str(path), {"errors": e.error_count()}) from e

        logger.debug(
            "Loaded snapshot %s with %d data and %d child paths", path, len(snapshot.data), len(snapshot.children)
        )
        return snapshot

    def path_report(self) -> WatchesPathReport:
        """Build the report keyed by path."""
        return WatchesPathReport(self.data, self.children)

    def session_report(self) -> WatchesReport:
        """Build the report keyed by session id."""
        return WatchesReport(_invert(self.data), _invert(self.children))

    def data_summary(self) -> WatchesSummary:
        """Count data watches."""
        return WatchesSummary.from_path_map(self.data)

    def child_summary(self) -> WatchesSummary:
        """Count child watches."""
        return WatchesSummary.from_path_map(self.children)

    def summary(self) -> WatchesSummary:
        """Count data and child watches together."""
        return WatchesSummary.combine(self.data_summary(), self.child_summary())
