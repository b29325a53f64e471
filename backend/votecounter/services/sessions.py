"""
VoteCounter Snapshot Sessions
Registry of open snapshots for the HTTP layer. Each snapshot has its own lock
so operations on one snapshot never overlap.
"""
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Dict, Iterator, List, Optional, Tuple, Union

from votecounter.config import SnapshotSettings
from votecounter.services.snapshot import Snapshot
from votecounter.utils.ids import generate_snapshot_id
from votecounter.utils.logging import get_logger

logger = get_logger()


class SnapshotNotFoundError(KeyError):
    """No open snapshot has the requested id."""
    pass


class SnapshotRegistry:
    """Open snapshots keyed by session id."""

    def __init__(self):
        self._lock = Lock()
        self._sessions: Dict[str, Tuple[Snapshot, Lock]] = {}

    def open(self, path: Union[str, Path], settings: Optional[SnapshotSettings] = None) -> str:
        """Open a snapshot and return its session id."""
        snapshot = Snapshot.open(path, settings)
        snapshot_id = generate_snapshot_id()
        with self._lock:
            self._sessions[snapshot_id] = (snapshot, Lock())
        logger.info("Registered snapshot", extra={"snapshot_id": snapshot_id, "path": str(snapshot.path)})
        return snapshot_id

    def _entry(self, snapshot_id: str) -> Tuple[Snapshot, Lock]:
        with self._lock:
            entry = self._sessions.get(snapshot_id)
        if entry is None:
            raise SnapshotNotFoundError(snapshot_id)
        return entry

    def get(self, snapshot_id: str) -> Snapshot:
        return self._entry(snapshot_id)[0]

    @contextmanager
    def acquire(self, snapshot_id: str) -> Iterator[Snapshot]:
        """Hold a snapshot's lock for the duration of the block."""
        snapshot, lock = self._entry(snapshot_id)
        with lock:
            yield snapshot

    def close(self, snapshot_id: str) -> None:
        """Persist and forget a snapshot."""
        snapshot, lock = self._entry(snapshot_id)
        with lock:
            snapshot.close()
        with self._lock:
            self._sessions.pop(snapshot_id, None)
        logger.info("Released snapshot", extra={"snapshot_id": snapshot_id})

    def close_all(self) -> None:
        for snapshot_id in self.ids():
            self.close(snapshot_id)

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


# Global registry instance
_registry: Optional[SnapshotRegistry] = None


def get_registry() -> SnapshotRegistry:
    """Get or create the global snapshot registry."""
    global _registry
    if _registry is None:
        _registry = SnapshotRegistry()
    return _registry
