"""
Health telemetry tracking for workers.

This module provides functionality to:
- Load and persist the per-repository health document
- Start and stop monitoring workers
- Record commit activity and nudge counts

The health document is advisory. A missing or unreadable document reads
as an empty default instead of failing the caller.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from jig.config import HEALTH_DIR, HEALTH_FILE, JIG_DIR
from jig.models.health import HealthState, WorkerHealth
from jig.utils.io import atomic_write_text

logger = logging.getLogger(__name__)


def health_file_path(repo_root: Path) -> Path:
    """Path of the health document for a repository."""
    return Path(repo_root) / JIG_DIR / HEALTH_DIR / HEALTH_FILE


class HealthTracker:
    """
    Loads, mutates and saves a repository's HealthState.

    The tracker only keeps counts and timestamps. Deciding when to nudge a
    worker or give up on it is left to the caller, which can compare
    counts against ``state.max_nudges``.
    """

    def __init__(self, repo_root: Path, max_nudges: Optional[int] = None):
        self._path = health_file_path(repo_root)
        self._max_nudges = max_nudges
        self.state = self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> HealthState:
        """Read the document from disk, falling back to an empty state."""
        state = HealthState()

        if self._path.exists():
            try:
                state = HealthState.model_validate(
                    json.loads(self._path.read_text(encoding="utf-8"))
                )
            except (OSError, ValueError, ValidationError) as e:
                logger.warning(f"Ignoring unreadable health state {self._path}: {e}")

        if self._max_nudges is not None:
            state.max_nudges = self._max_nudges

        return state

    def save(self) -> None:
        """Persist the current state."""
        atomic_write_text(self._path, self.state.model_dump_json(indent=2) + "\n")

    def get(self, name: str) -> Optional[WorkerHealth]:
        """Health data for a worker, if monitored."""
        return self.state.get_worker(name)

    def start_monitoring(self, name: str, started_at: Optional[int] = None) -> WorkerHealth:
        """Begin a fresh entry for a worker, discarding any previous one."""
        return self.state.add_worker(name, started_at)

    def ensure_worker(self, name: str, started_at: Optional[int] = None) -> WorkerHealth:
        """Start monitoring a worker unless it is already monitored."""
        health = self.state.get_worker(name)
        if health is None:
            health = self.state.add_worker(name, started_at)
        return health

    def forget_worker(self, name: str) -> bool:
        """
        Stop monitoring a worker.

        Returns:
            True if an entry was removed.
        """
        return self.state.remove_worker(name) is not None

    def record_commits(self, name: str, commit_count: int, last_commit_at: int) -> WorkerHealth:
        """Update commit telemetry for a worker."""
        health = self.ensure_worker(name)
        health.commit_count = commit_count
        if last_commit_at:
            health.last_commit_at = last_commit_at
        return health

    def increment_nudge(self, name: str, nudge_type: str) -> int:
        """Increment a worker's nudge count and return it."""
        return self.ensure_worker(name).increment_nudge(nudge_type)

    def reset_nudge(self, name: str, nudge_type: str) -> None:
        """Reset a worker's nudge count for one type."""
        health = self.state.get_worker(name)
        if health is not None:
            health.reset_nudge(nudge_type)

    def get_nudge_count(self, name: str, nudge_type: str) -> int:
        """Current nudge count for a worker and type."""
        health = self.state.get_worker(name)
        return health.get_nudge_count(nudge_type) if health else 0

    def nudge_limit_reached(self, name: str, nudge_type: str) -> bool:
        """Whether the worker has reached ``max_nudges`` for a type."""
        return self.state.nudge_limit_reached(name, nudge_type)
