"""Pydantic model for the per-repository orchestrator document."""

from pathlib import Path
from typing import Iterator, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from jig.config import RepoConfig, session_name_for
from jig.errors import WorkerExistsError
from jig.models.worker import Worker

STATE_VERSION = 1


class OrchestratorState(BaseModel):
    """All workers of one repository plus the repo config snapshot."""

    version: int = Field(default=STATE_VERSION, description="Schema version")
    repo_root: Path = Field(..., description="Root of the git repository")
    workers: dict[UUID, Worker] = Field(
        default_factory=dict,
        description="All workers (active and terminal) keyed by id"
    )
    tmux_session: str = Field(..., description="Shared tmux session for all workers")
    config: RepoConfig = Field(default_factory=RepoConfig)

    @classmethod
    def new(cls, repo_root: Path, config: Optional[RepoConfig] = None) -> "OrchestratorState":
        """Create an empty state for a repository."""
        return cls(
            repo_root=repo_root,
            tmux_session=session_name_for(repo_root),
            config=config or RepoConfig(),
        )

    def add_worker(self, worker: Worker) -> None:
        """
        Add a worker.

        Raises:
            WorkerExistsError: If an active worker already uses the name.
        """
        existing = self.get_worker_by_name(worker.name)
        if existing is not None and existing.is_active:
            raise WorkerExistsError(worker.name)

        self.workers[worker.id] = worker

    def get_worker(self, worker_id: UUID) -> Optional[Worker]:
        """Get a worker by id."""
        return self.workers.get(worker_id)

    def get_worker_by_name(self, name: str) -> Optional[Worker]:
        """
        Get a worker by name.

        Prefers the active worker; otherwise returns the most recently
        updated terminal worker with that name.
        """
        matches = [w for w in self.workers.values() if w.name == name]
        if not matches:
            return None

        for worker in matches:
            if worker.is_active:
                return worker

        return max(matches, key=lambda w: w.updated_at)

    def remove_worker(self, worker_id: UUID) -> Optional[Worker]:
        """Remove a worker by id, returning it if present."""
        return self.workers.pop(worker_id, None)

    def active_workers(self) -> Iterator[Worker]:
        """All non-terminal workers."""
        return (w for w in self.workers.values() if w.is_active)

    def all_workers(self) -> Iterator[Worker]:
        """All workers, including terminal ones."""
        return iter(self.workers.values())

    def active_count(self) -> int:
        """Number of non-terminal workers."""
        return sum(1 for _ in self.active_workers())

