"""
Pydantic models for worker health telemetry.

Health data churns far more often than worker lifecycle state, so it is
kept in its own document keyed by worker name.
"""

import time
from typing import Optional

from pydantic import BaseModel, Field

HEALTH_VERSION = "1"


def _now() -> int:
    return int(time.time())


class WorkerHealth(BaseModel):
    """Health metrics and nudge counts for one worker."""

    started_at: int = Field(..., description="Unix time monitoring started")
    last_commit_at: int = Field(default=0, description="Unix time of last commit, 0 if none")
    commit_count: int = Field(default=0, ge=0)
    last_file_mod_at: int = Field(default=0, description="Unix time of last file change")
    nudges: dict[str, int] = Field(
        default_factory=dict,
        description="Escalation count per nudge type"
    )

    def increment_nudge(self, nudge_type: str) -> int:
        """Increment the count for a nudge type and return the new value."""
        self.nudges[nudge_type] = self.nudges.get(nudge_type, 0) + 1
        return self.nudges[nudge_type]

    def reset_nudge(self, nudge_type: str) -> None:
        """Reset the count for a nudge type."""
        self.nudges.pop(nudge_type, None)

    def get_nudge_count(self, nudge_type: str) -> int:
        """Get the count for a nudge type (0 when never nudged)."""
        return self.nudges.get(nudge_type, 0)

    def age_hours(self, now: Optional[int] = None) -> int:
        """Whole hours since monitoring started."""
        now = _now() if now is None else now
        return max(now - self.started_at, 0) // 3600

    def hours_since_commit(self, now: Optional[int] = None) -> int:
        """Whole hours since the last commit, or age when none was seen."""
        if self.last_commit_at == 0:
            return self.age_hours(now)

        now = _now() if now is None else now
        return max(now - self.last_commit_at, 0) // 3600


class HealthState(BaseModel):
    """Persistent health document for one repository."""

    version: str = Field(default=HEALTH_VERSION)
    max_nudges: int = Field(default=3, ge=0)
    workers: dict[str, WorkerHealth] = Field(default_factory=dict)

    def add_worker(self, name: str, started_at: Optional[int] = None) -> WorkerHealth:
        """Start monitoring a worker, replacing any previous entry."""
        health = WorkerHealth(started_at=_now() if started_at is None else started_at)
        self.workers[name] = health
        return health

    def get_worker(self, name: str) -> Optional[WorkerHealth]:
        """Get health data for a worker."""
        return self.workers.get(name)

    def remove_worker(self, name: str) -> Optional[WorkerHealth]:
        """Stop monitoring a worker, returning its data if it existed."""
        return self.workers.pop(name, None)

    def nudge_limit_reached(self, name: str, nudge_type: str) -> bool:
        """Whether a worker has used up its nudges of one type."""
        health = self.workers.get(name)
        if health is None:
            return False
        return health.get_nudge_count(nudge_type) >= self.max_nudges
