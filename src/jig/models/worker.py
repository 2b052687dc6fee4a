"""
Pydantic models for workers and their lifecycle.

A worker's status is a closed set of tagged variants. Only the transitions
listed in ``ALLOWED_TRANSITIONS`` are accepted by ``Worker.transition_to``;
everything else raises ``InvalidTransitionError``.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from jig.errors import InvalidTransitionError


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class FileDiff(BaseModel):
    """Line counts for one changed file."""

    path: str = Field(..., description="Path relative to the worktree root")
    insertions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)


class DiffStats(BaseModel):
    """Summary of changes on a worker branch relative to its base."""

    files_changed: int = Field(default=0, ge=0)
    insertions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)
    files: list[FileDiff] = Field(default_factory=list)

    @classmethod
    def from_numstat(cls, output: str) -> "DiffStats":
        """
        Parse ``git diff --numstat`` output.

        Binary files report ``-`` for both counts and contribute zero lines.
        """
        files = []
        for line in output.splitlines():
            parts = line.split("\t", 2)
            if len(parts) != 3:
                continue
            added, removed, path = parts
            files.append(
                FileDiff(
                    path=path,
                    insertions=int(added) if added.isdigit() else 0,
                    deletions=int(removed) if removed.isdigit() else 0,
                )
            )

        return cls(
            files_changed=len(files),
            insertions=sum(f.insertions for f in files),
            deletions=sum(f.deletions for f in files),
            files=files,
        )


class TaskContext(BaseModel):
    """What a worker has been asked to do."""

    description: str = Field(..., description="Free-text task description")
    issue_ref: Optional[str] = Field(
        default=None,
        description="External issue reference, e.g. '#42'"
    )
    files_hint: list[str] = Field(
        default_factory=list,
        description="Files the task is expected to touch"
    )


class Spawned(BaseModel):
    """Worktree and window exist; the agent has not been seen working yet."""

    state: Literal["spawned"] = "spawned"


class Running(BaseModel):
    """The agent is working."""

    state: Literal["running"] = "running"


class WaitingReview(BaseModel):
    """The agent went idle and its changes await review."""

    state: Literal["waiting_review"] = "waiting_review"
    diff_stats: DiffStats = Field(default_factory=DiffStats)


class Approved(BaseModel):
    """A reviewer accepted the changes."""

    state: Literal["approved"] = "approved"


class Merged(BaseModel):
    """The branch is merged into its base."""

    state: Literal["merged"] = "merged"


class Failed(BaseModel):
    """The worker could not continue."""

    state: Literal["failed"] = "failed"
    reason: str = Field(..., description="Why the worker failed")


class Archived(BaseModel):
    """Retired and kept as history."""

    state: Literal["archived"] = "archived"


WorkerStatus = Annotated[
    Union[Spawned, Running, WaitingReview, Approved, Merged, Failed, Archived],
    Field(discriminator="state"),
]

TERMINAL_STATES = frozenset({"merged", "failed", "archived"})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "spawned": frozenset({"running", "failed", "archived"}),
    "running": frozenset({"waiting_review", "failed", "archived"}),
    "waiting_review": frozenset(
        {"waiting_review", "running", "approved", "failed", "archived"}
    ),
    "approved": frozenset({"merged", "failed", "archived"}),
    "merged": frozenset(),
    "failed": frozenset(),
    "archived": frozenset(),
}


def can_transition(current: str, target: str) -> bool:
    """Check whether ``current -> target`` is a legal status change."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


class Worker(BaseModel):
    """One tracked unit of parallel work."""

    id: UUID = Field(default_factory=uuid4, description="Stable unique id")
    name: str = Field(..., min_length=1, description="Worker name")
    worktree_path: Path = Field(..., description="Path to the worker's worktree")
    branch: str = Field(..., description="Branch checked out in the worktree")
    base_branch: str = Field(..., description="Branch the worktree was forked from")
    tmux_session: str = Field(..., description="Shared tmux session name")
    tmux_window: Optional[str] = Field(
        default=None,
        description="Window name inside the session"
    )
    status: WorkerStatus = Field(default_factory=Spawned)
    task: Optional[TaskContext] = None
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="before")
    @classmethod
    def _fill_timestamps(cls, data: Any) -> Any:
        if isinstance(data, dict):
            if data.get("created_at") is None:
                data = {**data, "created_at": utcnow()}
            if data.get("updated_at") is None:
                data = {**data, "updated_at": data["created_at"]}
        return data

    @property
    def state(self) -> str:
        """Tag of the current status variant."""
        return self.status.state

    @property
    def is_active(self) -> bool:
        """True unless the worker is merged, failed or archived."""
        return self.state not in TERMINAL_STATES

    def touch(self) -> None:
        """Advance updated_at; never moves backwards."""
        now = utcnow()
        if now < self.updated_at:
            now = self.updated_at
        self.updated_at = now

    def transition_to(self, status: WorkerStatus) -> None:
        """
        Move the worker to a new status.

        Raises:
            InvalidTransitionError: If the change is not in ALLOWED_TRANSITIONS.
        """
        if not can_transition(self.state, status.state):
            raise InvalidTransitionError(self.name, self.state, status.state)

        self.status = status
        self.touch()

    def fail(self, reason: str) -> None:
        """Mark the worker failed with a reason."""
        self.transition_to(Failed(reason=reason))
