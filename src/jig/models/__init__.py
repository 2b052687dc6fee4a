"""
Pydantic models for jig.

This package contains data models for:
- Workers and their lifecycle status
- The per-repository orchestrator document
- Worker health telemetry
"""

from jig.models.health import HealthState, WorkerHealth
from jig.models.state import STATE_VERSION, OrchestratorState
from jig.models.worker import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATES,
    Approved,
    Archived,
    DiffStats,
    Failed,
    FileDiff,
    Merged,
    Running,
    Spawned,
    TaskContext,
    WaitingReview,
    Worker,
    WorkerStatus,
    can_transition,
)
from jig.models.worktree_info import WorktreeInfo

__all__ = [
    "HealthState",
    "WorkerHealth",
    "STATE_VERSION",
    "OrchestratorState",
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATES",
    "Approved",
    "Archived",
    "DiffStats",
    "Failed",
    "FileDiff",
    "Merged",
    "Running",
    "Spawned",
    "TaskContext",
    "WaitingReview",
    "Worker",
    "WorkerStatus",
    "can_transition",
    "WorktreeInfo",
]
