"""Core functionality for jig."""

from jig.core.adapter import CLAUDE_CODE, AgentAdapter, build_spawn_command, get_adapter
from jig.core.detector import WorkerDetector, WorkerState
from jig.core.health import HealthTracker
from jig.core.session import SessionBackend, TmuxSessionBackend
from jig.core.spawn import HealthReport, SpawnCoordinator, TaskStatus, WorkerListing
from jig.core.state import load_or_create_state, load_state, migrate_legacy_layout, save_state
from jig.core.worktree import WorktreeManager

__all__ = [
    "CLAUDE_CODE",
    "AgentAdapter",
    "build_spawn_command",
    "get_adapter",
    "WorkerDetector",
    "WorkerState",
    "HealthTracker",
    "SessionBackend",
    "TmuxSessionBackend",
    "HealthReport",
    "SpawnCoordinator",
    "TaskStatus",
    "WorkerListing",
    "load_or_create_state",
    "load_state",
    "migrate_legacy_layout",
    "save_state",
    "WorktreeManager",
]
