"""
Persistence for the orchestrator document.

The document lives at ``<repo>/.jig/.state/workers.json``. Repositories
created before the ``.jig`` layout kept it at
``<repo>/.worktrees/.jig-state.json`` with worktrees next to it; the first
load migrates such a repository in place.

Saves are whole-document and atomic. There is no cross-process locking:
one mutating jig command per repository at a time is assumed.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from jig.config import JIG_DIR, STATE_DIR, STATE_FILE, RepoConfig
from jig.errors import StateCorruptError
from jig.models.state import OrchestratorState
from jig.utils.io import atomic_write_text, read_text_locked

logger = logging.getLogger(__name__)

# Frozen historical layout; must not change.
LEGACY_WORKTREE_DIR = ".worktrees"
LEGACY_STATE_FILE = ".jig-state.json"


def state_file_path(repo_root: Path) -> Path:
    """Path of the orchestrator document for a repository."""
    return Path(repo_root) / JIG_DIR / STATE_DIR / STATE_FILE


def legacy_state_file_path(repo_root: Path) -> Path:
    """Path of the pre-.jig orchestrator document."""
    return Path(repo_root) / LEGACY_WORKTREE_DIR / LEGACY_STATE_FILE


def _read_state(path: Path) -> OrchestratorState:
    try:
        return OrchestratorState.model_validate_json(read_text_locked(path))
    except (UnicodeDecodeError, ValidationError) as e:
        raise StateCorruptError(path, str(e)) from e


def _serialize(state: OrchestratorState) -> str:
    return state.model_dump_json(indent=2) + "\n"


def migrate_legacy_layout(repo_root: Path) -> bool:
    """
    Move a repository from the legacy ``.worktrees`` layout to ``.jig``.

    Runs only when the legacy document exists and the new one does not, so
    calling it again, or after an interrupted run that already wrote the new
    document, does nothing.

    Args:
        repo_root: Root of the git repository.

    Returns:
        True if a migration was performed.

    Raises:
        StateCorruptError: If the legacy document cannot be parsed. Nothing
            is moved in that case.
    """
    repo_root = Path(repo_root)
    legacy_state = legacy_state_file_path(repo_root)
    new_state = state_file_path(repo_root)

    if not legacy_state.exists() or new_state.exists():
        return False

    old_dir = repo_root / LEGACY_WORKTREE_DIR
    new_dir = repo_root / JIG_DIR

    logger.info(f"Migrating jig state from {old_dir} to {new_dir}")

    state = _read_state(legacy_state)

    for worker in state.workers.values():
        try:
            relative = worker.worktree_path.relative_to(old_dir)
        except ValueError:
            continue
        worker.worktree_path = new_dir / relative

    if state.config.worktree_dir == LEGACY_WORKTREE_DIR:
        state.config.worktree_dir = JIG_DIR

    atomic_write_text(new_state, _serialize(state))

    for entry in sorted(old_dir.iterdir()):
        if entry.name.startswith("."):
            continue

        destination = new_dir / entry.name
        if entry.is_dir() and not destination.exists():
            entry.rename(destination)
            logger.debug(f"Moved {entry} -> {destination}")

    legacy_state.unlink()

    if not any(old_dir.iterdir()):
        old_dir.rmdir()

    return True


def load_state(repo_root: Path) -> Optional[OrchestratorState]:
    """
    Load the orchestrator document for a repository.

    Runs the legacy-layout migration first.

    Returns:
        The state, or None when no document exists.

    Raises:
        StateCorruptError: If the document cannot be parsed.
    """
    migrate_legacy_layout(repo_root)

    path = state_file_path(repo_root)
    if not path.exists():
        return None

    return _read_state(path)


def save_state(state: OrchestratorState) -> Path:
    """
    Write the full orchestrator document atomically.

    Returns:
        Path the document was written to.
    """
    path = state_file_path(state.repo_root)
    atomic_write_text(path, _serialize(state))
    return path


def load_or_create_state(
    repo_root: Path,
    config: Optional[RepoConfig] = None
) -> OrchestratorState:
    """Load the document, or build a new empty state (not yet saved)."""
    state = load_state(repo_root)
    if state is None:
        state = OrchestratorState.new(Path(repo_root), config)
    return state
