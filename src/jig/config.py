"""
Configuration management for jig.

Repository settings are read from ``jig.toml`` at the repository root.
A snapshot of the effective settings (``RepoConfig``) is stored in the
orchestrator state document when it is first created.
"""

import logging
import shutil
from pathlib import Path
from typing import Optional

import toml
from pydantic import BaseModel, Field

from jig.errors import ConfigError

logger = logging.getLogger(__name__)

JIG_DIR = ".jig"
STATE_DIR = ".state"
STATE_FILE = "workers.json"
HEALTH_DIR = ".health"
HEALTH_FILE = "state.json"
CONFIG_FILE = "jig.toml"

DEFAULT_BASE_BRANCH = "origin/main"
SESSION_PREFIX = "jig"

DEFAULT_PROMPT_PATTERNS = [
    r"❯\s*$",
    r"\$\s*$",
    r"#\s*$",
]

DEFAULT_STUCK_PATTERNS = [
    r"Would you like to proceed",
    r"ctrl-g to edit",
    r"❯.*\d+\.\s+Yes.*\d+\.\s+Yes",
]


class RepoConfig(BaseModel):
    """Repository configuration captured in the state document."""

    base_branch: str = Field(
        default=DEFAULT_BASE_BRANCH,
        description="Default base branch for new worktrees",
    )
    worktree_dir: str = Field(
        default=JIG_DIR,
        description="Directory for worktrees (relative to repo root)",
    )
    on_create_hook: Optional[str] = Field(
        default=None,
        description="Shell command to run after worktree creation",
    )
    auto_review: bool = Field(
        default=True,
        description="Move idle workers to waiting-review automatically",
    )


class WorktreeSection(BaseModel):
    """[worktree] table of jig.toml."""

    base: Optional[str] = Field(
        default=None,
        description="Base branch for new worktrees",
    )
    on_create: Optional[str] = Field(
        default=None,
        description="Shell command to run after worktree creation",
    )
    copy_files: list[str] = Field(
        default_factory=list,
        alias="copy",
        description="Gitignored files to copy into new worktrees",
    )


class SpawnSection(BaseModel):
    """[spawn] table of jig.toml."""

    auto: bool = Field(
        default=False,
        description="Start the agent in auto mode",
    )
    auto_review: bool = Field(
        default=True,
        description="Move idle workers to waiting-review automatically",
    )


class AgentSection(BaseModel):
    """[agent] table of jig.toml."""

    type: str = Field(
        default="claude",
        description="Agent adapter name",
    )


class HealthConfig(BaseModel):
    """[health] table of jig.toml."""

    prompt_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PROMPT_PATTERNS),
        description="Regexes matching an idle shell prompt",
    )
    stuck_patterns: list[str] = Field(
        default_factory=lambda: list(DEFAULT_STUCK_PATTERNS),
        description="Regexes matching a blocking interactive prompt",
    )
    max_nudges: int = Field(
        default=3,
        ge=0,
        description="Nudges of one type before escalation",
    )


class JigToml(BaseModel):
    """Contents of a repository's jig.toml."""

    worktree: WorktreeSection = Field(default_factory=WorktreeSection)
    spawn: SpawnSection = Field(default_factory=SpawnSection)
    agent: AgentSection = Field(default_factory=AgentSection)
    health: HealthConfig = Field(default_factory=HealthConfig)

    def to_repo_config(self) -> RepoConfig:
        """Build the repository snapshot stored in the state document."""
        return RepoConfig(
            base_branch=self.worktree.base or DEFAULT_BASE_BRANCH,
            on_create_hook=self.worktree.on_create,
            auto_review=self.spawn.auto_review,
        )


def load_config(repo_root: Path) -> JigToml:
    """
    Load jig.toml from a repository, or defaults when absent.

    Args:
        repo_root: Root directory of the repository.

    Returns:
        JigToml instance with loaded or default values.

    Raises:
        ConfigError: If the file exists but cannot be parsed.
    """
    path = Path(repo_root) / CONFIG_FILE

    if not path.exists():
        return JigToml()

    try:
        data = toml.load(path)
        return JigToml.model_validate(data)
    except (toml.TomlDecodeError, ValueError) as e:
        raise ConfigError(f"Invalid {path}: {e}") from e


def session_name_for(repo_root: Path) -> str:
    """Shared tmux session name for a repository."""
    name = Path(repo_root).name or "unknown"
    return f"{SESSION_PREFIX}-{name}"


def copy_worktree_files(src_root: Path, dst_root: Path, files: list[str]) -> list[str]:
    """
    Copy configured files from the base repository into a worktree.

    Missing source files are skipped.

    Returns:
        Relative paths that were copied.
    """
    copied = []
    for name in files:
        src = src_root / name
        dst = dst_root / name

        if not src.exists():
            continue

        dst.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, dst)
        logger.info(f"Copied {name} to worktree")
        copied.append(name)

    return copied
