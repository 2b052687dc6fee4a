"""Pydantic models for worktree information."""

from pathlib import Path

from pydantic import BaseModel, Field


class WorktreeInfo(BaseModel):
    """Information about a git worktree."""

    path: Path = Field(description="Absolute path to the worktree directory")
    branch: str = Field(description="Branch name checked out in this worktree")
    head_commit: str = Field(description="Short SHA of the HEAD commit")
    is_main: bool = Field(default=False, description="Whether this is the main worktree")
    is_detached: bool = Field(default=False, description="Whether HEAD is detached")

    @property
    def name(self) -> str:
        """Get the worktree directory name."""
        return self.path.name
