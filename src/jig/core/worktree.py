"""Git worktree operations used by the spawn coordinator."""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from jig.errors import CommandFailedError, JigError
from jig.models.worker import DiffStats
from jig.models.worktree_info import WorktreeInfo

logger = logging.getLogger(__name__)


class WorktreeError(CommandFailedError):
    """Raised when a git command on a worktree fails."""


class WorktreeNotFoundError(JigError):
    """Raised when a worktree cannot be found."""


class NotAGitRepositoryError(JigError):
    """Raised when the path is not a git repository."""


class UncommittedChangesError(JigError):
    """Raised when removing a worktree that has uncommitted changes."""


class WorktreeManager:
    """Manages git worktree operations for a repository."""

    def __init__(self, repo_path: Optional[Path] = None):
        """
        Initialize the WorktreeManager.

        Works from the base repository or from inside any of its worktrees.

        Args:
            repo_path: Path inside the git repository. Defaults to current directory.

        Raises:
            NotAGitRepositoryError: If the path is not a git repository.
        """
        self.repo_path = Path(repo_path) if repo_path else Path.cwd()
        try:
            repo = Repo(self.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotAGitRepositoryError(
                f"Not a git repository: {self.repo_path}"
            ) from e

        common_dir = Path(repo.common_dir).resolve()
        if common_dir.name == ".git":
            self.git_root = common_dir.parent
            self.repo = Repo(self.git_root)
        else:
            self.git_root = Path(repo.working_dir)
            self.repo = repo

    def _open(self, worktree_path: Path) -> Repo:
        try:
            return Repo(worktree_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise WorktreeNotFoundError(f"Worktree not found: {worktree_path}") from e

    def list_all(self) -> list[WorktreeInfo]:
        """
        Worktrees git knows about, the base checkout first.

        Raises:
            WorktreeError: If ``git worktree list`` fails.
        """
        try:
            output = self.repo.git.worktree("list", "--porcelain")
        except GitCommandError as e:
            raise WorktreeError("Failed to list worktrees", str(e.stderr).strip()) from e

        worktrees = []
        for block in output.strip().split("\n\n"):
            fields = {}
            for line in block.splitlines():
                key, _, value = line.strip().partition(" ")
                fields[key] = value
            if "worktree" not in fields:
                continue

            path = Path(fields["worktree"]).resolve()
            worktrees.append(
                WorktreeInfo(
                    path=path,
                    branch=fields.get("branch", "").removeprefix("refs/heads/") or "(detached)",
                    head_commit=fields.get("HEAD", "")[:7],
                    is_main=path == self.git_root,
                    is_detached="detached" in fields,
                )
            )

        return worktrees

    def is_worktree(self, path: Path) -> bool:
        """Check whether git has a worktree registered at ``path``."""
        target = Path(path).resolve()
        return any(wt.path == target for wt in self.list_all())

    def branch_exists(self, branch: str) -> bool:
        """
        Check if a local branch exists in the repository.

        Args:
            branch: Name of the branch to check.
        """
        try:
            self.repo.git.rev_parse("--verify", "--quiet", f"refs/heads/{branch}")
            return True
        except GitCommandError:
            return False

    def create(self, path: Path, branch: str, base_branch: str) -> WorktreeInfo:
        """
        Create a worktree at ``path`` on ``branch``.

        A missing branch is created from ``base_branch``. Parent directories
        for nested names are created first.

        Raises:
            WorktreeError: If git refuses to create the worktree.
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            if self.branch_exists(branch):
                self.repo.git.worktree("add", str(path), branch)
            else:
                self.repo.git.worktree("add", "-b", branch, str(path), base_branch)
        except GitCommandError as e:
            raise WorktreeError(
                f"Failed to create worktree '{path}' from '{base_branch}'",
                str(e.stderr).strip(),
            ) from e

        logger.info(f"Created worktree {path} on branch {branch} from {base_branch}")

        return WorktreeInfo(
            path=path,
            branch=branch,
            head_commit=self._open(path).head.commit.hexsha[:7],
        )

    def remove(self, path: Path, force: bool = False, prune_up_to: Optional[Path] = None) -> None:
        """
        Remove a worktree. The branch is kept.

        Args:
            path: Worktree directory.
            force: Discard uncommitted changes.
            prune_up_to: Delete parent directories left empty by the removal,
                stopping at this directory (used for nested worker names).

        Raises:
            UncommittedChangesError: If the worktree is dirty and force is False.
            WorktreeError: If git cannot remove the worktree.
        """
        path = Path(path)
        if not force and self.has_uncommitted_changes(path):
            raise UncommittedChangesError(
                f"Worktree '{path}' has uncommitted changes. Use --force to remove it."
            )

        args = ["remove", str(path)]
        if force:
            args.insert(1, "--force")

        try:
            self.repo.git.worktree(*args)
        except GitCommandError as e:
            raise WorktreeError(
                f"Failed to remove worktree '{path}'", str(e.stderr).strip()
            ) from e

        logger.info(f"Removed worktree {path}")

        if prune_up_to is None:
            return

        stop = Path(prune_up_to).resolve()
        parent = path.resolve().parent
        while parent != stop and stop in parent.parents and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent

    def get_branch(self, worktree_path: Path) -> str:
        """Branch checked out in a worktree, or "(detached)"."""
        repo = self._open(worktree_path)
        if repo.head.is_detached:
            return "(detached)"
        return repo.active_branch.name

    def has_uncommitted_changes(self, worktree_path: Path) -> bool:
        """Check if a worktree has staged, unstaged or untracked changes."""
        return self._open(worktree_path).is_dirty(untracked_files=True)

    def commits_ahead(self, worktree_path: Path, base_branch: str) -> list[str]:
        """
        One-line summaries of commits on the worktree branch not in the base.

        Raises:
            WorktreeError: If the base branch cannot be resolved.
        """
        repo = self._open(worktree_path)
        try:
            output = repo.git.log("--oneline", f"{base_branch}..HEAD")
        except GitCommandError as e:
            raise WorktreeError(
                f"Failed to compare '{worktree_path}' with '{base_branch}'",
                str(e.stderr).strip(),
            ) from e
        return [line for line in output.splitlines() if line.strip()]

    def diff_stats(self, worktree_path: Path, base_branch: str) -> DiffStats:
        """
        Changes in the worktree (committed or not) since it forked from the base.

        Raises:
            WorktreeError: If git cannot compute the diff.
        """
        repo = self._open(worktree_path)
        try:
            fork_point = repo.git.merge_base(base_branch, "HEAD").strip()
            output = repo.git.diff("--numstat", fork_point)
        except GitCommandError as e:
            raise WorktreeError(
                f"Failed to diff '{worktree_path}' against '{base_branch}'",
                str(e.stderr).strip(),
            ) from e
        return DiffStats.from_numstat(output)

    def last_commit_time(self, worktree_path: Path) -> int:
        """Unix time of the worktree's HEAD commit."""
        return int(self._open(worktree_path).head.commit.committed_date)

    def is_merged(self, branch: str, into: str) -> bool:
        """Check whether every commit of ``branch`` is reachable from ``into``."""
        try:
            self.repo.git.merge_base("--is-ancestor", branch, into)
            return True
        except GitCommandError:
            return False


def run_on_create_hook(hook: str, directory: Path, timeout: int = 300) -> bool:
    """
    Run a repository's on-create hook inside a new worktree.

    Returns:
        True if the hook exited zero. Failures are logged, not raised.
    """
    logger.info(f"Running on-create hook: {hook}")

    try:
        result = subprocess.run(
            ["sh", "-c", hook],
            cwd=directory,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"on-create hook timed out after {timeout} seconds")
        return False
    except OSError as e:
        logger.warning(f"on-create hook could not be started: {e}")
        return False

    if result.returncode != 0:
        logger.warning(f"on-create hook failed: {result.stderr.strip()}")
        return False

    return True
