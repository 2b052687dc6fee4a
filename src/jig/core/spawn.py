"""
Spawn coordination for jig workers.

The coordinator ties together the three places a worker lives: the
orchestrator document, the git worktree and the tmux window. Every listing
reconciles the document against tmux and prunes workers whose window or
session has disappeared.

Only one mutating jig command may run per repository at a time; the
document is read once per coordinator and rewritten whole after each
mutation.
"""

import fnmatch
import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from jig.config import JigToml, copy_worktree_files, load_config
from jig.core.adapter import AgentAdapter, build_spawn_command, get_adapter
from jig.core.detector import WorkerDetector, WorkerState
from jig.core.health import HealthTracker
from jig.core.session import SessionBackend, TmuxSessionBackend
from jig.core.state import load_or_create_state, save_state
from jig.core.worktree import (
    WorktreeError,
    WorktreeManager,
    WorktreeNotFoundError,
    run_on_create_hook,
)
from jig.errors import (
    JigError,
    MissingDependencyError,
    NotMergedError,
    WorkerActiveError,
    WorkerExistsError,
    WorkerNotFoundError,
)
from jig.models.worker import (
    Approved,
    Archived,
    Merged,
    Running,
    TaskContext,
    WaitingReview,
    Worker,
    WorkerStatus,
)

logger = logging.getLogger(__name__)

CAPTURE_LINES = 20

NUDGE_IDLE = "idle"
NUDGE_STUCK = "stuck"


class TaskStatus(str, Enum):
    """Live state of a worker's tmux window."""

    RUNNING = "running"
    EXITED = "exited"
    NO_SESSION = "no-session"
    NO_WINDOW = "no-window"

    @property
    def is_stale(self) -> bool:
        return self in (TaskStatus.NO_SESSION, TaskStatus.NO_WINDOW)


class WorkerListing(BaseModel):
    """One row of a reconciled worker listing."""

    name: str
    worker: Worker
    status: TaskStatus = Field(description="Live tmux state at listing time")
    branch: str
    commits_ahead: int = Field(default=0, ge=0)
    is_dirty: bool = False


class HealthReport(BaseModel):
    """Result of one health poll for a worker."""

    name: str
    state: WorkerState
    worker_status: str = Field(description="Lifecycle state after the poll")
    commit_count: int = 0
    hours_since_commit: int = 0
    nudges: dict[str, int] = Field(default_factory=dict)
    needs_attention: bool = Field(
        default=False,
        description="A nudge type has reached the configured maximum"
    )


class SpawnCoordinator:
    """Creates, lists, monitors and tears down workers for one repository."""

    def __init__(
        self,
        repo_path: Optional[Path] = None,
        session_backend: Optional[SessionBackend] = None,
        worktrees: Optional[WorktreeManager] = None,
        adapter: Optional[AgentAdapter] = None,
        config: Optional[JigToml] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            repo_path: Path inside the repository. Defaults to current directory.
            session_backend: Terminal multiplexer. Defaults to tmux.
            worktrees: Git worktree manager for the repository.
            adapter: Agent to start in new windows. Defaults to the
                ``[agent] type`` from jig.toml.
            config: Parsed jig.toml. Loaded from the repository when omitted.

        Raises:
            NotAGitRepositoryError: If repo_path is not inside a git repository.
            ConfigError: If jig.toml is invalid or names an unknown agent.
            StateCorruptError: If the orchestrator document cannot be parsed.
        """
        self.worktrees = worktrees or WorktreeManager(repo_path)
        self.repo_root = self.worktrees.git_root
        self.config = config or load_config(self.repo_root)
        self.session = session_backend or TmuxSessionBackend()
        self.adapter = adapter or get_adapter(self.config.agent.type)
        self.detector = WorkerDetector.from_config(self.config.health)
        self.health = HealthTracker(self.repo_root, self.config.health.max_nudges)
        self.state = load_or_create_state(self.repo_root, self.config.to_repo_config())

    @property
    def session_name(self) -> str:
        """Shared tmux session of the repository."""
        return self.state.tmux_session

    def _save(self) -> None:
        save_state(self.state)
        self.health.save()

    def _require(self, name: str) -> Worker:
        worker = self.state.get_worker_by_name(name)
        if worker is None:
            raise WorkerNotFoundError(name)
        return worker

    def worktree_path_for(self, name: str) -> Path:
        """Where the worktree of a worker named ``name`` lives."""
        return self.repo_root / self.state.config.worktree_dir / name

    def check_dependencies(self) -> None:
        """
        Verify tmux, git and the agent command are on PATH.

        Raises:
            MissingDependencyError: Naming the first missing tool.
        """
        required = [
            ("tmux", "Install tmux with your package manager"),
            ("git", None),
            (self.adapter.command, self.adapter.install_hint),
        ]
        for tool, hint in required:
            if shutil.which(tool) is None:
                raise MissingDependencyError(tool, hint)

    def spawn(
        self,
        name: str,
        context: Optional[str] = None,
        auto: Optional[bool] = None,
        issue_ref: Optional[str] = None,
        files_hint: Optional[list[str]] = None,
    ) -> Worker:
        """
        Spawn a worker: worktree, registration, tmux window and agent command.

        An existing worktree at the target path is reused. Failures after the
        worktree exists are logged and re-raised without removing it, so the
        spawn can be retried.

        Args:
            name: Worker name; also the branch and window name.
            context: Task description passed to the agent.
            auto: Start the agent in auto mode. Defaults to ``[spawn] auto``.
            issue_ref: External issue reference stored with the task.
            files_hint: Files the task is expected to touch.

        Returns:
            The registered worker.

        Raises:
            MissingDependencyError: If tmux, git or the agent is missing.
            WorkerExistsError: If an active worker already uses the name.
            WorktreeError: If the worktree cannot be created, or the target
                path exists but is not a worktree.
            SessionError: If the window cannot be created.
        """
        self.check_dependencies()

        existing = self.state.get_worker_by_name(name)
        if existing is not None and existing.is_active:
            raise WorkerExistsError(name)

        base_branch = self.state.config.base_branch
        worktree_path = self.worktree_path_for(name)

        if not worktree_path.exists():
            self.worktrees.create(worktree_path, name, base_branch)

            hook = self.state.config.on_create_hook
            if hook:
                run_on_create_hook(hook, worktree_path)

            copy_worktree_files(
                self.repo_root, worktree_path, self.config.worktree.copy_files
            )
        elif self.worktrees.is_worktree(worktree_path):
            logger.info(f"Reusing existing worktree {worktree_path}")
        else:
            raise WorktreeError(f"{worktree_path} exists but is not a git worktree")

        worker = self.register(
            name,
            branch=name,
            context=context,
            issue_ref=issue_ref,
            files_hint=files_hint,
            worktree_path=worktree_path,
            base_branch=base_branch,
        )

        if auto is None:
            auto = self.config.spawn.auto
        command = build_spawn_command(self.adapter, context, auto)

        try:
            self.session.create_window(self.session_name, name, worktree_path)
            self.session.send_keys(self.session_name, name, command)
        except JigError as e:
            logger.error(f"Failed to start worker {name}: {e}")
            worker.fail(str(e))
            save_state(self.state)
            raise

        logger.info(f"Spawned worker {name} in {self.session_name}:{name}")
        return worker

    def register(
        self,
        name: str,
        branch: str,
        context: Optional[str] = None,
        issue_ref: Optional[str] = None,
        files_hint: Optional[list[str]] = None,
        worktree_path: Optional[Path] = None,
        base_branch: Optional[str] = None,
    ) -> Worker:
        """
        Record a new worker and start monitoring its health.

        Raises:
            WorkerExistsError: If an active worker already uses the name.
        """
        task = None
        if context:
            task = TaskContext(
                description=context,
                issue_ref=issue_ref,
                files_hint=files_hint or [],
            )

        worker = Worker(
            name=name,
            worktree_path=worktree_path or self.worktree_path_for(name),
            branch=branch,
            base_branch=base_branch or self.state.config.base_branch,
            tmux_session=self.session_name,
            tmux_window=name,
            task=task,
        )

        self.state.add_worker(worker)
        self.health.start_monitoring(name)
        self._save()

        logger.info(f"Registered worker {name} ({worker.id})")
        return worker

    def unregister(self, name: str) -> Worker:
        """
        Remove a worker from the orchestrator and health documents.

        Raises:
            WorkerNotFoundError: If no worker has that name.
        """
        worker = self._require(name)
        self.state.remove_worker(worker.id)
        self.health.forget_worker(name)
        self._save()
        return worker

    def kill(self, name: str) -> Worker:
        """
        Close a worker's window and unregister it. The worktree is kept.

        Raises:
            WorkerNotFoundError: If no worker has that name.
        """
        worker = self._require(name)
        window = worker.tmux_window or worker.name

        if self.session.window_exists(worker.tmux_session, window):
            self.session.kill_window(worker.tmux_session, window)
        else:
            logger.debug(f"Window {worker.tmux_session}:{window} already gone")

        self.unregister(name)
        logger.info(f"Killed worker {name}")
        return worker

    def remove_worktrees(self, pattern: str, force: bool = False) -> list[str]:
        """
        Remove worker worktrees whose name matches a glob pattern.

        Names are paths relative to the worktree directory, so ``feature/*``
        matches nested workers. Branches are kept. Nothing is removed if any
        match still belongs to an active worker.

        Returns:
            The removed names, sorted.

        Raises:
            WorktreeNotFoundError: If nothing matches.
            WorkerActiveError: If a match belongs to an active worker.
            UncommittedChangesError: If a match is dirty and force is False.
        """
        root = (self.repo_root / self.state.config.worktree_dir).resolve()
        paths = {
            wt.path.relative_to(root).as_posix(): wt.path
            for wt in self.worktrees.list_all()
            if root in wt.path.parents
        }

        matching = sorted(
            name for name in paths
            if name == pattern or fnmatch.fnmatchcase(name, pattern)
        )
        if not matching:
            raise WorktreeNotFoundError(f"No worktree matches '{pattern}'")

        for name in matching:
            worker = self.state.get_worker_by_name(name)
            if worker is not None and worker.is_active:
                raise WorkerActiveError(name)

        for name in matching:
            self.worktrees.remove(paths[name], force=force, prune_up_to=root)

        return matching

    def _task_status(
        self,
        worker: Worker,
        live: Optional[dict[str, Optional[set[str]]]] = None,
    ) -> TaskStatus:
        """Classify a worker's window. ``live`` caches window names per session."""
        if live is None:
            live = {}
        session = worker.tmux_session
        window = worker.tmux_window or worker.name

        if session not in live:
            live[session] = (
                set(self.session.list_windows(session))
                if self.session.session_exists(session)
                else None
            )

        windows = live[session]
        if windows is None:
            return TaskStatus.NO_SESSION
        if window not in windows:
            return TaskStatus.NO_WINDOW
        if self.session.pane_is_running(session, window):
            return TaskStatus.RUNNING
        return TaskStatus.EXITED

    def _listing(self, worker: Worker, status: TaskStatus) -> WorkerListing:
        listing = WorkerListing(
            name=worker.name,
            worker=worker,
            status=status,
            branch=worker.branch,
        )

        if not worker.worktree_path.exists():
            return listing

        try:
            listing.branch = self.worktrees.get_branch(worker.worktree_path)
            listing.commits_ahead = len(
                self.worktrees.commits_ahead(worker.worktree_path, worker.base_branch)
            )
            listing.is_dirty = self.worktrees.has_uncommitted_changes(worker.worktree_path)
        except (WorktreeError, WorktreeNotFoundError) as e:
            logger.debug(f"Could not inspect worktree of {worker.name}: {e}")

        return listing

    def list_workers(self, include_inactive: bool = False) -> list[WorkerListing]:
        """
        List workers reconciled against tmux.

        Active workers whose session or window no longer exists are reported
        once in this listing and removed from both documents. Terminal
        workers are kept as history and only listed with ``include_inactive``.
        """
        listings = []
        stale = []
        live: dict[str, Optional[set[str]]] = {}

        workers = sorted(self.state.all_workers(), key=lambda w: w.created_at)
        for worker in workers:
            if not worker.is_active and not include_inactive:
                continue

            status = self._task_status(worker, live)
            listings.append(self._listing(worker, status))

            if worker.is_active and status.is_stale:
                stale.append((worker, status))

        for worker, status in stale:
            logger.info(f"Pruning worker {worker.name}: {status.value}")
            self.state.remove_worker(worker.id)
            self.health.forget_worker(worker.name)

        if stale:
            self._save()

        return listings

    def get_status(self, name: str) -> WorkerStatus:
        """Lifecycle status of a worker."""
        return self._require(name).status

    def set_status(self, name: str, status: WorkerStatus) -> Worker:
        """
        Move a worker to a new status and save.

        Raises:
            WorkerNotFoundError: If no worker has that name.
            InvalidTransitionError: If the change is not allowed.
        """
        worker = self._require(name)
        worker.transition_to(status)
        save_state(self.state)
        return worker

    def approve(self, name: str) -> Worker:
        """Mark a worker's changes as accepted by the reviewer."""
        return self.set_status(name, Approved())

    def mark_merged(self, name: str) -> Worker:
        """
        Mark a worker merged once git confirms its branch is in the base.

        Raises:
            NotMergedError: If the branch is not merged into the base branch.
        """
        worker = self._require(name)
        if not self.worktrees.is_merged(worker.branch, worker.base_branch):
            raise NotMergedError(
                f"Branch '{worker.branch}' is not merged into '{worker.base_branch}'"
            )
        return self.set_status(name, Merged())

    def fail(self, name: str, reason: str) -> Worker:
        """Mark a worker failed."""
        worker = self._require(name)
        worker.fail(reason)
        save_state(self.state)
        return worker

    def archive(self, name: str) -> Worker:
        """Retire a worker while keeping it as history."""
        return self.set_status(name, Archived())

    def attach(self, name: Optional[str] = None) -> None:
        """Attach to the repository session, focusing a worker's window if named."""
        if name is not None:
            worker = self._require(name)
            self.session.select_window(worker.tmux_session, worker.tmux_window or name)
        self.session.attach(self.session_name)

    def check_worker(self, name: str) -> WorkerState:
        """
        Classify a worker from the last lines of its pane.

        Raises:
            WorkerNotFoundError: If no worker has that name.
            SessionCommandError: If tmux cannot capture the pane.
        """
        worker = self._require(name)
        output = self.session.capture_pane(
            worker.tmux_session, worker.tmux_window or name, lines=CAPTURE_LINES
        )
        return self.detector.detect_state(output)

    def _apply_detection(self, worker: Worker, state: WorkerState) -> None:
        name = worker.name

        if state == WorkerState.WORKING:
            self.health.reset_nudge(name, NUDGE_IDLE)
            self.health.reset_nudge(name, NUDGE_STUCK)
            if worker.state in ("spawned", "waiting_review"):
                worker.transition_to(Running())

        elif state == WorkerState.IDLE:
            self.health.increment_nudge(name, NUDGE_IDLE)
            if self.state.config.auto_review and worker.state in ("running", "waiting_review"):
                try:
                    stats = self.worktrees.diff_stats(worker.worktree_path, worker.base_branch)
                except (WorktreeError, WorktreeNotFoundError) as e:
                    logger.warning(f"Could not compute diff for {name}: {e}")
                else:
                    worker.transition_to(WaitingReview(diff_stats=stats))

        elif state == WorkerState.STUCK:
            count = self.health.increment_nudge(name, NUDGE_STUCK)
            logger.info(f"Worker {name} is stuck ({count} checks)")

    def _refresh_commits(self, worker: Worker) -> None:
        try:
            commits = self.worktrees.commits_ahead(worker.worktree_path, worker.base_branch)
            last_commit_at = (
                self.worktrees.last_commit_time(worker.worktree_path) if commits else 0
            )
        except (WorktreeError, WorktreeNotFoundError) as e:
            logger.debug(f"Could not read commits of {worker.name}: {e}")
            return

        self.health.record_commits(worker.name, len(commits), last_commit_at)

    def check_health(self) -> list[HealthReport]:
        """
        Run one health poll over all active workers with a live window.

        Workers without a window are skipped; the next listing prunes them.
        """
        reports = []

        for worker in list(self.state.active_workers()):
            window = worker.tmux_window or worker.name
            if not self.session.window_exists(worker.tmux_session, window):
                logger.debug(f"Skipping health check for {worker.name}: no window")
                continue

            state = self.check_worker(worker.name)
            self.health.ensure_worker(worker.name)
            self._apply_detection(worker, state)
            self._refresh_commits(worker)

            health = self.health.get(worker.name)
            reports.append(
                HealthReport(
                    name=worker.name,
                    state=state,
                    worker_status=worker.state,
                    commit_count=health.commit_count,
                    hours_since_commit=health.hours_since_commit(),
                    nudges=dict(health.nudges),
                    needs_attention=any(
                        self.health.nudge_limit_reached(worker.name, nudge_type)
                        for nudge_type in health.nudges
                    ),
                )
            )

        self._save()
        return reports
