"""Tests for the worker and orchestrator state models."""

from datetime import timedelta
from pathlib import Path
from uuid import uuid4

import pytest
from pydantic import ValidationError

from jig.config import RepoConfig
from jig.errors import InvalidTransitionError, WorkerExistsError
from jig.models import (
    Approved,
    Archived,
    DiffStats,
    Failed,
    Merged,
    OrchestratorState,
    Running,
    Spawned,
    TaskContext,
    WaitingReview,
    Worker,
    can_transition,
)


def make_worker(name: str = "alpha", **kwargs) -> Worker:
    defaults = {
        "name": name,
        "worktree_path": Path(f"/repo/.jig/{name}"),
        "branch": name,
        "base_branch": "origin/main",
        "tmux_session": "jig-repo",
        "tmux_window": name,
    }
    defaults.update(kwargs)
    return Worker(**defaults)


class TestDiffStats:
    """Tests for DiffStats parsing."""

    def test_from_numstat(self):
        """Test summing numstat output per file."""
        output = "10\t2\tsrc/app.py\n3\t0\tREADME.md\n"

        stats = DiffStats.from_numstat(output)

        assert stats.files_changed == 2
        assert stats.insertions == 13
        assert stats.deletions == 2
        assert [f.path for f in stats.files] == ["src/app.py", "README.md"]

    def test_binary_files_count_zero_lines(self):
        """Test that binary entries are counted as files with no lines."""
        stats = DiffStats.from_numstat("-\t-\tlogo.png\n1\t1\tapp.py")

        assert stats.files_changed == 2
        assert stats.insertions == 1
        assert stats.deletions == 1

    def test_empty_output(self):
        """Test parsing empty output."""
        stats = DiffStats.from_numstat("")

        assert stats.files_changed == 0
        assert stats.files == []


class TestWorker:
    """Tests for the Worker model."""

    def test_new_worker_defaults(self):
        """Test a freshly created worker."""
        worker = make_worker()

        assert worker.state == "spawned"
        assert isinstance(worker.status, Spawned)
        assert worker.is_active is True
        assert worker.created_at == worker.updated_at
        assert worker.task is None

    def test_ids_are_unique(self):
        """Test that every worker gets its own id."""
        assert make_worker().id != make_worker().id

    def test_empty_name_rejected(self):
        """Test that a worker needs a name."""
        with pytest.raises(ValidationError):
            make_worker(name="")

    def test_touch_advances_updated_at(self):
        """Test that touch never moves updated_at backwards."""
        worker = make_worker()
        future = worker.updated_at + timedelta(hours=1)
        worker.updated_at = future

        worker.touch()

        assert worker.updated_at == future
        assert worker.updated_at >= worker.created_at

    def test_happy_path_transitions(self):
        """Test the full review lifecycle."""
        worker = make_worker()

        worker.transition_to(Running())
        worker.transition_to(WaitingReview(diff_stats=DiffStats(files_changed=1)))
        worker.transition_to(Approved())
        worker.transition_to(Merged())

        assert worker.state == "merged"
        assert worker.is_active is False

    def test_waiting_review_refresh(self):
        """Test that diff stats can be refreshed while waiting for review."""
        worker = make_worker(status=WaitingReview())

        worker.transition_to(WaitingReview(diff_stats=DiffStats(insertions=5)))

        assert worker.status.diff_stats.insertions == 5

    def test_illegal_transition_raises(self):
        """Test that skipping review is rejected."""
        worker = make_worker(status=Running())

        with pytest.raises(InvalidTransitionError) as exc_info:
            worker.transition_to(Merged())

        assert "alpha" in str(exc_info.value)
        assert worker.state == "running"

    @pytest.mark.parametrize("terminal", [Merged(), Failed(reason="x"), Archived()])
    def test_terminal_states_accept_nothing(self, terminal):
        """Test that terminal workers cannot be revived."""
        worker = make_worker(status=terminal)

        with pytest.raises(InvalidTransitionError):
            worker.transition_to(Running())
        with pytest.raises(InvalidTransitionError):
            worker.fail("again")

    def test_fail_records_reason(self):
        """Test failing a worker from any active state."""
        worker = make_worker(status=Approved())

        worker.fail("window vanished")

        assert isinstance(worker.status, Failed)
        assert worker.status.reason == "window vanished"

    def test_can_transition(self):
        """Test the transition table directly."""
        assert can_transition("spawned", "running")
        assert can_transition("waiting_review", "running")
        assert not can_transition("spawned", "approved")
        assert not can_transition("merged", "archived")

    def test_status_round_trips_through_json(self):
        """Test that tagged status payloads survive serialization."""
        worker = make_worker(
            status=WaitingReview(diff_stats=DiffStats(files_changed=2, insertions=7)),
            task=TaskContext(description="fix bug", issue_ref="#42"),
        )

        restored = Worker.model_validate_json(worker.model_dump_json())

        assert restored == worker
        assert isinstance(restored.status, WaitingReview)
        assert restored.status.diff_stats.insertions == 7


class TestOrchestratorState:
    """Tests for the OrchestratorState model."""

    def test_new_derives_session_name(self):
        """Test that the session name comes from the repo directory."""
        state = OrchestratorState.new(Path("/work/foo"))

        assert state.tmux_session == "jig-foo"
        assert state.version == 1
        assert state.workers == {}
        assert state.config == RepoConfig()

    def test_add_and_get_worker(self):
        """Test in-memory registration and lookup."""
        state = OrchestratorState.new(Path("/work/foo"))
        worker = make_worker()

        state.add_worker(worker)

        assert state.get_worker(worker.id) is worker
        assert state.get_worker_by_name("alpha") is worker
        assert state.get_worker_by_name("beta") is None
        assert state.get_worker(uuid4()) is None

    def test_duplicate_active_name_rejected(self):
        """Test that two active workers cannot share a name."""
        state = OrchestratorState.new(Path("/work/foo"))
        state.add_worker(make_worker())

        with pytest.raises(WorkerExistsError):
            state.add_worker(make_worker())

    def test_name_reusable_after_terminal(self):
        """Test reusing a name once the old worker is finished."""
        state = OrchestratorState.new(Path("/work/foo"))
        old = make_worker(status=Merged())
        state.add_worker(old)
        new = make_worker()

        state.add_worker(new)

        assert state.get_worker_by_name("alpha") is new
        assert len(state.workers) == 2
        assert state.active_count() == 1

    def test_get_by_name_prefers_latest_terminal(self):
        """Test lookup among only terminal workers."""
        state = OrchestratorState.new(Path("/work/foo"))
        first = make_worker(status=Archived())
        second = make_worker(status=Merged())
        second.updated_at = first.updated_at + timedelta(minutes=5)
        state.add_worker(first)
        state.add_worker(second)

        assert state.get_worker_by_name("alpha") is second

    def test_remove_worker(self):
        """Test removing by id."""
        state = OrchestratorState.new(Path("/work/foo"))
        worker = make_worker()
        state.add_worker(worker)

        assert state.remove_worker(worker.id) is worker
        assert state.remove_worker(worker.id) is None
        assert list(state.all_workers()) == []

    def test_active_workers_excludes_terminal(self):
        """Test filtering active workers."""
        state = OrchestratorState.new(Path("/work/foo"))
        state.add_worker(make_worker("alpha"))
        state.add_worker(make_worker("beta", status=Failed(reason="boom")))

        assert [w.name for w in state.active_workers()] == ["alpha"]
        assert len(list(state.all_workers())) == 2
