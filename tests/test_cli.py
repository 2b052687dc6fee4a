"""Tests for the jig command line."""

from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from jig.cli import main
from jig.config import JigToml
from jig.core.spawn import SpawnCoordinator
from jig.core.worktree import NotAGitRepositoryError


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def coordinator(git_repo: Path, fake_session, jig_config: JigToml, tools_on_path):
    coordinator = SpawnCoordinator(repo_path=git_repo, session_backend=fake_session, config=jig_config)
    with patch("jig.cli.get_coordinator", return_value=coordinator):
        yield coordinator


class TestCommands:
    """Tests for individual commands."""

    def test_spawn(self, runner: CliRunner, coordinator: SpawnCoordinator, fake_session):
        result = runner.invoke(main, ["spawn", "alpha", "-c", "fix bug", "--auto"])

        assert result.exit_code == 0, result.output
        assert "Spawned worker" in result.output
        assert fake_session.sessions[coordinator.session_name]["alpha"].keys == [
            "claude 'fix bug' --dangerously-skip-permissions"
        ]

    def test_spawn_duplicate(self, runner: CliRunner, coordinator: SpawnCoordinator):
        runner.invoke(main, ["spawn", "alpha"])

        result = runner.invoke(main, ["spawn", "alpha"])

        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_ps(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.spawn("alpha")

        result = runner.invoke(main, ["ps"])

        assert result.exit_code == 0, result.output
        assert "alpha" in result.output
        assert "running" in result.output

    def test_ps_empty(self, runner: CliRunner, coordinator: SpawnCoordinator):
        result = runner.invoke(main, ["ps"])

        assert result.exit_code == 0
        assert "No workers found" in result.output

    def test_ps_reports_pruned(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.register("beta", branch="beta")

        result = runner.invoke(main, ["ps"])

        assert "Removed stale workers: beta" in result.output

    def test_kill(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.spawn("alpha")

        result = runner.invoke(main, ["kill", "alpha"])

        assert result.exit_code == 0
        assert coordinator.state.get_worker_by_name("alpha") is None

    def test_kill_unknown(self, runner: CliRunner, coordinator: SpawnCoordinator):
        result = runner.invoke(main, ["kill", "ghost"])

        assert result.exit_code == 1
        assert "Error: Worker 'ghost' not found" in result.output

    def test_remove(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.spawn("alpha")
        coordinator.kill("alpha")

        result = runner.invoke(main, ["remove", "alpha"])

        assert result.exit_code == 0, result.output
        assert "Removed worktree" in result.output
        assert not (coordinator.repo_root / ".jig" / "alpha").exists()

    def test_remove_active_worker(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.spawn("alpha")

        result = runner.invoke(main, ["remove", "alpha"])

        assert result.exit_code == 1
        assert "still active" in result.output

    def test_status(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.register("beta", branch="beta")
        coordinator.fail("beta", "tmux died")

        result = runner.invoke(main, ["status", "beta"])

        assert result.exit_code == 0
        assert "failed" in result.output
        assert "tmux died" in result.output

    def test_status_all(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.register("beta", branch="beta")

        result = runner.invoke(main, ["status"])

        assert "beta" in result.output
        assert "spawned" in result.output

    def test_approve_too_early(self, runner: CliRunner, coordinator: SpawnCoordinator):
        coordinator.register("beta", branch="beta")

        result = runner.invoke(main, ["approve", "beta"])

        assert result.exit_code == 1
        assert "cannot move from spawned to approved" in result.output

    def test_health(self, runner: CliRunner, coordinator: SpawnCoordinator, fake_session):
        coordinator.spawn("alpha")
        fake_session.sessions[coordinator.session_name]["alpha"].output = "Would you like to proceed?"

        result = runner.invoke(main, ["health"])

        assert result.exit_code == 0, result.output
        assert "stuck" in result.output

    def test_attach(self, runner: CliRunner, coordinator: SpawnCoordinator, fake_session):
        coordinator.spawn("alpha")

        result = runner.invoke(main, ["attach", "alpha"])

        assert result.exit_code == 0
        assert fake_session.attached == coordinator.session_name


class TestErrors:
    """Tests for startup failures."""

    def test_not_a_repository(self, runner: CliRunner):
        with patch("jig.cli.SpawnCoordinator", side_effect=NotAGitRepositoryError("Not a git repository: /tmp/x")):
            result = runner.invoke(main, ["-v", "ps"])

        assert result.exit_code == 1
        assert "Not a git repository" in result.output
