"""
Pytest configuration and shared fixtures for jig tests.
"""

import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Generator, Optional
from unittest.mock import MagicMock, patch

import pytest

from jig.config import JigToml
from jig.core.session import (
    SessionBackend,
    SessionNotFoundError,
    WindowExistsError,
    WindowNotFoundError,
)


@pytest.fixture
def temp_directory() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir).resolve()


@pytest.fixture
def temp_dir(temp_directory: Path) -> Path:
    """Alias for temp_directory for backward compatibility."""
    return temp_directory


def _git(repo_path: Path, *args: str) -> None:
    subprocess.run(
        ["git", *args],
        cwd=repo_path,
        capture_output=True,
        check=True,
    )


@pytest.fixture
def make_git_repo(temp_directory: Path) -> Callable[[str], Path]:
    """Factory creating a git repository with one commit on ``main``."""

    def _make(name: str = "test-repo") -> Path:
        repo_path = temp_directory / name
        repo_path.mkdir()

        _git(repo_path, "init")
        _git(repo_path, "config", "user.email", "test@example.com")
        _git(repo_path, "config", "user.name", "Test User")
        _git(repo_path, "config", "commit.gpgsign", "false")

        readme = repo_path / "README.md"
        readme.write_text("# Test Repository\n")

        _git(repo_path, "add", ".")
        _git(repo_path, "commit", "-m", "Initial commit")
        _git(repo_path, "checkout", "-B", "main")

        return repo_path

    return _make


@pytest.fixture
def git_repo(make_git_repo: Callable[[str], Path]) -> Path:
    """Create a temporary git repository for tests."""
    return make_git_repo("test-repo")


def commit_file(repo_path: Path, name: str, content: str, message: str = "Update") -> None:
    """Write a file and commit it in a repository or worktree."""
    path = repo_path / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    _git(repo_path, "add", name)
    _git(repo_path, "commit", "-m", message)


@pytest.fixture
def commit() -> Callable[..., None]:
    """Commit a file in a repository or worktree."""
    return commit_file


@pytest.fixture
def jig_config() -> JigToml:
    """jig.toml contents pointing new worktrees at the local main branch."""
    return JigToml.model_validate({"worktree": {"base": "main"}})


class FakeWindow:
    """In-memory tmux window."""

    def __init__(self, directory: Path):
        self.directory = directory
        self.keys: list[str] = []
        self.output = ""
        self.running = True


class FakeSessionBackend(SessionBackend):
    """SessionBackend keeping sessions and windows in dictionaries."""

    def __init__(self):
        self.sessions: dict[str, dict[str, FakeWindow]] = {}
        self.selected: Optional[tuple[str, str]] = None
        self.attached: Optional[str] = None
        self.fail_create: Optional[Exception] = None

    def _window(self, session_name: str, window_name: str) -> FakeWindow:
        if session_name not in self.sessions:
            raise SessionNotFoundError(f"Session '{session_name}' not found.")
        try:
            return self.sessions[session_name][window_name]
        except KeyError:
            raise WindowNotFoundError(f"Window '{window_name}' not found.") from None

    def session_exists(self, session_name: str) -> bool:
        return session_name in self.sessions

    def window_exists(self, session_name: str, window_name: str) -> bool:
        return window_name in self.sessions.get(session_name, {})

    def list_windows(self, session_name: str) -> list[str]:
        return list(self.sessions.get(session_name, {}))

    def create_window(self, session_name: str, window_name: str, directory: Path) -> None:
        if self.fail_create is not None:
            raise self.fail_create
        windows = self.sessions.setdefault(session_name, {})
        if window_name in windows:
            raise WindowExistsError(f"Window '{window_name}' already exists.")
        windows[window_name] = FakeWindow(Path(directory))

    def select_window(self, session_name: str, window_name: str) -> None:
        self._window(session_name, window_name)
        self.selected = (session_name, window_name)

    def kill_window(self, session_name: str, window_name: str) -> None:
        self._window(session_name, window_name)
        del self.sessions[session_name][window_name]

    def send_keys(self, session_name: str, window_name: str, text: str) -> None:
        self._window(session_name, window_name).keys.append(text)

    def capture_pane(self, session_name: str, window_name: str, lines: int = 20) -> str:
        output = self._window(session_name, window_name).output
        return "\n".join(output.splitlines()[-lines:])

    def pane_is_running(self, session_name: str, window_name: str) -> bool:
        if not self.window_exists(session_name, window_name):
            return False
        return self.sessions[session_name][window_name].running

    def attach(self, session_name: str) -> None:
        if session_name not in self.sessions:
            raise SessionNotFoundError(f"Session '{session_name}' not found.")
        self.attached = session_name


@pytest.fixture
def fake_session() -> FakeSessionBackend:
    """In-memory session backend."""
    return FakeSessionBackend()


@pytest.fixture
def tools_on_path() -> Generator[MagicMock, None, None]:
    """Pretend tmux, git and the agent are installed."""
    with patch("jig.core.spawn.shutil.which", return_value="/usr/bin/tool") as mock_which:
        yield mock_which


# Mock fixtures for tmux


@pytest.fixture
def mock_libtmux_server() -> MagicMock:
    """Create a mock libtmux server."""
    server = MagicMock()
    server.has_session.return_value = False
    server.sessions.filter.return_value = []
    return server


@pytest.fixture
def mock_libtmux_session() -> MagicMock:
    """Create a mock libtmux session with one window named 'alpha'."""
    session = MagicMock()
    session.session_name = "jig-test"

    pane = MagicMock()
    pane.pane_dead = "0"
    pane.pane_current_command = "claude"

    window = MagicMock()
    window.window_name = "alpha"
    window.active_pane = pane

    session.windows = MagicMock()
    session.windows.__iter__.side_effect = lambda: iter([window])
    session.windows.filter.side_effect = (
        lambda window_name: [window] if window_name == "alpha" else []
    )

    return session
