"""
tmux session handling for jig workers.

All workers of a repository share one tmux session; each worker gets one
window named after it. ``SessionBackend`` is the narrow interface the rest
of jig depends on, and ``TmuxSessionBackend`` implements it with libtmux.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import libtmux
import libtmux.exc

from jig.errors import CommandFailedError, JigError

logger = logging.getLogger(__name__)

SHELL_COMMANDS = frozenset({"bash", "zsh", "sh", "fish", "dash", "ksh", "tcsh", "csh"})


class SessionError(JigError):
    """Base exception for session operations."""


class SessionNotFoundError(SessionError):
    """Raised when a requested session doesn't exist."""


class WindowNotFoundError(SessionError):
    """Raised when a requested window doesn't exist."""


class WindowExistsError(SessionError):
    """Raised when creating a window whose name is taken."""


class SessionCommandError(CommandFailedError):
    """Raised when tmux reports an error for a command."""


class SessionBackend(ABC):
    """Capabilities jig needs from a terminal multiplexer."""

    @abstractmethod
    def session_exists(self, session_name: str) -> bool:
        """Check if a session exists."""

    @abstractmethod
    def window_exists(self, session_name: str, window_name: str) -> bool:
        """Check if a window exists inside a session."""

    @abstractmethod
    def list_windows(self, session_name: str) -> list[str]:
        """Names of the windows in a session (empty if no session)."""

    @abstractmethod
    def create_window(self, session_name: str, window_name: str, directory: Path) -> None:
        """Create a window, creating the session first if needed."""

    @abstractmethod
    def select_window(self, session_name: str, window_name: str) -> None:
        """Make a window the session's current window."""

    @abstractmethod
    def kill_window(self, session_name: str, window_name: str) -> None:
        """Destroy a window."""

    @abstractmethod
    def send_keys(self, session_name: str, window_name: str, text: str) -> None:
        """Type literal text into a window followed by Enter."""

    @abstractmethod
    def capture_pane(self, session_name: str, window_name: str, lines: int = 20) -> str:
        """Return the last ``lines`` lines of a window's active pane."""

    @abstractmethod
    def pane_is_running(self, session_name: str, window_name: str) -> bool:
        """Whether the window's foreground process is still running."""

    @abstractmethod
    def attach(self, session_name: str) -> None:
        """Attach the current terminal to a session."""


class TmuxSessionBackend(SessionBackend):
    """SessionBackend backed by a tmux server through libtmux."""

    def __init__(self, server: Optional[libtmux.Server] = None):
        self._server = server

    @property
    def server(self) -> libtmux.Server:
        """Get or create libtmux server instance."""
        if self._server is None:
            self._server = libtmux.Server()
        return self._server

    def _get_session(self, session_name: str) -> Optional[libtmux.Session]:
        try:
            sessions = self.server.sessions.filter(session_name=session_name)
        except libtmux.exc.LibTmuxException:
            return None
        return sessions[0] if sessions else None

    def _get_window(self, session_name: str, window_name: str) -> Optional[libtmux.Window]:
        session = self._get_session(session_name)
        if session is None:
            return None

        windows = session.windows.filter(window_name=window_name)
        return windows[0] if windows else None

    def _require_window(self, session_name: str, window_name: str) -> libtmux.Window:
        session = self._get_session(session_name)
        if session is None:
            raise SessionNotFoundError(f"Session '{session_name}' not found.")

        window = self._get_window(session_name, window_name)
        if window is None:
            raise WindowNotFoundError(
                f"Window '{window_name}' not found in session '{session_name}'."
            )
        return window

    def session_exists(self, session_name: str) -> bool:
        try:
            return self.server.has_session(session_name)
        except libtmux.exc.LibTmuxException:
            return False

    def window_exists(self, session_name: str, window_name: str) -> bool:
        return self._get_window(session_name, window_name) is not None

    def list_windows(self, session_name: str) -> list[str]:
        session = self._get_session(session_name)
        if session is None:
            return []
        return [w.window_name for w in session.windows]

    def create_window(self, session_name: str, window_name: str, directory: Path) -> None:
        """
        Create a window for a worker.

        Args:
            session_name: Shared session for the repository
            window_name: Worker name
            directory: Worktree path used as the window's start directory

        Raises:
            WindowExistsError: If the window already exists
            SessionError: If the directory is missing
            SessionCommandError: If tmux rejects the command
        """
        if not os.path.isdir(directory):
            raise SessionError(f"Working directory does not exist: {directory}")

        session = self._get_session(session_name)

        try:
            if session is None:
                logger.debug(f"Creating tmux session {session_name}")
                self.server.new_session(
                    session_name=session_name,
                    start_directory=str(directory),
                    window_name=window_name,
                    attach=False,
                )
                return

            if self._get_window(session_name, window_name) is not None:
                raise WindowExistsError(
                    f"Window '{window_name}' already exists in session '{session_name}'."
                )

            session.new_window(
                window_name=window_name,
                start_directory=str(directory),
                attach=False,
            )
        except libtmux.exc.LibTmuxException as e:
            raise SessionCommandError(
                f"Failed to create window '{window_name}'", str(e)
            ) from e

    def select_window(self, session_name: str, window_name: str) -> None:
        window = self._require_window(session_name, window_name)
        try:
            window.select()
        except libtmux.exc.LibTmuxException as e:
            raise SessionCommandError(
                f"Failed to select window '{window_name}'", str(e)
            ) from e

    def kill_window(self, session_name: str, window_name: str) -> None:
        window = self._require_window(session_name, window_name)
        try:
            window.kill()
        except libtmux.exc.LibTmuxException as e:
            raise SessionCommandError(
                f"Failed to kill window '{window_name}'", str(e)
            ) from e

    def send_keys(self, session_name: str, window_name: str, text: str) -> None:
        window = self._require_window(session_name, window_name)
        try:
            window.active_pane.send_keys(text, enter=True, literal=True)
        except libtmux.exc.LibTmuxException as e:
            raise SessionCommandError(
                f"Failed to send keys to window '{window_name}'", str(e)
            ) from e

    def capture_pane(self, session_name: str, window_name: str, lines: int = 20) -> str:
        """
        Capture the visible output of a worker's pane.

        Raises:
            SessionCommandError: If tmux reports an error; stderr is kept verbatim.
        """
        window = self._require_window(session_name, window_name)
        result = window.active_pane.cmd("capture-pane", "-p", "-S", f"-{lines}")

        if result.stderr:
            raise SessionCommandError(
                f"Failed to capture pane of '{session_name}:{window_name}'",
                "\n".join(result.stderr),
            )

        return "\n".join(result.stdout)

    def pane_is_running(self, session_name: str, window_name: str) -> bool:
        """
        Check whether the worker's process is still in the foreground.

        A dead pane, or one that has fallen back to a plain shell, counts
        as exited.
        """
        window = self._get_window(session_name, window_name)
        if window is None:
            return False

        pane = window.active_pane
        if pane is None or pane.pane_dead == "1":
            return False

        command = (pane.pane_current_command or "").lstrip("-")
        return command not in SHELL_COMMANDS

    def is_inside_tmux(self) -> bool:
        """Check if currently running inside a tmux session."""
        return "TMUX" in os.environ

    def attach(self, session_name: str) -> None:
        """
        Attach to (or switch the current client to) a session.

        Raises:
            SessionNotFoundError: If session doesn't exist
            SessionCommandError: If tmux exits non-zero
        """
        if not self.session_exists(session_name):
            raise SessionNotFoundError(f"Session '{session_name}' not found.")

        action = "switch-client" if self.is_inside_tmux() else "attach-session"
        try:
            subprocess.run(["tmux", action, "-t", session_name], check=True)
        except subprocess.CalledProcessError as e:
            raise SessionCommandError(
                f"Failed to attach to session '{session_name}'",
                f"tmux {action} exited with status {e.returncode}",
            ) from e
