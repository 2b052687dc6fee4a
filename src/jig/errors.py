"""Exception hierarchy shared across jig modules."""

from typing import Optional


class JigError(Exception):
    """Base exception for jig operations."""


class ConfigError(JigError):
    """Raised when jig.toml cannot be parsed."""


class WorkerNotFoundError(JigError):
    """Raised when a named worker is not registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Worker '{name}' not found")


class WorkerExistsError(JigError):
    """Raised when registering a worker whose name is already active."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Worker '{name}' already exists. "
            f"Kill it first or choose a different name."
        )


class MissingDependencyError(JigError):
    """Raised when a required external tool is not on PATH."""

    def __init__(self, tool: str, hint: Optional[str] = None):
        self.tool = tool
        message = f"Required tool not found: {tool}"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class CommandFailedError(JigError):
    """Raised when an external command exits non-zero."""

    def __init__(self, message: str, stderr: str = ""):
        self.stderr = stderr
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)


class StateCorruptError(JigError):
    """Raised when a persisted document cannot be parsed."""

    def __init__(self, path, detail: str):
        self.path = path
        super().__init__(f"Corrupt state document {path}: {detail}")


class InvalidPatternError(JigError):
    """Raised when a detection pattern fails to compile."""

    def __init__(self, pattern: str, detail: str):
        self.pattern = pattern
        super().__init__(f"Invalid detection pattern {pattern!r}: {detail}")


class InvalidTransitionError(JigError):
    """Raised when a worker status change violates the state machine."""

    def __init__(self, name: str, current: str, target: str):
        self.name = name
        self.current = current
        self.target = target
        super().__init__(
            f"Worker '{name}' cannot move from {current} to {target}"
        )


class NotMergedError(JigError):
    """Raised when marking a worker merged before its branch is merged."""


class WorkerActiveError(JigError):
    """Raised when an operation needs a worker to be stopped first."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Worker '{name}' is still active. Kill it first.")
