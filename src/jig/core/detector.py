"""
Worker state detection via pattern matching on captured pane text.

The detector does no I/O; callers capture the pane and pass the text in.
"""

import re
from enum import Enum
from typing import Iterable, Optional

from jig.config import DEFAULT_PROMPT_PATTERNS, DEFAULT_STUCK_PATTERNS, HealthConfig
from jig.errors import InvalidPatternError

PROMPT_TAIL_LINES = 3


class WorkerState(str, Enum):
    """Liveness of a worker as seen from its pane."""

    WORKING = "working"
    IDLE = "idle"
    STUCK = "stuck"


def _compile(patterns: Iterable[str]) -> tuple[re.Pattern, ...]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InvalidPatternError(pattern, str(e)) from e
    return tuple(compiled)


class WorkerDetector:
    """
    Classifies pane text as working, idle or stuck.

    Priority is stuck > idle > working. Empty output or output without a
    prompt classifies as working.
    """

    def __init__(
        self,
        prompt_patterns: Optional[Iterable[str]] = None,
        stuck_patterns: Optional[Iterable[str]] = None,
    ):
        """
        Build a detector.

        Args:
            prompt_patterns: Regexes for an idle shell prompt. Defaults match
                ``❯``, ``$`` and ``#`` at end of line.
            stuck_patterns: Regexes for blocking interactive prompts.

        Raises:
            InvalidPatternError: If any pattern fails to compile.
        """
        self._prompt_patterns = _compile(
            DEFAULT_PROMPT_PATTERNS if prompt_patterns is None else prompt_patterns
        )
        self._stuck_patterns = _compile(
            DEFAULT_STUCK_PATTERNS if stuck_patterns is None else stuck_patterns
        )

    @classmethod
    def from_config(cls, config: HealthConfig) -> "WorkerDetector":
        """Build a detector from the [health] section of jig.toml."""
        return cls(config.prompt_patterns, config.stuck_patterns)

    @property
    def prompt_patterns(self) -> tuple[re.Pattern, ...]:
        return self._prompt_patterns

    @property
    def stuck_patterns(self) -> tuple[re.Pattern, ...]:
        return self._stuck_patterns

    def is_at_prompt(self, output: str) -> bool:
        """Check whether one of the last non-empty lines is a shell prompt."""
        lines = [line for line in output.splitlines() if line.strip()]
        tail = lines[-PROMPT_TAIL_LINES:]
        return any(
            pattern.search(line)
            for line in tail
            for pattern in self._prompt_patterns
        )

    def is_stuck(self, output: str) -> bool:
        """Check whether the output contains a blocking interactive prompt."""
        return any(pattern.search(output) for pattern in self._stuck_patterns)

    def detect_state(self, output: str) -> WorkerState:
        """Classify pane output."""
        if self.is_stuck(output):
            return WorkerState.STUCK
        if self.is_at_prompt(output):
            return WorkerState.IDLE
        return WorkerState.WORKING
