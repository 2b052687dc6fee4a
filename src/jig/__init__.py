"""
jig - parallel coding agents in git worktrees and tmux windows.

This package tracks workers (an agent in its own worktree and tmux window),
persists their lifecycle per repository, and classifies their health from
terminal output.
"""

__version__ = "0.1.0"

from jig.config import JigToml, load_config
from jig.errors import JigError

__all__ = [
    "__version__",
    "JigError",
    "JigToml",
    "load_config",
]
