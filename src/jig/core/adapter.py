"""
Agent adapters describe how to start a coding agent inside a worker window.
"""

from dataclasses import dataclass
from typing import Optional

from jig.errors import ConfigError


@dataclass(frozen=True)
class AgentAdapter:
    """Command-line shape of one agent CLI."""

    name: str
    command: str
    auto_flag: Optional[str] = None
    project_file: Optional[str] = None
    install_hint: Optional[str] = None


CLAUDE_CODE = AgentAdapter(
    name="claude",
    command="claude",
    auto_flag="--dangerously-skip-permissions",
    project_file="CLAUDE.md",
    install_hint="Install with: npm install -g @anthropic-ai/claude-code",
)

ADAPTERS: dict[str, AgentAdapter] = {
    CLAUDE_CODE.name: CLAUDE_CODE,
    "claude-code": CLAUDE_CODE,
}


def supported_agents() -> list[str]:
    """Names accepted by ``get_adapter``."""
    return sorted(ADAPTERS)


def get_adapter(name: str) -> AgentAdapter:
    """
    Look up an adapter by name.

    Raises:
        ConfigError: If no adapter is registered under ``name``.
    """
    try:
        return ADAPTERS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown agent type '{name}'. Supported: {', '.join(supported_agents())}"
        ) from None


def shell_quote(text: str) -> str:
    """Wrap text in single quotes, splicing embedded quotes as ``'\\''``."""
    return "'" + text.replace("'", "'\\''") + "'"


def build_spawn_command(
    adapter: AgentAdapter,
    context: Optional[str] = None,
    auto: bool = False,
) -> str:
    """
    Build the startup command typed into a worker window.

    Args:
        adapter: Agent to start.
        context: Task description passed as the first argument.
        auto: Append the adapter's auto-mode flag.

    Returns:
        Shell command line, e.g. ``claude 'fix bug' --dangerously-skip-permissions``.
    """
    parts = [adapter.command]

    if context:
        parts.append(shell_quote(context))

    if auto and adapter.auto_flag:
        parts.append(adapter.auto_flag)

    return " ".join(parts)
