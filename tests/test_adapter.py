"""Tests for agent adapters and startup commands."""

import pytest

from jig.core.adapter import CLAUDE_CODE, build_spawn_command, get_adapter, supported_agents
from jig.errors import ConfigError


class TestBuildSpawnCommand:
    """Tests for build_spawn_command."""

    def test_bare_command(self):
        assert build_spawn_command(CLAUDE_CODE) == "claude"

    def test_with_context(self):
        assert build_spawn_command(CLAUDE_CODE, "hello world") == "claude 'hello world'"

    def test_auto_only(self):
        assert build_spawn_command(CLAUDE_CODE, auto=True) == (
            "claude --dangerously-skip-permissions"
        )

    def test_context_and_auto(self):
        assert build_spawn_command(CLAUDE_CODE, "fix bug", auto=True) == (
            "claude 'fix bug' --dangerously-skip-permissions"
        )

    def test_single_quotes_escaped(self):
        """Test that embedded quotes cannot end the argument early."""
        assert build_spawn_command(CLAUDE_CODE, "it's a test") == "claude 'it'\\''s a test'"

    def test_shell_metacharacters_stay_quoted(self):
        """Test that command substitution is passed through literally."""
        command = build_spawn_command(CLAUDE_CODE, "$(rm -rf /); `id`")

        assert command == "claude '$(rm -rf /); `id`'"


class TestAdapterRegistry:
    """Tests for adapter lookup."""

    def test_claude_adapter(self):
        adapter = get_adapter("claude")

        assert adapter is CLAUDE_CODE
        assert adapter.command == "claude"
        assert adapter.auto_flag == "--dangerously-skip-permissions"

    def test_unknown_adapter(self):
        with pytest.raises(ConfigError) as exc_info:
            get_adapter("cursor")

        assert "cursor" in str(exc_info.value)

    def test_supported_agents(self):
        assert "claude" in supported_agents()
