"""
Unit tests for tool resolution (tools/registry.py, tools/builtin.py).
"""

import pytest

from sightline.errors import ToolNotFoundError, ToolRegistrationError
from sightline.schemas.cache import BrowserAction
from sightline.tools import ToolEntry, ToolRegistry, create_tool_registry
from sightline.tools.builtin import BashTool, ComputerTool, NavigateTool


def bash_entry(version: str = "20241022") -> ToolEntry:
    return ToolEntry(name="bash", category="provider", factory=lambda handle: BashTool(version))


class TestRegisterTool:
    """Test suite for write-once registration"""

    def test_duplicate_key_raises_and_keeps_first(self):
        registry = ToolRegistry()
        first = bash_entry("20241022")
        registry.register_tool("bash", first)

        with pytest.raises(ToolRegistrationError) as exc_info:
            registry.register_tool("bash", bash_entry("20250124"))

        assert str(exc_info.value) == "Tool with key 'bash' already registered"
        assert registry._tools["bash"] is first
        assert len(registry) == 1


class TestGetToolEntryKey:
    """Test suite for versioned key resolution"""

    def test_claude_3_5_resolves_to_2024_protocol(self):
        registry = ToolRegistry()

        key = registry.get_tool_entry_key("anthropic", "claude-3-5-sonnet-20241022", "computer")

        assert key == "anthropic_computer_20241022"

    def test_aliases_are_resolved(self):
        registry = ToolRegistry()

        assert registry.get_tool_entry_key("anthropic", "claude-3-5-sonnet", "bash") == "anthropic_bash_20241022"

    def test_newer_family_uses_newer_protocol(self):
        registry = ToolRegistry()

        key = registry.get_tool_entry_key("anthropic", "claude-3-7-sonnet-20250219", "computer")

        assert key == "anthropic_computer_20250124"

    def test_resolution_is_deterministic(self):
        registry = ToolRegistry()
        keys = {
            registry.get_tool_entry_key("anthropic", "claude-3-5-sonnet-20241022", "computer")
            for _ in range(5)
        }

        assert keys == {"anthropic_computer_20241022"}

    def test_unknown_model_raises(self):
        with pytest.raises(ToolNotFoundError) as exc_info:
            ToolRegistry().get_tool_entry_key("anthropic", "claude-2", "computer")

        assert exc_info.value.model == "claude-2"

    def test_family_without_tool_version_raises(self):
        with pytest.raises(ToolNotFoundError):
            ToolRegistry().get_tool_entry_key("openai", "gpt-4o", "computer")


class TestGetTools:
    """Test suite for tool set assembly"""

    def test_builtin_set_for_claude_3_5(self, fake_handle):
        tools = create_tool_registry().get_tools("anthropic", "claude-3-5-sonnet-20241022", fake_handle)

        assert list(tools) == ["computer", "bash", "navigate", "sleep", "run_callback"]
        assert tools["computer"].definition()["type"] == "computer_20241022"
        assert tools["computer"].beta == "computer-use-2024-10-22"
        assert tools["bash"].definition() == {"type": "bash_20241022", "name": "bash"}

    def test_missing_provider_tools_are_omitted(self, fake_handle):
        tools = create_tool_registry().get_tools("openai", "gpt-4o", fake_handle)

        assert "computer" not in tools
        assert "bash" not in tools
        assert list(tools) == ["navigate", "sleep", "run_callback"]

    def test_unregistered_version_is_omitted(self, fake_handle):
        registry = ToolRegistry()
        registry.register_tool("anthropic_bash_20241022", bash_entry())

        tools = registry.get_tools("anthropic", "claude-3-5-sonnet-20241022", fake_handle)

        assert list(tools) == ["bash"]

    def test_custom_tools_for_other_providers_are_excluded(self, fake_handle):
        registry = ToolRegistry()
        registry.register_tool(
            "openai_navigate",
            ToolEntry(name="navigate", category="custom", factory=NavigateTool),
        )
        registry.register_tool(
            "navigate",
            ToolEntry(name="navigate", category="custom", factory=NavigateTool),
        )

        tools = registry.get_tools("anthropic", "claude-3-5-sonnet-20241022", fake_handle)

        assert list(tools) == ["navigate"]

    def test_identical_inputs_give_identical_sets(self, fake_handle):
        registry = create_tool_registry()

        first = registry.get_tools("anthropic", "claude-3-5-sonnet-20241022", fake_handle)
        second = registry.get_tools("anthropic", "claude-3-5-sonnet-20241022", fake_handle)

        assert [t.definition() for t in first.values()] == [t.definition() for t in second.values()]


class TestBuiltinTools:
    @pytest.mark.asyncio
    async def test_computer_tool_routes_action_to_handle(self, fake_handle):
        tool = ComputerTool(fake_handle, "20241022", display_width=1280, display_height=800)

        result = await tool.execute({"action": "left_click", "coordinate": [1, 2]})

        assert result.success
        fake_handle.execute.assert_awaited_once_with(
            BrowserAction.LEFT_CLICK, {"action": "left_click", "coordinate": [1, 2]}
        )
        assert tool.definition()["display_width_px"] == 1280

    @pytest.mark.asyncio
    async def test_computer_tool_rejects_unknown_action(self, fake_handle):
        result = await ComputerTool(fake_handle, "20241022").execute({"action": "teleport"})

        assert result.error == "Unsupported computer action: teleport"
        fake_handle.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_navigate_tool_routes_to_handle(self, fake_handle):
        await NavigateTool(fake_handle).execute({"url": "/login"})

        fake_handle.execute.assert_awaited_once_with(BrowserAction.NAVIGATE, {"url": "/login"})

    @pytest.mark.asyncio
    async def test_bash_tool_runs_command(self):
        result = await BashTool("20241022").execute({"command": "echo hello"})

        assert result.output.strip() == "hello"

    @pytest.mark.asyncio
    async def test_bash_tool_reports_failure(self):
        result = await BashTool("20241022").execute({"command": "exit 3"})

        assert not result.success
        assert result.error == "exit code 3"
