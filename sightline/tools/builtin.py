"""
Built-in tools and the default registry.
"""

import asyncio
from typing import Any

import structlog

from sightline.config import settings
from sightline.schemas.cache import BrowserAction
from sightline.tools.base import AutomationHandle, Tool, ToolResult
from sightline.tools.registry import ToolEntry, ToolRegistry
from sightline.tools.versions import TOOL_BETAS, provider_tool_versions

logger = structlog.get_logger()

BASH_TIMEOUT = 120.0  # seconds
MAX_SLEEP_MS = 60_000


def _require_handle(handle: AutomationHandle | None, tool_name: str) -> AutomationHandle:
    if handle is None:
        raise ValueError(f"Tool '{tool_name}' needs an automation handle")
    return handle


class ComputerTool(Tool):
    """Anthropic computer-use tool, executed against the automation handle."""

    name = "computer"

    def __init__(
        self,
        handle: AutomationHandle | None,
        version: str,
        display_width: int | None = None,
        display_height: int | None = None,
    ):
        self.handle = handle
        self.version = version
        self.beta = TOOL_BETAS["anthropic"].get(version)
        self.display_width = display_width or settings.display_width
        self.display_height = display_height or settings.display_height

    def definition(self) -> dict[str, Any]:
        return {
            "type": f"computer_{self.version}",
            "name": self.name,
            "display_width_px": self.display_width,
            "display_height_px": self.display_height,
            "display_number": 1,
        }

    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        try:
            action = BrowserAction(tool_input.get("action"))
        except ValueError:
            return ToolResult(error=f"Unsupported computer action: {tool_input.get('action')}")
        return await _require_handle(self.handle, self.name).execute(action, tool_input)


class BashTool(Tool):
    """Anthropic bash tool, one shell process per command."""

    name = "bash"

    def __init__(self, version: str, timeout: float = BASH_TIMEOUT):
        self.version = version
        self.beta = TOOL_BETAS["anthropic"].get(version)
        self.timeout = timeout

    def definition(self) -> dict[str, Any]:
        return {"type": f"bash_{self.version}", "name": self.name}

    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        if tool_input.get("restart"):
            return ToolResult(output="tool has been restarted")

        command = tool_input.get("command")
        if not command:
            return ToolResult(error="no command provided")

        logger.info("bash_command", command=command)

        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return ToolResult(error=f"command timed out after {self.timeout}s")

        output = stdout.decode(errors="replace")
        error = stderr.decode(errors="replace")
        if process.returncode != 0:
            return ToolResult(output=output or None, error=error or f"exit code {process.returncode}")
        return ToolResult(output=output or error)


class FunctionTool(Tool):
    """Custom tool described by a JSON schema and routed to the handle."""

    description: str = ""
    input_schema: dict[str, Any] = {"type": "object", "properties": {}}
    action: BrowserAction

    def __init__(self, handle: AutomationHandle | None):
        self.handle = handle

    def definition(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_schema,
        }

    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        return await _require_handle(self.handle, self.name).execute(self.action, tool_input)


class NavigateTool(FunctionTool):
    name = "navigate"
    action = BrowserAction.NAVIGATE
    description = "Navigate the browser to a URL"
    input_schema = {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "URL to open"},
        },
        "required": ["url"],
    }


class SleepTool(FunctionTool):
    name = "sleep"
    action = BrowserAction.SLEEP
    description = "Pause execution for a number of milliseconds"
    input_schema = {
        "type": "object",
        "properties": {
            "duration": {
                "type": "integer",
                "minimum": 0,
                "maximum": MAX_SLEEP_MS,
                "description": "Milliseconds to wait",
            },
        },
        "required": ["duration"],
    }


class RunCallbackTool(FunctionTool):
    name = "run_callback"
    action = BrowserAction.RUN_CALLBACK
    description = "Run the callback attached to the current test step"
    input_schema = {
        "type": "object",
        "properties": {
            "action": {"type": "string", "enum": ["run_callback"]},
        },
        "required": ["action"],
    }


def create_tool_registry() -> ToolRegistry:
    """Build a registry holding every built-in tool."""
    registry = ToolRegistry()

    for version in provider_tool_versions("anthropic", "computer"):
        registry.register_tool(
            f"anthropic_computer_{version}",
            ToolEntry(
                name="computer",
                category="provider",
                factory=lambda handle, v=version: ComputerTool(handle, v),
            ),
        )

    for version in provider_tool_versions("anthropic", "bash"):
        registry.register_tool(
            f"anthropic_bash_{version}",
            ToolEntry(
                name="bash",
                category="provider",
                factory=lambda handle, v=version: BashTool(v),
            ),
        )

    for tool_cls in (NavigateTool, SleepTool, RunCallbackTool):
        registry.register_tool(
            tool_cls.name,
            ToolEntry(
                name=tool_cls.name,
                category="custom",
                factory=lambda handle, cls=tool_cls: cls(handle),
            ),
        )

    return registry
