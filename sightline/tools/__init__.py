"""
Tools offered to the model and their versioned registry.
"""

from sightline.tools.base import AutomationHandle, Tool, ToolResult
from sightline.tools.builtin import create_tool_registry
from sightline.tools.registry import ToolEntry, ToolRegistry

__all__ = [
    "AutomationHandle",
    "Tool",
    "ToolEntry",
    "ToolRegistry",
    "ToolResult",
    "create_tool_registry",
]
