"""
Tool abstractions shared by the registry, the AI client and the browser.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol

from sightline.schemas.cache import BrowserAction


@dataclass
class ToolResult:
    """Outcome of one tool execution, sent back to the model."""

    output: str | None = None
    base64_image: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.error is None


class AutomationHandle(Protocol):
    """Surface exposing primitive UI actions addressed by name."""

    async def execute(self, action: BrowserAction, tool_input: dict[str, Any]) -> ToolResult:
        ...


class Tool(ABC):
    """A named capability offered to the model."""

    name: str
    beta: str | None = None

    @abstractmethod
    def definition(self) -> dict[str, Any]:
        """Provider-facing tool schema."""

    @abstractmethod
    async def execute(self, tool_input: dict[str, Any]) -> ToolResult:
        ...
