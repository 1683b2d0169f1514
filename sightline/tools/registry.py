"""
Tool registry.

Maps string keys to tool factories. Provider tools are keyed
"<provider>_<tool_type>_<version>"; custom tools use their bare name or a
"<provider>_" prefix when they only apply to one provider.
"""

from dataclasses import dataclass
from typing import Callable, Literal

import structlog

from sightline.errors import ToolNotFoundError, ToolRegistrationError
from sightline.tools.base import AutomationHandle, Tool
from sightline.tools.versions import (
    KNOWN_PROVIDERS,
    MODEL_FAMILIES,
    TOOL_TYPES,
    TOOL_VERSIONS,
    ToolType,
    resolve_model_id,
)

logger = structlog.get_logger()

ToolFactory = Callable[[AutomationHandle | None], Tool]


@dataclass(frozen=True)
class ToolEntry:
    name: str
    category: Literal["provider", "custom"]
    factory: ToolFactory


class ToolRegistry:
    """Insertion-ordered mapping of tool keys to entries."""

    def __init__(self):
        self._tools: dict[str, ToolEntry] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def keys(self) -> list[str]:
        return list(self._tools)

    def register_tool(self, key: str, entry: ToolEntry) -> None:
        """
        Register a tool under a unique key.

        Raises:
            ToolRegistrationError: if the key is taken; the existing entry
                is left in place
        """
        if key in self._tools:
            raise ToolRegistrationError(key)
        self._tools[key] = entry
        logger.debug("tool_registered", key=key, category=entry.category)

    def get_tool_entry_key(self, provider: str, model: str, tool_type: ToolType) -> str:
        """
        Resolve the registry key of a provider tool for a model.

        Raises:
            ToolNotFoundError: if the model, its family or its tool version
                is unknown
        """
        model_id = resolve_model_id(provider, model)

        family = MODEL_FAMILIES.get(provider, {}).get(model_id)
        if family is None:
            raise ToolNotFoundError(
                f"Model '{model_id}' is not supported by provider '{provider}'",
                provider=provider,
                model=model_id,
                tool_type=tool_type,
            )

        version = TOOL_VERSIONS.get(provider, {}).get(family, {}).get(tool_type)
        if version is None:
            raise ToolNotFoundError(
                f"Tool '{tool_type}' has no version for model family '{family}'",
                provider=provider,
                model=model_id,
                tool_type=tool_type,
            )

        return f"{provider}_{tool_type}_{version}"

    def get_tools(
        self,
        provider: str,
        model: str,
        handle: AutomationHandle | None = None,
    ) -> dict[str, Tool]:
        """
        Instantiate the tool set offered for a model.

        Provider tools that cannot be resolved are omitted (logged at debug),
        never raised. Custom tools follow in registration order. The result
        is deterministic for identical inputs.
        """
        tools: dict[str, Tool] = {}

        for tool_type in TOOL_TYPES:
            try:
                key = self.get_tool_entry_key(provider, model, tool_type)
            except ToolNotFoundError as e:
                logger.debug("tool_omitted", tool_type=tool_type, reason=str(e))
                continue

            entry = self._tools.get(key)
            if entry is None:
                logger.debug("tool_omitted", tool_type=tool_type, reason=f"'{key}' not registered")
                continue

            tool = entry.factory(handle)
            tools[tool.name] = tool

        for key, entry in self._tools.items():
            if entry.category != "custom" or not self._applies_to(key, provider):
                continue
            tool = entry.factory(handle)
            tools[tool.name] = tool

        return tools

    @staticmethod
    def _applies_to(key: str, provider: str) -> bool:
        for other in KNOWN_PROVIDERS:
            if other != provider and key.startswith(f"{other}_"):
                return False
        return True
