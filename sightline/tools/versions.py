"""
Versioned tool-protocol configuration.

Providers revise their tool-use protocols independently of model releases, so
resolution is kept as lookup tables. Supporting a new model, family or
protocol version means adding rows here, not branches in code:

    model id --MODEL_FAMILIES--> family --TOOL_VERSIONS--> version
    registry key = "<provider>_<tool_type>_<version>"
"""

from typing import Literal

ToolType = Literal["computer", "bash"]

TOOL_TYPES: tuple[ToolType, ...] = ("computer", "bash")

# Short aliases accepted in settings, mapped to provider model ids
MODEL_ALIASES: dict[str, dict[str, str]] = {
    "anthropic": {
        "claude-3-5-sonnet": "claude-3-5-sonnet-20241022",
        "claude-3-7-sonnet": "claude-3-7-sonnet-20250219",
        "claude-sonnet-4": "claude-sonnet-4-20250514",
    },
    "openai": {
        "gpt-4o": "gpt-4o",
        "gpt-4o-mini": "gpt-4o-mini",
    },
}

MODEL_FAMILIES: dict[str, dict[str, str]] = {
    "anthropic": {
        "claude-3-5-sonnet-latest": "claude-3-5",
        "claude-3-5-sonnet-20241022": "claude-3-5",
        "claude-3-7-sonnet-latest": "claude-3-7",
        "claude-3-7-sonnet-20250219": "claude-3-7",
        "claude-sonnet-4-20250514": "claude-4",
        "claude-opus-4-20250514": "claude-4",
    },
    "openai": {
        "gpt-4o": "gpt-4o",
        "gpt-4o-mini": "gpt-4o",
    },
}

TOOL_VERSIONS: dict[str, dict[str, dict[ToolType, str]]] = {
    "anthropic": {
        "claude-3-5": {"computer": "20241022", "bash": "20241022"},
        "claude-3-7": {"computer": "20250124", "bash": "20250124"},
        "claude-4": {"computer": "20250124", "bash": "20250124"},
    },
    # No hosted computer/bash protocol; only custom tools are offered.
    "openai": {
        "gpt-4o": {},
    },
}

# Beta flag that must accompany requests using a given protocol version
TOOL_BETAS: dict[str, dict[str, str]] = {
    "anthropic": {
        "20241022": "computer-use-2024-10-22",
        "20250124": "computer-use-2025-01-24",
    },
}

KNOWN_PROVIDERS: tuple[str, ...] = tuple(MODEL_FAMILIES)


def resolve_model_id(provider: str, model: str) -> str:
    """Translate a settings alias into a provider model id."""
    return MODEL_ALIASES.get(provider, {}).get(model, model)


def provider_tool_versions(provider: str, tool_type: ToolType) -> list[str]:
    """Every protocol version of a tool type known for a provider."""
    versions = {
        family_versions[tool_type]
        for family_versions in TOOL_VERSIONS.get(provider, {}).values()
        if tool_type in family_versions
    }
    return sorted(versions)
