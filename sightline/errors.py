"""
Exception types raised across the runner.

Each error carries a short machine-readable ``kind`` next to its message so
callers can branch on the failure without parsing text.
"""

from typing import Literal

CacheErrorKind = Literal["file-lock", "file-system", "crud"]
LLMErrorKind = Literal[
    "invalid-response",
    "unknown-tool",
    "token-limit-exceeded",
    "unsafe-content-detected",
    "unknown",
]
ConfigErrorKind = Literal["invalid-config", "not-initialized", "duplicate-config"]


class SightlineError(Exception):
    """Base class for every error raised by sightline."""


class CacheError(SightlineError):
    """Raised when the durable cache cannot be read, written or locked."""

    def __init__(self, kind: CacheErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class LLMError(SightlineError):
    """Raised when a model response cannot be used."""

    def __init__(self, kind: LLMErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ConfigError(SightlineError):
    def __init__(self, kind: ConfigErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class ToolRegistrationError(SightlineError):
    """Raised when a tool key is registered twice."""

    def __init__(self, key: str):
        super().__init__(f"Tool with key '{key}' already registered")
        self.key = key


class ToolNotFoundError(SightlineError):
    """Raised when no tool entry matches a provider/model/tool type triple."""

    def __init__(self, message: str, provider: str, model: str, tool_type: str):
        super().__init__(message)
        self.provider = provider
        self.model = model
        self.tool_type = tool_type


class InvalidTransitionError(SightlineError):
    """Raised when a test run is moved to a status it cannot reach."""

    def __init__(self, run_id: str, current: str, target: str):
        super().__init__(f"Test run {run_id} cannot move from {current} to {target}")
        self.run_id = run_id
        self.current = current
        self.target = target
