"""
Pydantic schemas for cache records and model requests/responses.
"""

from sightline.schemas.ai import (
    GenerateParams,
    GenerateResult,
    ImagePart,
    LLMVerdict,
    Message,
    ResponseMetadata,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from sightline.schemas.cache import (
    BrowserAction,
    CacheData,
    CacheEntry,
    CacheStep,
    CacheTestRef,
    ComponentExtra,
    DomSnapshotExtra,
    ScreenshotExtra,
    TextAction,
    ToolUseAction,
)

__all__ = [
    "GenerateParams",
    "GenerateResult",
    "ImagePart",
    "LLMVerdict",
    "Message",
    "ResponseMetadata",
    "TextPart",
    "ToolCall",
    "ToolCallPart",
    "ToolResultPart",
    "Usage",
    "BrowserAction",
    "CacheData",
    "CacheEntry",
    "CacheStep",
    "CacheTestRef",
    "ComponentExtra",
    "DomSnapshotExtra",
    "ScreenshotExtra",
    "TextAction",
    "ToolUseAction",
]
