"""
Pydantic schemas for cache entries persisted to disk.

On-disk layout of one durable cache file (one per test identifier):

    {
      "<namespace>:<fingerprint>": {
        "test": {"name": ..., "filePath": ...},
        "data": {"steps": [...], "generation": {...}},
        "timestamp": <ms since epoch>
      }
    }
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from sightline.schemas.ai import GenerateResult


class BrowserAction(str, Enum):
    """Actions the automation handle can perform."""

    KEY = "key"
    TYPE = "type"
    MOUSE_MOVE = "mouse_move"
    LEFT_CLICK = "left_click"
    LEFT_CLICK_DRAG = "left_click_drag"
    RIGHT_CLICK = "right_click"
    MIDDLE_CLICK = "middle_click"
    DOUBLE_CLICK = "double_click"
    SCREENSHOT = "screenshot"
    CURSOR_POSITION = "cursor_position"
    SCROLL = "scroll"
    NAVIGATE = "navigate"
    SLEEP = "sleep"
    RUN_CALLBACK = "run_callback"
    BASH = "bash"

    @classmethod
    def from_tool_call(cls, tool_name: str, tool_input: dict[str, Any]) -> "BrowserAction | None":
        """Map a tool call to the action it performs, None if unknown."""
        name = tool_input.get("action") if tool_name == "computer" else tool_name
        try:
            return cls(name)
        except ValueError:
            return None


class ToolUseAction(BaseModel):
    type: Literal["tool_use"] = "tool_use"
    name: BrowserAction
    input: dict[str, Any] = Field(default_factory=dict)


class TextAction(BaseModel):
    type: Literal["text"] = "text"


CacheAction = Annotated[Union[ToolUseAction, TextAction], Field(discriminator="type")]


class ScreenshotExtra(BaseModel):
    kind: Literal["screenshot"] = "screenshot"
    fingerprint: str
    width: int | None = None
    height: int | None = None


class DomSnapshotExtra(BaseModel):
    kind: Literal["dom_snapshot"] = "dom_snapshot"
    reference: str


class ComponentExtra(BaseModel):
    """Normalized description of the element under the cursor."""

    kind: Literal["component"] = "component"
    component: str


CacheStepExtra = Annotated[
    Union[ScreenshotExtra, DomSnapshotExtra, ComponentExtra],
    Field(discriminator="kind"),
]


class CacheStep(BaseModel):
    """One reasoning -> action -> result record."""

    reasoning: str
    action: CacheAction | None = None
    timestamp: int  # ms since epoch
    result: str | None = None
    extras: list[CacheStepExtra] = Field(default_factory=list)


class CacheTestRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    file_path: str = Field(alias="filePath")


class CacheData(BaseModel):
    steps: list[CacheStep] = Field(default_factory=list)
    generation: GenerateResult | None = None


class CacheEntry(BaseModel):
    test: CacheTestRef
    data: CacheData = Field(default_factory=CacheData)
    timestamp: int  # ms since epoch

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
