"""
Provider-neutral request/response models for the model-invocation surface.
"""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

FinishReason = Literal["stop", "tool-calls", "length", "content-filter", "error", "other"]


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ImagePart(BaseModel):
    type: Literal["image"] = "image"
    data: str  # base64
    media_type: str = "image/png"


class ToolCallPart(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    tool_call_id: str
    tool_name: str
    input: dict[str, Any] = Field(default_factory=dict)


class ToolResultPart(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    tool_name: str
    output: str | None = None
    image: str | None = None  # base64
    is_error: bool = False


ContentPart = Annotated[
    Union[TextPart, ImagePart, ToolCallPart, ToolResultPart],
    Field(discriminator="type"),
]


class Message(BaseModel):
    """A single conversation turn."""

    role: Literal["user", "assistant"]
    content: list[ContentPart]

    @classmethod
    def user_text(cls, text: str) -> "Message":
        return cls(role="user", content=[TextPart(text=text)])


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class Usage(BaseModel):
    """Token usage of one or more model calls."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
        )


class ResponseMetadata(BaseModel):
    id: str | None = None
    model_id: str | None = None
    timestamp: datetime | None = None


class GenerateParams(BaseModel):
    """Everything sent to the model for one generate call."""

    model: str
    system: str
    messages: list[Message]
    tools: list[dict[str, Any]] = Field(default_factory=list)
    betas: list[str] = Field(default_factory=list)
    max_tokens: int = 1024
    temperature: float = 0.0


class GenerateResult(BaseModel):
    """
    Result of one generate call.

    ``raw`` keeps the provider response object for debugging and is never
    serialized, so a dumped result is the trimmed projection that gets cached.
    """

    text: str | None = None
    tool_calls: list[ToolCall] = Field(default_factory=list)
    usage: Usage = Field(default_factory=Usage)
    finish_reason: FinishReason = "stop"
    response: ResponseMetadata = Field(default_factory=ResponseMetadata)
    raw: Any = Field(default=None, exclude=True)


class LLMVerdict(BaseModel):
    """Structured pass/fail judgment embedded in the model's final text."""

    result: Literal["pass", "fail"]
    reason: str
