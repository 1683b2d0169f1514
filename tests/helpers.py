"""
Test doubles and data builders shared across the suite.
"""

import base64
import io
import json
from typing import Any
from unittest.mock import AsyncMock

from PIL import Image, ImageDraw

from sightline.schemas.ai import GenerateResult, ToolCall, Usage
from sightline.schemas.cache import BrowserAction
from sightline.tools.base import ToolResult


def render_screenshot(shade: int = 0, size: tuple[int, int] = (320, 200), noise: int = 0) -> bytes:
    """PNG with a dark banner over a light page; noise tweaks a few pixels."""
    img = Image.new("RGB", size, (235, 235, 235))
    draw = ImageDraw.Draw(img)
    draw.rectangle((0, 0, size[0], size[1] // 4), fill=(shade, shade, shade))
    draw.rectangle((size[0] // 3, size[1] // 2, size[0] // 2, size[1] - 20), fill=(40, 90, 200))
    for i in range(noise):
        x, y = (i * 37) % size[0], (i * 53) % size[1]
        r, g, b = img.getpixel((x, y))
        img.putpixel((x, y), (min(r + 3, 255), g, max(b - 3, 0)))

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def screenshot_b64(**kwargs) -> str:
    return base64.b64encode(render_screenshot(**kwargs)).decode("ascii")


def verdict_result(result: str = "pass", reason: str = "ok", prompt_tokens: int = 100) -> GenerateResult:
    """Final model response carrying a JSON verdict."""
    return GenerateResult(
        text=f"All steps done. {json.dumps({'result': result, 'reason': reason})}",
        usage=Usage(prompt_tokens=prompt_tokens, completion_tokens=20),
        finish_reason="stop",
    )


def tool_call_result(call_id: str, action: str = "screenshot", **tool_input: Any) -> GenerateResult:
    """Model response asking for one computer action."""
    return GenerateResult(
        text=f"I will take the {action} action.",
        tool_calls=[ToolCall(id=call_id, name="computer", input={"action": action, **tool_input})],
        usage=Usage(prompt_tokens=50, completion_tokens=10),
        finish_reason="tool-calls",
    )


class FakeModel:
    """Language model surface whose responses are scripted."""

    provider = "anthropic"
    model_id = "claude-3-5-sonnet-20241022"

    def __init__(self, responses: list[GenerateResult] | None = None):
        self.do_generate = AsyncMock(side_effect=list(responses or []))

    def script(self, responses: list[GenerateResult]) -> None:
        self.do_generate.side_effect = list(responses)
        self.do_generate.reset_mock()


class FakeHandle:
    """Automation handle recording every action, usable as a context manager."""

    def __init__(self, image: str | None = None):
        self.image = image or screenshot_b64()
        self.execute = AsyncMock(side_effect=self._execute)
        self.callbacks: list = []

    async def _execute(self, action: BrowserAction, tool_input: dict[str, Any]) -> ToolResult:
        if action == BrowserAction.RUN_CALLBACK and self.callbacks:
            await self.callbacks.pop(0)()
            return ToolResult(output="callback executed")
        return ToolResult(output=f"{action.value} done", base64_image=self.image)

    def set_callbacks(self, callbacks) -> None:
        self.callbacks = list(callbacks)

    @property
    def actions(self) -> list[str]:
        return [call.args[0].value for call in self.execute.call_args_list]

    async def __aenter__(self) -> "FakeHandle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None


