"""
Model-invocation adapters.

Each adapter translates provider-neutral ``GenerateParams`` into one
provider SDK call and the response back into a ``GenerateResult``. The rest
of the runner only sees the ``LanguageModel`` protocol.
"""

import json
import time
from datetime import datetime, timezone
from typing import Any, Protocol

import anthropic
import openai
import structlog
from anthropic import AsyncAnthropic
from openai import AsyncOpenAI
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sightline.config import Settings, settings as default_settings
from sightline.errors import ConfigError, LLMError
from sightline.schemas.ai import (
    FinishReason,
    GenerateParams,
    GenerateResult,
    ImagePart,
    Message,
    ResponseMetadata,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from sightline.tools.versions import resolve_model_id

logger = structlog.get_logger()

ANTHROPIC_FINISH_REASONS: dict[str, FinishReason] = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "tool_use": "tool-calls",
    "max_tokens": "length",
    "refusal": "content-filter",
}

OPENAI_FINISH_REASONS: dict[str, FinishReason] = {
    "stop": "stop",
    "tool_calls": "tool-calls",
    "function_call": "tool-calls",
    "length": "length",
    "content_filter": "content-filter",
}

_ANTHROPIC_TRANSIENT = (
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
)

_OPENAI_TRANSIENT = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
)


class LanguageModel(Protocol):
    """Provider-neutral model surface."""

    provider: str
    model_id: str

    async def do_generate(self, params: GenerateParams) -> GenerateResult:
        ...


def _to_anthropic_block(part) -> dict[str, Any]:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}

    if isinstance(part, ImagePart):
        return {
            "type": "image",
            "source": {"type": "base64", "media_type": part.media_type, "data": part.data},
        }

    if isinstance(part, ToolCallPart):
        return {
            "type": "tool_use",
            "id": part.tool_call_id,
            "name": part.tool_name,
            "input": part.input,
        }

    content: list[dict[str, Any]] = []
    if part.output:
        content.append({"type": "text", "text": part.output})
    if part.image:
        content.append(
            {
                "type": "image",
                "source": {"type": "base64", "media_type": "image/png", "data": part.image},
            }
        )
    return {
        "type": "tool_result",
        "tool_use_id": part.tool_call_id,
        "content": content,
        "is_error": part.is_error,
    }


class AnthropicLanguageModel:
    """Anthropic Messages API (beta surface, for computer use)."""

    provider = "anthropic"

    def __init__(self, model_id: str, api_key: str):
        self.model_id = model_id
        self.client = AsyncAnthropic(api_key=api_key)

    @retry(
        retry=retry_if_exception_type(_ANTHROPIC_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def do_generate(self, params: GenerateParams) -> GenerateResult:
        start = time.time()

        kwargs: dict[str, Any] = {
            "model": params.model,
            "system": params.system,
            "messages": [
                {"role": m.role, "content": [_to_anthropic_block(p) for p in m.content]}
                for m in params.messages
            ],
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
        }
        if params.tools:
            kwargs["tools"] = params.tools
        if params.betas:
            kwargs["betas"] = params.betas

        response = await self.client.beta.messages.create(**kwargs)

        texts = []
        tool_calls = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(id=block.id, name=block.name, input=block.input or {}))

        usage = Usage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )

        logger.info(
            "anthropic_call_complete",
            model=params.model,
            tokens=usage.total_tokens,
            stop_reason=response.stop_reason,
            duration_ms=round((time.time() - start) * 1000, 2),
        )

        return GenerateResult(
            text="\n".join(texts) or None,
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=ANTHROPIC_FINISH_REASONS.get(response.stop_reason or "", "other"),
            response=ResponseMetadata(
                id=response.id,
                model_id=response.model,
                timestamp=datetime.now(timezone.utc),
            ),
            raw=response,
        )


def _to_openai_messages(system: str, messages: list[Message]) -> list[dict[str, Any]]:
    converted: list[dict[str, Any]] = [{"role": "system", "content": system}]

    for message in messages:
        content: list[dict[str, Any]] = []
        tool_calls: list[dict[str, Any]] = []
        tool_images: list[dict[str, Any]] = []

        for part in message.content:
            if isinstance(part, TextPart):
                content.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                content.append(
                    {
                        "type": "image_url",
                        "image_url": {"url": f"data:{part.media_type};base64,{part.data}"},
                    }
                )
            elif isinstance(part, ToolCallPart):
                tool_calls.append(
                    {
                        "id": part.tool_call_id,
                        "type": "function",
                        "function": {"name": part.tool_name, "arguments": json.dumps(part.input)},
                    }
                )
            elif isinstance(part, ToolResultPart):
                converted.append(
                    {
                        "role": "tool",
                        "tool_call_id": part.tool_call_id,
                        "content": part.output or ("error" if part.is_error else "ok"),
                    }
                )
                # Tool messages cannot carry images.
                if part.image:
                    tool_images.append(
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{part.image}"},
                        }
                    )

        if message.role == "assistant":
            text = "\n".join(c["text"] for c in content if c["type"] == "text")
            entry: dict[str, Any] = {"role": "assistant", "content": text or None}
            if tool_calls:
                entry["tool_calls"] = tool_calls
            converted.append(entry)
        elif content:
            converted.append({"role": "user", "content": content})

        if tool_images:
            converted.append({"role": "user", "content": tool_images})

    return converted


def _to_openai_tools(tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
    # Provider-native tools carry a "type" and have no OpenAI equivalent.
    return [
        {
            "type": "function",
            "function": {
                "name": tool["name"],
                "description": tool.get("description", ""),
                "parameters": tool.get("input_schema", {"type": "object", "properties": {}}),
            },
        }
        for tool in tools
        if "type" not in tool
    ]


class OpenAILanguageModel:
    """OpenAI Chat Completions API with function tools."""

    provider = "openai"

    def __init__(self, model_id: str, api_key: str):
        self.model_id = model_id
        self.client = AsyncOpenAI(api_key=api_key)

    @retry(
        retry=retry_if_exception_type(_OPENAI_TRANSIENT),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def do_generate(self, params: GenerateParams) -> GenerateResult:
        start = time.time()

        kwargs: dict[str, Any] = {
            "model": params.model,
            "messages": _to_openai_messages(params.system, params.messages),
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
        }
        tools = _to_openai_tools(params.tools)
        if tools:
            kwargs["tools"] = tools

        response = await self.client.chat.completions.create(**kwargs)

        choice = response.choices[0]
        tool_calls = []
        for call in choice.message.tool_calls or []:
            try:
                arguments = json.loads(call.function.arguments or "{}")
            except json.JSONDecodeError as e:
                raise LLMError(
                    "invalid-response",
                    f"Tool call {call.function.name} has malformed arguments: {e}",
                ) from e
            tool_calls.append(ToolCall(id=call.id, name=call.function.name, input=arguments))

        usage = Usage(
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
        )

        logger.info(
            "openai_call_complete",
            model=params.model,
            tokens=usage.total_tokens,
            finish_reason=choice.finish_reason,
            duration_ms=round((time.time() - start) * 1000, 2),
        )

        return GenerateResult(
            text=choice.message.content,
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=OPENAI_FINISH_REASONS.get(choice.finish_reason or "", "other"),
            response=ResponseMetadata(
                id=response.id,
                model_id=response.model,
                timestamp=datetime.fromtimestamp(response.created, tz=timezone.utc),
            ),
            raw=response,
        )


def create_language_model(settings: Settings | None = None) -> LanguageModel:
    """
    Build the adapter selected by ``ai_provider``.

    Raises:
        ConfigError: if the provider's API key is not configured
    """
    settings = settings or default_settings
    model_id = resolve_model_id(settings.ai_provider, settings.ai_model)

    if settings.ai_provider == "anthropic":
        if not settings.anthropic_api_key:
            raise ConfigError("invalid-config", "ANTHROPIC_API_KEY is not set")
        return AnthropicLanguageModel(model_id, settings.anthropic_api_key)

    if not settings.openai_api_key:
        raise ConfigError("invalid-config", "OPENAI_API_KEY is not set")
    return OpenAILanguageModel(model_id, settings.openai_api_key)
