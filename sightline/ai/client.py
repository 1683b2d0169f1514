"""
AI client: the tool-use loop that drives one test.

The model is called repeatedly until it stops asking for tools. Every tool
call is executed against the resolved tool set and recorded on the TestRun as
a CacheStep; the final text must carry exactly one JSON verdict.
"""

import base64
import binascii
import time
from dataclasses import dataclass
from typing import Any

import structlog

from sightline.ai.middleware import CacheMiddleware
from sightline.ai.provider import LanguageModel
from sightline.ai.validation import extract_json_payload
from sightline.config import settings
from sightline.core.test_run import TestRun
from sightline.errors import LLMError
from sightline.schemas.ai import (
    FinishReason,
    GenerateParams,
    GenerateResult,
    LLMVerdict,
    Message,
    TextPart,
    ToolCall,
    ToolCallPart,
    ToolResultPart,
    Usage,
)
from sightline.schemas.cache import (
    BrowserAction,
    CacheStep,
    CacheStepExtra,
    ComponentExtra,
    DomSnapshotExtra,
    ScreenshotExtra,
    TextAction,
    ToolUseAction,
)
from sightline.tools.base import AutomationHandle, Tool, ToolResult
from sightline.tools.registry import ToolRegistry
from sightline.utils.hashing import image_fingerprint

logger = structlog.get_logger()

MAX_STEPS = 100

SYSTEM_PROMPT = """You are a test automation expert working with a web browser.
You execute end-to-end tests by looking at screenshots and using the tools
available to you: the computer tool for mouse and keyboard input, navigate to
open URLs, sleep to wait for the page, run_callback to run the code attached to
the current test step, and bash for shell commands.

Rules:
- Take a screenshot before acting and after every action that changes the page.
- Follow the test steps and expectations in order.
- When a step has a callback, call run_callback once you reach that step.
- Do not guess. If an expectation is not visibly met, the test fails.

When you are done, respond with exactly one JSON object and nothing else that
looks like JSON:
{"result": "pass" | "fail", "reason": "<short explanation>"}"""

_FINISH_REASON_ERRORS: dict[FinishReason, tuple[str, str]] = {
    "length": (
        "token-limit-exceeded",
        "Generation stopped because the maximum token length was reached.",
    ),
    "content-filter": (
        "unsafe-content-detected",
        "Content filter violation: generation aborted.",
    ),
    "error": ("unknown", "An error occurred during generation."),
    "other": ("unknown", "An error occurred during generation."),
}


@dataclass
class AIResponse:
    """Final verdict of a tool-use loop."""

    verdict: LLMVerdict
    usage: Usage
    steps: int


def raise_for_finish_reason(reason: FinishReason) -> None:
    """Raise LLMError for finish reasons that end a generation abnormally."""
    if reason in _FINISH_REASON_ERRORS:
        kind, message = _FINISH_REASON_ERRORS[reason]
        raise LLMError(kind, message)


def step_extras(result: ToolResult) -> list[CacheStepExtra]:
    """Extras worth keeping next to a recorded step."""
    extras: list[CacheStepExtra] = []

    if result.base64_image:
        try:
            digest = image_fingerprint(base64.b64decode(result.base64_image, validate=True))
        except (binascii.Error, ValueError, OSError) as e:
            logger.debug("screenshot_fingerprint_skipped", error=str(e))
        else:
            extras.append(ScreenshotExtra(fingerprint=digest))

    component = result.metadata.get("component")
    if component:
        extras.append(ComponentExtra(component=component))

    dom_snapshot = result.metadata.get("dom_snapshot")
    if dom_snapshot:
        extras.append(DomSnapshotExtra(reference=dom_snapshot))

    return extras


class AIClient:
    """
    Runs the tool-use loop of one test against a language model.

    Usage:
        client = AIClient(model, registry, browser, middleware=middleware)
        response = await client.process_action(prompt, test_run)
    """

    def __init__(
        self,
        model: LanguageModel,
        tool_registry: ToolRegistry,
        handle: AutomationHandle | None = None,
        middleware: CacheMiddleware | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        system_prompt: str = SYSTEM_PROMPT,
    ):
        self.model = model
        self.middleware = middleware
        self.system_prompt = system_prompt
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.tools: dict[str, Tool] = tool_registry.get_tools(
            model.provider, model.model_id, handle
        )
        self.history: list[Message] = []

    def build_params(self) -> GenerateParams:
        tools = list(self.tools.values())
        return GenerateParams(
            model=self.model.model_id,
            system=self.system_prompt,
            messages=list(self.history),
            tools=[tool.definition() for tool in tools],
            betas=sorted({tool.beta for tool in tools if tool.beta}),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    async def process_action(self, prompt: str, test_run: TestRun) -> AIResponse:
        """
        Drive the model until it returns a verdict.

        Raises:
            LLMError: on an unknown tool, an abnormal finish reason, or a
                final response without exactly one valid verdict
        """
        log = logger.bind(test_name=test_run.test_case.name, run_id=test_run.run_id)
        self.history.append(Message.user_text(prompt))
        usage = Usage()

        for step in range(1, MAX_STEPS + 1):
            params = self.build_params()
            result = await self._generate(params)
            usage = usage + result.usage
            test_run.add_usage(result.usage)

            self.history.append(self._assistant_message(result))

            if result.finish_reason == "tool-calls" and result.tool_calls:
                tool_results = []
                for call in result.tool_calls:
                    tool_results.append(await self._run_tool(call, result.text, test_run, log))
                self.history.append(Message(role="user", content=tool_results))
                continue

            raise_for_finish_reason(result.finish_reason)

            verdict = extract_json_payload(result.text or "", LLMVerdict)
            test_run.add_step(
                CacheStep(
                    reasoning=verdict.reason,
                    action=TextAction(),
                    timestamp=int(time.time() * 1000),
                    result=result.text,
                )
            )
            log.info("ai_verdict", result=verdict.result, reason=verdict.reason, steps=step)
            return AIResponse(verdict=verdict, usage=usage, steps=step)

        raise LLMError("unknown", f"No verdict after {MAX_STEPS} model calls.")

    async def _generate(self, params: GenerateParams) -> GenerateResult:
        if self.middleware is None:
            return await self.model.do_generate(params)
        return await self.middleware.wrap_generate(
            lambda: self.model.do_generate(params), params
        )

    async def _run_tool(
        self,
        call: ToolCall,
        reasoning: str | None,
        test_run: TestRun,
        log: Any,
    ) -> ToolResultPart:
        tool = self.tools.get(call.name)
        if tool is None:
            raise LLMError("unknown-tool", f"Tool '{call.name}' is not supported")

        log.debug("tool_call", tool=call.name, input=call.input)
        tool_result = await tool.execute(call.input)
        if not tool_result.success:
            log.warning("tool_call_failed", tool=call.name, error=tool_result.error)

        action_name = BrowserAction.from_tool_call(call.name, call.input)
        test_run.add_step(
            CacheStep(
                reasoning=reasoning or "",
                action=ToolUseAction(name=action_name, input=call.input) if action_name else None,
                timestamp=int(time.time() * 1000),
                result=tool_result.output or tool_result.error,
                extras=step_extras(tool_result),
            )
        )

        return ToolResultPart(
            tool_call_id=call.id,
            tool_name=call.name,
            output=tool_result.error or tool_result.output,
            image=tool_result.base64_image,
            is_error=not tool_result.success,
        )

    @staticmethod
    def _assistant_message(result: GenerateResult) -> Message:
        content: list = []
        if result.text:
            content.append(TextPart(text=result.text))
        for call in result.tool_calls:
            content.append(
                ToolCallPart(tool_call_id=call.id, tool_name=call.name, input=call.input)
            )
        if not content:
            content.append(TextPart(text=""))
        return Message(role="assistant", content=content)
