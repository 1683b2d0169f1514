"""
Cache middleware around one model generate call.

On every call the outbound request is fingerprinted and looked up in the
test's durable cache:
- hit: the recorded result is replayed and the model is never invoked
- miss: the model is invoked and a trimmed copy of the result is staged in
  the run's scratch store

Staged entries reach durable storage only when a passing verdict is seen,
either in a model response (optimistic, per step) or from the runner once the
whole run passes.
"""

import base64
import binascii
import hashlib
import time
from typing import Any, Awaitable, Callable

import structlog

from sightline.ai.validation import extract_json_payload
from sightline.cache.emit import emit_cache
from sightline.cache.store import CacheStore, MemoryCacheStore
from sightline.core.test_case import TestCase
from sightline.errors import CacheError, LLMError
from sightline.schemas.ai import GenerateParams, GenerateResult, LLMVerdict
from sightline.schemas.cache import (
    BrowserAction,
    CacheData,
    CacheEntry,
    CacheStep,
    CacheTestRef,
    TextAction,
    ToolUseAction,
)
from sightline.utils.hashing import assemble_cache_key, fingerprint, image_fingerprint

logger = structlog.get_logger()

NAMESPACE = "ai"

DoGenerate = Callable[[], Awaitable[GenerateResult]]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _image_digest(data: str) -> str:
    try:
        return "phash:" + image_fingerprint(base64.b64decode(data, validate=True))
    except (binascii.Error, ValueError, OSError):
        return "sha256:" + hashlib.sha256(data.encode("utf-8")).hexdigest()


def request_fingerprint(params: GenerateParams) -> str:
    """
    Fingerprint of a generate request.

    Images are replaced by their perceptual hash so screenshots that differ
    only by rendering noise still address the same entry.
    """
    payload: dict[str, Any] = params.model_dump(mode="json")
    for message in payload["messages"]:
        for part in message["content"]:
            if part["type"] == "image":
                part["data"] = _image_digest(part["data"])
            elif part["type"] == "tool_result" and part.get("image"):
                part["image"] = _image_digest(part["image"])
    return fingerprint(payload)


def trim_result(result: GenerateResult) -> GenerateResult:
    """Projection of a result that is worth caching."""
    return GenerateResult(
        text=result.text,
        tool_calls=result.tool_calls,
        usage=result.usage,
        finish_reason=result.finish_reason,
        response=result.response,
    )


def steps_from_result(result: GenerateResult) -> list[CacheStep]:
    timestamp = _now_ms()
    reasoning = result.text or ""

    if not result.tool_calls:
        return [
            CacheStep(
                reasoning=reasoning,
                action=TextAction(),
                timestamp=timestamp,
                result=result.text,
            )
        ]

    steps = []
    for call in result.tool_calls:
        action_name = BrowserAction.from_tool_call(call.name, call.input)
        steps.append(
            CacheStep(
                reasoning=reasoning,
                action=ToolUseAction(name=action_name, input=call.input)
                if action_name
                else None,
                timestamp=timestamp,
            )
        )
    return steps


class CacheMiddleware:
    """
    Replay/record layer for the model calls of one test run.

    Usage:
        middleware = CacheMiddleware(test_case, TestCache(test_case))
        result = await middleware.wrap_generate(lambda: model.do_generate(params), params)
    """

    def __init__(
        self,
        test_case: TestCase,
        durable: CacheStore,
        scratch: CacheStore | None = None,
    ):
        self.test_case = test_case
        self.durable = durable
        self.scratch = scratch if scratch is not None else MemoryCacheStore()
        self.hits = 0
        self.misses = 0
        self.commits = 0
        self._log = logger.bind(test_name=test_case.name, namespace=NAMESPACE)

    def cache_key(self, params: GenerateParams) -> str:
        return assemble_cache_key(NAMESPACE, request_fingerprint(params))

    async def wrap_generate(
        self,
        do_generate: DoGenerate,
        params: GenerateParams,
    ) -> GenerateResult:
        key = self.cache_key(params)

        cached = await self.durable.get(key)
        if cached is not None and cached.data.generation is not None:
            self.hits += 1
            self._log.info("cache_hit", key=key)
            return self._replay(cached.data.generation)

        self.misses += 1
        self._log.info("cache_miss", key=key)

        # Model errors propagate; nothing is staged for a failed call.
        result = await do_generate()

        await self.scratch.set(key, self._to_entry(result))

        if result.text:
            try:
                verdict = extract_json_payload(result.text, LLMVerdict)
            except LLMError as e:
                self._log.debug("verdict_not_found", key=key, error=str(e))
            else:
                if verdict.result == "pass":
                    await self._commit_optimistically(key)

        return result

    async def commit(self) -> int:
        """Move every staged entry into durable storage."""
        written = await emit_cache(self.scratch, self.durable)
        await self.scratch.clear()
        if written:
            self.commits += 1
        return written

    async def _commit_optimistically(self, key: str) -> None:
        # On failure the staged entries stay in scratch for flush().
        try:
            await self.commit()
        except CacheError as e:
            self._log.error("cache_commit_failed", key=key, kind=e.kind, error=str(e))

    async def flush(self) -> int:
        """Commit entries staged after the last optimistic commit."""
        return await self.commit()

    async def discard(self) -> None:
        staged = len(await self.scratch.items())
        await self.scratch.clear()
        self._log.info("cache_discarded", entries=staged)

    def _to_entry(self, result: GenerateResult) -> CacheEntry:
        trimmed = trim_result(result)
        return CacheEntry(
            test=CacheTestRef(
                name=self.test_case.name,
                file_path=self.test_case.file_path,
            ),
            data=CacheData(steps=steps_from_result(trimmed), generation=trimmed),
            timestamp=_now_ms(),
        )

    @staticmethod
    def _replay(generation: GenerateResult) -> GenerateResult:
        # Round-trip through JSON so the timestamp comes back as a datetime.
        return GenerateResult.model_validate(generation.model_dump(mode="json"))
