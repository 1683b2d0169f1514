"""
Test Runner

Orchestrates one test session:
1. Discover test files and collect TestCases into an explicit registry
2. Execute each TestCase in its own TestRun (hooks, direct or AI-driven)
3. Commit the run's staged cache entries on pass, discard them otherwise
4. Report results and a session summary
"""

from contextlib import AbstractAsyncContextManager
from functools import partial
from pathlib import Path
from typing import Callable

import structlog

from sightline.ai.client import AIClient
from sightline.ai.middleware import CacheMiddleware
from sightline.ai.provider import LanguageModel, create_language_model
from sightline.cache.cleanup import clean_up_cache, purge_legacy_cache
from sightline.cache.store import TestCache
from sightline.config import Settings, settings as default_settings
from sightline.core.context import TestContext
from sightline.core.loader import TestFileLoader
from sightline.core.registry import HookSet, TestRegistry
from sightline.core.reporter import TestReporter
from sightline.core.test_case import TestCase
from sightline.core.test_run import TestRun
from sightline.errors import CacheError, ConfigError
from sightline.tools.base import AutomationHandle
from sightline.tools.builtin import create_tool_registry
from sightline.tools.registry import ToolRegistry
from sightline.utils.hashing import canonicalize

logger = structlog.get_logger()

HandleFactory = Callable[[], AbstractAsyncContextManager[AutomationHandle]]


def build_prompt(test_case: TestCase) -> str:
    """Instructions sent to the model for one test."""
    lines = [f"Test: {test_case.name}"]

    if test_case.payload is not None:
        lines.append(f"Context: {canonicalize(test_case.payload)}")

    callback_steps = []
    for index, expectation in enumerate(test_case.expectations, start=1):
        if expectation.direct_execution:
            continue
        line = f"{index}. Expect: {expectation.description}"
        if expectation.payload is not None:
            line += f" (context: {canonicalize(expectation.payload)})"
        if expectation.fn is not None:
            line += " [has callback]"
            callback_steps.append(index)
        lines.append(line)

    if test_case.fn is not None:
        lines.append("After the test passes, code assertions will run.")
    if callback_steps:
        lines.append(
            "Call run_callback when you reach each step marked [has callback]."
        )

    return "\n".join(lines)


def browser_handle_factory(settings: Settings) -> HandleFactory:
    """Factory of Playwright handles configured from settings."""
    from sightline.core.browser import BrowserOptions, BrowserTool

    options = BrowserOptions(
        headless=settings.playwright_headless,
        slow_mo=settings.playwright_slow_mo,
        timeout=settings.playwright_timeout,
        viewport_width=settings.display_width,
        viewport_height=settings.display_height,
        base_url=settings.base_url,
    )
    return partial(BrowserTool, options)


class TestRunner:
    """
    Runs collected tests against a browser and a language model.

    Usage:
        runner = TestRunner(cwd=Path.cwd())
        await runner.initialize()
        ok = await runner.run_tests()
    """

    __test__ = False

    def __init__(
        self,
        cwd: str | Path = ".",
        settings: Settings | None = None,
        model: LanguageModel | None = None,
        tool_registry: ToolRegistry | None = None,
        handle_factory: HandleFactory | None = None,
        reporter: TestReporter | None = None,
    ):
        self.cwd = Path(cwd).resolve()
        self.settings = settings or default_settings
        self.model = model
        self.tool_registry = tool_registry
        self.handle_factory = handle_factory or browser_handle_factory(self.settings)
        self.reporter = reporter or TestReporter()
        self.registry: TestRegistry | None = None
        self.loader: TestFileLoader | None = None

    @property
    def cache_dir(self) -> Path:
        cache_dir = Path(self.settings.cache_dir)
        return cache_dir if cache_dir.is_absolute() else self.cwd / cache_dir

    async def initialize(self) -> None:
        """Create the session registry, model, tools and tidy the cache."""
        self.registry = TestRegistry()
        self.loader = TestFileLoader(self.registry, self.cwd, self.settings.test_pattern)

        if self.model is None:
            self.model = create_language_model(self.settings)
        if self.tool_registry is None:
            self.tool_registry = create_tool_registry()

        purge_legacy_cache(self.cwd)
        if self.settings.caching_enabled:
            clean_up_cache(self.cache_dir, max_age_seconds=self.settings.cache_max_age_seconds)

        logger.info(
            "runner_initialized",
            provider=self.model.provider,
            model=self.model.model_id,
            caching=self.settings.caching_enabled,
            cache_dir=str(self.cache_dir),
        )

    async def run_tests(self, pattern: str | None = None) -> bool:
        """Run every test matching the pattern. Returns True if all passed."""
        if self.loader is None or self.registry is None:
            raise ConfigError("not-initialized", "Call initialize() before run_tests()")

        files = self.loader.find_files(pattern)
        if not files:
            logger.warning("no_test_files", pattern=pattern or self.loader.pattern)
            return False

        async with self.handle_factory() as handle:
            for path in files:
                await self.run_file(path, handle)

        self.reporter.summary()
        return self.reporter.all_passed()

    async def run_file(self, path: Path, handle: AutomationHandle) -> list[TestRun]:
        file_path = str(path)
        self.reporter.start_file(file_path)

        try:
            test_cases = self.loader.load_file(path)
        except Exception as e:
            logger.exception("test_file_error", file=file_path)
            self.reporter.report_file_error(file_path, e)
            return []

        hooks = self.registry.hooks(path)
        context = TestContext(handle=handle, file_path=file_path)

        try:
            for hook in hooks.before_all:
                await hook(context)
        except Exception as e:
            logger.exception("before_all_failed", file=file_path)
            self.reporter.report_file_error(file_path, e)
            return []

        runs = []
        for test_case in test_cases:
            runs.append(await self.execute_test(test_case, handle, hooks))

        try:
            for hook in hooks.after_all:
                await hook(context)
        except Exception as e:
            logger.exception("after_all_failed", file=file_path)
            self.reporter.report_file_error(file_path, e)

        return runs

    async def execute_test(
        self,
        test_case: TestCase,
        handle: AutomationHandle,
        hooks: HookSet | None = None,
    ) -> TestRun:
        """
        Execute one TestCase and decide the fate of its staged cache entries.

        Never raises for test failures; the outcome is in the returned run.
        """
        hooks = hooks or HookSet()
        run = TestRun(test_case=test_case)
        log = logger.bind(test_name=test_case.name, run_id=run.run_id)
        context = TestContext(test_case=test_case, handle=handle, file_path=test_case.file_path)

        self.reporter.start_test(test_case)
        run.mark_running()

        middleware: CacheMiddleware | None = None
        passed = False
        reason: str | None = None

        try:
            for hook in hooks.before_each:
                await hook(context)
            if test_case.before_fn:
                await test_case.before_fn(context)

            if test_case.direct_execution:
                await test_case.fn(context)
                passed, reason = True, "Direct execution successful"
            else:
                middleware = self._create_middleware(test_case)
                passed, reason = await self._execute_ai_test(test_case, handle, context, run, middleware)

        except Exception as e:
            log.exception("test_execution_error", error=str(e))
            passed, reason = False, str(e)

        for after in self._after_hooks(test_case, hooks):
            try:
                await after(context)
            except Exception as e:
                log.exception("after_hook_failed", error=str(e))
                if passed:
                    passed, reason = False, f"After hook failed: {e}"

        if middleware is not None:
            await self._settle_cache(middleware, passed, log)
            run.from_cache = middleware.hits > 0 and middleware.misses == 0

        if passed:
            run.mark_passed(reason)
        else:
            run.mark_failed(reason)

        self.reporter.end_test(run)
        return run

    async def _execute_ai_test(
        self,
        test_case: TestCase,
        handle: AutomationHandle,
        context: TestContext,
        run: TestRun,
        middleware: CacheMiddleware | None,
    ) -> tuple[bool, str]:
        callbacks = [
            partial(expectation.fn, context)
            for expectation in test_case.expectations
            if expectation.fn is not None and not expectation.direct_execution
        ]
        set_callbacks = getattr(handle, "set_callbacks", None)
        if set_callbacks is not None:
            set_callbacks(callbacks)

        client = AIClient(
            self.model,
            self.tool_registry,
            handle,
            middleware=middleware,
            max_tokens=self.settings.llm_max_tokens,
            temperature=self.settings.llm_temperature,
        )
        response = await client.process_action(build_prompt(test_case), run)

        if response.verdict.result != "pass":
            return False, response.verdict.reason

        if test_case.fn is not None:
            await test_case.fn(context)

        for index, expectation in enumerate(test_case.expectations):
            if expectation.direct_execution and expectation.fn is not None:
                context.current_step_index = index
                await expectation.fn(context)

        return True, response.verdict.reason

    def _create_middleware(self, test_case: TestCase) -> CacheMiddleware | None:
        if not self.settings.caching_enabled:
            return None
        durable = TestCache(
            test_case,
            cache_dir=self.cache_dir,
            lock_timeout=self.settings.cache_lock_timeout_seconds,
        )
        return CacheMiddleware(test_case, durable)

    async def _settle_cache(self, middleware: CacheMiddleware, passed: bool, log) -> None:
        if not passed:
            await middleware.discard()
            return
        try:
            written = await middleware.flush()
        except CacheError as e:
            log.error("cache_flush_failed", kind=e.kind, error=str(e))
            return
        log.debug("cache_flushed", entries=written)

    @staticmethod
    def _after_hooks(test_case: TestCase, hooks: HookSet):
        if test_case.after_fn:
            yield test_case.after_fn
        yield from hooks.after_each
