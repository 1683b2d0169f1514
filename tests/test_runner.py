"""
Integration tests for the runner (core/runner.py).

Tests cover:
- Durable cache written only for passing runs
- Full replay of an unchanged test with zero model calls
- Direct execution, hooks and step callbacks
- Failures from the model surface and from hooks
- A whole session from a test file on disk
"""

import textwrap

import pytest

from sightline.cache import TestCache
from sightline.config import Settings
from sightline.core.runner import TestRunner, build_prompt
from sightline.core.test_case import TestCase, TestExpectation
from sightline.core.test_run import TestStatus
from sightline.schemas.ai import GenerateResult, ToolCall, Usage
from sightline.tools import create_tool_registry
from tests.helpers import FakeHandle, FakeModel, tool_call_result, verdict_result


@pytest.fixture
def settings(cache_dir) -> Settings:
    return Settings(
        cache_dir=str(cache_dir),
        caching_enabled=True,
        anthropic_api_key="test-key",
        test_pattern="**/*.e2e.py",
    )


@pytest.fixture
def make_runner(tmp_path, settings, fake_handle):
    def _make(model: FakeModel, **kwargs) -> TestRunner:
        values = {
            "cwd": tmp_path,
            "settings": settings,
            "model": model,
            "tool_registry": create_tool_registry(),
            "handle_factory": lambda: fake_handle,
        }
        values.update(kwargs)
        return TestRunner(**values)

    return _make


async def durable_entries(test_case: TestCase, cache_dir) -> dict:
    return await TestCache(test_case, cache_dir=cache_dir).items()


def login_script() -> list[GenerateResult]:
    return [
        tool_call_result("t1", "screenshot"),
        tool_call_result("t2", "left_click", coordinate=[100, 200]),
        verdict_result("pass", "ok"),
    ]


class TestCacheCommitPolicy:
    """Test suite for commit-on-pass-only"""

    @pytest.mark.asyncio
    async def test_passing_run_commits_every_model_call(self, make_runner, login_case, fake_handle, cache_dir):
        runner = make_runner(FakeModel(login_script()))

        run = await runner.execute_test(login_case, fake_handle)

        assert run.status == TestStatus.PASSED
        assert run.reason == "ok"
        assert len(await durable_entries(login_case, cache_dir)) == 3

    @pytest.mark.asyncio
    async def test_failing_verdict_commits_nothing(self, make_runner, login_case, fake_handle, cache_dir):
        model = FakeModel([tool_call_result("t1", "screenshot"), verdict_result("fail", "no dashboard")])

        run = await make_runner(model).execute_test(login_case, fake_handle)

        assert run.status == TestStatus.FAILED
        assert run.reason == "no dashboard"
        assert len(run.steps) == 2
        assert await durable_entries(login_case, cache_dir) == {}

    @pytest.mark.asyncio
    async def test_model_error_fails_run_and_commits_nothing(self, make_runner, login_case, fake_handle, cache_dir):
        model = FakeModel([tool_call_result("t1", "screenshot"), TimeoutError("model timed out")])

        run = await make_runner(model).execute_test(login_case, fake_handle)

        assert run.status == TestStatus.FAILED
        assert "model timed out" in run.reason
        assert await durable_entries(login_case, cache_dir) == {}

    @pytest.mark.asyncio
    async def test_caching_disabled_writes_nothing(self, make_runner, settings, login_case, fake_handle, cache_dir):
        no_cache = settings.model_copy(update={"caching_enabled": False})

        run = await make_runner(FakeModel(login_script()), settings=no_cache).execute_test(login_case, fake_handle)

        assert run.status == TestStatus.PASSED
        assert list(cache_dir.iterdir()) == []


class TestReplay:
    """Test suite for the unchanged-test replay scenario"""

    @pytest.mark.asyncio
    async def test_rerun_makes_zero_model_calls(self, make_runner, login_case, cache_dir):
        first_handle = FakeHandle()
        first = await make_runner(FakeModel(login_script())).execute_test(login_case, first_handle)
        assert first.status == TestStatus.PASSED

        replay_model = FakeModel([])
        replay_handle = FakeHandle(image=first_handle.image)
        second = await make_runner(replay_model).execute_test(login_case, replay_handle)

        assert second.status == TestStatus.PASSED
        assert second.from_cache is True
        replay_model.do_generate.assert_not_awaited()
        assert replay_handle.actions == first_handle.actions == ["screenshot", "left_click"]
        assert [s.action.model_dump() for s in second.steps] == [s.action.model_dump() for s in first.steps]

    @pytest.mark.asyncio
    async def test_changed_test_misses_the_cache(self, make_runner, make_test_case, fake_handle):
        await make_runner(FakeModel(login_script())).execute_test(make_test_case(), fake_handle)

        changed = make_test_case(payload={"email": "other@example.com"})
        model = FakeModel(login_script())
        run = await make_runner(model).execute_test(changed, fake_handle)

        assert run.from_cache is False
        assert model.do_generate.await_count == 3


class TestExecution:
    """Test suite for hooks, direct execution and callbacks"""

    @pytest.mark.asyncio
    async def test_direct_execution_skips_the_model(self, make_runner, fake_handle):
        calls = []

        async def direct(context):
            calls.append(context.test_case.name)

        case = TestCase(name="Direct Test #1", file_path="/t.ts", fn=direct, direct_execution=True)
        model = FakeModel([])

        run = await make_runner(model).execute_test(case, fake_handle)

        assert run.status == TestStatus.PASSED
        assert calls == ["Direct Test #1"]
        model.do_generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_hooks_run_in_order(self, make_runner, fake_handle):
        from sightline.core.registry import HookSet

        order = []

        def recorder(label):
            async def hook(context):
                order.append(label)

            return hook

        case = TestCase(
            name="Login",
            file_path="/t.ts",
            fn=recorder("fn"),
            before_fn=recorder("before"),
            after_fn=recorder("after"),
        )
        hooks = HookSet(before_each=[recorder("before_each")], after_each=[recorder("after_each")])

        run = await make_runner(FakeModel([verdict_result()])).execute_test(case, fake_handle, hooks)

        assert run.status == TestStatus.PASSED
        assert order == ["before_each", "before", "fn", "after", "after_each"]

    @pytest.mark.asyncio
    async def test_failing_after_hook_fails_the_run(self, make_runner, fake_handle):
        async def broken(context):
            raise AssertionError("cleanup failed")

        case = TestCase(name="Login", file_path="/t.ts", after_fn=broken)

        run = await make_runner(FakeModel([verdict_result()])).execute_test(case, fake_handle)

        assert run.status == TestStatus.FAILED
        assert "cleanup failed" in run.reason

    @pytest.mark.asyncio
    async def test_failing_test_fn_fails_the_run(self, make_runner, fake_handle, cache_dir):
        async def assertion(context):
            raise AssertionError("user not created")

        case = TestCase(name="Signup", file_path="/t.ts", fn=assertion)

        run = await make_runner(FakeModel([tool_call_result("t1"), verdict_result()])).execute_test(
            case, fake_handle
        )

        assert run.status == TestStatus.FAILED
        # The verdict step already committed optimistically.
        assert len(await durable_entries(case, cache_dir)) == 2

    @pytest.mark.asyncio
    async def test_run_callback_invokes_expectation_fn(self, make_runner, fake_handle):
        called = []

        async def check_db(context):
            called.append(context.test_case.name)

        case = TestCase(
            name="Login",
            file_path="/t.ts",
            expectations=(TestExpectation(description="Session row exists", fn=check_db),),
        )
        model = FakeModel(
            [
                GenerateResult(
                    text="Running the step callback",
                    tool_calls=[ToolCall(id="c1", name="run_callback", input={"action": "run_callback"})],
                    usage=Usage(prompt_tokens=5, completion_tokens=1),
                    finish_reason="tool-calls",
                ),
                verdict_result(),
            ]
        )

        run = await make_runner(model).execute_test(case, fake_handle)

        assert run.status == TestStatus.PASSED
        assert called == ["Login"]

    def test_prompt_lists_expectations(self):
        case = TestCase(
            name="Login",
            file_path="/t.ts",
            payload={"email": "a@b.c"},
            expectations=(
                TestExpectation(description="Dashboard visible"),
                TestExpectation(description="Avatar shown", payload={"size": 32}),
            ),
        )

        prompt = build_prompt(case)

        assert prompt.splitlines() == [
            "Test: Login",
            'Context: {"email":"a@b.c"}',
            "1. Expect: Dashboard visible",
            '2. Expect: Avatar shown (context: {"size":32})',
        ]


class TestSession:
    """Test suite for a whole session over files on disk"""

    @pytest.mark.asyncio
    async def test_run_tests_from_file(self, make_runner, tmp_path):
        (tmp_path / "login.e2e.py").write_text(
            textwrap.dedent(
                """
                from sightline import after_all, scenario

                events = []

                @after_all
                async def done(context):
                    events.append("after_all")

                scenario("Login", {"email": "user@example.com"}).expect("Dashboard visible")
                """
            )
        )
        runner = make_runner(FakeModel(login_script()))

        await runner.initialize()
        passed = await runner.run_tests()

        assert passed is True
        assert runner.reporter.summary().passed == 1

    @pytest.mark.asyncio
    async def test_broken_file_is_reported_as_failure(self, make_runner, tmp_path):
        (tmp_path / "broken.e2e.py").write_text("raise RuntimeError('syntax trouble')\n")
        runner = make_runner(FakeModel([]))

        await runner.initialize()

        assert await runner.run_tests() is False
        assert runner.reporter.summary().failed == 1

    @pytest.mark.asyncio
    async def test_no_files_is_not_a_pass(self, make_runner):
        runner = make_runner(FakeModel([]))
        await runner.initialize()

        assert await runner.run_tests() is False
