"""
Unit tests for test identity (core/test_case.py) and run state (core/test_run.py).
"""

import pydantic
import pytest

from sightline.core.test_case import TestCase, TestExpectation
from sightline.core.test_run import TestRun, TestStatus
from sightline.errors import InvalidTransitionError
from sightline.schemas.ai import Usage
from sightline.schemas.cache import CacheStep, TextAction


async def check_dashboard(context):
    return None


async def check_profile(context):
    return None


class TestIdentifier:
    """Test suite for TestCase identifiers"""

    def test_same_definition_same_identifier(self):
        a = TestCase(name="Login", file_path="/t.ts", payload={"user": "a", "pw": "b"})
        b = TestCase(name="Login", file_path="/t.ts", payload={"pw": "b", "user": "a"})

        assert a.identifier == b.identifier

    @pytest.mark.parametrize(
        "change",
        [
            {"name": "Logout"},
            {"file_path": "/u.ts"},
            {"payload": {"user": "c"}},
            {"direct_execution": True},
            {"fn": check_dashboard},
            {"expectations": (TestExpectation(description="Dashboard is visible"),)},
        ],
    )
    def test_every_identity_field_participates(self, change):
        base = {"name": "Login", "file_path": "/t.ts"}

        assert TestCase(**base).identifier != TestCase(**{**base, **change}).identifier

    def test_callables_count_by_name(self):
        a = TestCase(name="Login", file_path="/t.ts", after_fn=check_dashboard)
        b = TestCase(name="Login", file_path="/t.ts", after_fn=check_profile)

        assert a.identifier != b.identifier

    def test_expectation_order_matters(self):
        first = TestExpectation(description="one")
        second = TestExpectation(description="two")

        a = TestCase(name="Login", file_path="/t.ts", expectations=(first, second))
        b = TestCase(name="Login", file_path="/t.ts", expectations=(second, first))

        assert a.identifier != b.identifier

    def test_test_case_is_immutable(self, login_case):
        with pytest.raises(pydantic.ValidationError):
            login_case.name = "Other"


class TestRunLifecycle:
    """Test suite for TestRun status transitions"""

    def _step(self) -> CacheStep:
        return CacheStep(reasoning="done", action=TextAction(), timestamp=1)

    def test_pass_path(self, login_case):
        run = TestRun(test_case=login_case)

        run.mark_running()
        run.mark_passed("ok", Usage(prompt_tokens=3, completion_tokens=1))

        assert run.status == TestStatus.PASSED
        assert run.is_terminal
        assert run.reason == "ok"
        assert run.token_usage.total_tokens == 4
        assert run.started_at <= run.ended_at

    def test_fail_path_keeps_steps(self, login_case):
        run = TestRun(test_case=login_case)
        run.mark_running()
        run.add_step(self._step())

        run.mark_failed("button missing")

        assert run.status == TestStatus.FAILED
        assert len(run.steps) == 1

    def test_cannot_finish_before_running(self, login_case):
        with pytest.raises(InvalidTransitionError):
            TestRun(test_case=login_case).mark_passed()

    def test_terminal_states_are_exclusive(self, login_case):
        run = TestRun(test_case=login_case)
        run.mark_running()
        run.mark_failed("boom")

        with pytest.raises(InvalidTransitionError):
            run.mark_passed()
        with pytest.raises(InvalidTransitionError):
            run.mark_running()

    def test_steps_only_while_running(self, login_case):
        run = TestRun(test_case=login_case)

        with pytest.raises(RuntimeError):
            run.add_step(self._step())

    def test_usage_accumulates(self, login_case):
        run = TestRun(test_case=login_case)
        run.add_usage(Usage(prompt_tokens=10, completion_tokens=1))
        run.add_usage(Usage(prompt_tokens=5, completion_tokens=2))

        assert run.token_usage == Usage(prompt_tokens=15, completion_tokens=3)

    def test_to_dict(self, login_case):
        run = TestRun(test_case=login_case)
        run.mark_running()
        run.add_step(self._step())
        run.mark_passed("ok")

        data = run.to_dict()

        assert data["status"] == "passed"
        assert data["identifier"] == login_case.identifier
        assert data["steps"][0]["action"] == {"type": "text"}
