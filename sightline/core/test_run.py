"""
Per-execution state of a test.

    pending -> running -> passed
                       -> failed

``passed`` and ``failed`` are terminal. A run keeps every CacheStep it
recorded whatever the outcome, so the commit/discard decision can be made
after the fact.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sightline.core.test_case import TestCase
from sightline.errors import InvalidTransitionError
from sightline.schemas.ai import Usage
from sightline.schemas.cache import CacheStep


class TestStatus(str, Enum):
    """Test run status."""

    __test__ = False

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


_TRANSITIONS: dict[TestStatus, frozenset[TestStatus]] = {
    TestStatus.PENDING: frozenset({TestStatus.RUNNING}),
    TestStatus.RUNNING: frozenset({TestStatus.PASSED, TestStatus.FAILED}),
    TestStatus.PASSED: frozenset(),
    TestStatus.FAILED: frozenset(),
}


@dataclass
class TestRun:
    """One execution attempt of a TestCase."""

    __test__ = False

    test_case: TestCase
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: TestStatus = TestStatus.PENDING
    steps: list[CacheStep] = field(default_factory=list)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    reason: str | None = None
    token_usage: Usage = field(default_factory=Usage)
    from_cache: bool = False

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    @property
    def duration_ms(self) -> float:
        if self.started_at is None or self.ended_at is None:
            return 0
        return (self.ended_at - self.started_at).total_seconds() * 1000

    def mark_running(self) -> None:
        self._transition(TestStatus.RUNNING)
        self.started_at = datetime.now(timezone.utc)

    def mark_passed(
        self,
        reason: str | None = None,
        token_usage: Usage | None = None,
    ) -> None:
        self._finish(TestStatus.PASSED, reason, token_usage)

    def mark_failed(
        self,
        reason: str | None = None,
        token_usage: Usage | None = None,
    ) -> None:
        self._finish(TestStatus.FAILED, reason, token_usage)

    def add_step(self, step: CacheStep) -> None:
        if self.status != TestStatus.RUNNING:
            raise RuntimeError(
                f"Cannot record steps on test run {self.run_id} in status {self.status.value}"
            )
        self.steps.append(step)

    def add_usage(self, usage: Usage) -> None:
        self.token_usage = self.token_usage + usage

    def _finish(
        self,
        target: TestStatus,
        reason: str | None,
        token_usage: Usage | None,
    ) -> None:
        self._transition(target)
        self.ended_at = datetime.now(timezone.utc)
        self.reason = reason
        if token_usage is not None:
            self.token_usage = token_usage

    def _transition(self, target: TestStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.run_id, self.status.value, target.value)
        self.status = target

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "test_name": self.test_case.name,
            "file_path": self.test_case.file_path,
            "identifier": self.test_case.identifier,
            "status": self.status.value,
            "reason": self.reason,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "from_cache": self.from_cache,
            "token_usage": {
                "prompt_tokens": self.token_usage.prompt_tokens,
                "completion_tokens": self.token_usage.completion_tokens,
            },
            "steps": [step.model_dump(mode="json") for step in self.steps],
        }
