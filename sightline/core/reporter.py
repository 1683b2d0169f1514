"""
Test result reporting.

Results are emitted as structlog events; the console or JSON rendering is
decided by the logging configuration.
"""

import time
from dataclasses import dataclass, field

import structlog

from sightline.core.test_case import TestCase
from sightline.core.test_run import TestRun, TestStatus
from sightline.schemas.ai import Usage

logger = structlog.get_logger()

# Claude 3.5 Sonnet pricing, USD
COST_PER_1K_INPUT_TOKENS = 0.003
COST_PER_1K_OUTPUT_TOKENS = 0.015


def estimate_cost(usage: Usage) -> float:
    """Estimated USD cost of a token usage."""
    input_cost = usage.prompt_tokens / 1000 * COST_PER_1K_INPUT_TOKENS
    output_cost = usage.completion_tokens / 1000 * COST_PER_1K_OUTPUT_TOKENS
    return round(input_cost + output_cost, 3)


@dataclass
class TestResult:
    __test__ = False

    name: str
    file_path: str
    status: TestStatus = TestStatus.PENDING
    reason: str | None = None
    token_usage: Usage = field(default_factory=Usage)
    from_cache: bool = False
    duration_ms: float = 0


@dataclass
class Summary:
    total: int
    passed: int
    failed: int
    duration_s: float
    token_usage: Usage
    cost: float
    cached: int


class TestReporter:
    """Collects run outcomes and logs a final summary."""

    __test__ = False

    def __init__(self) -> None:
        self.results: dict[str, TestResult] = {}
        self.current_file: str | None = None
        self._start = time.time()

    def start_file(self, file_path: str) -> None:
        self.current_file = file_path
        logger.info("file_started", file=file_path)

    def start_test(self, test_case: TestCase) -> None:
        self.results[self._key(test_case.file_path, test_case.name)] = TestResult(
            name=test_case.name,
            file_path=test_case.file_path,
            status=TestStatus.RUNNING,
        )
        logger.info("test_started", test_name=test_case.name)

    def end_test(self, run: TestRun) -> None:
        test_case = run.test_case
        result = TestResult(
            name=test_case.name,
            file_path=test_case.file_path,
            status=run.status,
            reason=run.reason,
            token_usage=run.token_usage,
            from_cache=run.from_cache,
            duration_ms=run.duration_ms,
        )
        self.results[self._key(test_case.file_path, test_case.name)] = result

        log = logger.bind(test_name=result.name, status=result.status.value)
        fields = {
            "reason": result.reason,
            "input_tokens": result.token_usage.prompt_tokens,
            "output_tokens": result.token_usage.completion_tokens,
            "cost": estimate_cost(result.token_usage),
            "from_cache": result.from_cache,
            "duration_ms": round(result.duration_ms, 2),
        }
        if result.status == TestStatus.PASSED:
            log.info("test_passed", **fields)
        else:
            log.error("test_failed", **fields)

    def report_file_error(self, file_path: str, error: Exception) -> None:
        """Record a file that could not be collected as a failed entry."""
        self.results[self._key(file_path, "<collection>")] = TestResult(
            name="<collection>",
            file_path=file_path,
            status=TestStatus.FAILED,
            reason=str(error),
        )
        logger.error("file_load_failed", file=file_path, error=str(error))

    def summary(self) -> Summary:
        usage = Usage()
        for result in self.results.values():
            usage = usage + result.token_usage

        passed = sum(1 for r in self.results.values() if r.status == TestStatus.PASSED)
        summary = Summary(
            total=len(self.results),
            passed=passed,
            failed=len(self.results) - passed,
            duration_s=round(time.time() - self._start, 2),
            token_usage=usage,
            cost=estimate_cost(usage),
            cached=sum(1 for r in self.results.values() if r.from_cache),
        )

        logger.info(
            "test_summary",
            total=summary.total,
            passed=summary.passed,
            failed=summary.failed,
            cached=summary.cached,
            duration_s=summary.duration_s,
            input_tokens=usage.prompt_tokens,
            output_tokens=usage.completion_tokens,
            cost=summary.cost,
        )
        for key, result in self.results.items():
            if result.status != TestStatus.PASSED:
                logger.error("failed_test", test=key, reason=result.reason)

        return summary

    def all_passed(self) -> bool:
        return all(r.status == TestStatus.PASSED for r in self.results.values())

    @staticmethod
    def _key(file_path: str, name: str) -> str:
        return f"{file_path}:{name}"
