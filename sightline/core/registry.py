"""
Test registry used while collecting test files.

One registry is created by the runner and made current only for the
duration of ``registry.collecting(path)``; the authoring API resolves it
through a ContextVar, so nothing is stored at process level.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import structlog

from sightline.core.test_case import TestCase, TestFn
from sightline.errors import ConfigError

if TYPE_CHECKING:
    from sightline.core.api import TestChain

logger = structlog.get_logger()

HookKind = Literal["before_all", "after_all", "before_each", "after_each"]

_current_registry: ContextVar["TestRegistry | None"] = ContextVar(
    "sightline_test_registry", default=None
)


@dataclass
class HookSet:
    """Lifecycle hooks declared by one test file."""

    before_all: list[TestFn] = field(default_factory=list)
    after_all: list[TestFn] = field(default_factory=list)
    before_each: list[TestFn] = field(default_factory=list)
    after_each: list[TestFn] = field(default_factory=list)


class TestRegistry:
    """Tests and hooks collected per file."""

    __test__ = False

    def __init__(self) -> None:
        self._chains: dict[str, list["TestChain"]] = {}
        self._hooks: dict[str, HookSet] = {}
        self._current_file: str | None = None
        self.direct_test_counter = 0

    @contextmanager
    def collecting(self, file_path: str | Path) -> Iterator["TestRegistry"]:
        """Make this registry current while a test file is imported."""
        if _current_registry.get() is not None:
            raise ConfigError("duplicate-config", "A test file is already being collected")

        path = str(file_path)
        self._chains[path] = []
        self._hooks[path] = HookSet()
        self._current_file = path
        token = _current_registry.set(self)
        try:
            yield self
        finally:
            _current_registry.reset(token)
            self._current_file = None
            logger.debug("file_collected", file=path, tests=len(self._chains[path]))

    @property
    def current_file(self) -> str:
        if self._current_file is None:
            raise ConfigError("not-initialized", "No test file is being collected")
        return self._current_file

    def add_chain(self, chain: "TestChain") -> None:
        self._chains[self.current_file].append(chain)

    def add_hook(self, kind: HookKind, fn: TestFn) -> None:
        getattr(self._hooks[self.current_file], kind).append(fn)

    def files(self) -> list[str]:
        return list(self._chains)

    def hooks(self, file_path: str | Path) -> HookSet:
        return self._hooks.get(str(file_path), HookSet())

    def test_cases(self, file_path: str | Path) -> list[TestCase]:
        """Materialize the immutable TestCases declared by a file."""
        cases: list[TestCase] = []
        for chain in self._chains.get(str(file_path), []):
            cases.extend(chain.to_test_cases())
        return cases

    def clear(self) -> None:
        self._chains.clear()
        self._hooks.clear()
        self.direct_test_counter = 0


def current_registry() -> TestRegistry:
    """
    Registry of the file being collected.

    Raises:
        ConfigError: when called outside ``TestRegistry.collecting``
    """
    registry = _current_registry.get()
    if registry is None:
        raise ConfigError(
            "not-initialized",
            "Tests can only be declared while sightline collects a test file",
        )
    return registry
