"""
Authoring API used inside test files.

    from sightline import scenario, before_each

    scenario("Login to the app using email and password", {"email": "a@b.c"}) \\
        .expect("The dashboard is shown") \\
        .after(cleanup)
"""

from typing import Any

from sightline.core.registry import current_registry
from sightline.core.test_case import TestCase, TestExpectation, TestFn
from sightline.errors import ConfigError


class _TestSpec:
    """Mutable draft of a TestCase while its file is being collected."""

    def __init__(
        self,
        name: str,
        file_path: str,
        payload: Any = None,
        fn: TestFn | None = None,
        direct_execution: bool = False,
    ):
        self.name = name
        self.file_path = file_path
        self.payload = payload
        self.fn = fn
        self.direct_execution = direct_execution
        self.expectations: list[TestExpectation] = []
        self.before_fn: TestFn | None = None
        self.after_fn: TestFn | None = None

    def build(self) -> TestCase:
        return TestCase(
            name=self.name,
            file_path=self.file_path,
            payload=self.payload,
            fn=self.fn,
            expectations=tuple(self.expectations),
            before_fn=self.before_fn,
            after_fn=self.after_fn,
            direct_execution=self.direct_execution,
        )


class TestChain:
    """Fluent builder returned by ``scenario``; applies to every named test."""

    __test__ = False

    def __init__(self, specs: list[_TestSpec]):
        self._specs = specs

    @property
    def direct_execution(self) -> bool:
        return any(spec.direct_execution for spec in self._specs)

    def _ensure_chainable(self, method: str) -> None:
        if self.direct_execution:
            raise ConfigError(
                "invalid-config",
                f"{method}() cannot be called on direct execution test",
            )

    def expect(
        self,
        description: str | TestFn,
        payload: Any = None,
        fn: TestFn | None = None,
    ) -> "TestChain":
        self._ensure_chainable("expect")

        if callable(description):
            expectation = TestExpectation(fn=description, direct_execution=True)
        else:
            if callable(payload):
                payload, fn = None, payload
            expectation = TestExpectation(description=description, payload=payload, fn=fn)

        for spec in self._specs:
            spec.expectations.append(expectation)
        return self

    def before(self, fn: TestFn) -> "TestChain":
        self._ensure_chainable("before")
        for spec in self._specs:
            spec.before_fn = fn
        return self

    def after(self, fn: TestFn) -> "TestChain":
        self._ensure_chainable("after")
        for spec in self._specs:
            spec.after_fn = fn
        return self

    def to_test_cases(self) -> list[TestCase]:
        return [spec.build() for spec in self._specs]


def scenario(
    name: str | list[str] | TestFn,
    payload: Any = None,
    fn: TestFn | None = None,
) -> TestChain:
    """
    Declare one or more tests in the file being collected.

    ``name`` may be a description, a list of descriptions sharing the same
    chain, or a coroutine function that runs directly without the model.
    A callable ``payload`` is taken as ``fn``.
    """
    registry = current_registry()
    file_path = registry.current_file

    if callable(name):
        registry.direct_test_counter += 1
        spec = _TestSpec(
            name=f"Direct Test #{registry.direct_test_counter}",
            file_path=file_path,
            fn=name,
            direct_execution=True,
        )
        chain = TestChain([spec])
        registry.add_chain(chain)
        return chain

    if callable(payload):
        payload, fn = None, payload

    names = name if isinstance(name, list) else [name]
    if not names or not all(names):
        raise ConfigError("invalid-config", "Test name is required")

    chain = TestChain(
        [_TestSpec(name=n, file_path=file_path, payload=payload, fn=fn) for n in names]
    )
    registry.add_chain(chain)
    return chain


def before_all(fn: TestFn) -> TestFn:
    current_registry().add_hook("before_all", fn)
    return fn


def after_all(fn: TestFn) -> TestFn:
    current_registry().add_hook("after_all", fn)
    return fn


def before_each(fn: TestFn) -> TestFn:
    current_registry().add_hook("before_each", fn)
    return fn


def after_each(fn: TestFn) -> TestFn:
    current_registry().add_hook("after_each", fn)
    return fn
