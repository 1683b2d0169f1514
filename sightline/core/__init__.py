"""
Test identity, run state and collection.

The runner and the browser handle are imported from their own modules to
keep this package light for the cache layer.
"""

from sightline.core.api import TestChain, after_all, after_each, before_all, before_each, scenario
from sightline.core.context import TestContext
from sightline.core.registry import TestRegistry, current_registry
from sightline.core.test_case import TestCase, TestExpectation
from sightline.core.test_run import TestRun, TestStatus

__all__ = [
    "TestCase",
    "TestChain",
    "TestContext",
    "TestExpectation",
    "TestRegistry",
    "TestRun",
    "TestStatus",
    "after_all",
    "after_each",
    "before_all",
    "before_each",
    "current_registry",
    "scenario",
]
