"""
Context handed to test callbacks and hooks.
"""

from dataclasses import dataclass, field
from typing import Any

from sightline.core.test_case import TestCase
from sightline.tools.base import AutomationHandle


@dataclass
class TestContext:
    """What a test function can reach while it runs."""

    __test__ = False

    test_case: TestCase | None = None
    handle: AutomationHandle | None = None
    file_path: str | None = None
    current_step_index: int = 0
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def page(self) -> Any:
        """The Playwright page when the handle is a browser, else None."""
        return getattr(self.handle, "page", None)
