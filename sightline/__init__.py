"""
sightline - AI-driven end-to-end tests with a deterministic replay cache.
"""

from sightline.core.api import after_all, after_each, before_all, before_each, scenario
from sightline.core.context import TestContext

__version__ = "0.1.0"

__all__ = [
    "TestContext",
    "after_all",
    "after_each",
    "before_all",
    "before_each",
    "scenario",
]
