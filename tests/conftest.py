"""
Pytest configuration and shared fixtures for the sightline test suite.

This module provides:
- TestCase factories
- Temporary cache directories
- Fake model and automation surfaces (see tests/helpers.py)
"""

import pytest

from sightline.core.test_case import TestCase
from tests.helpers import FakeHandle, FakeModel


@pytest.fixture
def make_test_case():
    def _make(name: str = "Login", file_path: str = "/t.ts", **kwargs) -> TestCase:
        return TestCase(name=name, file_path=file_path, **kwargs)

    return _make


@pytest.fixture
def login_case(make_test_case) -> TestCase:
    return make_test_case()


@pytest.fixture
def cache_dir(tmp_path):
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture
def fake_handle() -> FakeHandle:
    return FakeHandle()
