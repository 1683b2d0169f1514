"""
Test file discovery and collection.
"""

import hashlib
import importlib.util
import sys
from pathlib import Path

import structlog

from sightline.config import settings
from sightline.core.registry import TestRegistry
from sightline.core.test_case import TestCase
from sightline.errors import ConfigError

logger = structlog.get_logger()


class TestFileLoader:
    """
    Finds test files under a root directory and imports them into a registry.

    Usage:
        loader = TestFileLoader(registry, root=Path.cwd())
        for path in loader.find_files():
            cases = loader.load_file(path)
    """

    __test__ = False

    def __init__(
        self,
        registry: TestRegistry,
        root: str | Path = ".",
        pattern: str | None = None,
    ):
        self.registry = registry
        self.root = Path(root).resolve()
        self.pattern = pattern or settings.test_pattern

    def find_files(self, pattern: str | None = None) -> list[Path]:
        """
        Test files matching the pattern, sorted.

        A pattern naming an existing file selects just that file.
        """
        pattern = pattern or self.pattern

        candidate = Path(pattern)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        if candidate.is_file():
            return [candidate.resolve()]

        files = sorted(p.resolve() for p in self.root.glob(pattern) if p.is_file())
        logger.info("test_files_found", pattern=pattern, count=len(files))
        return files

    def load_file(self, path: str | Path) -> list[TestCase]:
        """
        Import a test file and return the TestCases it declared.

        Raises:
            ConfigError: if the file cannot be imported
        """
        path = Path(path).resolve()
        digest = hashlib.sha256(str(path).encode("utf-8")).hexdigest()[:12]
        module_name = f"sightline_test_{path.stem.replace('.', '_')}_{digest}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ConfigError("invalid-config", f"Cannot import test file {path}")

        with self.registry.collecting(path):
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            try:
                spec.loader.exec_module(module)
            except BaseException:
                sys.modules.pop(module_name, None)
                raise

        cases = self.registry.test_cases(path)
        logger.info("test_file_loaded", file=str(path), tests=len(cases))
        return cases
