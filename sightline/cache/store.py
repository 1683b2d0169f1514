"""
Cache stores.

Two lifetimes share one interface:
- ``MemoryCacheStore``: run-scoped scratch space, lives in process memory.
- ``TestCache``: durable store, one JSON document per test identifier.

Entries only move from scratch to durable through ``emit_cache``.
"""

import asyncio
import fcntl
import json
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Mapping, TypeVar

import structlog
from pydantic import ValidationError

from sightline.config import settings
from sightline.core.test_case import TestCase
from sightline.errors import CacheError
from sightline.schemas.cache import CacheEntry

logger = structlog.get_logger()

T = TypeVar("T")

LOCK_POLL_INTERVAL = 0.01  # seconds


def get_test_cache_path(test_case: TestCase, cache_dir: str | Path | None = None) -> Path:
    """Location of the durable cache file for a test."""
    return Path(cache_dir or settings.cache_dir) / f"{test_case.identifier}.json"


class CacheStore(ABC):
    """Mapping from cache key to CacheEntry."""

    @abstractmethod
    async def get(self, key: str) -> CacheEntry | None:
        """Return the entry stored under key, or None on a miss."""

    @abstractmethod
    async def set(self, key: str, entry: CacheEntry) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        ...

    @abstractmethod
    async def items(self) -> dict[str, CacheEntry]:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def set_many(self, entries: Mapping[str, CacheEntry]) -> None:
        for key, entry in entries.items():
            await self.set(key, entry)


class MemoryCacheStore(CacheStore):
    """In-memory scratch store, discarded with the run that owns it."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> CacheEntry | None:
        return self._entries.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def items(self) -> dict[str, CacheEntry]:
        return dict(self._entries)

    async def clear(self) -> None:
        self._entries.clear()


class TestCache(CacheStore):
    """
    Durable cache of one test.

    Every operation runs in a worker thread holding an exclusive flock on
    ``<identifier>.json.lock``; writes go through a temp file and
    ``os.replace`` so readers never see a partial document.
    """

    __test__ = False

    def __init__(
        self,
        test_case: TestCase,
        cache_dir: str | Path | None = None,
        lock_timeout: float | None = None,
    ):
        self.test_case = test_case
        self.cache_dir = Path(cache_dir or settings.cache_dir)
        self.file_path = get_test_cache_path(test_case, self.cache_dir)
        self.lock_path = self.file_path.with_name(f"{self.file_path.name}.lock")
        self.lock_timeout = (
            settings.cache_lock_timeout_seconds if lock_timeout is None else lock_timeout
        )
        self._log = logger.bind(cache_file=self.file_path.name, test_name=test_case.name)

    async def get(self, key: str) -> CacheEntry | None:
        try:
            entries = await self._run_locked(self._load)
        except CacheError as e:
            self._log.error("cache_get_failed", key=key, error=str(e))
            return None
        return entries.get(key)

    async def set(self, key: str, entry: CacheEntry) -> None:
        await self.set_many({key: entry})

    async def set_many(self, entries: Mapping[str, CacheEntry]) -> None:
        def write() -> None:
            current = self._load()
            current.update(entries)
            self._save(current)

        await self._run_locked(write)
        self._log.debug("cache_written", keys=list(entries))

    async def delete(self, key: str) -> bool:
        def remove() -> bool:
            current = self._load()
            if key not in current:
                return False
            del current[key]
            self._save(current)
            return True

        return await self._run_locked(remove)

    async def items(self) -> dict[str, CacheEntry]:
        return await self._run_locked(self._load)

    async def clear(self) -> None:
        await self._run_locked(lambda: self._save({}))

    async def _run_locked(self, operation: Callable[[], T]) -> T:
        return await asyncio.to_thread(self._with_lock, operation)

    def _with_lock(self, operation: Callable[[], T]) -> T:
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.lock_path, "a")
        except OSError as e:
            raise CacheError("file-system", f"Failed to open lock file: {e}") from e

        with lock_file:
            self._acquire(lock_file.fileno())
            try:
                return operation()
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _acquire(self, fd: int) -> None:
        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    raise CacheError(
                        "file-lock",
                        f"Failed to acquire lock {self.lock_path} within {self.lock_timeout}s",
                    )
                time.sleep(LOCK_POLL_INTERVAL)

    def _load(self) -> dict[str, CacheEntry]:
        try:
            raw = json.loads(self.file_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            self._log.error("cache_read_failed", error=str(e))
            return {}

        if not isinstance(raw, dict):
            self._log.error("cache_file_malformed", type=type(raw).__name__)
            return {}

        entries: dict[str, CacheEntry] = {}
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry.model_validate(value)
            except ValidationError as e:
                self._log.warning("cache_entry_invalid", key=key, error=str(e))
        return entries

    def _save(self, entries: Mapping[str, CacheEntry]) -> None:
        document = {key: entry.to_json_dict() for key, entry in entries.items()}
        tmp_path = self.file_path.with_name(f"{self.file_path.name}.tmp.{os.getpid()}")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise CacheError("crud", f"Failed to save cache: {e}") from e
