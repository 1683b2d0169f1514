"""
Durable cache housekeeping.
"""

import json
import time
from pathlib import Path

import structlog

from sightline.config import settings

logger = structlog.get_logger()

LEGACY_CACHE_FILE = Path(".sightline") / "cache.json"


def _newest_entry_ms(document: object, path: Path) -> float:
    if not isinstance(document, dict):
        raise ValueError("cache document is not an object")

    timestamps = [
        entry["timestamp"]
        for entry in document.values()
        if isinstance(entry, dict) and isinstance(entry.get("timestamp"), (int, float))
    ]
    if timestamps:
        return max(timestamps)
    return path.stat().st_mtime * 1000


def clean_up_cache(
    cache_dir: str | Path | None = None,
    force_purge: bool = False,
    max_age_seconds: int | None = None,
) -> int:
    """
    Remove stale durable cache files.

    Args:
        cache_dir: Directory holding the per-test cache files
        force_purge: Delete every cache file regardless of age
        max_age_seconds: Age after which a file is stale, defaults to settings

    Returns:
        Number of cache files removed
    """
    directory = Path(cache_dir or settings.cache_dir)
    max_age_ms = (
        settings.cache_max_age_seconds if max_age_seconds is None else max_age_seconds
    ) * 1000
    log = logger.bind(cache_dir=str(directory), force_purge=force_purge)
    log.debug("cache_cleanup_started")

    if not directory.is_dir():
        return 0

    now_ms = time.time() * 1000
    removed = 0

    for path in sorted(directory.glob("*.json")):
        if force_purge:
            path.unlink(missing_ok=True)
            removed += 1
            continue

        try:
            document = json.loads(path.read_text(encoding="utf-8"))
            newest = _newest_entry_ms(document, path)
        except (OSError, ValueError) as e:
            log.error("cache_file_invalid", file=path.name, error=str(e))
            path.unlink(missing_ok=True)
            removed += 1
            continue

        if now_ms - newest > max_age_ms:
            path.unlink(missing_ok=True)
            removed += 1
            log.debug("cache_file_expired", file=path.name)

    if force_purge:
        for lock_path in directory.glob("*.json.lock"):
            lock_path.unlink(missing_ok=True)

    log.info("cache_cleanup_complete", removed=removed)
    return removed


def purge_legacy_cache(root: str | Path = ".") -> bool:
    """Delete the single-file cache written by older releases."""
    legacy_path = Path(root) / LEGACY_CACHE_FILE
    if not legacy_path.exists():
        return False

    logger.warning("purging_legacy_cache", file=str(legacy_path))
    legacy_path.unlink(missing_ok=True)
    return True
