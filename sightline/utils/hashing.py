"""
Fingerprint helpers used to address cache entries.

Two kinds of fingerprints are produced:
- ``fingerprint``: sha256 over a canonical JSON rendering of any value, so
  that semantically equal inputs hash identically regardless of key order.
- ``image_fingerprint``: a perceptual average hash of a screenshot, so that
  visual-state comparisons tolerate pixel noise.
"""

import hashlib
import io
import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from PIL import Image
from pydantic import BaseModel

DEFAULT_IMAGE_HASH_SIZE = 16


def _callable_name(value: Any) -> str:
    module = getattr(value, "__module__", None) or ""
    qualname = getattr(value, "__qualname__", None) or type(value).__qualname__
    return f"{module}.{qualname}"


def _normalize(value: Any) -> Any:
    """Reduce a value to plain JSON types."""
    if isinstance(value, BaseModel):
        return _normalize(value.model_dump(mode="json"))
    if isinstance(value, Enum):
        return _normalize(value.value)
    if isinstance(value, Mapping):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=canonicalize)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return {"__bytes__": hashlib.sha256(value).hexdigest()}
    if isinstance(value, Path):
        return str(value)
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if is_dataclass(value) and not isinstance(value, type):
        return _normalize(asdict(value))
    if callable(value):
        return {"__callable__": _callable_name(value)}
    return str(value)


def canonicalize(value: Any) -> str:
    """Render a value as JSON with recursively sorted keys."""
    return json.dumps(
        _normalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def fingerprint(value: Any) -> str:
    """Deterministic sha256 digest of a canonicalized value."""
    return hashlib.sha256(canonicalize(value).encode("utf-8")).hexdigest()


def image_fingerprint(
    image: bytes | str | Path,
    hash_size: int = DEFAULT_IMAGE_HASH_SIZE,
) -> str:
    """
    Compute a perceptual average hash of an image.

    The image is reduced to a ``hash_size`` x ``hash_size`` grayscale
    thumbnail; each bit records whether a pixel is brighter than the mean.

    Args:
        image: Raw image bytes or a path to an image file
        hash_size: Side of the thumbnail, the hash has hash_size**2 bits

    Returns:
        Hex string of hash_size**2 / 4 characters
    """
    source = io.BytesIO(image) if isinstance(image, (bytes, bytearray)) else image

    with Image.open(source) as img:
        thumbnail = img.convert("L").resize(
            (hash_size, hash_size), Image.Resampling.LANCZOS
        )
        pixels = list(thumbnail.tobytes())

    mean = sum(pixels) / len(pixels)
    bits = "".join("1" if pixel > mean else "0" for pixel in pixels)
    width = (hash_size * hash_size) // 4
    return f"{int(bits, 2):0{width}x}"


def hamming_distance(left: str, right: str) -> int:
    """Number of differing bits between two hex fingerprints of equal length."""
    if len(left) != len(right):
        raise ValueError("Fingerprints must have the same length")
    return bin(int(left, 16) ^ int(right, 16)).count("1")


def assemble_cache_key(namespace: str, digest: str) -> str:
    """Compose a cache key in the format ``<namespace>:<digest>``."""
    return f"{namespace}:{digest}"
