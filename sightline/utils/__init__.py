"""
Shared helpers.
"""

from sightline.utils.hashing import (
    assemble_cache_key,
    canonicalize,
    fingerprint,
    image_fingerprint,
)

__all__ = [
    "assemble_cache_key",
    "canonicalize",
    "fingerprint",
    "image_fingerprint",
]
