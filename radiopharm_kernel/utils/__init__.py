"""Utility modules for the radiopharm kernel."""

from radiopharm_kernel.utils.hashing import (
    canonicalize_json,
    hash_payload,
    to_json_safe,
)

__all__ = [
    "canonicalize_json",
    "hash_payload",
    "to_json_safe",
]
