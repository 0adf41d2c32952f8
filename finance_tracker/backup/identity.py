"""
Identifier normalization for snapshot import.

Records arrive with identifiers of several shapes: small integers from a
local export, numeric strings, 24-character hex document ids from the remote
store, and nested reference objects. ``normalize_id`` maps all of them to one
canonical non-negative integer usable as a local primary key.

Resolution Strategy (checked in this order):
    1. None → None (the store assigns a fresh id)
    2. int → unchanged
    3. numeric string → its integer value
    4. any other string → 32-bit rolling hash folded into [0, 2**31 - 2]
    5. mapping/list → key-sorted JSON text, then rule 4

Known Limitation:
    The hash is not a bijection. Two distinct foreign ids can land on the same
    local id; the later write then overwrites the earlier one and the
    post-import count check reports the shortfall. The mapping is stable
    across runs and processes (it does not use Python's salted ``hash``),
    which is what makes re-importing the same document land on the same id.
"""

import json
import re
from typing import Any, Optional

# Largest id the fold can produce is MAX_NORMALIZED_ID - 1 (2**31 - 2).
MAX_NORMALIZED_ID = 2**31 - 1

NUMERIC_PATTERN = re.compile(r"^\d+$")

_UINT32_MASK = 0xFFFFFFFF


def string_hash(value: str) -> int:
    """
    Deterministic 31-multiplier rolling hash over UTF-16 code units.

    Matches the classic ``h = h * 31 + c`` string hash truncated to 32 bits,
    so ids produced by other clients using the same scheme line up.

    Args:
        value: Text to hash.

    Returns:
        Unsigned 32-bit hash value.
    """
    h = 0
    encoded = value.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = (h * 31 + code_unit) & _UINT32_MASK
    return h


def fold_hash(h: int) -> int:
    """
    Fold a 32-bit hash into the range [0, 2**31 - 2].

    The hash is read as a signed 32-bit integer and its magnitude taken
    before reducing modulo 2**31 - 1.
    """
    signed = h - (1 << 32) if h & 0x80000000 else h
    return abs(signed) % MAX_NORMALIZED_ID


def hash_identifier(value: str) -> int:
    """Map an opaque string identifier to a local integer id."""
    return fold_hash(string_hash(value))


def normalize_id(raw_id: Any) -> Optional[int]:
    """
    Normalize any externally supplied identifier to a local integer id.

    Args:
        raw_id: Identifier in any supported shape.

    Returns:
        Integer id, or None when no identifier was supplied.

    Examples:
        >>> normalize_id(None) is None
        True
        >>> normalize_id(42)
        42
        >>> normalize_id("17")
        17
        >>> normalize_id("65a1f0c2e4b0a1b2c3d4e5f6") == normalize_id("65a1f0c2e4b0a1b2c3d4e5f6")
        True
    """
    if raw_id is None:
        return None

    if isinstance(raw_id, bool):
        return hash_identifier(str(raw_id).lower())

    if isinstance(raw_id, int):
        return raw_id

    if isinstance(raw_id, float) and raw_id.is_integer():
        return int(raw_id)

    if isinstance(raw_id, str):
        text = raw_id.strip()
        if NUMERIC_PATTERN.match(text):
            return int(text)
        return hash_identifier(raw_id)

    if isinstance(raw_id, (dict, list, tuple)):
        text = json.dumps(raw_id, sort_keys=True, separators=(",", ":"), default=str)
        return hash_identifier(text)

    return hash_identifier(str(raw_id))
