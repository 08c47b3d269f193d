"""
Request fingerprinting.

A fingerprint is the cache key for a remote call: SHA-256 over the operation
name and the normalized parameters. Normalization makes the key independent of
key order and of cosmetic whitespace/case differences in prompt text.
"""
import hashlib
import json
import re
from typing import Any, Mapping

_WHITESPACE = re.compile(r"\s+")


def normalize_text(value: str) -> str:
    """Collapse whitespace, trim and lower-case a prompt-like string."""
    return _WHITESPACE.sub(" ", value).strip().lower()


def normalize_params(value: Any) -> Any:
    """
    Normalize a parameter value recursively.

    - mappings: keys sorted lexicographically (as strings)
    - strings: whitespace-insensitive, case-insensitive
    - lists/tuples: order preserved, items normalized
    - sets: sorted, since they carry no order
    """
    if isinstance(value, Mapping):
        return {str(k): normalize_params(value[k]) for k in sorted(value, key=str)}
    if isinstance(value, str):
        return normalize_text(value)
    if isinstance(value, (list, tuple)):
        return [normalize_params(item) for item in value]
    if isinstance(value, (set, frozenset)):
        return sorted((normalize_params(item) for item in value), key=repr)
    if value is None or isinstance(value, (bool, int, float)):
        return value
    return str(value)


def fingerprint(operation_name: str, params: Mapping[str, Any]) -> str:
    """
    Compute the cache key for an operation call.

    Args:
        operation_name: Logical operation (e.g. "generate"); kept verbatim so
            different operations never share a key
        params: Semantic inputs of the request

    Returns:
        Hex-encoded SHA-256 digest
    """
    payload = {
        "op": operation_name,
        "params": normalize_params(params or {}),
    }
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
