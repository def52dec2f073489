from __future__ import annotations

import hashlib
import json
from typing import Any

IDEMPOTENCY_SEPARATOR = "|"


def normalize_json(value: Any) -> Any:
    """Recursively sorts dictionary keys so that field order never affects hashing."""
    if isinstance(value, (list, tuple)):
        return [normalize_json(v) for v in value]
    if isinstance(value, dict):
        return {key: normalize_json(value[key]) for key in sorted(value)}
    return value


def canonical_json(value: Any) -> str:
    return json.dumps(normalize_json(value), ensure_ascii=False, separators=(",", ":"))


def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def sha256_bytes(value: bytes) -> str:
    return hashlib.sha256(value).hexdigest()


def sha256_json(value: Any) -> str:
    return sha256_text(canonical_json(value))


def build_idempotency_key(*parts: Any) -> str:
    """
    Hashes the semantic identity of a job.

    `None` parts are rendered as empty strings so that optional fields keep
    their position in the key material.
    """
    material = IDEMPOTENCY_SEPARATOR.join("" if p is None else str(p) for p in parts)
    return sha256_text(material)
