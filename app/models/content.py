from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ContentVersion(BaseModel):
    """
    One immutable, hash-verified version of a unit of canonical content.

    `payload_hash` is the SHA-256 of the key-sorted payload, so two payloads
    that differ only in field order share a hash.
    """
    content_key: str
    version: int = Field(ge=1)
    canonical_locale: str
    payload_json: Any
    payload_hash: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}


class ContentTranslation(BaseModel):
    """A translated payload, written once per (content_key, version, locale)."""
    content_key: str
    version: int
    locale: str
    translated_payload_json: Any
    translated_hash: str
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}
