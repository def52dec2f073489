from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from .content import utcnow


class StoryPlan(BaseModel):
    """
    Slide plan for an illustrated story, one per (content_key, version, locale).
    """
    content_key: str
    version: int
    locale: str
    plan_json: Any
    plan_hash: str
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}


class StorySlide(BaseModel):
    """
    A single planned slide.

    Image and audio sub-jobs are keyed off `prompt_hash` / `caption_hash`
    rather than the free text itself.
    """
    content_key: str
    version: int
    locale: str
    slide_index: int
    prompt: str = ""
    prompt_hash: str
    caption: str = ""
    caption_hash: str
    image_path: Optional[str] = None
    image_mime: Optional[str] = None
    image_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}


class StoryAudio(BaseModel):
    content_key: str
    version: int
    locale: str
    slide_index: int
    voice_id: str = "default"
    tts_provider: str = "openai"
    audio_path: str
    audio_mime: str = "audio/wav"
    audio_hash: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}


class BrailleExport(BaseModel):
    content_key: str
    version: int
    locale: str
    scope: str
    format: str
    braille_text: str
    braille_hash: str
    created_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}
