from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Any, Literal

from pydantic import BaseModel, Field, model_validator

from .models.job import JobStatus, JobType

ContentCache = Literal["canonical", "translation", "canonical_fallback"]
ArtifactCache = Literal["ready", "queued"]


class ContentResponse(BaseModel):
    content_key: str
    payload: Any
    version: int
    locale: str
    cache: ContentCache
    translation_status: Optional[str] = None  # "queued" while the translation is pending
    job_id: Optional[str] = None


class StorySlideView(BaseModel):
    index: int
    caption: str
    image_url: Optional[str] = None
    audio_url: Optional[str] = None


class StoryResponse(BaseModel):
    content_key: str
    plan: Optional[Any] = None
    slides: List[StorySlideView] = []
    status: ArtifactCache
    version: int
    locale: str
    job_id: Optional[str] = None
    pending_jobs: int = 0  # image/audio sub-jobs scheduled by this read


class BrailleResponse(BaseModel):
    content_key: str
    version: int
    locale: str
    scope: str
    format: str
    braille_text: Optional[str] = None
    cache: ArtifactCache
    job_id: Optional[str] = None


class ConvertRequest(BaseModel):
    lesson: str = ""
    normalize: bool = False


class SegmentView(BaseModel):
    type: str
    original: str
    braille: str
    description: str


class ConvertStats(BaseModel):
    total_segments: int
    text_segments: int
    math_segments: int
    braille_length: int


class ConvertResponse(BaseModel):
    success: bool = True
    original: str
    normalized: Optional[str] = None
    segments: List[SegmentView]
    full_braille: str
    english_text_only: str
    english_braille: str
    math_expressions_found: List[str]
    brf: str
    stats: ConvertStats


class NemethRequest(BaseModel):
    text: Optional[str] = None
    expression: Optional[str] = None

    @model_validator(mode="after")
    def _pick_expression(self):
        if not self.expression:
            self.expression = self.text
        return self


class NemethResponse(BaseModel):
    success: bool = True
    original_expression: str
    nemeth_braille: str
    format: str = "Nemeth Code (Mathematical Braille)"


class ValidateRequest(BaseModel):
    braille: str = ""
    table: Literal["en-us-g2", "nemeth"] = "en-us-g2"


class ValidateResponse(BaseModel):
    success: bool = True
    back_translated: str
    is_valid: bool


class JobResponse(BaseModel):
    id: str
    job_type: JobType
    content_key: str
    version: int
    locale: Optional[str] = None
    slide_index: Optional[int] = None
    scope: Optional[str] = None
    format: Optional[str] = None
    status: JobStatus
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
    example: Optional[dict] = Field(default=None)
