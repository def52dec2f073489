from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .content import utcnow


class JobType(str, Enum):
    """Closed set of artifact-generation job kinds."""
    TRANSLATE_CONTENT = "translate_content"
    BUILD_STORY_PLAN = "build_story_plan"
    GENERATE_STORY_IMAGE = "generate_story_image"
    GENERATE_STORY_AUDIO = "generate_story_audio"
    BUILD_BRAILLE_EXPORT = "build_braille_export"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class EnqueueRequest(BaseModel):
    """
    Everything needed to schedule one unit of work.

    `idempotency_key` alone decides job identity; the other fields are only
    stored when a new row is created.
    """
    job_type: JobType
    content_key: str
    version: int
    idempotency_key: str
    locale: Optional[str] = None
    slide_index: Optional[int] = None
    scope: Optional[str] = None
    format: Optional[str] = None


class Job(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    job_type: JobType
    content_key: str
    version: int
    locale: Optional[str] = None
    slide_index: Optional[int] = None
    scope: Optional[str] = None
    format: Optional[str] = None
    status: JobStatus = JobStatus.QUEUED
    idempotency_key: str
    error: Optional[str] = None
    attempts: int = 0
    lease_until: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    model_config = {"from_attributes": True}
