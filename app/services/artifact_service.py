from __future__ import annotations

import logging
from typing import Dict, Optional

from ..hashing import build_idempotency_key
from ..infra.artifact_db import ArtifactRepository
from ..infra.content_db import PostgresContentRepository
from ..infra.interfaces import ArtifactStore, ContentStore, JobQueue
from ..infra.job_db import PostgresJobQueue
from ..config import get_settings
from ..models.content import ContentVersion
from ..models.job import EnqueueRequest, Job, JobType
from ..schemas import BrailleResponse, ContentResponse, StoryResponse, StorySlideView
from .locale import normalize_locale, same_locale

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "microsection"
DEFAULT_FORMAT = "full"


# --- Idempotency keys ---
# Each key covers the job's semantic identity plus the hash of the content it
# derives from, so new canonical content never reuses an old job.

def translate_key(canonical: ContentVersion, locale: str) -> str:
    return build_idempotency_key(
        JobType.TRANSLATE_CONTENT.value, canonical.content_key, canonical.version, locale, canonical.payload_hash,
    )


def story_plan_key(canonical: ContentVersion, locale: str) -> str:
    return build_idempotency_key(
        JobType.BUILD_STORY_PLAN.value, canonical.content_key, canonical.version, locale, canonical.payload_hash,
    )


def story_image_key(content_key: str, version: int, locale: str, slide_index: int, prompt_hash: str) -> str:
    return build_idempotency_key(
        JobType.GENERATE_STORY_IMAGE.value, content_key, version, locale, slide_index, prompt_hash,
    )


def story_audio_key(content_key: str, version: int, locale: str, slide_index: int,
                    caption_hash: str, voice_id: str = "default") -> str:
    return build_idempotency_key(
        JobType.GENERATE_STORY_AUDIO.value, content_key, version, locale, slide_index, caption_hash, voice_id,
    )


def braille_export_key(canonical: ContentVersion, locale: str, scope: str, format: str) -> str:
    return build_idempotency_key(
        JobType.BUILD_BRAILLE_EXPORT.value, canonical.content_key, canonical.version, locale, scope, format,
        canonical.payload_hash,
    )


class ArtifactService:
    """
    Cache-first reads for derived artifacts.

    A hit is returned as-is. A miss schedules the generation job (deduplicated
    by idempotency key) and answers immediately so the caller can poll.
    """

    def __init__(self, content: ContentStore, artifacts: ArtifactStore, queue: JobQueue, voice_id: str = "default"):
        self.content = content
        self.artifacts = artifacts
        self.queue = queue
        self.voice_id = voice_id

    def get_content(self, content_key: str, locale: Optional[str] = None, version: int = 0) -> ContentResponse:
        locale = normalize_locale(locale)
        canonical = self.content.get_canonical(content_key, version)

        if same_locale(locale, canonical.canonical_locale):
            return ContentResponse(
                content_key=content_key,
                payload=canonical.payload_json,
                version=canonical.version,
                locale=locale,
                cache="canonical",
            )

        translation = self.content.get_translation(content_key, canonical.version, locale)
        if translation is not None:
            return ContentResponse(
                content_key=content_key,
                payload=translation.translated_payload_json,
                version=canonical.version,
                locale=locale,
                cache="translation",
            )

        job = self.queue.enqueue(EnqueueRequest(
            job_type=JobType.TRANSLATE_CONTENT,
            content_key=content_key,
            version=canonical.version,
            locale=locale,
            idempotency_key=translate_key(canonical, locale),
        ))
        logger.debug("No %s translation for %s v%s yet, job %s", locale, content_key, canonical.version, job.id)
        return ContentResponse(
            content_key=content_key,
            payload=canonical.payload_json,
            version=canonical.version,
            locale=locale,
            cache="canonical_fallback",
            translation_status=job.status.value,
            job_id=job.id,
        )

    def get_story(self, content_key: str, locale: Optional[str] = None, version: int = 0) -> StoryResponse:
        locale = normalize_locale(locale)
        canonical = self.content.get_canonical(content_key, version)

        plan = self.artifacts.get_story_plan(content_key, canonical.version, locale)
        if plan is None:
            job = self.queue.enqueue(EnqueueRequest(
                job_type=JobType.BUILD_STORY_PLAN,
                content_key=content_key,
                version=canonical.version,
                locale=locale,
                idempotency_key=story_plan_key(canonical, locale),
            ))
            return StoryResponse(
                content_key=content_key,
                status="queued",
                version=canonical.version,
                locale=locale,
                job_id=job.id,
            )

        slides = self.artifacts.list_story_slides(content_key, canonical.version, locale)
        audio_by_index: Dict[int, str] = {
            audio.slide_index: audio.audio_path
            for audio in self.artifacts.list_story_audio(content_key, canonical.version, locale)
            if audio.voice_id == self.voice_id
        }

        pending = 0
        for slide in slides:
            if not slide.image_path:
                self._enqueue_slide_job(
                    JobType.GENERATE_STORY_IMAGE, content_key, canonical.version, locale, slide.slide_index,
                    story_image_key(content_key, canonical.version, locale, slide.slide_index, slide.prompt_hash),
                )
                pending += 1
            if slide.slide_index not in audio_by_index:
                self._enqueue_slide_job(
                    JobType.GENERATE_STORY_AUDIO, content_key, canonical.version, locale, slide.slide_index,
                    story_audio_key(content_key, canonical.version, locale, slide.slide_index,
                                    slide.caption_hash, self.voice_id),
                )
                pending += 1

        return StoryResponse(
            content_key=content_key,
            plan=plan.plan_json,
            slides=[
                StorySlideView(
                    index=slide.slide_index,
                    caption=slide.caption,
                    image_url=slide.image_path,
                    audio_url=audio_by_index.get(slide.slide_index),
                )
                for slide in slides
            ],
            status="ready",
            version=canonical.version,
            locale=locale,
            pending_jobs=pending,
        )

    def get_braille(
        self,
        content_key: str,
        locale: Optional[str] = None,
        version: int = 0,
        scope: str = DEFAULT_SCOPE,
        format: str = DEFAULT_FORMAT,
    ) -> BrailleResponse:
        locale = normalize_locale(locale)
        canonical = self.content.get_canonical(content_key, version)

        cached = self.artifacts.get_braille_export(content_key, canonical.version, locale, scope, format)
        if cached is not None:
            return BrailleResponse(
                content_key=content_key,
                version=canonical.version,
                locale=locale,
                scope=scope,
                format=format,
                braille_text=cached.braille_text,
                cache="ready",
            )

        job = self.queue.enqueue(EnqueueRequest(
            job_type=JobType.BUILD_BRAILLE_EXPORT,
            content_key=content_key,
            version=canonical.version,
            locale=locale,
            scope=scope,
            format=format,
            idempotency_key=braille_export_key(canonical, locale, scope, format),
        ))
        return BrailleResponse(
            content_key=content_key,
            version=canonical.version,
            locale=locale,
            scope=scope,
            format=format,
            cache="queued",
            job_id=job.id,
        )

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.queue.get_job(job_id)

    def _enqueue_slide_job(self, job_type: JobType, content_key: str, version: int, locale: str,
                           slide_index: int, idempotency_key: str) -> Job:
        return self.queue.enqueue(EnqueueRequest(
            job_type=job_type,
            content_key=content_key,
            version=version,
            locale=locale,
            slide_index=slide_index,
            idempotency_key=idempotency_key,
        ))


def get_artifact_service() -> ArtifactService:
    settings = get_settings()
    return ArtifactService(
        content=PostgresContentRepository(),
        artifacts=ArtifactRepository(),
        queue=PostgresJobQueue(lease_seconds=settings.job_lease_seconds),
    )
