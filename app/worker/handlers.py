from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List

from app.braille.transcriber import BrailleTranscriber
from app.errors import TranscriptionFailure
from app.hashing import sha256_bytes, sha256_json, sha256_text
from app.infra.content_db import resolve_payload
from app.infra.interfaces import ArtifactStore, ContentGenerator, ContentStore, MediaStorage
from app.models.artifact import BrailleExport, StoryAudio, StoryPlan, StorySlide
from app.models.content import ContentTranslation
from app.models.job import Job, JobType

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "microsection"
DEFAULT_FORMAT = "full"
BRAILLE_FORMATS = ("full", "brf")

Handler = Callable[[Job], None]


@dataclass
class HandlerContext:
    """Collaborators shared by every job handler."""
    content: ContentStore
    artifacts: ArtifactStore
    generator: ContentGenerator
    storage: MediaStorage
    transcriber: BrailleTranscriber
    voice_id: str = "default"


def slide_image_key(job: Job) -> str:
    return f"generated/{job.content_key}/{job.version}/{job.locale}/story/slide_{job.slide_index}.png"


def slide_audio_key(job: Job) -> str:
    return f"generated/{job.content_key}/{job.version}/{job.locale}/audio/slide_{job.slide_index}.wav"


def payload_to_text(payload: Any) -> str:
    """Flattens a lesson payload into the plain text the braille engine reads."""
    if isinstance(payload, str):
        return payload

    parts: List[str] = []

    def walk(value: Any) -> None:
        if isinstance(value, str):
            if value.strip():
                parts.append(value.strip())
        elif isinstance(value, dict):
            for item in value.values():
                walk(item)
        elif isinstance(value, list):
            for item in value:
                walk(item)

    walk(payload)
    return "\n\n".join(parts)


def translate_content(ctx: HandlerContext, job: Job) -> None:
    canonical = ctx.content.get_canonical(job.content_key, job.version)
    translated = ctx.generator.translate(canonical.payload_json, job.locale)

    created = ctx.content.insert_translation(ContentTranslation(
        content_key=job.content_key,
        version=canonical.version,
        locale=job.locale,
        translated_payload_json=translated,
        translated_hash=sha256_json(translated),
        model=ctx.generator.model_name,
    ))
    if not created:
        logger.info("Translation %s v%s %s already present", job.content_key, canonical.version, job.locale)


def build_story_plan(ctx: HandlerContext, job: Job) -> None:
    canonical = ctx.content.get_canonical(job.content_key, job.version)
    locale = job.locale or canonical.canonical_locale
    payload = resolve_payload(ctx.content, canonical, locale)

    plan = ctx.generator.plan_story(payload, locale)
    ctx.artifacts.insert_story_plan(StoryPlan(
        content_key=job.content_key,
        version=canonical.version,
        locale=locale,
        plan_json=plan,
        plan_hash=sha256_json(plan),
        model=ctx.generator.model_name,
    ))

    for slide in plan.get("slides", []):
        prompt = slide.get("imagePrompt") or ""
        caption = slide.get("caption") or ""
        ctx.artifacts.insert_story_slide(StorySlide(
            content_key=job.content_key,
            version=canonical.version,
            locale=locale,
            slide_index=int(slide["index"]),
            prompt=prompt,
            prompt_hash=sha256_text(prompt),
            caption=caption,
            caption_hash=sha256_text(caption),
        ))
    logger.info("Planned %d slides for %s v%s %s", len(plan.get("slides", [])), job.content_key, canonical.version, locale)


def generate_story_image(ctx: HandlerContext, job: Job) -> None:
    slide = ctx.artifacts.get_story_slide(job.content_key, job.version, job.locale, job.slide_index)
    if slide is None:
        logger.warning("No slide %s for %s v%s %s; skipping image", job.slide_index, job.content_key, job.version, job.locale)
        return
    if slide.image_path:
        return

    image = ctx.generator.generate_image(slide.prompt)
    saved = ctx.storage.save(image, slide_image_key(job))
    ctx.artifacts.attach_slide_image(
        job.content_key, job.version, job.locale, job.slide_index,
        image_path=saved.public_url,
        image_mime="image/png",
        image_hash=sha256_bytes(image),
    )


def generate_story_audio(ctx: HandlerContext, job: Job) -> None:
    slide = ctx.artifacts.get_story_slide(job.content_key, job.version, job.locale, job.slide_index)
    if slide is None:
        logger.warning("No slide %s for %s v%s %s; skipping audio", job.slide_index, job.content_key, job.version, job.locale)
        return

    audio = ctx.generator.synthesize_speech(slide.caption, job.locale)
    saved = ctx.storage.save(audio, slide_audio_key(job))
    ctx.artifacts.insert_story_audio(StoryAudio(
        content_key=job.content_key,
        version=job.version,
        locale=job.locale,
        slide_index=job.slide_index,
        voice_id=ctx.voice_id,
        tts_provider=ctx.generator.provider,
        audio_path=saved.public_url,
        audio_mime="audio/wav",
        audio_hash=sha256_bytes(audio),
    ))


def build_braille_export(ctx: HandlerContext, job: Job) -> None:
    canonical = ctx.content.get_canonical(job.content_key, job.version)
    locale = job.locale or canonical.canonical_locale
    scope = job.scope or DEFAULT_SCOPE
    fmt = job.format or DEFAULT_FORMAT
    if fmt not in BRAILLE_FORMATS:
        raise TranscriptionFailure(f"Unsupported braille format: {fmt}")

    payload = resolve_payload(ctx.content, canonical, locale)
    result = ctx.transcriber.convert(payload_to_text(payload))
    if not result.success:
        raise TranscriptionFailure(result.error or "Braille conversion failed")

    braille_text = result.brf if fmt == "brf" else result.full_braille
    ctx.artifacts.insert_braille_export(BrailleExport(
        content_key=job.content_key,
        version=canonical.version,
        locale=locale,
        scope=scope,
        format=fmt,
        braille_text=braille_text,
        braille_hash=sha256_text(braille_text),
    ))


_HANDLERS = {
    JobType.TRANSLATE_CONTENT: translate_content,
    JobType.BUILD_STORY_PLAN: build_story_plan,
    JobType.GENERATE_STORY_IMAGE: generate_story_image,
    JobType.GENERATE_STORY_AUDIO: generate_story_audio,
    JobType.BUILD_BRAILLE_EXPORT: build_braille_export,
}


def build_handlers(ctx: HandlerContext) -> Dict[JobType, Handler]:
    """One handler per job type, bound to the given context."""
    return {job_type: partial(fn, ctx) for job_type, fn in _HANDLERS.items()}
