import json
from typing import Callable, List, Optional

import psycopg
from psycopg.rows import dict_row

from app.db import get_conn
from app.models.artifact import StoryPlan, StorySlide, StoryAudio, BrailleExport

# Schema for derived artifacts. Every table is keyed by its uniqueness tuple so
# that duplicate job executions collapse into ON CONFLICT DO NOTHING.
ARTIFACTS_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS story_plans (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    plan_json JSONB NOT NULL,
    plan_hash TEXT NOT NULL,
    model TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version, locale)
);

CREATE TABLE IF NOT EXISTS story_slides (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    slide_index INTEGER NOT NULL,
    prompt TEXT NOT NULL DEFAULT '',
    prompt_hash TEXT NOT NULL,
    caption TEXT NOT NULL DEFAULT '',
    caption_hash TEXT NOT NULL,
    image_path TEXT,
    image_mime TEXT,
    image_hash TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version, locale, slide_index)
);

CREATE TABLE IF NOT EXISTS story_audio (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    slide_index INTEGER NOT NULL,
    voice_id TEXT NOT NULL DEFAULT 'default',
    tts_provider TEXT NOT NULL,
    audio_path TEXT NOT NULL,
    audio_mime TEXT NOT NULL,
    audio_hash TEXT NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version, locale, slide_index, voice_id)
);

CREATE TABLE IF NOT EXISTS braille_exports (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    scope TEXT NOT NULL,
    format TEXT NOT NULL,
    braille_text TEXT NOT NULL,
    braille_hash TEXT NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version, locale, scope, format)
);
"""


class ArtifactRepository:
    """
    Repository for story and braille artifacts in Postgres.
    Uses app.db.get_conn() unless another connection factory is injected.
    """

    def __init__(self, conn_factory: Optional[Callable[[], psycopg.Connection]] = None):
        self.conn_factory = conn_factory or get_conn

    def ensure_schema(self) -> None:
        """Ensures the artifact tables exist."""
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(ARTIFACTS_SCHEMA_SQL)
            conn.commit()

    # --- helpers ---

    def _fetchone(self, query: str, params: tuple) -> Optional[dict]:
        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return cur.fetchone()

    def _fetchall(self, query: str, params: tuple) -> List[dict]:
        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                return cur.fetchall()

    def _write(self, query: str, params: tuple) -> bool:
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                changed = cur.rowcount == 1
            conn.commit()
        return changed

    # --- story plans ---

    def get_story_plan(self, content_key: str, version: int, locale: str) -> Optional[StoryPlan]:
        row = self._fetchone(
            """
            SELECT * FROM story_plans
            WHERE content_key = %s AND version = %s AND locale = %s;
            """,
            (content_key, version, locale),
        )
        if not row:
            return None
        if isinstance(row["plan_json"], str):
            row["plan_json"] = json.loads(row["plan_json"])
        return StoryPlan(**row)

    def insert_story_plan(self, plan: StoryPlan) -> bool:
        return self._write(
            """
            INSERT INTO story_plans (content_key, version, locale, plan_json, plan_hash, model)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (content_key, version, locale) DO NOTHING;
            """,
            (plan.content_key, plan.version, plan.locale, json.dumps(plan.plan_json), plan.plan_hash, plan.model),
        )

    # --- story slides ---

    def list_story_slides(self, content_key: str, version: int, locale: str) -> List[StorySlide]:
        rows = self._fetchall(
            """
            SELECT * FROM story_slides
            WHERE content_key = %s AND version = %s AND locale = %s
            ORDER BY slide_index;
            """,
            (content_key, version, locale),
        )
        return [StorySlide(**row) for row in rows]

    def get_story_slide(self, content_key: str, version: int, locale: str, slide_index: int) -> Optional[StorySlide]:
        row = self._fetchone(
            """
            SELECT * FROM story_slides
            WHERE content_key = %s AND version = %s AND locale = %s AND slide_index = %s;
            """,
            (content_key, version, locale, slide_index),
        )
        return StorySlide(**row) if row else None

    def insert_story_slide(self, slide: StorySlide) -> bool:
        return self._write(
            """
            INSERT INTO story_slides (
                content_key, version, locale, slide_index, prompt, prompt_hash, caption, caption_hash
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (content_key, version, locale, slide_index) DO NOTHING;
            """,
            (
                slide.content_key,
                slide.version,
                slide.locale,
                slide.slide_index,
                slide.prompt,
                slide.prompt_hash,
                slide.caption,
                slide.caption_hash,
            ),
        )

    def attach_slide_image(self, content_key: str, version: int, locale: str, slide_index: int,
                           image_path: str, image_mime: str, image_hash: str) -> bool:
        # Conditional on image_path IS NULL: the first generated image wins
        query = """
        UPDATE story_slides
        SET image_path = %s, image_mime = %s, image_hash = %s, updated_at = NOW()
        WHERE content_key = %s AND version = %s AND locale = %s AND slide_index = %s
          AND image_path IS NULL;
        """
        return self._write(
            query,
            (image_path, image_mime, image_hash, content_key, version, locale, slide_index),
        )

    # --- story audio ---

    def list_story_audio(self, content_key: str, version: int, locale: str) -> List[StoryAudio]:
        rows = self._fetchall(
            """
            SELECT * FROM story_audio
            WHERE content_key = %s AND version = %s AND locale = %s
            ORDER BY slide_index;
            """,
            (content_key, version, locale),
        )
        return [StoryAudio(**row) for row in rows]

    def insert_story_audio(self, audio: StoryAudio) -> bool:
        return self._write(
            """
            INSERT INTO story_audio (
                content_key, version, locale, slide_index, voice_id, tts_provider,
                audio_path, audio_mime, audio_hash
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (content_key, version, locale, slide_index, voice_id) DO NOTHING;
            """,
            (
                audio.content_key,
                audio.version,
                audio.locale,
                audio.slide_index,
                audio.voice_id,
                audio.tts_provider,
                audio.audio_path,
                audio.audio_mime,
                audio.audio_hash,
            ),
        )

    # --- braille exports ---

    def get_braille_export(self, content_key: str, version: int, locale: str, scope: str, format: str) -> Optional[BrailleExport]:
        row = self._fetchone(
            """
            SELECT * FROM braille_exports
            WHERE content_key = %s AND version = %s AND locale = %s AND scope = %s AND format = %s;
            """,
            (content_key, version, locale, scope, format),
        )
        return BrailleExport(**row) if row else None

    def insert_braille_export(self, export: BrailleExport) -> bool:
        return self._write(
            """
            INSERT INTO braille_exports (
                content_key, version, locale, scope, format, braille_text, braille_hash
            ) VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (content_key, version, locale, scope, format) DO NOTHING;
            """,
            (
                export.content_key,
                export.version,
                export.locale,
                export.scope,
                export.format,
                export.braille_text,
                export.braille_hash,
            ),
        )
