import sqlite3
import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterator, List, Optional

from app.errors import NotFound
from app.hashing import sha256_json
from app.models.artifact import StoryPlan, StorySlide, StoryAudio, BrailleExport
from app.models.content import ContentVersion, ContentTranslation
from app.models.job import EnqueueRequest, Job, JobStatus, JobType

# --- Schemas ---

SQLITE_CONTENT_SCHEMA = """
CREATE TABLE IF NOT EXISTS content_versions (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL CHECK (version >= 1),
    canonical_locale TEXT NOT NULL,
    payload_json TEXT NOT NULL,
    payload_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (content_key, version)
);

CREATE TABLE IF NOT EXISTS content_translations (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    translated_payload_json TEXT NOT NULL,
    translated_hash TEXT NOT NULL,
    model TEXT,
    created_at TEXT NOT NULL,
    PRIMARY KEY (content_key, version, locale)
);
"""

SQLITE_ARTIFACTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS story_plans (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    plan_json TEXT NOT NULL,
    plan_hash TEXT NOT NULL,
    model TEXT,
    created_at TEXT NOT NULL,
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
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (content_key, version, locale, slide_index)
);

CREATE TABLE IF NOT EXISTS story_audio (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    slide_index INTEGER NOT NULL,
    voice_id TEXT NOT NULL,
    tts_provider TEXT NOT NULL,
    audio_path TEXT NOT NULL,
    audio_mime TEXT NOT NULL,
    audio_hash TEXT NOT NULL,
    created_at TEXT NOT NULL,
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
    created_at TEXT NOT NULL,
    PRIMARY KEY (content_key, version, locale, scope, format)
);
"""

SQLITE_JOBS_SCHEMA = """
CREATE TABLE IF NOT EXISTS generation_jobs (
    id TEXT PRIMARY KEY,
    job_type TEXT NOT NULL,
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT,
    slide_index INTEGER,
    scope TEXT,
    format TEXT,
    status TEXT NOT NULL DEFAULT 'queued',
    idempotency_key TEXT NOT NULL UNIQUE,
    error TEXT,
    attempts INTEGER NOT NULL DEFAULT 0,
    lease_until TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# Same shape as the Postgres claim: one conditional UPDATE, executed inside
# BEGIN IMMEDIATE so concurrent claimers are serialized by SQLite's write lock.
SQLITE_CLAIM_SQL = """
UPDATE generation_jobs
SET status = 'running', attempts = attempts + 1, lease_until = ?, updated_at = ?
WHERE id = (
    SELECT id FROM generation_jobs
    WHERE (status = 'queued' OR (status = 'running' AND lease_until < ?))
      AND (? IS NULL OR job_type = ?)
    ORDER BY created_at, rowid
    LIMIT 1
)
RETURNING *
"""


def _ts(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SQLiteTestDB:
    """
    A single SQLite database that serves as ContentStore, ArtifactStore and
    JobQueue during tests.

    `:memory:` shares one connection; a file path opens a connection per
    call, which is what the concurrent-claim tests need.
    `clock` lets lease tests move time forward.
    """

    def __init__(self, db_path: str = ":memory:", lease_seconds: int = 600,
                 clock: Callable[[], datetime] = _utcnow):
        self.db_path = db_path
        self.lease_seconds = lease_seconds
        self.clock = clock
        self._shared_conn = None
        if db_path == ":memory:":
            self._shared_conn = self._open(":memory:")

    def _open(self, path: str) -> sqlite3.Connection:
        conn = sqlite3.connect(path, timeout=30, isolation_level=None, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def get_connection(self) -> Iterator[sqlite3.Connection]:
        if self._shared_conn is not None:
            yield self._shared_conn
            return
        conn = self._open(self.db_path)
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self.get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except Exception:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _now(self) -> str:
        return _ts(self.clock())

    def ensure_schema(self) -> None:
        with self.get_connection() as conn:
            conn.executescript(SQLITE_CONTENT_SCHEMA)
            conn.executescript(SQLITE_ARTIFACTS_SCHEMA)
            conn.executescript(SQLITE_JOBS_SCHEMA)

    def _fetchone(self, query: str, params: tuple) -> Optional[dict]:
        with self.get_connection() as conn:
            row = conn.execute(query, params).fetchone()
        return dict(row) if row else None

    def _fetchall(self, query: str, params: tuple) -> List[dict]:
        with self.get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]

    def _write(self, query: str, params: tuple) -> bool:
        with self._transaction() as conn:
            changed = conn.execute(query, params).rowcount == 1
        return changed

    # --- ContentStore ---

    def get_canonical(self, content_key: str, version: int = 0) -> ContentVersion:
        if version > 0:
            row = self._fetchone(
                "SELECT * FROM content_versions WHERE content_key = ? AND version = ?",
                (content_key, version),
            )
        else:
            row = self._fetchone(
                "SELECT * FROM content_versions WHERE content_key = ? ORDER BY version DESC LIMIT 1",
                (content_key,),
            )
        if not row:
            raise NotFound(content_key, version)
        row["payload_json"] = json.loads(row["payload_json"])
        return ContentVersion(**row)

    def put_version(self, content_key: str, payload: Any, canonical_locale: str) -> ContentVersion:
        payload_hash = sha256_json(payload)
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM content_versions WHERE content_key = ? ORDER BY version DESC LIMIT 1",
                (content_key,),
            ).fetchall()
            latest = rows[0] if rows else None
            if latest is None or latest["payload_hash"] != payload_hash:
                next_version = latest["version"] + 1 if latest else 1
                conn.execute(
                    """
                    INSERT INTO content_versions (content_key, version, canonical_locale, payload_json, payload_hash, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (content_key, next_version, canonical_locale, json.dumps(payload), payload_hash, self._now()),
                )
        return self.get_canonical(content_key)

    def get_translation(self, content_key: str, version: int, locale: str) -> Optional[ContentTranslation]:
        row = self._fetchone(
            "SELECT * FROM content_translations WHERE content_key = ? AND version = ? AND locale = ?",
            (content_key, version, locale),
        )
        if not row:
            return None
        row["translated_payload_json"] = json.loads(row["translated_payload_json"])
        return ContentTranslation(**row)

    def insert_translation(self, translation: ContentTranslation) -> bool:
        return self._write(
            """
            INSERT INTO content_translations (
                content_key, version, locale, translated_payload_json, translated_hash, model, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_key, version, locale) DO NOTHING
            """,
            (
                translation.content_key,
                translation.version,
                translation.locale,
                json.dumps(translation.translated_payload_json),
                translation.translated_hash,
                translation.model,
                self._now(),
            ),
        )

    # --- ArtifactStore ---

    def get_story_plan(self, content_key: str, version: int, locale: str) -> Optional[StoryPlan]:
        row = self._fetchone(
            "SELECT * FROM story_plans WHERE content_key = ? AND version = ? AND locale = ?",
            (content_key, version, locale),
        )
        if not row:
            return None
        row["plan_json"] = json.loads(row["plan_json"])
        return StoryPlan(**row)

    def insert_story_plan(self, plan: StoryPlan) -> bool:
        return self._write(
            """
            INSERT INTO story_plans (content_key, version, locale, plan_json, plan_hash, model, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_key, version, locale) DO NOTHING
            """,
            (plan.content_key, plan.version, plan.locale, json.dumps(plan.plan_json),
             plan.plan_hash, plan.model, self._now()),
        )

    def list_story_slides(self, content_key: str, version: int, locale: str) -> List[StorySlide]:
        rows = self._fetchall(
            """
            SELECT * FROM story_slides
            WHERE content_key = ? AND version = ? AND locale = ?
            ORDER BY slide_index
            """,
            (content_key, version, locale),
        )
        return [StorySlide(**r) for r in rows]

    def get_story_slide(self, content_key: str, version: int, locale: str, slide_index: int) -> Optional[StorySlide]:
        row = self._fetchone(
            """
            SELECT * FROM story_slides
            WHERE content_key = ? AND version = ? AND locale = ? AND slide_index = ?
            """,
            (content_key, version, locale, slide_index),
        )
        return StorySlide(**row) if row else None

    def insert_story_slide(self, slide: StorySlide) -> bool:
        now = self._now()
        return self._write(
            """
            INSERT INTO story_slides (
                content_key, version, locale, slide_index, prompt, prompt_hash, caption, caption_hash,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_key, version, locale, slide_index) DO NOTHING
            """,
            (slide.content_key, slide.version, slide.locale, slide.slide_index, slide.prompt,
             slide.prompt_hash, slide.caption, slide.caption_hash, now, now),
        )

    def attach_slide_image(self, content_key: str, version: int, locale: str, slide_index: int,
                           image_path: str, image_mime: str, image_hash: str) -> bool:
        return self._write(
            """
            UPDATE story_slides
            SET image_path = ?, image_mime = ?, image_hash = ?, updated_at = ?
            WHERE content_key = ? AND version = ? AND locale = ? AND slide_index = ?
              AND image_path IS NULL
            """,
            (image_path, image_mime, image_hash, self._now(), content_key, version, locale, slide_index),
        )

    def list_story_audio(self, content_key: str, version: int, locale: str) -> List[StoryAudio]:
        rows = self._fetchall(
            """
            SELECT * FROM story_audio
            WHERE content_key = ? AND version = ? AND locale = ?
            ORDER BY slide_index
            """,
            (content_key, version, locale),
        )
        return [StoryAudio(**r) for r in rows]

    def insert_story_audio(self, audio: StoryAudio) -> bool:
        return self._write(
            """
            INSERT INTO story_audio (
                content_key, version, locale, slide_index, voice_id, tts_provider,
                audio_path, audio_mime, audio_hash, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_key, version, locale, slide_index, voice_id) DO NOTHING
            """,
            (audio.content_key, audio.version, audio.locale, audio.slide_index, audio.voice_id,
             audio.tts_provider, audio.audio_path, audio.audio_mime, audio.audio_hash, self._now()),
        )

    def get_braille_export(self, content_key: str, version: int, locale: str, scope: str, format: str) -> Optional[BrailleExport]:
        row = self._fetchone(
            """
            SELECT * FROM braille_exports
            WHERE content_key = ? AND version = ? AND locale = ? AND scope = ? AND format = ?
            """,
            (content_key, version, locale, scope, format),
        )
        return BrailleExport(**row) if row else None

    def insert_braille_export(self, export: BrailleExport) -> bool:
        return self._write(
            """
            INSERT INTO braille_exports (
                content_key, version, locale, scope, format, braille_text, braille_hash, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (content_key, version, locale, scope, format) DO NOTHING
            """,
            (export.content_key, export.version, export.locale, export.scope, export.format,
             export.braille_text, export.braille_hash, self._now()),
        )

    # --- JobQueue ---

    def enqueue(self, request: EnqueueRequest) -> Job:
        now = self._now()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO generation_jobs (
                    id, job_type, content_key, version, locale, slide_index, scope, format,
                    status, idempotency_key, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'queued', ?, ?, ?)
                ON CONFLICT (idempotency_key) DO NOTHING
                """,
                (str(uuid.uuid4()), request.job_type.value, request.content_key, request.version,
                 request.locale, request.slide_index, request.scope, request.format,
                 request.idempotency_key, now, now),
            )
            rows = conn.execute(
                "SELECT * FROM generation_jobs WHERE idempotency_key = ?", (request.idempotency_key,)
            ).fetchall()
        return Job(**dict(rows[0]))

    def claim(self, job_type: Optional[JobType] = None) -> Optional[Job]:
        now = self.clock()
        lease_until = _ts(now + timedelta(seconds=self.lease_seconds))
        type_value = job_type.value if job_type else None
        with self._transaction() as conn:
            rows = conn.execute(
                SQLITE_CLAIM_SQL, (lease_until, _ts(now), _ts(now), type_value, type_value)
            ).fetchall()
            data = dict(rows[0]) if rows else None
        return Job(**data) if data else None

    def ack(self, job_id: str, attempt: Optional[int] = None) -> None:
        self._finish(job_id, JobStatus.SUCCEEDED, None, attempt)

    def fail(self, job_id: str, message: str, attempt: Optional[int] = None) -> None:
        self._finish(job_id, JobStatus.FAILED, message, attempt)

    def _finish(self, job_id: str, status: JobStatus, error: Optional[str], attempt: Optional[int]) -> None:
        self._write(
            """
            UPDATE generation_jobs
            SET status = ?, error = ?, lease_until = NULL, updated_at = ?
            WHERE id = ? AND status = 'running' AND (? IS NULL OR attempts = ?)
            """,
            (status.value, error, self._now(), job_id, attempt, attempt),
        )

    def get_job(self, job_id: str) -> Optional[Job]:
        row = self._fetchone("SELECT * FROM generation_jobs WHERE id = ?", (job_id,))
        return Job(**row) if row else None

    def list_jobs(self, job_type: Optional[JobType] = None) -> List[Job]:
        """Test helper: every job row, oldest first."""
        if job_type:
            rows = self._fetchall(
                "SELECT * FROM generation_jobs WHERE job_type = ? ORDER BY created_at, rowid", (job_type.value,)
            )
        else:
            rows = self._fetchall("SELECT * FROM generation_jobs ORDER BY created_at, rowid", ())
        return [Job(**r) for r in rows]
