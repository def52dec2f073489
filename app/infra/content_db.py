import json
import logging
from typing import Any, Callable, Optional

import psycopg
from psycopg.rows import dict_row

from app.db import get_conn
from app.errors import NotFound
from app.hashing import sha256_json
from app.models.content import ContentVersion, ContentTranslation
from app.services.locale import normalize_locale, same_locale

logger = logging.getLogger(__name__)

CONTENT_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS content_versions (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL CHECK (version >= 1),
    canonical_locale TEXT NOT NULL,
    payload_json JSONB NOT NULL,
    payload_hash TEXT NOT NULL,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version)
);

CREATE TABLE IF NOT EXISTS content_translations (
    content_key TEXT NOT NULL,
    version INTEGER NOT NULL,
    locale TEXT NOT NULL,
    translated_payload_json JSONB NOT NULL,
    translated_hash TEXT NOT NULL,
    model TEXT,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    PRIMARY KEY (content_key, version, locale)
);
"""


def _load_json(value: Any) -> Any:
    # JSONB can come back as a string depending on driver config
    if isinstance(value, str):
        return json.loads(value)
    return value


class PostgresContentRepository:
    """
    Version store backed by Postgres.
    Versions and translations are never updated once written.
    """

    def __init__(self, conn_factory: Optional[Callable[[], psycopg.Connection]] = None):
        self.conn_factory = conn_factory or get_conn

    def ensure_schema(self) -> None:
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(CONTENT_SCHEMA_SQL)
            conn.commit()

    def get_canonical(self, content_key: str, version: int = 0) -> ContentVersion:
        if version > 0:
            query = """
            SELECT * FROM content_versions
            WHERE content_key = %s AND version = %s;
            """
            params = (content_key, version)
        else:
            query = """
            SELECT * FROM content_versions
            WHERE content_key = %s
            ORDER BY version DESC
            LIMIT 1;
            """
            params = (content_key,)

        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, params)
                row = cur.fetchone()

        if not row:
            raise NotFound(content_key, version)
        return self._map_version(row)

    def put_version(self, content_key: str, payload: Any, canonical_locale: str) -> ContentVersion:
        payload_hash = sha256_json(payload)

        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                # Serialize version allocation per key
                cur.execute("SELECT pg_advisory_xact_lock(hashtext(%s));", (content_key,))
                cur.execute(
                    """
                    SELECT * FROM content_versions
                    WHERE content_key = %s
                    ORDER BY version DESC
                    LIMIT 1;
                    """,
                    (content_key,),
                )
                latest = cur.fetchone()
                if latest and latest["payload_hash"] == payload_hash:
                    conn.commit()
                    return self._map_version(latest)

                next_version = (latest["version"] + 1) if latest else 1
                cur.execute(
                    """
                    INSERT INTO content_versions (content_key, version, canonical_locale, payload_json, payload_hash)
                    VALUES (%s, %s, %s, %s, %s)
                    RETURNING *;
                    """,
                    (content_key, next_version, canonical_locale, json.dumps(payload), payload_hash),
                )
                row = cur.fetchone()
            conn.commit()

        logger.info("Stored %s version %s (%s)", content_key, next_version, payload_hash[:12])
        return self._map_version(row)

    def get_translation(self, content_key: str, version: int, locale: str) -> Optional[ContentTranslation]:
        query = """
        SELECT * FROM content_translations
        WHERE content_key = %s AND version = %s AND locale = %s;
        """
        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(query, (content_key, version, locale))
                row = cur.fetchone()

        if not row:
            return None
        row["translated_payload_json"] = _load_json(row["translated_payload_json"])
        return ContentTranslation(**row)

    def insert_translation(self, translation: ContentTranslation) -> bool:
        query = """
        INSERT INTO content_translations (
            content_key, version, locale, translated_payload_json, translated_hash, model
        ) VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (content_key, version, locale) DO NOTHING;
        """
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(query, (
                    translation.content_key,
                    translation.version,
                    translation.locale,
                    json.dumps(translation.translated_payload_json),
                    translation.translated_hash,
                    translation.model,
                ))
                inserted = cur.rowcount == 1
            conn.commit()
        return inserted

    def _map_version(self, row: dict) -> ContentVersion:
        data = dict(row)
        data["payload_json"] = _load_json(data["payload_json"])
        return ContentVersion(**data)


def resolve_payload(store, canonical: ContentVersion, locale: Optional[str]) -> Any:
    """
    Locale-appropriate payload: the translation when one exists for a
    non-canonical locale, otherwise the canonical payload.
    """
    if not locale or same_locale(locale, canonical.canonical_locale):
        return canonical.payload_json
    translation = store.get_translation(canonical.content_key, canonical.version, normalize_locale(locale))
    if translation is not None:
        return translation.translated_payload_json
    return canonical.payload_json
