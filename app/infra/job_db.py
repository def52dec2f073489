import logging
import uuid
from typing import Callable, Optional

import psycopg
from psycopg.rows import dict_row

from app.db import get_conn
from app.models.job import EnqueueRequest, Job, JobStatus, JobType

logger = logging.getLogger(__name__)

JOBS_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS generation_jobs (
    id UUID PRIMARY KEY,
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
    lease_until TIMESTAMP WITH TIME ZONE,
    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_generation_jobs_claim ON generation_jobs(status, created_at);
"""

# Single conditional statement: the inner SELECT locks the candidate row and
# skips rows another claimer already holds, the outer UPDATE flips it to
# running. Expired leases make abandoned running jobs claimable again.
CLAIM_SQL = """
UPDATE generation_jobs
SET status = 'running',
    attempts = attempts + 1,
    lease_until = NOW() + make_interval(secs => %(lease_seconds)s::double precision),
    updated_at = NOW()
WHERE id = (
    SELECT id FROM generation_jobs
    WHERE (status = 'queued' OR (status = 'running' AND lease_until < NOW()))
      AND (%(job_type)s::text IS NULL OR job_type = %(job_type)s::text)
    ORDER BY created_at
    LIMIT 1
    FOR UPDATE SKIP LOCKED
)
RETURNING *;
"""


class PostgresJobQueue:
    """
    Idempotent job ledger in Postgres.

    Enqueue is a pure dedup on idempotency_key; claim, ack and fail are the
    only status transitions and each is a single conditional UPDATE.
    """

    def __init__(self, conn_factory: Optional[Callable[[], psycopg.Connection]] = None, lease_seconds: int = 600):
        self.conn_factory = conn_factory or get_conn
        self.lease_seconds = lease_seconds

    def ensure_schema(self) -> None:
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(JOBS_SCHEMA_SQL)
            conn.commit()

    def enqueue(self, request: EnqueueRequest) -> Job:
        insert_query = """
        INSERT INTO generation_jobs (
            id, job_type, content_key, version, locale, slide_index, scope, format, status, idempotency_key
        ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, 'queued', %s)
        ON CONFLICT (idempotency_key) DO NOTHING
        RETURNING *;
        """
        select_query = "SELECT * FROM generation_jobs WHERE idempotency_key = %s;"

        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(insert_query, (
                    str(uuid.uuid4()),
                    request.job_type.value,
                    request.content_key,
                    request.version,
                    request.locale,
                    request.slide_index,
                    request.scope,
                    request.format,
                    request.idempotency_key,
                ))
                row = cur.fetchone()
                if row is None:
                    # Another caller already owns this key
                    cur.execute(select_query, (request.idempotency_key,))
                    row = cur.fetchone()
                else:
                    logger.info("Queued %s job for %s v%s (%s)",
                                request.job_type.value, request.content_key, request.version, request.locale)
            conn.commit()

        return self._map_row(row)

    def claim(self, job_type: Optional[JobType] = None) -> Optional[Job]:
        params = {
            "lease_seconds": self.lease_seconds,
            "job_type": job_type.value if job_type else None,
        }
        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(CLAIM_SQL, params)
                row = cur.fetchone()
            conn.commit()

        return self._map_row(row) if row else None

    def ack(self, job_id: str, attempt: Optional[int] = None) -> None:
        self._finish(job_id, JobStatus.SUCCEEDED, None, attempt)

    def fail(self, job_id: str, message: str, attempt: Optional[int] = None) -> None:
        self._finish(job_id, JobStatus.FAILED, message, attempt)

    def get_job(self, job_id: str) -> Optional[Job]:
        try:
            uuid.UUID(job_id)
        except ValueError:
            return None
        with self.conn_factory() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("SELECT * FROM generation_jobs WHERE id = %s;", (job_id,))
                row = cur.fetchone()
        return self._map_row(row) if row else None

    def _finish(self, job_id: str, status: JobStatus, error: Optional[str], attempt: Optional[int]) -> None:
        # Only a running job can reach a terminal state, and only through the
        # claim that is still current: a reclaim bumps attempts.
        query = """
        UPDATE generation_jobs
        SET status = %(status)s, error = %(error)s, lease_until = NULL, updated_at = NOW()
        WHERE id = %(id)s AND status = 'running'
          AND (%(attempt)s::int IS NULL OR attempts = %(attempt)s::int);
        """
        params = {"status": status.value, "error": error, "id": job_id, "attempt": attempt}
        with self.conn_factory() as conn:
            with conn.cursor() as cur:
                cur.execute(query, params)
                updated = cur.rowcount
            conn.commit()

        if updated == 0:
            logger.warning("Job %s is no longer held by attempt %s; %s transition ignored", job_id, attempt, status.value)

    def _map_row(self, row: dict) -> Job:
        data = dict(row)
        data["id"] = str(data["id"])
        return Job(**data)
