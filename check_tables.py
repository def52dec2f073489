import sys

from psycopg.rows import dict_row

from app.db import get_conn
from app.infra.artifact_db import ArtifactRepository
from app.infra.content_db import PostgresContentRepository
from app.infra.job_db import PostgresJobQueue
from app.braille.liblouis import LouTranslator

PIPELINE_TABLES = [
    "content_versions",
    "content_translations",
    "generation_jobs",
    "story_plans",
    "story_slides",
    "story_audio",
    "braille_exports",
]


def check_tables(create: bool = False):
    if create:
        for repo in (PostgresContentRepository(), ArtifactRepository(), PostgresJobQueue()):
            repo.ensure_schema()
        print("Schemas ensured.")

    translator = LouTranslator()
    print(f"{translator.binary} available:", translator.is_available())

    try:
        with get_conn() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute("""
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                """)
                tables = {row["table_name"] for row in cur.fetchall()}
                missing = [t for t in PIPELINE_TABLES if t not in tables]
                print("Missing pipeline tables:", missing or "none")

                if "generation_jobs" in tables:
                    cur.execute("""
                        SELECT job_type, status, COUNT(*) AS n
                        FROM generation_jobs
                        GROUP BY job_type, status
                        ORDER BY job_type, status
                    """)
                    for row in cur.fetchall():
                        print(f"  {row['job_type']:<22} {row['status']:<10} {row['n']}")

    except Exception as e:
        print(f"Error connecting to DB: {e}")


if __name__ == "__main__":
    check_tables(create="--create" in sys.argv)
