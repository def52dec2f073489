from __future__ import annotations

import psycopg

from .config import get_settings


def get_conn() -> psycopg.Connection:
    """Opens a new connection to the pipeline database (one per operation)."""
    settings = get_settings()
    return psycopg.connect(settings.pg_dsn, autocommit=False)
