from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.errors import NotFound
from app.hashing import sha256_json
from app.infra.content_db import PostgresContentRepository, resolve_payload
from app.models.content import ContentTranslation, ContentVersion


def _mock_conn(mock_get_conn):
    mock_conn = MagicMock()
    mock_cur = MagicMock()
    mock_conn.__enter__.return_value = mock_conn
    mock_conn.cursor.return_value.__enter__.return_value = mock_cur
    mock_get_conn.return_value = mock_conn
    return mock_conn, mock_cur


def _version_row(version=1, payload='{"title": "Force"}', payload_hash="h1"):
    return {
        "content_key": "ch:1",
        "version": version,
        "canonical_locale": "en-US",
        "payload_json": payload,
        "payload_hash": payload_hash,
        "created_at": datetime.now(timezone.utc),
    }


@patch("app.infra.content_db.get_conn")
def test_get_canonical_latest(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    mock_cur.fetchone.return_value = _version_row(version=2)

    version = PostgresContentRepository().get_canonical("ch:1")

    assert version.version == 2
    assert version.payload_json == {"title": "Force"}
    sql, params = mock_cur.execute.call_args[0]
    assert "ORDER BY version DESC" in sql
    assert params == ("ch:1",)


@patch("app.infra.content_db.get_conn")
def test_get_canonical_exact_version(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    mock_cur.fetchone.return_value = _version_row(version=1)

    PostgresContentRepository().get_canonical("ch:1", 1)

    assert mock_cur.execute.call_args[0][1] == ("ch:1", 1)


@patch("app.infra.content_db.get_conn")
def test_get_canonical_missing_raises(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    mock_cur.fetchone.return_value = None

    with pytest.raises(NotFound) as exc:
        PostgresContentRepository().get_canonical("ch:404", 3)
    assert exc.value.content_key == "ch:404"
    assert exc.value.version == 3


@patch("app.infra.content_db.get_conn")
def test_put_version_dedups_identical_payload(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    payload = {"title": "Force"}
    mock_cur.fetchone.return_value = _version_row(version=4, payload_hash=sha256_json(payload))

    version = PostgresContentRepository().put_version("ch:1", payload, "en-US")

    assert version.version == 4
    statements = [c[0][0] for c in mock_cur.execute.call_args_list]
    assert not any("INSERT INTO content_versions" in s for s in statements)


@patch("app.infra.content_db.get_conn")
def test_put_version_allocates_next_version(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    payload = {"title": "Force v2"}
    inserted = _version_row(version=5, payload='{"title": "Force v2"}', payload_hash=sha256_json(payload))
    mock_cur.fetchone.side_effect = [_version_row(version=4, payload_hash="old"), inserted]

    version = PostgresContentRepository().put_version("ch:1", payload, "en-US")

    assert version.version == 5
    statements = [c[0][0] for c in mock_cur.execute.call_args_list]
    assert "pg_advisory_xact_lock" in statements[0]
    insert_params = mock_cur.execute.call_args_list[-1][0][1]
    assert insert_params[1] == 5
    assert insert_params[4] == sha256_json(payload)


@patch("app.infra.content_db.get_conn")
def test_insert_translation_reports_creation(mock_get_conn):
    _, mock_cur = _mock_conn(mock_get_conn)
    mock_cur.rowcount = 1
    translation = ContentTranslation(
        content_key="ch:1", version=1, locale="es-ES",
        translated_payload_json={"title": "Fuerza"}, translated_hash="t1", model="m",
    )

    assert PostgresContentRepository().insert_translation(translation) is True
    assert "ON CONFLICT (content_key, version, locale) DO NOTHING" in mock_cur.execute.call_args[0][0]

    mock_cur.rowcount = 0
    assert PostgresContentRepository().insert_translation(translation) is False


def test_resolve_payload_prefers_translation():
    canonical = ContentVersion(
        content_key="ch:1", version=1, canonical_locale="en", payload_json={"title": "Force"}, payload_hash="h",
    )
    store = MagicMock()
    store.get_translation.return_value = ContentTranslation(
        content_key="ch:1", version=1, locale="es-ES",
        translated_payload_json={"title": "Fuerza"}, translated_hash="t",
    )

    assert resolve_payload(store, canonical, "es") == {"title": "Fuerza"}
    store.get_translation.assert_called_once_with("ch:1", 1, "es-ES")


def test_resolve_payload_canonical_cases():
    canonical = ContentVersion(
        content_key="ch:1", version=1, canonical_locale="en", payload_json={"title": "Force"}, payload_hash="h",
    )
    store = MagicMock()
    store.get_translation.return_value = None

    assert resolve_payload(store, canonical, "en-US") == {"title": "Force"}
    store.get_translation.assert_not_called()
    assert resolve_payload(store, canonical, "hi") == {"title": "Force"}
