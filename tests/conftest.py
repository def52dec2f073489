from __future__ import annotations

from typing import Any, Dict

import pytest

from app.braille.transcriber import BrailleTranscriber
from app.infra.media_storage import LocalMediaStorage
from app.worker.handlers import HandlerContext
from tests.utils.fakes import FakeGenerator, FakeTranslator
from tests.utils.sqlite_test_db import SQLiteTestDB


@pytest.fixture
def sqlite_db() -> SQLiteTestDB:
    db = SQLiteTestDB()
    db.ensure_schema()
    return db


@pytest.fixture
def fake_translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def media_storage(tmp_path) -> LocalMediaStorage:
    return LocalMediaStorage(root=str(tmp_path / "media"), public_base_url="/media")


@pytest.fixture
def handler_context(sqlite_db, fake_generator, media_storage, fake_translator) -> HandlerContext:
    return HandlerContext(
        content=sqlite_db,
        artifacts=sqlite_db,
        generator=fake_generator,
        storage=media_storage,
        transcriber=BrailleTranscriber(fake_translator),
    )


@pytest.fixture
def lesson_payload() -> Dict[str, Any]:
    return {
        "title": "Newton's second law",
        "body": "Force is $F = ma$ where F is force.",
    }
