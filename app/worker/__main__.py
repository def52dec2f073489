"""
Foreground worker process: `python -m app.worker`.

Any number of these can poll the same database; the claim is atomic.
"""
from __future__ import annotations

import logging
import signal
from pathlib import Path

from dotenv import load_dotenv

from app.braille.liblouis import LouTranslator
from app.braille.transcriber import BrailleTranscriber
from app.config import get_settings
from app.infra.artifact_db import ArtifactRepository
from app.infra.content_db import PostgresContentRepository
from app.infra.job_db import PostgresJobQueue
from app.infra.media_storage import LocalMediaStorage
from app.services.generation import OpenAIGenerator
from app.worker.dispatcher import WorkerDispatcher
from app.worker.handlers import HandlerContext, build_handlers

logger = logging.getLogger("app.worker")


def build_dispatcher() -> WorkerDispatcher:
    settings = get_settings()

    content = PostgresContentRepository()
    artifacts = ArtifactRepository()
    queue = PostgresJobQueue(lease_seconds=settings.job_lease_seconds)
    for repo in (content, artifacts, queue):
        repo.ensure_schema()

    translator = LouTranslator()
    if not translator.is_available():
        logger.warning("%s not found on PATH; braille export jobs will fail", translator.binary)

    ctx = HandlerContext(
        content=content,
        artifacts=artifacts,
        generator=OpenAIGenerator(),
        storage=LocalMediaStorage(),
        transcriber=BrailleTranscriber(translator),
    )
    return WorkerDispatcher(queue, build_handlers(ctx), poll_interval=settings.worker_poll_interval)


def main() -> None:
    load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    dispatcher = build_dispatcher()

    def handle_signal(signum, frame):
        logger.info("Received signal %s, stopping after the current job", signum)
        dispatcher.stop()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    dispatcher.run()


if __name__ == "__main__":
    main()
