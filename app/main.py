from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .config import get_settings
from .errors import NotFound
from .routes import braille, content, jobs, story

# Load environment variables (expects OPENAI_API_KEY, PG creds in .env)
load_dotenv(dotenv_path=Path(__file__).resolve().parent.parent / ".env")

logger = logging.getLogger(__name__)

app = FastAPI(title="Lesson Artifact Pipeline", version="0.1.0")
app.include_router(content.router)
app.include_router(story.router)
app.include_router(braille.router)
app.include_router(jobs.router)

_settings = get_settings()
if _settings.media_public_base_url.startswith("/"):
    # Serve locally stored story images and narration
    Path(_settings.media_root).mkdir(parents=True, exist_ok=True)
    app.mount(_settings.media_public_base_url, StaticFiles(directory=_settings.media_root), name="media")


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    logger.info("Not found: %s", exc)
    return JSONResponse(status_code=404, content={"error": "not_found"})


@app.get("/health")
def health() -> Dict[str, str]:
    """
    Health check endpoint to verify service status.

    Returns:
        Dict[str, str]: {"status": "ok"} if running.
    """
    return {"status": "ok"}


@app.get("/config")
def config_preview() -> Dict[str, str | None]:
    """
    Endpoint to preview current configuration (safely).

    Returns:
        Dict[str, str | None]: Configuration details like OpenAI key presence and the Postgres target.
    """
    settings = get_settings()
    return {
        "openai_key_present": "true" if settings.openai_api_key else "false",
        "postgres_host": f"{settings.postgres_host}:{settings.postgres_port}/{settings.postgres_db}",
        "chat_model": settings.chat_model,
        "lou_translate_bin": settings.lou_translate_bin,
    }
