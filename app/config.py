from __future__ import annotations

from functools import lru_cache
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_timeout_seconds: float = 120.0

    postgres_host: str = "db"
    postgres_port: int = 5432
    postgres_user: str = "lessons"
    postgres_password: str = "lessons"
    postgres_db: str = "lessons"

    chat_model: str = "gpt-4.1-mini"
    image_model: str = "gpt-image-1"
    tts_model: str = "gpt-4o-mini-tts"
    tts_voice: str = "alloy"

    # Locale the ingestion step writes canonical payloads in
    default_locale: str = "en-US"

    # Worker
    worker_poll_interval: float = 0.5
    job_lease_seconds: int = 600

    # Media storage (generated images / audio)
    media_root: str = "storage"
    media_public_base_url: str = "/media"

    # Braille (liblouis CLI)
    lou_translate_bin: str = "lou_translate"
    braille_text_table: str = "unicode.dis,en-us-g2.ctb"
    braille_math_table: str = "unicode.dis,en-us-mathtext.ctb"
    braille_timeout_seconds: float = 30.0

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8"
    }

    @property
    def pg_dsn(self) -> str:
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
