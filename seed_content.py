"""
Loads canonical lesson payloads into the version store.

Usage:
    python seed_content.py lessons.json [--locale en-US]

The file holds an object mapping content keys to payloads. Re-running with
unchanged payloads creates no new versions.
"""
import argparse
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from app.config import get_settings
from app.infra.content_db import PostgresContentRepository

logger = logging.getLogger("seed_content")


def seed(path: Path, locale: str) -> None:
    lessons = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(lessons, dict):
        raise SystemExit(f"{path} must contain a JSON object of content_key -> payload")

    repo = PostgresContentRepository()
    repo.ensure_schema()
    for content_key, payload in lessons.items():
        stored = repo.put_version(content_key, payload, locale)
        print(f"{content_key}: version {stored.version} ({stored.payload_hash[:12]})")


def main():
    load_dotenv()
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Seed canonical lesson content")
    parser.add_argument("path", type=Path)
    parser.add_argument("--locale", default=get_settings().default_locale)
    args = parser.parse_args()
    seed(args.path, args.locale)


if __name__ == "__main__":
    main()
