from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors raised by the artifact pipeline."""


class NotFound(PipelineError):
    """Unknown content key, or an explicit version that was never ingested."""

    def __init__(self, content_key: str, version: int = 0):
        self.content_key = content_key
        self.version = version
        if version:
            super().__init__(f"Content {content_key!r} has no version {version}")
        else:
            super().__init__(f"Content {content_key!r} not found")


class GenerationFailure(PipelineError):
    """An external AI / image / speech call failed or returned unusable output."""


class TranscriptionFailure(PipelineError):
    """The braille translation primitive failed (e.g. liblouis is unavailable)."""
