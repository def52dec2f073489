from __future__ import annotations

import logging
import shutil
import subprocess
from typing import List, Literal, Optional

from app.config import get_settings
from app.errors import TranscriptionFailure

logger = logging.getLogger(__name__)

BrailleTable = Literal["en-us-g2", "nemeth"]


class LouTranslator:
    """
    Thin wrapper around the liblouis `lou_translate` CLI.

    Text is passed on stdin and braille (Unicode dots) is read from stdout.
    Any failure to run the binary surfaces as TranscriptionFailure.
    """

    def __init__(
        self,
        binary: Optional[str] = None,
        text_table: Optional[str] = None,
        math_table: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        settings = get_settings()
        self.binary = binary or settings.lou_translate_bin
        self.tables = {
            "en-us-g2": text_table or settings.braille_text_table,
            "nemeth": math_table or settings.braille_math_table,
        }
        self.timeout = timeout or settings.braille_timeout_seconds

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def translate(self, text: str, table: BrailleTable) -> str:
        return self._run([self.tables[table]], text)

    def back_translate(self, braille: str, table: BrailleTable) -> str:
        """Braille back to print, used to sanity-check a transcription."""
        return self._run(["--backward", self.tables[table]], braille)

    def _run(self, args: List[str], stdin_text: str) -> str:
        cmd = [self.binary] + args
        try:
            result = subprocess.run(
                cmd,
                input=stdin_text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise TranscriptionFailure(
                f"{self.binary} not found. Install liblouis (e.g. sudo apt install liblouis-bin)"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise TranscriptionFailure(f"{self.binary} timed out after {self.timeout}s") from e
        except OSError as e:
            raise TranscriptionFailure(f"Could not run {self.binary}: {e}") from e
        except UnicodeDecodeError as e:
            raise TranscriptionFailure(f"{self.binary} returned undecodable output: {e}") from e

        if result.returncode != 0:
            raise TranscriptionFailure(
                f"liblouis translation failed ({result.returncode}): {result.stderr.strip()}"
            )
        if result.stderr:
            logger.warning("Liblouis translation warning: %s", result.stderr.strip())

        return result.stdout.strip()
