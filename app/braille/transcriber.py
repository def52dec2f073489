from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from pydantic import BaseModel

from app.errors import TranscriptionFailure
from .brf import BRAILLE_SPACE, format_to_brf
from .liblouis import BrailleTable
from .segmentation import DEFAULT_RULES, SegmentationRules, clean_latex_for_nemeth, segment_lesson

logger = logging.getLogger(__name__)

NEMETH_OPEN = "⠸⠩"
NEMETH_CLOSE = "⠸⠱"


class BrailleTranslator(Protocol):
    """Grade-2 / Nemeth translation primitive."""

    def translate(self, text: str, table: BrailleTable) -> str:
        ...

    def back_translate(self, braille: str, table: BrailleTable) -> str:
        ...


class BrailleSegment(BaseModel):
    type: str
    original: str
    braille: str


class TranscriptionStats(BaseModel):
    total_segments: int = 0
    text_segments: int = 0
    math_segments: int = 0
    braille_length: int = 0


class BrailleValidation(BaseModel):
    back_translated: str = ""
    is_valid: bool = False
    error: Optional[str] = None


class MixedBrailleResult(BaseModel):
    segments: List[BrailleSegment] = []
    full_braille: str = ""
    english_only: str = ""
    english_braille: str = ""
    math_only: List[str] = []
    brf: str = ""
    stats: TranscriptionStats = TranscriptionStats()
    success: bool = True
    error: Optional[str] = None


class BrailleTranscriber:
    """
    Converts mixed text/math lessons into braille.

    Text segments use literary grade-2 braille, math segments are cleaned of
    LaTeX and transcribed to Nemeth code between begin/end indicators.
    """

    def __init__(self, translator: BrailleTranslator, rules: SegmentationRules = DEFAULT_RULES):
        self.translator = translator
        self.rules = rules

    def convert(self, lesson: str) -> MixedBrailleResult:
        """Never raises on primitive failure; returns success=False instead."""
        try:
            return self._convert(lesson)
        except TranscriptionFailure as e:
            logger.error("Error converting mixed lesson: %s", e)
            return MixedBrailleResult(success=False, error=str(e))

    def translate_nemeth(self, expression: str) -> str:
        return self.translator.translate(clean_latex_for_nemeth(expression), "nemeth")

    def validate(self, braille: str, table: BrailleTable = "en-us-g2") -> BrailleValidation:
        """Back-translates to print; the braille counts as valid when liblouis yields any text."""
        try:
            text = self.translator.back_translate(braille, table)
        except TranscriptionFailure as e:
            logger.error("Error back-translating braille: %s", e)
            return BrailleValidation(error=str(e))
        return BrailleValidation(back_translated=text, is_valid=bool(text.strip()))

    def _convert(self, lesson: str) -> MixedBrailleResult:
        segments = segment_lesson(lesson, self.rules)

        converted: List[BrailleSegment] = []
        english_lines: List[str] = []
        english_braille: List[str] = []
        math_only: List[str] = []

        for segment in segments:
            if segment.type == "text":
                braille = self.translator.translate(segment.content, "en-us-g2")
                english_lines.append(segment.content)
                english_braille.append(braille)
            else:
                nemeth = self.translator.translate(clean_latex_for_nemeth(segment.content), "nemeth")
                braille = NEMETH_OPEN + nemeth + NEMETH_CLOSE
                math_only.append(f"{segment.original} → {braille}")

            converted.append(BrailleSegment(type=segment.type, original=segment.original, braille=braille))

        # One blank cell between segments
        full_braille = BRAILLE_SPACE.join(s.braille for s in converted).strip()
        text_count = sum(1 for s in converted if s.type == "text")

        return MixedBrailleResult(
            segments=converted,
            full_braille=full_braille,
            english_only="\n".join(english_lines).strip(),
            english_braille=BRAILLE_SPACE.join(english_braille),
            math_only=math_only,
            brf=format_to_brf(full_braille),
            stats=TranscriptionStats(
                total_segments=len(converted),
                text_segments=text_count,
                math_segments=len(converted) - text_count,
                braille_length=len(full_braille),
            ),
        )
