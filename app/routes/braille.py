from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from ..braille.liblouis import LouTranslator
from ..braille.normalize import normalize_lesson
from ..braille.transcriber import BrailleTranscriber
from ..errors import TranscriptionFailure
from ..schemas import (
    BrailleResponse,
    ConvertRequest,
    ConvertResponse,
    ConvertStats,
    ErrorResponse,
    NemethRequest,
    NemethResponse,
    SegmentView,
    ValidateRequest,
    ValidateResponse,
)
from ..services.artifact_service import DEFAULT_FORMAT, DEFAULT_SCOPE, ArtifactService, get_artifact_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/braille", tags=["braille"])

SEGMENT_DESCRIPTIONS = {
    "text": "English Braille (Grade 2)",
    "math": "Nemeth Code (Math)",
}

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing input"},
    500: {"model": ErrorResponse, "description": "Braille engine failure"},
}


def get_transcriber() -> BrailleTranscriber:
    return BrailleTranscriber(LouTranslator())


def _error(status_code: int, error: str, message: Optional[str] = None, example: Optional[dict] = None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, example=example)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post("/convert", response_model=ConvertResponse, responses=ERROR_RESPONSES)
def convert_lesson(req: ConvertRequest, transcriber: BrailleTranscriber = Depends(get_transcriber)):
    """
    Synchronous transcription of a mixed text/math lesson.
    With `normalize` the lesson is first rewritten so that math is delimited.
    """
    if not req.lesson.strip():
        return _error(400, "Lesson content is required",
                      example={"lesson": "The formula for force is $F = ma$ where F is force in Newtons."})

    processed = normalize_lesson(req.lesson) if req.normalize else req.lesson
    result = transcriber.convert(processed)
    if not result.success:
        return _error(500, "Failed to convert mixed lesson", message=result.error)

    return ConvertResponse(
        original=req.lesson,
        normalized=processed if req.normalize else None,
        segments=[
            SegmentView(
                type=seg.type,
                original=seg.original,
                braille=seg.braille,
                description=SEGMENT_DESCRIPTIONS[seg.type],
            )
            for seg in result.segments
        ],
        full_braille=result.full_braille,
        english_text_only=result.english_only,
        english_braille=result.english_braille,
        math_expressions_found=result.math_only,
        brf=result.brf,
        stats=ConvertStats(**result.stats.model_dump()),
    )


@router.post("/nemeth", response_model=NemethResponse, responses=ERROR_RESPONSES)
def translate_nemeth(req: NemethRequest, transcriber: BrailleTranscriber = Depends(get_transcriber)):
    expression = (req.expression or "").strip()
    if not expression:
        return _error(400, "Text or expression is required",
                      example={"text": "sin(theta) = opposite / hypotenuse"})

    try:
        braille = transcriber.translate_nemeth(expression)
    except TranscriptionFailure as e:
        logger.error("Error translating to Nemeth: %s", e)
        return _error(500, "Nemeth translation failed", message=str(e))

    return NemethResponse(original_expression=expression, nemeth_braille=braille)


@router.post("/validate", response_model=ValidateResponse, responses=ERROR_RESPONSES)
def validate_braille(req: ValidateRequest, transcriber: BrailleTranscriber = Depends(get_transcriber)):
    """Back-translates braille to print so a transcription can be checked by eye."""
    if not req.braille.strip():
        return _error(400, "Braille is required", example={"braille": "⠠⠋⠕⠗⠉⠑", "table": "en-us-g2"})

    validation = transcriber.validate(req.braille, req.table)
    if validation.error:
        return _error(500, "Braille validation failed", message=validation.error)

    return ValidateResponse(back_translated=validation.back_translated, is_valid=validation.is_valid)


@router.get("/{content_key}", response_model=BrailleResponse, responses={400: {"description": "Unknown format"}})
def get_braille(
    content_key: str,
    locale: Optional[str] = None,
    version: int = Query(0, ge=0),
    scope: str = DEFAULT_SCOPE,
    format: str = DEFAULT_FORMAT,
    service: ArtifactService = Depends(get_artifact_service),
) -> BrailleResponse:
    """Cached braille export of stored content; scheduled on first request."""
    if format not in ("full", "brf"):
        raise HTTPException(status_code=400, detail="format must be 'full' or 'brf'")
    return service.get_braille(content_key, locale, version, scope, format)
