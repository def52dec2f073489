from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import StoryResponse
from ..services.artifact_service import ArtifactService, get_artifact_service

router = APIRouter(prefix="/story", tags=["story"])


@router.get("/{content_key}", response_model=StoryResponse)
def get_story(
    content_key: str,
    locale: Optional[str] = None,
    version: int = Query(0, ge=0),
    service: ArtifactService = Depends(get_artifact_service),
) -> StoryResponse:
    """
    Illustrated story deck. Slides whose image or narration is missing are
    scheduled on every read until they exist.
    """
    return service.get_story(content_key, locale, version)
