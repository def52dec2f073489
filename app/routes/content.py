from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..schemas import ContentResponse
from ..services.artifact_service import ArtifactService, get_artifact_service

router = APIRouter(prefix="/content", tags=["content"])


@router.get("/{content_key}", response_model=ContentResponse)
def get_content(
    content_key: str,
    locale: Optional[str] = None,
    version: int = Query(0, ge=0),
    service: ArtifactService = Depends(get_artifact_service),
) -> ContentResponse:
    """
    Canonical payload, or its translation for another locale.
    Until the translation exists the canonical payload is served as a fallback.
    """
    return service.get_content(content_key, locale, version)
