from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..schemas import JobResponse
from ..services.artifact_service import ArtifactService, get_artifact_service

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=JobResponse)
def get_job(job_id: str, service: ArtifactService = Depends(get_artifact_service)) -> JobResponse:
    job = service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.model_validate(job)
