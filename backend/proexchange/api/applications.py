from fastapi import APIRouter, Depends, status

from proexchange.api.deps import get_workflow_engine
from proexchange.auth import get_current_profile_id
from proexchange.schemas import (
    ApplicationCreate,
    ApplicationListResponse,
    ApplicationResponse,
    ApplicationUpdate,
    PosterApplicationListResponse,
    PosterApplicationResponse,
)
from proexchange.services.store import UNSET
from proexchange.services.workflow import WorkflowEngine

# Mounted under /jobs: applications against a posting
jobs_router = APIRouter()

# Mounted under /applications: an application by id
router = APIRouter()


@jobs_router.post(
    "/{job_id}/applications",
    response_model=ApplicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def apply_to_job(
    job_id: str,
    body: ApplicationCreate,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    application = await engine.apply_to_job(job_id, profile_id, body.cover_note, body.proposed_rate)
    return ApplicationResponse.model_validate(application)


@jobs_router.get("/{job_id}/applications", response_model=PosterApplicationListResponse)
async def list_job_applications(
    job_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    applications = await engine.list_job_applications(job_id, profile_id)
    return PosterApplicationListResponse(
        applications=[PosterApplicationResponse.model_validate(a) for a in applications],
        total=len(applications),
    )


@router.get("", response_model=ApplicationListResponse)
async def list_my_applications(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    applications = await engine.list_my_applications(profile_id)
    return ApplicationListResponse(
        applications=[ApplicationResponse.model_validate(a) for a in applications],
        total=len(applications),
    )


@router.patch("/{application_id}")
async def update_application(
    application_id: str,
    update: ApplicationUpdate,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
) -> dict:
    # Omitted notes leave the stored value alone; an explicit null clears it
    notes = update.notes if "notes" in update.model_fields_set else UNSET
    application = await engine.update_application_status(
        application_id, update.status, profile_id, notes=notes
    )
    # Notes are private to the poster
    schema = ApplicationResponse if application.applicant_profile_id == profile_id else PosterApplicationResponse
    return schema.model_validate(application).model_dump(mode="json", by_alias=True)


@router.delete("/{application_id}", response_model=ApplicationResponse)
async def withdraw_application(
    application_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    application = await engine.withdraw_application(application_id, profile_id)
    return ApplicationResponse.model_validate(application)
