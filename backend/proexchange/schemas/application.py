from datetime import datetime
from typing import Optional

from pydantic import Field

from proexchange.schemas.base import CamelModel
from proexchange.services.transitions import ApplicationStatus


class ApplicationCreate(CamelModel):
    cover_note: str = ""
    proposed_rate: Optional[float] = Field(default=None, ge=0)


class ApplicationUpdate(CamelModel):
    status: Optional[str] = None
    notes: Optional[str] = None


class ApplicationResponse(CamelModel):
    id: str
    job_id: str
    applicant_profile_id: str
    cover_note: str
    proposed_rate: Optional[float] = None
    status: ApplicationStatus
    created_at: datetime
    updated_at: datetime


class PosterApplicationResponse(ApplicationResponse):
    """Poster's view of an application, including private notes."""

    notes: Optional[str] = None


class ApplicationListResponse(CamelModel):
    applications: list[ApplicationResponse]
    total: int


class PosterApplicationListResponse(CamelModel):
    applications: list[PosterApplicationResponse]
    total: int
