"""
Job & JobApplication Models

Jobs are posted by a profile (the poster). Applications move through:

    applied → shortlisted → hired → completed
    applied/shortlisted → rejected
    applied → withdrawn (applicant only)

Only one non-withdrawn application may exist per (job, applicant).
"""

from sqlalchemy import Column, String, Float, Text, DateTime, ForeignKey, Index, text
from proexchange.database import Base, status_enum, utcnow
from proexchange.services.transitions import ApplicationStatus, JobStatus
import uuid


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    poster_profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    status = Column(status_enum(JobStatus), nullable=False, default=JobStatus.OPEN, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


_ACTIVE_APPLICATION = text("status <> 'withdrawn'")


class JobApplication(Base):
    """
    Application by a profile to a job posting.

    Attributes:
        cover_note: Applicant's pitch
        proposed_rate: Optional rate proposal
        status: applied | shortlisted | hired | rejected | withdrawn | completed
        notes: Poster-private annotation, editable without a status change
    """

    __tablename__ = "job_applications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    job_id = Column(String, ForeignKey("jobs.id"), nullable=False, index=True)
    applicant_profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    cover_note = Column(Text, nullable=False, default="")
    proposed_rate = Column(Float, nullable=True)
    status = Column(
        status_enum(ApplicationStatus),
        nullable=False,
        default=ApplicationStatus.APPLIED,
        index=True,
    )
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_job_applications_active",
            "job_id",
            "applicant_profile_id",
            unique=True,
            sqlite_where=_ACTIVE_APPLICATION,
            postgresql_where=_ACTIVE_APPLICATION,
        ),
    )
