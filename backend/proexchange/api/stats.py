from fastapi import APIRouter, Depends
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from proexchange.auth import get_current_profile_id
from proexchange.database import get_db, utcnow
from proexchange.models import BenchInvitation, ConnectionRequest, Job, JobApplication
from proexchange.schemas import StatsResponse
from proexchange.services.transitions import ApplicationStatus, ConnectionStatus, InvitationStatus

router = APIRouter()


def _with_all_statuses(counts: dict, enum_cls) -> dict:
    """Key counts by status value, with every status present (default 0)."""
    keyed = {getattr(status, "value", status): count for status, count in counts.items()}
    return {member.value: keyed.get(member.value, 0) for member in enum_cls}


@router.get("", response_model=StatsResponse)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    profile_id: str = Depends(get_current_profile_id),
):
    # Connections by status, either side of the pair
    connection_result = await db.execute(
        select(ConnectionRequest.status, func.count(ConnectionRequest.id))
        .where(
            or_(
                ConnectionRequest.requester_profile_id == profile_id,
                ConnectionRequest.recipient_profile_id == profile_id,
            )
        )
        .group_by(ConnectionRequest.status)
    )
    connections = _with_all_statuses(dict(connection_result.all()), ConnectionStatus)

    pending_result = await db.execute(
        select(func.count(ConnectionRequest.id)).where(
            ConnectionRequest.recipient_profile_id == profile_id,
            ConnectionRequest.status == ConnectionStatus.PENDING,
        )
    )
    pending_received = pending_result.scalar() or 0

    # Applications sent
    sent_result = await db.execute(
        select(JobApplication.status, func.count(JobApplication.id))
        .where(JobApplication.applicant_profile_id == profile_id)
        .group_by(JobApplication.status)
    )
    applications = _with_all_statuses(dict(sent_result.all()), ApplicationStatus)

    # Applications received on jobs this profile posted
    received_result = await db.execute(
        select(JobApplication.status, func.count(JobApplication.id))
        .join(Job, Job.id == JobApplication.job_id)
        .where(Job.poster_profile_id == profile_id)
        .group_by(JobApplication.status)
    )
    received_applications = _with_all_statuses(dict(received_result.all()), ApplicationStatus)

    invitation_result = await db.execute(
        select(func.count(BenchInvitation.id)).where(
            BenchInvitation.profile_id == profile_id,
            BenchInvitation.status == InvitationStatus.PENDING,
            BenchInvitation.expires_at > utcnow(),
        )
    )
    bench_invitations_pending = invitation_result.scalar() or 0

    return StatsResponse(
        connections=connections,
        pending_received=pending_received,
        applications=applications,
        received_applications=received_applications,
        bench_invitations_pending=bench_invitations_pending,
    )
