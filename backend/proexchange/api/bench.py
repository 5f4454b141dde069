from fastapi import APIRouter, Depends, Query, status

from proexchange.api.deps import get_bench_service
from proexchange.auth import get_current_profile_id
from proexchange.schemas import (
    BenchEntryResponse,
    BenchEntryUpdate,
    BenchListResponse,
    InvitationListResponse,
    InvitationResponse,
    InviteRequest,
    ReorderRequest,
)
from proexchange.services.bench import BenchOrderingService

router = APIRouter()


def _bench_list(entries) -> BenchListResponse:
    return BenchListResponse(
        entries=[BenchEntryResponse.model_validate(e) for e in entries],
        total=len(entries),
    )


@router.get("", response_model=BenchListResponse)
async def list_bench(
    firm_id: str = Query(..., alias="firmId"),
    include_pending: bool = Query(False, alias="includePending"),
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    return _bench_list(await service.list_bench(firm_id, profile_id, include_pending))


@router.post("/reorder", response_model=BenchListResponse)
async def reorder_bench(
    body: ReorderRequest,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    # List position is authoritative; client-sent priorities are ignored
    ordered_ids = [item.id for item in body.items]
    return _bench_list(await service.reorder(body.firm_id, ordered_ids, profile_id))


@router.post("/invite", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def invite_to_bench(
    body: InviteRequest,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    invitation = await service.invite(
        body.firm_id,
        body.profile_id,
        profile_id,
        categories=body.category_list(),
        custom_title=body.custom_title,
        message=body.message,
    )
    return InvitationResponse.model_validate(invitation)


@router.get("/invitations", response_model=InvitationListResponse)
async def list_invitations(
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    views = await service.list_invitations(profile_id)
    return InvitationListResponse(
        invitations=[
            InvitationResponse.model_validate(view.invitation).model_copy(update={"status": view.status})
            for view in views
        ],
        total=len(views),
    )


@router.post("/invitations/{invitation_id}/accept", response_model=BenchEntryResponse)
async def accept_invitation(
    invitation_id: str,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    entry = await service.accept_invite(invitation_id, profile_id)
    return BenchEntryResponse.model_validate(entry)


@router.post("/invitations/{invitation_id}/decline", response_model=InvitationResponse)
async def decline_invitation(
    invitation_id: str,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    invitation = await service.decline_invite(invitation_id, profile_id)
    return InvitationResponse.model_validate(invitation)


@router.delete("/invitations/{invitation_id}", response_model=InvitationResponse)
async def cancel_invitation(
    invitation_id: str,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    invitation = await service.cancel_invite(invitation_id, profile_id)
    return InvitationResponse.model_validate(invitation)


@router.patch("/{entry_id}", response_model=BenchEntryResponse)
async def update_bench_entry(
    entry_id: str,
    update: BenchEntryUpdate,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    entry = await service.update_entry(entry_id, profile_id, **update.model_dump(exclude_unset=True))
    return BenchEntryResponse.model_validate(entry)


@router.delete("/{entry_id}", response_model=BenchEntryResponse)
async def remove_bench_entry(
    entry_id: str,
    service: BenchOrderingService = Depends(get_bench_service),
    profile_id: str = Depends(get_current_profile_id),
):
    entry = await service.remove_entry(entry_id, profile_id)
    return BenchEntryResponse.model_validate(entry)
