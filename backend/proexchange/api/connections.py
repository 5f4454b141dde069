from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from proexchange.api.deps import get_workflow_engine
from proexchange.auth import get_current_profile_id
from proexchange.schemas import (
    ConnectionCreate,
    ConnectionDecision,
    ConnectionListResponse,
    ConnectionResponse,
    ConnectionStatusResponse,
    PendingCountResponse,
)
from proexchange.services.transitions import ConnectionStatus
from proexchange.services.workflow import WorkflowEngine

router = APIRouter()


@router.post("", response_model=ConnectionResponse, status_code=status.HTTP_201_CREATED)
async def create_connection(
    body: ConnectionCreate,
    response: Response,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    result = await engine.create_connection(profile_id, body.recipient_profile_id)
    if not result.created:
        # Idempotent repeat: hand back the open request
        response.status_code = status.HTTP_200_OK
    return ConnectionResponse.model_validate(result.connection)


@router.get("", response_model=ConnectionListResponse)
async def list_connections(
    status: Optional[ConnectionStatus] = Query(None),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    connections = await engine.list_connections(profile_id, status)
    return ConnectionListResponse(
        connections=[ConnectionResponse.model_validate(c) for c in connections],
        total=len(connections),
    )


@router.get("/status", response_model=ConnectionStatusResponse)
async def connection_status(
    other_profile_id: str = Query(..., alias="otherProfileId"),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    return ConnectionStatusResponse(**await engine.connection_status(profile_id, other_profile_id))


@router.get("/pending", response_model=PendingCountResponse)
async def pending_count(
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    return PendingCountResponse(count=await engine.pending_connection_count(profile_id))


@router.post("/{connection_id}/decision", response_model=ConnectionResponse)
async def decide_connection(
    connection_id: str,
    body: ConnectionDecision,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    connection = await engine.decide_connection(connection_id, body.decision, profile_id)
    return ConnectionResponse.model_validate(connection)


@router.delete("/{connection_id}", response_model=ConnectionResponse)
async def withdraw_connection(
    connection_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    profile_id: str = Depends(get_current_profile_id),
):
    connection = await engine.withdraw_connection(connection_id, profile_id)
    return ConnectionResponse.model_validate(connection)
