from datetime import datetime
from typing import Optional

from pydantic import Field

from proexchange.schemas.base import CamelModel
from proexchange.services.transitions import ConnectionStatus


class ConnectionCreate(CamelModel):
    recipient_profile_id: str = Field(min_length=1)


class ConnectionDecision(CamelModel):
    decision: str


class ConnectionResponse(CamelModel):
    id: str
    requester_profile_id: str
    recipient_profile_id: str
    status: ConnectionStatus
    created_at: datetime
    updated_at: datetime


class ConnectionListResponse(CamelModel):
    connections: list[ConnectionResponse]
    total: int


class ConnectionStatusResponse(CamelModel):
    status: str
    connection_id: Optional[str] = None
    is_requester: bool = False


class PendingCountResponse(CamelModel):
    count: int
