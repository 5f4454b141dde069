from proexchange.schemas.connection import (
    ConnectionCreate,
    ConnectionDecision,
    ConnectionResponse,
    ConnectionListResponse,
    ConnectionStatusResponse,
    PendingCountResponse,
)
from proexchange.schemas.application import (
    ApplicationCreate,
    ApplicationUpdate,
    ApplicationResponse,
    PosterApplicationResponse,
    ApplicationListResponse,
    PosterApplicationListResponse,
)
from proexchange.schemas.bench import (
    ReorderItem,
    ReorderRequest,
    InviteRequest,
    BenchEntryUpdate,
    BenchEntryResponse,
    BenchListResponse,
    InvitationResponse,
    InvitationListResponse,
)
from proexchange.schemas.stats import StatsResponse

__all__ = [
    "ConnectionCreate",
    "ConnectionDecision",
    "ConnectionResponse",
    "ConnectionListResponse",
    "ConnectionStatusResponse",
    "PendingCountResponse",
    "ApplicationCreate",
    "ApplicationUpdate",
    "ApplicationResponse",
    "PosterApplicationResponse",
    "ApplicationListResponse",
    "PosterApplicationListResponse",
    "ReorderItem",
    "ReorderRequest",
    "InviteRequest",
    "BenchEntryUpdate",
    "BenchEntryResponse",
    "BenchListResponse",
    "InvitationResponse",
    "InvitationListResponse",
    "StatsResponse",
]
