from datetime import datetime
from typing import Optional

from pydantic import Field

from proexchange.schemas.base import CamelModel
from proexchange.services.transitions import BenchEntryStatus, InvitationStatus


class ReorderItem(CamelModel):
    id: str
    # Accepted for compatibility; the list position decides the new priority
    priority: Optional[int] = None


class ReorderRequest(CamelModel):
    firm_id: str
    items: list[ReorderItem] = Field(min_length=1)


class InviteRequest(CamelModel):
    firm_id: str
    profile_id: str
    category: Optional[str] = None
    categories: Optional[list[str]] = None
    custom_title: Optional[str] = None
    message: Optional[str] = None

    def category_list(self) -> Optional[list[str]]:
        if self.categories is not None:
            return self.categories
        return [self.category] if self.category else None


class BenchEntryUpdate(CamelModel):
    custom_title: Optional[str] = None
    categories: Optional[list[str]] = None
    note: Optional[str] = None
    visibility_public: Optional[bool] = None


class BenchEntryResponse(CamelModel):
    id: str
    firm_id: str
    profile_id: str
    status: BenchEntryStatus
    priority: Optional[int] = None
    categories: list[str] = []
    custom_title: Optional[str] = None
    note: Optional[str] = None
    visibility_public: bool
    created_at: datetime
    updated_at: datetime


class BenchListResponse(CamelModel):
    entries: list[BenchEntryResponse]
    total: int


class InvitationResponse(CamelModel):
    id: str
    firm_id: str
    profile_id: str
    bench_entry_id: Optional[str] = None
    invited_by_profile_id: str
    message: Optional[str] = None
    custom_title_offer: Optional[str] = None
    categories_suggested: list[str] = []
    status: InvitationStatus
    expires_at: datetime
    responded_at: Optional[datetime] = None
    created_at: datetime


class InvitationListResponse(CamelModel):
    invitations: list[InvitationResponse]
    total: int
