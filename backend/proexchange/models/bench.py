"""
Firm Bench Models - a firm's curated, ordered roster of professionals

FirmBenchEntry status flow:
    pending_invite → active → removed
    pending_invite → (deleted) on cancel / decline / expiry

BenchInvitation is the companion record of a pending_invite entry and
keeps the invite history (accepted, declined, cancelled, expired).

Display order is descending priority: reorder assigns BASE - i * STEP,
so the first item of a reorder batch gets the largest value.
"""

from sqlalchemy import (
    Column, String, Integer, Text, Boolean, DateTime, JSON, ForeignKey, Index, text,
)
from proexchange.database import Base, status_enum, utcnow
from proexchange.services.transitions import BenchEntryStatus, InvitationStatus
import uuid


_LIVE_ENTRY = text("status <> 'removed'")
_PENDING_INVITE = text("status = 'pending'")


class FirmBenchEntry(Base):
    """
    Membership of a professional in a firm's bench.

    Attributes:
        status: pending_invite | active | removed (soft delete)
        priority: Ordering key, None until the entry is active
        categories: Ordered list of labels (max 8)
        visibility_public: Shown on the firm's public page
    """

    __tablename__ = "firm_bench_entries"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    firm_id = Column(String, ForeignKey("firms.id"), nullable=False, index=True)
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    status = Column(
        status_enum(BenchEntryStatus),
        nullable=False,
        default=BenchEntryStatus.PENDING_INVITE,
    )
    priority = Column(Integer, nullable=True)
    categories = Column(JSON, nullable=False, default=list)
    custom_title = Column(String(80), nullable=True)
    note = Column(Text, nullable=True)
    visibility_public = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_firm_bench_entries_live",
            "firm_id",
            "profile_id",
            unique=True,
            sqlite_where=_LIVE_ENTRY,
            postgresql_where=_LIVE_ENTRY,
        ),
    )


class BenchInvitation(Base):
    __tablename__ = "bench_invitations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    firm_id = Column(String, ForeignKey("firms.id"), nullable=False, index=True)
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    bench_entry_id = Column(String, nullable=True)
    invited_by_profile_id = Column(String, ForeignKey("profiles.id"), nullable=False)
    message = Column(Text, nullable=True)
    custom_title_offer = Column(String(80), nullable=True)
    categories_suggested = Column(JSON, nullable=False, default=list)
    status = Column(
        status_enum(InvitationStatus),
        nullable=False,
        default=InvitationStatus.PENDING,
    )
    expires_at = Column(DateTime, nullable=False)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index(
            "uq_bench_invitations_pending",
            "firm_id",
            "profile_id",
            unique=True,
            sqlite_where=_PENDING_INVITE,
            postgresql_where=_PENDING_INVITE,
        ),
    )
