"""
Connection Model - directed relationship request between two profiles

Status Flow:
    pending → accepted | rejected   (recipient)
    pending → withdrawn             (requester)

At most one pending/accepted row may exist per unordered pair. The
partial unique index on pair_key enforces that in the database, so two
racing creates cannot both insert.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, text
from proexchange.database import Base, status_enum, utcnow
from proexchange.services.transitions import ConnectionStatus
import uuid


def make_pair_key(a: str, b: str) -> str:
    """Order-independent key for the profile pair {a, b}."""
    low, high = sorted((a, b))
    return f"{low}:{high}"


_OPEN_PAIR = text("status IN ('pending', 'accepted')")


class ConnectionRequest(Base):
    """
    Connection request ("friend request") between two profiles.

    Attributes:
        requester_profile_id: Profile that sent the request
        recipient_profile_id: Profile that may accept/reject it
        pair_key: make_pair_key(requester, recipient)
        status: pending | accepted | rejected | withdrawn
    """

    __tablename__ = "connections"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    requester_profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    recipient_profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    pair_key = Column(String(80), nullable=False, index=True)
    status = Column(
        status_enum(ConnectionStatus),
        nullable=False,
        default=ConnectionStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index(
            "uq_connections_open_pair",
            "pair_key",
            unique=True,
            sqlite_where=_OPEN_PAIR,
            postgresql_where=_OPEN_PAIR,
        ),
    )
