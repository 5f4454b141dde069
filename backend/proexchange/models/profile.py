"""
Profile & Firm Models - identities that take part in the workflows

Profiles are created by account onboarding (external) and are never deleted
here. Firms own a bench of professionals; FirmMember rows say who may
administer that bench.
"""

from sqlalchemy import Column, String, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint
from proexchange.database import Base, status_enum, utcnow
from proexchange.services.transitions import VerificationState, FirmRole, MembershipStatus
import uuid


class Profile(Base):
    """
    Verified or unverified professional / firm-admin identity.

    Attributes:
        verification: unverified | pending_verification | verified | rejected
        listed: Visible in directory search
        email_preferences: Per-kind opt-outs, None means send everything
    """

    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    display_name = Column(String(200), nullable=False, default="")
    email = Column(String(320), nullable=True)
    verification = Column(
        status_enum(VerificationState),
        nullable=False,
        default=VerificationState.UNVERIFIED,
    )
    listed = Column(Boolean, nullable=False, default=False)
    email_preferences = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class Firm(Base):
    __tablename__ = "firms"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(200), nullable=False)
    slug = Column(String(200), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class FirmMember(Base):
    """Membership of a profile in a firm; admins and managers run the bench."""

    __tablename__ = "firm_members"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    firm_id = Column(String, ForeignKey("firms.id"), nullable=False, index=True)
    profile_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    role = Column(status_enum(FirmRole), nullable=False, default=FirmRole.MEMBER)
    status = Column(status_enum(MembershipStatus), nullable=False, default=MembershipStatus.ACTIVE)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("firm_id", "profile_id", name="uq_firm_members_firm_profile"),
    )
