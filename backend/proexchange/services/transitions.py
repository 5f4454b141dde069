"""
Status Enums & Transition Tables

Pure data describing every stateful entity in the relationship workflow
and which party may move it from one status to another.

Connection:
    pending --accept--> accepted      (recipient)
    pending --reject--> rejected      (recipient)
    pending --withdraw--> withdrawn   (requester)

Job application:
    applied --shortlist--> shortlisted
    applied --hire--------> hired
    applied --reject------> rejected
    applied --withdraw----> withdrawn      (applicant only)
    shortlisted --hire----> hired
    shortlisted --reject--> rejected
    hired --complete------> completed

Bench invitation:
    pending --accept--> accepted      (invitee)
    pending --decline--> declined     (invitee)
    pending --cancel--> cancelled     (firm admin)
    pending --expire--> expired       (evaluated at read time)

Any (status, target) pair missing from a table is illegal.
"""

from enum import Enum
from typing import Dict, Optional


class VerificationState(str, Enum):
    UNVERIFIED = "unverified"
    PENDING_VERIFICATION = "pending_verification"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class ApplicationStatus(str, Enum):
    APPLIED = "applied"
    SHORTLISTED = "shortlisted"
    HIRED = "hired"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    COMPLETED = "completed"


class JobStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    FILLED = "filled"


class BenchEntryStatus(str, Enum):
    PENDING_INVITE = "pending_invite"
    ACTIVE = "active"
    REMOVED = "removed"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class FirmRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    MEMBER = "member"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Party(str, Enum):
    """Which side of a relationship is allowed to drive a transition."""

    REQUESTER = "requester"
    RECIPIENT = "recipient"
    APPLICANT = "applicant"
    POSTER = "poster"
    INVITEE = "invitee"
    FIRM_ADMIN = "firm_admin"
    SYSTEM = "system"


# {current: {target: party}}
CONNECTION_TRANSITIONS: Dict[ConnectionStatus, Dict[ConnectionStatus, Party]] = {
    ConnectionStatus.PENDING: {
        ConnectionStatus.ACCEPTED: Party.RECIPIENT,
        ConnectionStatus.REJECTED: Party.RECIPIENT,
        ConnectionStatus.WITHDRAWN: Party.REQUESTER,
    },
}

APPLICATION_TRANSITIONS: Dict[ApplicationStatus, Dict[ApplicationStatus, Party]] = {
    ApplicationStatus.APPLIED: {
        ApplicationStatus.SHORTLISTED: Party.POSTER,
        ApplicationStatus.HIRED: Party.POSTER,
        ApplicationStatus.REJECTED: Party.POSTER,
        ApplicationStatus.WITHDRAWN: Party.APPLICANT,
    },
    ApplicationStatus.SHORTLISTED: {
        ApplicationStatus.HIRED: Party.POSTER,
        ApplicationStatus.REJECTED: Party.POSTER,
    },
    ApplicationStatus.HIRED: {
        ApplicationStatus.COMPLETED: Party.POSTER,
    },
}

INVITATION_TRANSITIONS: Dict[InvitationStatus, Dict[InvitationStatus, Party]] = {
    InvitationStatus.PENDING: {
        InvitationStatus.ACCEPTED: Party.INVITEE,
        InvitationStatus.DECLINED: Party.INVITEE,
        InvitationStatus.CANCELLED: Party.FIRM_ADMIN,
        InvitationStatus.EXPIRED: Party.SYSTEM,
    },
}

# Statuses that block a second row for the same pair
OPEN_CONNECTION_STATUSES = (ConnectionStatus.PENDING, ConnectionStatus.ACCEPTED)

FIRM_MANAGER_ROLES = (FirmRole.ADMIN, FirmRole.MANAGER)

# Subject lines for application status emails
APPLICATION_STATUS_DISPLAY = {
    ApplicationStatus.APPLIED: "Application Received",
    ApplicationStatus.SHORTLISTED: "Shortlisted",
    ApplicationStatus.HIRED: "Hired",
    ApplicationStatus.WITHDRAWN: "Withdrawn",
    ApplicationStatus.REJECTED: "Not Selected",
    ApplicationStatus.COMPLETED: "Completed",
}


def party_for_target(table: Dict, target) -> Optional[Party]:
    """
    Return the party allowed to move an entity into ``target``.

    Looks across every source status, so callers can check the actor
    before knowing whether the move is legal from the current status.
    Returns None when no transition ends in ``target``.
    """
    for targets in table.values():
        if target in targets:
            return targets[target]
    return None


def is_legal(table: Dict, current, target) -> bool:
    return target in table.get(current, {})


def is_terminal(table: Dict, status) -> bool:
    return not table.get(status)
