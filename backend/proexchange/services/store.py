"""
Relationship Store - persistence boundary of the workflow engine

RelationshipStore is the interface the engine and bench service consume;
SqlRelationshipStore implements it on an SQLAlchemy AsyncSession.

Guarantees the engine relies on:
    - Uniqueness (one open connection per pair, one active application per
      job/applicant, one live bench entry / pending invite per firm/profile)
      is enforced by partial unique indexes. A losing insert raises
      UniqueViolation after the unit of work has been rolled back.
    - Status writes are compare-and-set: the UPDATE only matches while the
      row still has the expected status, so a stale read can at worst make
      the write miss (returns None), never overwrite a newer state.
    - batch_update_priorities writes the whole batch or nothing.

Writes are flushed, not committed; the caller ends the unit of work with
commit() so notifications fire only after the state is durable.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from proexchange.models import (
    Profile,
    FirmMember,
    ConnectionRequest,
    Job,
    JobApplication,
    FirmBenchEntry,
    BenchInvitation,
    make_pair_key,
)
from proexchange.services.transitions import (
    ApplicationStatus,
    BenchEntryStatus,
    ConnectionStatus,
    InvitationStatus,
    MembershipStatus,
    FIRM_MANAGER_ROLES,
    OPEN_CONNECTION_STATUSES,
)

logger = logging.getLogger(__name__)


class UniqueViolation(Exception):
    """An insert lost against a uniqueness constraint."""


class StaleBatch(Exception):
    """A batch write matched fewer rows than it was given."""


UNSET = object()


class RelationshipStore(ABC):
    """Data access consumed by the workflow engine and bench service."""

    # Lookups of external collaborators
    @abstractmethod
    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        pass

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        pass

    @abstractmethod
    async def get_firm_role(self, firm_id: str, profile_id: str) -> Optional[str]:
        """Role of an active member, None if not an active member."""
        pass

    async def is_firm_admin(self, firm_id: str, profile_id: str) -> bool:
        return await self.get_firm_role(firm_id, profile_id) in FIRM_MANAGER_ROLES

    # Connections
    @abstractmethod
    async def find_connection(self, a: str, b: str) -> Optional[ConnectionRequest]:
        """Open (pending/accepted) connection for the unordered pair {a, b}."""
        pass

    @abstractmethod
    async def find_latest_connection(self, a: str, b: str) -> Optional[ConnectionRequest]:
        pass

    @abstractmethod
    async def get_connection(self, connection_id: str) -> Optional[ConnectionRequest]:
        pass

    @abstractmethod
    async def insert_connection(self, requester_id: str, recipient_id: str) -> ConnectionRequest:
        pass

    @abstractmethod
    async def update_connection_status(
        self, connection_id: str, expected: ConnectionStatus, status: ConnectionStatus
    ) -> Optional[ConnectionRequest]:
        pass

    @abstractmethod
    async def list_connections(
        self, profile_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[ConnectionRequest]:
        pass

    @abstractmethod
    async def count_pending_received(self, profile_id: str) -> int:
        pass

    @abstractmethod
    async def list_pending_connections(self, created_before: datetime) -> List[ConnectionRequest]:
        pass

    # Applications
    @abstractmethod
    async def find_application(self, job_id: str, applicant_id: str) -> Optional[JobApplication]:
        """Active (non-withdrawn) application for (job, applicant)."""
        pass

    @abstractmethod
    async def get_application(self, application_id: str) -> Optional[JobApplication]:
        pass

    @abstractmethod
    async def insert_application(
        self,
        job_id: str,
        applicant_id: str,
        cover_note: str,
        proposed_rate: Optional[float] = None,
    ) -> JobApplication:
        pass

    @abstractmethod
    async def update_application_status(
        self,
        application_id: str,
        expected: ApplicationStatus,
        status: ApplicationStatus,
        notes=UNSET,
    ) -> Optional[JobApplication]:
        pass

    @abstractmethod
    async def list_applications_for_job(self, job_id: str) -> List[JobApplication]:
        pass

    @abstractmethod
    async def list_applications_by_applicant(self, applicant_id: str) -> List[JobApplication]:
        pass

    # Bench
    @abstractmethod
    async def get_bench_entry(self, entry_id: str) -> Optional[FirmBenchEntry]:
        pass

    @abstractmethod
    async def find_bench_entry(self, firm_id: str, profile_id: str) -> Optional[FirmBenchEntry]:
        """Live (non-removed) entry for (firm, profile)."""
        pass

    @abstractmethod
    async def list_active_bench_entries(self, firm_id: str) -> List[FirmBenchEntry]:
        pass

    @abstractmethod
    async def list_bench_entries(
        self, firm_id: str, statuses: Sequence[BenchEntryStatus]
    ) -> List[FirmBenchEntry]:
        pass

    @abstractmethod
    async def min_active_priority(self, firm_id: str) -> Optional[int]:
        pass

    @abstractmethod
    async def insert_bench_invite(
        self,
        firm_id: str,
        profile_id: str,
        invited_by: str,
        expires_at: datetime,
        categories: Optional[List[str]] = None,
        custom_title: Optional[str] = None,
        message: Optional[str] = None,
    ) -> BenchInvitation:
        """Insert a pending_invite entry and its companion invitation together."""
        pass

    @abstractmethod
    async def update_bench_entry(
        self, entry_id: str, expected: BenchEntryStatus, **fields
    ) -> Optional[FirmBenchEntry]:
        pass

    @abstractmethod
    async def delete_bench_entry(self, entry_id: str, expected: BenchEntryStatus) -> bool:
        pass

    @abstractmethod
    async def batch_update_priorities(self, firm_id: str, priorities: Dict[str, int]) -> None:
        pass

    # Invitations
    @abstractmethod
    async def get_invitation(self, invitation_id: str) -> Optional[BenchInvitation]:
        pass

    @abstractmethod
    async def find_pending_invitation(self, firm_id: str, profile_id: str) -> Optional[BenchInvitation]:
        pass

    @abstractmethod
    async def update_invitation_status(
        self,
        invitation_id: str,
        expected: InvitationStatus,
        status: InvitationStatus,
        responded_at: Optional[datetime] = None,
    ) -> Optional[BenchInvitation]:
        pass

    @abstractmethod
    async def list_invitations_for_profile(self, profile_id: str) -> List[BenchInvitation]:
        pass

    # Unit of work
    @abstractmethod
    async def commit(self) -> None:
        pass

    @abstractmethod
    async def rollback(self) -> None:
        pass


class SqlRelationshipStore(RelationshipStore):
    """RelationshipStore backed by an SQLAlchemy AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # ==================== Helpers ====================

    async def _insert(self, *rows) -> None:
        self.session.add_all(rows)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning(f"Unique constraint rejected insert: {e.orig}")
            raise UniqueViolation(str(e.orig)) from e

    async def _compare_and_set(self, model, row_id: str, expected, **values):
        """UPDATE model SET values WHERE id = row_id AND status = expected."""
        result = await self.session.execute(
            update(model)
            .where(model.id == row_id, model.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.session.get(model, row_id, populate_existing=True)

    async def _first(self, query):
        result = await self.session.execute(query.limit(1))
        return result.scalars().first()

    # ==================== Collaborators ====================

    async def get_profile(self, profile_id: str) -> Optional[Profile]:
        return await self.session.get(Profile, profile_id)

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self.session.get(Job, job_id)

    async def get_firm_role(self, firm_id: str, profile_id: str) -> Optional[str]:
        result = await self.session.execute(
            select(FirmMember.role).where(
                FirmMember.firm_id == firm_id,
                FirmMember.profile_id == profile_id,
                FirmMember.status == MembershipStatus.ACTIVE,
            )
        )
        return result.scalar_one_or_none()

    # ==================== Connections ====================

    async def find_connection(self, a: str, b: str) -> Optional[ConnectionRequest]:
        return await self._first(
            select(ConnectionRequest).where(
                ConnectionRequest.pair_key == make_pair_key(a, b),
                ConnectionRequest.status.in_(OPEN_CONNECTION_STATUSES),
            )
        )

    async def find_latest_connection(self, a: str, b: str) -> Optional[ConnectionRequest]:
        return await self._first(
            select(ConnectionRequest)
            .where(ConnectionRequest.pair_key == make_pair_key(a, b))
            .order_by(ConnectionRequest.created_at.desc())
        )

    async def get_connection(self, connection_id: str) -> Optional[ConnectionRequest]:
        return await self.session.get(ConnectionRequest, connection_id)

    async def insert_connection(self, requester_id: str, recipient_id: str) -> ConnectionRequest:
        connection = ConnectionRequest(
            requester_profile_id=requester_id,
            recipient_profile_id=recipient_id,
            pair_key=make_pair_key(requester_id, recipient_id),
            status=ConnectionStatus.PENDING,
        )
        await self._insert(connection)
        return connection

    async def update_connection_status(
        self, connection_id: str, expected: ConnectionStatus, status: ConnectionStatus
    ) -> Optional[ConnectionRequest]:
        return await self._compare_and_set(ConnectionRequest, connection_id, expected, status=status)

    async def list_connections(
        self, profile_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[ConnectionRequest]:
        query = select(ConnectionRequest).where(
            or_(
                ConnectionRequest.requester_profile_id == profile_id,
                ConnectionRequest.recipient_profile_id == profile_id,
            )
        )
        if status:
            query = query.where(ConnectionRequest.status == status)
        result = await self.session.execute(query.order_by(ConnectionRequest.created_at.desc()))
        return list(result.scalars().all())

    async def count_pending_received(self, profile_id: str) -> int:
        result = await self.session.execute(
            select(func.count(ConnectionRequest.id)).where(
                ConnectionRequest.recipient_profile_id == profile_id,
                ConnectionRequest.status == ConnectionStatus.PENDING,
            )
        )
        return result.scalar() or 0

    async def list_pending_connections(self, created_before: datetime) -> List[ConnectionRequest]:
        result = await self.session.execute(
            select(ConnectionRequest)
            .where(
                ConnectionRequest.status == ConnectionStatus.PENDING,
                ConnectionRequest.created_at < created_before,
            )
            .order_by(ConnectionRequest.recipient_profile_id, ConnectionRequest.created_at)
        )
        return list(result.scalars().all())

    # ==================== Applications ====================

    async def find_application(self, job_id: str, applicant_id: str) -> Optional[JobApplication]:
        return await self._first(
            select(JobApplication).where(
                JobApplication.job_id == job_id,
                JobApplication.applicant_profile_id == applicant_id,
                JobApplication.status != ApplicationStatus.WITHDRAWN,
            )
        )

    async def get_application(self, application_id: str) -> Optional[JobApplication]:
        return await self.session.get(JobApplication, application_id)

    async def insert_application(
        self,
        job_id: str,
        applicant_id: str,
        cover_note: str,
        proposed_rate: Optional[float] = None,
    ) -> JobApplication:
        application = JobApplication(
            job_id=job_id,
            applicant_profile_id=applicant_id,
            cover_note=cover_note,
            proposed_rate=proposed_rate,
            status=ApplicationStatus.APPLIED,
        )
        await self._insert(application)
        return application

    async def update_application_status(
        self,
        application_id: str,
        expected: ApplicationStatus,
        status: ApplicationStatus,
        notes=UNSET,
    ) -> Optional[JobApplication]:
        values = {"status": status}
        if notes is not UNSET:
            values["notes"] = notes
        return await self._compare_and_set(JobApplication, application_id, expected, **values)

    async def list_applications_for_job(self, job_id: str) -> List[JobApplication]:
        result = await self.session.execute(
            select(JobApplication)
            .where(JobApplication.job_id == job_id)
            .order_by(JobApplication.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_applications_by_applicant(self, applicant_id: str) -> List[JobApplication]:
        result = await self.session.execute(
            select(JobApplication)
            .where(JobApplication.applicant_profile_id == applicant_id)
            .order_by(JobApplication.created_at.desc())
        )
        return list(result.scalars().all())

    # ==================== Bench ====================

    async def get_bench_entry(self, entry_id: str) -> Optional[FirmBenchEntry]:
        return await self.session.get(FirmBenchEntry, entry_id)

    async def find_bench_entry(self, firm_id: str, profile_id: str) -> Optional[FirmBenchEntry]:
        return await self._first(
            select(FirmBenchEntry).where(
                FirmBenchEntry.firm_id == firm_id,
                FirmBenchEntry.profile_id == profile_id,
                FirmBenchEntry.status != BenchEntryStatus.REMOVED,
            )
        )

    async def list_active_bench_entries(self, firm_id: str) -> List[FirmBenchEntry]:
        return await self.list_bench_entries(firm_id, [BenchEntryStatus.ACTIVE])

    async def list_bench_entries(
        self, firm_id: str, statuses: Sequence[BenchEntryStatus]
    ) -> List[FirmBenchEntry]:
        # Pending entries have no priority yet and sort last
        result = await self.session.execute(
            select(FirmBenchEntry)
            .where(FirmBenchEntry.firm_id == firm_id, FirmBenchEntry.status.in_(statuses))
            .order_by(
                FirmBenchEntry.priority.is_(None),
                FirmBenchEntry.priority.desc(),
                FirmBenchEntry.created_at,
            )
        )
        return list(result.scalars().all())

    async def min_active_priority(self, firm_id: str) -> Optional[int]:
        result = await self.session.execute(
            select(func.min(FirmBenchEntry.priority)).where(
                FirmBenchEntry.firm_id == firm_id,
                FirmBenchEntry.status == BenchEntryStatus.ACTIVE,
            )
        )
        return result.scalar()

    async def insert_bench_invite(
        self,
        firm_id: str,
        profile_id: str,
        invited_by: str,
        expires_at: datetime,
        categories: Optional[List[str]] = None,
        custom_title: Optional[str] = None,
        message: Optional[str] = None,
    ) -> BenchInvitation:
        # The invitation references the entry, so mint its id before flush
        entry = FirmBenchEntry(
            id=str(uuid.uuid4()),
            firm_id=firm_id,
            profile_id=profile_id,
            status=BenchEntryStatus.PENDING_INVITE,
            categories=list(categories or []),
            custom_title=custom_title,
        )
        invitation = BenchInvitation(
            firm_id=firm_id,
            profile_id=profile_id,
            bench_entry_id=entry.id,
            invited_by_profile_id=invited_by,
            message=message,
            custom_title_offer=custom_title,
            categories_suggested=list(categories or []),
            status=InvitationStatus.PENDING,
            expires_at=expires_at,
        )
        await self._insert(entry, invitation)
        return invitation

    async def update_bench_entry(
        self, entry_id: str, expected: BenchEntryStatus, **fields
    ) -> Optional[FirmBenchEntry]:
        return await self._compare_and_set(FirmBenchEntry, entry_id, expected, **fields)

    async def delete_bench_entry(self, entry_id: str, expected: BenchEntryStatus) -> bool:
        result = await self.session.execute(
            delete(FirmBenchEntry)
            .where(FirmBenchEntry.id == entry_id, FirmBenchEntry.status == expected)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount > 0

    async def batch_update_priorities(self, firm_id: str, priorities: Dict[str, int]) -> None:
        try:
            for entry_id, priority in priorities.items():
                result = await self.session.execute(
                    update(FirmBenchEntry)
                    .where(
                        FirmBenchEntry.id == entry_id,
                        FirmBenchEntry.firm_id == firm_id,
                        FirmBenchEntry.status == BenchEntryStatus.ACTIVE,
                    )
                    .values(priority=priority)
                    .execution_options(synchronize_session="fetch")
                )
                if result.rowcount != 1:
                    raise StaleBatch(f"Bench entry {entry_id} changed during reorder")
        except StaleBatch:
            await self.session.rollback()
            raise

    # ==================== Invitations ====================

    async def get_invitation(self, invitation_id: str) -> Optional[BenchInvitation]:
        return await self.session.get(BenchInvitation, invitation_id)

    async def find_pending_invitation(self, firm_id: str, profile_id: str) -> Optional[BenchInvitation]:
        return await self._first(
            select(BenchInvitation).where(
                BenchInvitation.firm_id == firm_id,
                BenchInvitation.profile_id == profile_id,
                BenchInvitation.status == InvitationStatus.PENDING,
            )
        )

    async def update_invitation_status(
        self,
        invitation_id: str,
        expected: InvitationStatus,
        status: InvitationStatus,
        responded_at: Optional[datetime] = None,
    ) -> Optional[BenchInvitation]:
        values = {"status": status}
        if responded_at is not None:
            values["responded_at"] = responded_at
        return await self._compare_and_set(BenchInvitation, invitation_id, expected, **values)

    async def list_invitations_for_profile(self, profile_id: str) -> List[BenchInvitation]:
        result = await self.session.execute(
            select(BenchInvitation)
            .where(BenchInvitation.profile_id == profile_id)
            .order_by(BenchInvitation.created_at.desc())
        )
        return list(result.scalars().all())

    # ==================== Unit of work ====================

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
