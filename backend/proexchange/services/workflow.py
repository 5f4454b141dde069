"""
Workflow Engine - connection requests and job applications

Every operation takes the acting profile id explicitly and runs as one
short unit of work against a RelationshipStore:

    1. Load the target row (NotFound)
    2. Check the actor is the party allowed to drive the move (Forbidden)
    3. Check the move against the transition table (InvalidTransition)
    4. Compare-and-set write + commit
    5. Emit a notification (never fails the call)

Notification policy: connection accepted -> requester; every poster-driven
application transition -> applicant. Creates, rejections of connections,
withdrawals and notes-only edits are silent.

Usage:
    engine = WorkflowEngine(SqlRelationshipStore(session), get_dispatcher())
    result = await engine.create_connection(me, other)
    if not result.created:
        ...  # already pending/accepted, result.connection is the existing row
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from proexchange.middleware.metrics import record_rejection, record_transition
from proexchange.models import ConnectionRequest, Job, JobApplication
from proexchange.services.errors import (
    DuplicateApplication,
    DuplicateExists,
    Forbidden,
    InvalidTransition,
    JobNotOpen,
    NotFound,
    ValidationError,
    WorkflowError,
)
from proexchange.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
)
from proexchange.services.store import RelationshipStore, UniqueViolation, UNSET
from proexchange.services.transitions import (
    APPLICATION_TRANSITIONS,
    CONNECTION_TRANSITIONS,
    ApplicationStatus,
    ConnectionStatus,
    JobStatus,
    Party,
    VerificationState,
    is_legal,
    party_for_target,
)

logger = logging.getLogger(__name__)


@dataclass
class ConnectionResult:
    """Outcome of create_connection; created=False means an open row already existed."""

    connection: ConnectionRequest
    created: bool


class WorkflowEngine:
    def __init__(self, store: RelationshipStore, dispatcher: NotificationDispatcher):
        self.store = store
        self.dispatcher = dispatcher

    # ==================== Helpers ====================

    def _reject(self, entity: str, error: WorkflowError) -> WorkflowError:
        error.entity = error.entity or entity
        record_rejection(entity, error.code)
        logger.info(f"Rejected {entity} operation ({error.code}): {error.message}")
        return error

    def _notify(self, notification: Notification) -> None:
        self.dispatcher.dispatch(notification)

    @staticmethod
    def _connection_party(connection: ConnectionRequest, actor_id: str) -> Optional[Party]:
        if actor_id == connection.requester_profile_id:
            return Party.REQUESTER
        if actor_id == connection.recipient_profile_id:
            return Party.RECIPIENT
        return None

    @staticmethod
    def _application_party(application: JobApplication, job: Job, actor_id: str) -> Optional[Party]:
        if actor_id == job.poster_profile_id:
            return Party.POSTER
        if actor_id == application.applicant_profile_id:
            return Party.APPLICANT
        return None

    # ==================== Connections ====================

    async def create_connection(self, requester_id: str, recipient_id: str) -> ConnectionResult:
        """
        Create a pending connection request, or return the open one.

        Idempotent per unordered pair: while a pending or accepted row
        exists for {requester, recipient} it is returned with created=False,
        whichever side originally sent it. A rejected or withdrawn history
        does not block a fresh request.
        """
        if not recipient_id:
            raise self._reject("connection", ValidationError("Recipient profile ID required"))
        if requester_id == recipient_id:
            raise self._reject("connection", ValidationError("Cannot connect a profile to itself"))

        for profile_id in (requester_id, recipient_id):
            if await self.store.get_profile(profile_id) is None:
                raise self._reject("connection", NotFound(f"Profile {profile_id} not found"))

        existing = await self.store.find_connection(requester_id, recipient_id)
        if existing is not None:
            logger.info(f"Connection {existing.id} already {existing.status.value}, returning it")
            return ConnectionResult(connection=existing, created=False)

        try:
            connection = await self.store.insert_connection(requester_id, recipient_id)
        except UniqueViolation:
            # Lost a race with a concurrent create for the same pair
            existing = await self.store.find_connection(requester_id, recipient_id)
            if existing is None:
                raise self._reject("connection", DuplicateExists("Connection already exists"))
            return ConnectionResult(connection=existing, created=False)

        await self.store.commit()
        record_transition("connection", "none", ConnectionStatus.PENDING)
        logger.info(f"Connection {connection.id} requested: {requester_id} -> {recipient_id}")
        return ConnectionResult(connection=connection, created=True)

    async def _transition_connection(
        self, connection_id: str, target: ConnectionStatus, actor_id: str
    ) -> ConnectionRequest:
        connection = await self.store.get_connection(connection_id)
        if connection is None:
            raise self._reject("connection", NotFound("Connection not found"))

        required = party_for_target(CONNECTION_TRANSITIONS, target)
        if self._connection_party(connection, actor_id) != required:
            raise self._reject(
                "connection",
                Forbidden(f"Only the {required.value} can move a connection to {target.value}"),
            )

        current = connection.status
        if not is_legal(CONNECTION_TRANSITIONS, current, target):
            raise self._reject(
                "connection",
                InvalidTransition(f"Connection is {current.value}, cannot become {target.value}"),
            )

        updated = await self.store.update_connection_status(connection_id, current, target)
        if updated is None:
            raise self._reject(
                "connection", InvalidTransition("Connection changed concurrently, reload and retry")
            )

        await self.store.commit()
        record_transition("connection", current, target)
        logger.info(f"Connection {connection_id}: {current.value} -> {target.value} by {actor_id}")
        return updated

    async def decide_connection(self, connection_id: str, decision, actor_id: str) -> ConnectionRequest:
        """Recipient accepts or rejects a pending request; acceptance notifies the requester."""
        try:
            decision = ConnectionStatus(decision)
        except ValueError:
            decision = None
        if decision not in (ConnectionStatus.ACCEPTED, ConnectionStatus.REJECTED):
            raise self._reject("connection", ValidationError("Decision must be 'accepted' or 'rejected'"))

        connection = await self._transition_connection(connection_id, decision, actor_id)

        if decision == ConnectionStatus.ACCEPTED:
            self._notify(
                Notification(
                    kind=NotificationKind.CONNECTION_ACCEPTED,
                    recipient_profile_id=connection.requester_profile_id,
                    payload={
                        "connection_id": connection.id,
                        "accepted_by_profile_id": connection.recipient_profile_id,
                    },
                )
            )
        return connection

    async def withdraw_connection(self, connection_id: str, actor_id: str) -> ConnectionRequest:
        """Requester withdraws a request that is still pending."""
        return await self._transition_connection(connection_id, ConnectionStatus.WITHDRAWN, actor_id)

    async def list_connections(
        self, actor_id: str, status: Optional[ConnectionStatus] = None
    ) -> List[ConnectionRequest]:
        return await self.store.list_connections(actor_id, status)

    async def connection_status(self, actor_id: str, other_id: str) -> Dict:
        """Latest connection between the actor and another profile, from the actor's side."""
        connection = await self.store.find_connection(actor_id, other_id)
        if connection is None:
            connection = await self.store.find_latest_connection(actor_id, other_id)
        if connection is None:
            return {"status": "none", "connection_id": None, "is_requester": False}
        return {
            "status": connection.status.value,
            "connection_id": connection.id,
            "is_requester": connection.requester_profile_id == actor_id,
        }

    async def pending_connection_count(self, actor_id: str) -> int:
        return await self.store.count_pending_received(actor_id)

    async def remind_pending_connections(self, older_than: datetime) -> int:
        """
        Send one reminder digest per recipient of stale pending requests.

        Returns:
            Number of reminders handed to the dispatcher
        """
        pending = await self.store.list_pending_connections(older_than)
        by_recipient: Dict[str, List[ConnectionRequest]] = defaultdict(list)
        for connection in pending:
            by_recipient[connection.recipient_profile_id].append(connection)

        sent = 0
        for recipient_id, connections in by_recipient.items():
            delivered = self.dispatcher.dispatch(
                Notification(
                    kind=NotificationKind.CONNECTION_REMINDER,
                    recipient_profile_id=recipient_id,
                    payload={
                        "pending_count": len(connections),
                        "connection_ids": [c.id for c in connections],
                        "requester_profile_ids": [c.requester_profile_id for c in connections],
                    },
                )
            )
            sent += int(delivered)

        logger.info(f"Connection reminders: {sent}/{len(by_recipient)} recipients, {len(pending)} requests")
        return sent

    # ==================== Job applications ====================

    async def apply_to_job(
        self,
        job_id: str,
        applicant_id: str,
        cover_note: str,
        proposed_rate: Optional[float] = None,
    ) -> JobApplication:
        """
        Create an application in `applied`.

        Raises:
            NotFound: job or applicant profile missing
            ValidationError: own job, negative rate
            Forbidden: applicant profile is not verified
            JobNotOpen: job no longer accepts applications
            DuplicateApplication: an active application already exists
        """
        applicant = await self.store.get_profile(applicant_id)
        if applicant is None:
            raise self._reject("application", NotFound("Profile not found"))

        job = await self.store.get_job(job_id)
        if job is None:
            raise self._reject("application", NotFound("Job not found"))

        if job.poster_profile_id == applicant_id:
            raise self._reject("application", ValidationError("Cannot apply to your own job"))
        if applicant.verification != VerificationState.VERIFIED:
            raise self._reject("application", Forbidden("Only verified profiles can apply to jobs"))
        if job.status != JobStatus.OPEN:
            raise self._reject("application", JobNotOpen("Job is not accepting applications"))
        if proposed_rate is not None and proposed_rate < 0:
            raise self._reject("application", ValidationError("Proposed rate cannot be negative"))

        existing = await self.store.find_application(job_id, applicant_id)
        if existing is not None:
            raise self._reject(
                "application",
                DuplicateApplication("You have already applied to this job", existing_id=existing.id),
            )

        try:
            application = await self.store.insert_application(
                job_id, applicant_id, cover_note or "", proposed_rate
            )
        except UniqueViolation:
            existing = await self.store.find_application(job_id, applicant_id)
            raise self._reject(
                "application",
                DuplicateApplication(
                    "You have already applied to this job",
                    existing_id=existing.id if existing else None,
                ),
            )

        await self.store.commit()
        record_transition("application", "none", ApplicationStatus.APPLIED)
        logger.info(f"Application {application.id}: {applicant_id} applied to job {job_id}")
        return application

    async def update_application_status(
        self,
        application_id: str,
        new_status: Optional[ApplicationStatus],
        actor_id: str,
        notes=UNSET,
    ) -> JobApplication:
        """
        Move an application along its lifecycle and/or annotate it.

        new_status equal to the current status (or None) is a notes-only
        update and is allowed for the poster in any state. Withdrawal is the
        only applicant-driven move; everything else belongs to the poster.

        Args:
            notes: Poster-private annotation; omit to leave notes unchanged,
                   pass None to clear them
        """
        application = await self.store.get_application(application_id)
        if application is None:
            raise self._reject("application", NotFound("Application not found"))

        job = await self.store.get_job(application.job_id)
        if job is None:
            raise self._reject("application", NotFound("Job not found"))

        party = self._application_party(application, job, actor_id)
        if party is None:
            raise self._reject("application", Forbidden("Not a party to this application"))
        if notes is not UNSET and party != Party.POSTER:
            raise self._reject("application", Forbidden("Only the job poster can annotate an application"))

        current = application.status
        try:
            target = ApplicationStatus(new_status) if new_status is not None else current
        except ValueError:
            raise self._reject("application", ValidationError(f"Unknown status {new_status!r}"))

        if target == current:
            if party != Party.POSTER:
                raise self._reject(
                    "application", InvalidTransition(f"Application is already {current.value}")
                )
            if notes is UNSET:
                return application
            updated = await self.store.update_application_status(
                application_id, current, current, notes=notes
            )
            if updated is None:
                raise self._reject(
                    "application", InvalidTransition("Application changed concurrently, reload and retry")
                )
            await self.store.commit()
            logger.info(f"Application {application_id}: notes updated by {actor_id}")
            return updated

        required = party_for_target(APPLICATION_TRANSITIONS, target)
        if required is None:
            raise self._reject(
                "application",
                InvalidTransition(f"Application cannot move from {current.value} to {target.value}"),
            )
        if party != required:
            raise self._reject(
                "application",
                Forbidden(f"Only the {required.value} can move an application to {target.value}"),
            )
        if not is_legal(APPLICATION_TRANSITIONS, current, target):
            raise self._reject(
                "application",
                InvalidTransition(f"Application cannot move from {current.value} to {target.value}"),
            )

        updated = await self.store.update_application_status(application_id, current, target, notes=notes)
        if updated is None:
            raise self._reject(
                "application", InvalidTransition("Application changed concurrently, reload and retry")
            )

        await self.store.commit()
        record_transition("application", current, target)
        logger.info(f"Application {application_id}: {current.value} -> {target.value} by {actor_id}")

        if required == Party.POSTER:
            self._notify(
                Notification(
                    kind=NotificationKind.APPLICATION_STATUS_CHANGED,
                    recipient_profile_id=updated.applicant_profile_id,
                    payload={
                        "application_id": updated.id,
                        "job_id": job.id,
                        "job_title": job.title,
                        "new_status": target.value,
                    },
                )
            )
        return updated

    async def withdraw_application(self, application_id: str, actor_id: str) -> JobApplication:
        return await self.update_application_status(application_id, ApplicationStatus.WITHDRAWN, actor_id)

    async def list_my_applications(self, actor_id: str) -> List[JobApplication]:
        return await self.store.list_applications_by_applicant(actor_id)

    async def list_job_applications(self, job_id: str, actor_id: str) -> List[JobApplication]:
        job = await self.store.get_job(job_id)
        if job is None:
            raise self._reject("application", NotFound("Job not found"))
        if job.poster_profile_id != actor_id:
            raise self._reject("application", Forbidden("Only the job poster can list its applications"))
        return await self.store.list_applications_for_job(job_id)
