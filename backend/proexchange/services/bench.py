"""
Bench Ordering Service - a firm's curated, ordered roster of professionals

Ordering:
    reorder() renumbers priority. Given the full list of a
    firm's active entries in display order it assigns

        priority_i = BASE - i * STEP        (BASE=100, STEP=10 by default)

    and writes the whole batch atomically. Display order is descending
    priority, so the first id shown gets BASE.
    An entry activated by accept_invite lands at the end (min - 1).

Invites:
    invite() creates a pending_invite entry plus a BenchInvitation that
    expires after invite_expiry_days. Expiry is evaluated when the
    invitation is read; nothing runs on a timer.

All mutations require a firm admin/manager except accept/decline, which
belong to the invited profile.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from proexchange.database import utcnow
from proexchange.middleware.metrics import record_rejection, record_reorder, record_transition
from proexchange.models import BenchInvitation, FirmBenchEntry
from proexchange.services.errors import (
    DuplicateInvite,
    Forbidden,
    InvalidTransition,
    InvitationExpired,
    NotFound,
    ValidationError,
    WorkflowError,
)
from proexchange.services.notifications import (
    Notification,
    NotificationDispatcher,
    NotificationKind,
)
from proexchange.services.store import RelationshipStore, StaleBatch, UniqueViolation
from proexchange.services.transitions import (
    INVITATION_TRANSITIONS,
    BenchEntryStatus,
    InvitationStatus,
    is_legal,
    is_terminal,
)

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY_BASE = 100
DEFAULT_PRIORITY_STEP = 10
DEFAULT_INVITE_EXPIRY_DAYS = 14
MAX_CATEGORIES = 8
MAX_TITLE_LENGTH = 80
EDITABLE_FIELDS = ("custom_title", "categories", "note", "visibility_public")


def assign_priorities(
    ordered_ids: Sequence[str],
    base: int = DEFAULT_PRIORITY_BASE,
    step: int = DEFAULT_PRIORITY_STEP,
) -> Dict[str, int]:
    """Map ids, in display order, to strictly decreasing priorities."""
    return {entry_id: base - index * step for index, entry_id in enumerate(ordered_ids)}


def effective_invitation_status(invitation: BenchInvitation, now: datetime) -> InvitationStatus:
    """Status as a reader should see it: a pending invite past its expiry is expired."""
    if invitation.status == InvitationStatus.PENDING and invitation.expires_at <= now:
        return InvitationStatus.EXPIRED
    return invitation.status


@dataclass
class InvitationView:
    invitation: BenchInvitation
    status: InvitationStatus


class BenchOrderingService:
    def __init__(
        self,
        store: RelationshipStore,
        dispatcher: NotificationDispatcher,
        priority_base: int = DEFAULT_PRIORITY_BASE,
        priority_step: int = DEFAULT_PRIORITY_STEP,
        invite_expiry_days: int = DEFAULT_INVITE_EXPIRY_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.priority_base = priority_base
        self.priority_step = priority_step
        self.invite_expiry_days = invite_expiry_days
        self.clock = clock

    # ==================== Helpers ====================

    def _reject(self, entity: str, error: WorkflowError) -> WorkflowError:
        error.entity = error.entity or entity
        record_rejection(entity, error.code)
        logger.info(f"Rejected {entity} operation ({error.code}): {error.message}")
        return error

    async def _require_admin(self, firm_id: str, actor_id: str, entity: str) -> None:
        if not await self.store.is_firm_admin(firm_id, actor_id):
            raise self._reject(entity, Forbidden("Only firm admins can manage the bench"))

    def _validate_fields(self, categories: Optional[List[str]], custom_title: Optional[str]) -> None:
        if categories is not None and len(categories) > MAX_CATEGORIES:
            raise self._reject(
                "bench_entry", ValidationError(f"At most {MAX_CATEGORIES} categories per entry")
            )
        if custom_title is not None and len(custom_title) > MAX_TITLE_LENGTH:
            raise self._reject(
                "bench_entry", ValidationError(f"Custom title is limited to {MAX_TITLE_LENGTH} characters")
            )

    async def _expire(self, invitation: BenchInvitation) -> None:
        """Record a lapsed invite as expired and drop its pending entry (no commit)."""
        await self.store.update_invitation_status(
            invitation.id, InvitationStatus.PENDING, InvitationStatus.EXPIRED
        )
        if invitation.bench_entry_id:
            await self.store.delete_bench_entry(invitation.bench_entry_id, BenchEntryStatus.PENDING_INVITE)
        record_transition("invitation", InvitationStatus.PENDING, InvitationStatus.EXPIRED)
        logger.info(f"Invitation {invitation.id} expired at {invitation.expires_at.isoformat()}")

    async def _load_pending_invitation(
        self, invitation_id: str, actor_id: str, now: datetime
    ) -> BenchInvitation:
        """Fetch an invitation the actor may answer, expiring it if it lapsed."""
        invitation = await self.store.get_invitation(invitation_id)
        if invitation is None:
            raise self._reject("invitation", NotFound("Invitation not found"))
        if invitation.profile_id != actor_id:
            raise self._reject("invitation", Forbidden("Only the invited profile can respond"))
        if is_terminal(INVITATION_TRANSITIONS, invitation.status):
            raise self._reject(
                "invitation", InvalidTransition(f"Invitation already {invitation.status.value}")
            )
        if invitation.expires_at <= now:
            await self._expire(invitation)
            await self.store.commit()
            raise self._reject("invitation", InvitationExpired("Invitation has expired"))
        return invitation

    async def _close_invitation(
        self, invitation: BenchInvitation, status: InvitationStatus, now: datetime
    ) -> BenchInvitation:
        updated = await self.store.update_invitation_status(
            invitation.id, InvitationStatus.PENDING, status, responded_at=now
        )
        if updated is None:
            raise self._reject(
                "invitation", InvalidTransition("Invitation changed concurrently, reload and retry")
            )
        return updated

    # ==================== Ordering ====================

    async def reorder(
        self, firm_id: str, ordered_item_ids: Sequence[str], actor_id: str
    ) -> List[FirmBenchEntry]:
        """
        Renumber a firm's whole active roster in the given display order.

        The batch is all-or-nothing: a duplicate, foreign or missing id
        rejects it before anything is written.

        Returns:
            Active entries in their new display order
        """
        await self._require_admin(firm_id, actor_id, "bench_entry")

        ordered_ids = list(ordered_item_ids)
        if not ordered_ids:
            raise self._reject("bench_entry", ValidationError("Reorder needs at least one item"))
        if len(set(ordered_ids)) != len(ordered_ids):
            raise self._reject("bench_entry", ValidationError("Reorder lists an entry more than once"))

        active_ids = {entry.id for entry in await self.store.list_active_bench_entries(firm_id)}
        foreign = [entry_id for entry_id in ordered_ids if entry_id not in active_ids]
        if foreign:
            raise self._reject(
                "bench_entry",
                ValidationError(f"Not active entries of firm {firm_id}: {', '.join(foreign)}"),
            )
        missing = active_ids.difference(ordered_ids)
        if missing:
            raise self._reject(
                "bench_entry",
                ValidationError(f"Reorder must list every active entry; missing {', '.join(sorted(missing))}"),
            )

        priorities = assign_priorities(ordered_ids, self.priority_base, self.priority_step)
        try:
            await self.store.batch_update_priorities(firm_id, priorities)
        except StaleBatch as e:
            raise self._reject("bench_entry", InvalidTransition(f"Bench changed during reorder: {e}"))

        await self.store.commit()
        record_reorder(len(ordered_ids))
        logger.info(f"Firm {firm_id} bench reordered ({len(ordered_ids)} entries) by {actor_id}")
        return await self.store.list_active_bench_entries(firm_id)

    async def list_bench(
        self, firm_id: str, actor_id: str, include_pending: bool = False
    ) -> List[FirmBenchEntry]:
        """
        Bench in display order; visible to any active member of the firm.

        Display order is highest priority first. This deliberately departs
        from the "lower value displays first" reading of priority: reorder()
        numbers downwards from BASE, and ascending display would reverse
        every list an admin submits.
        """
        if await self.store.get_firm_role(firm_id, actor_id) is None:
            raise self._reject("bench_entry", Forbidden("Access denied"))
        statuses = [BenchEntryStatus.ACTIVE]
        if include_pending:
            statuses.append(BenchEntryStatus.PENDING_INVITE)
        return await self.store.list_bench_entries(firm_id, statuses)

    # ==================== Invitations ====================

    async def invite(
        self,
        firm_id: str,
        profile_id: str,
        actor_id: str,
        categories: Optional[List[str]] = None,
        custom_title: Optional[str] = None,
        message: Optional[str] = None,
    ) -> BenchInvitation:
        """
        Invite a professional onto the firm's bench.

        Raises:
            DuplicateInvite: a live invite or bench entry already exists for
                (firm, profile); existing_id names it
        """
        await self._require_admin(firm_id, actor_id, "invitation")
        self._validate_fields(categories, custom_title)

        if await self.store.get_profile(profile_id) is None:
            raise self._reject("invitation", NotFound("Profile not found"))

        now = self.clock()
        pending = await self.store.find_pending_invitation(firm_id, profile_id)
        if pending is not None:
            if pending.expires_at > now:
                raise self._reject(
                    "invitation", DuplicateInvite("Invitation already pending", existing_id=pending.id)
                )
            await self._expire(pending)

        entry = await self.store.find_bench_entry(firm_id, profile_id)
        if entry is not None:
            raise self._reject(
                "invitation", DuplicateInvite("Professional is already on the bench", existing_id=entry.id)
            )

        try:
            invitation = await self.store.insert_bench_invite(
                firm_id,
                profile_id,
                invited_by=actor_id,
                expires_at=now + timedelta(days=self.invite_expiry_days),
                categories=categories,
                custom_title=custom_title,
                message=message,
            )
        except UniqueViolation:
            existing = await self.store.find_pending_invitation(firm_id, profile_id)
            raise self._reject(
                "invitation",
                DuplicateInvite(
                    "Invitation already pending",
                    existing_id=existing.id if existing else None,
                ),
            )

        await self.store.commit()
        record_transition("bench_entry", "none", BenchEntryStatus.PENDING_INVITE)
        logger.info(f"Firm {firm_id} invited {profile_id} (invitation {invitation.id})")

        self.dispatcher.dispatch(
            Notification(
                kind=NotificationKind.BENCH_INVITATION,
                recipient_profile_id=profile_id,
                payload={
                    "invitation_id": invitation.id,
                    "firm_id": firm_id,
                    "invited_by_profile_id": actor_id,
                    "custom_title": custom_title,
                    "message": message,
                    "expires_at": invitation.expires_at.isoformat(),
                },
            )
        )
        return invitation

    async def accept_invite(self, invitation_id: str, actor_id: str) -> FirmBenchEntry:
        """Invited profile accepts; the pending entry becomes active at the end of the bench."""
        now = self.clock()
        invitation = await self._load_pending_invitation(invitation_id, actor_id, now)
        firm_id = invitation.firm_id
        entry_id = invitation.bench_entry_id

        await self._close_invitation(invitation, InvitationStatus.ACCEPTED, now)

        lowest = await self.store.min_active_priority(firm_id)
        priority = self.priority_base if lowest is None else lowest - 1

        entry = await self.store.update_bench_entry(
            entry_id,
            BenchEntryStatus.PENDING_INVITE,
            status=BenchEntryStatus.ACTIVE,
            priority=priority,
        )
        if entry is None:
            await self.store.rollback()
            raise self._reject("bench_entry", InvalidTransition("Pending bench entry no longer exists"))

        await self.store.commit()
        record_transition("invitation", InvitationStatus.PENDING, InvitationStatus.ACCEPTED)
        record_transition("bench_entry", BenchEntryStatus.PENDING_INVITE, BenchEntryStatus.ACTIVE)
        logger.info(f"Invitation {invitation_id} accepted; entry {entry_id} active at priority {priority}")
        return entry

    async def decline_invite(self, invitation_id: str, actor_id: str) -> BenchInvitation:
        now = self.clock()
        invitation = await self._load_pending_invitation(invitation_id, actor_id, now)
        entry_id = invitation.bench_entry_id

        updated = await self._close_invitation(invitation, InvitationStatus.DECLINED, now)
        if entry_id:
            await self.store.delete_bench_entry(entry_id, BenchEntryStatus.PENDING_INVITE)

        await self.store.commit()
        record_transition("invitation", InvitationStatus.PENDING, InvitationStatus.DECLINED)
        logger.info(f"Invitation {invitation_id} declined by {actor_id}")
        return updated

    async def cancel_invite(self, invitation_id: str, actor_id: str) -> BenchInvitation:
        """Firm admin withdraws an outstanding invite; the pending entry is deleted."""
        invitation = await self.store.get_invitation(invitation_id)
        if invitation is None:
            raise self._reject("invitation", NotFound("Invitation not found"))
        await self._require_admin(invitation.firm_id, actor_id, "invitation")
        if not is_legal(INVITATION_TRANSITIONS, invitation.status, InvitationStatus.CANCELLED):
            raise self._reject(
                "invitation", InvalidTransition(f"Cannot cancel {invitation.status.value} invitation")
            )

        entry_id = invitation.bench_entry_id
        updated = await self._close_invitation(invitation, InvitationStatus.CANCELLED, self.clock())
        if entry_id:
            await self.store.delete_bench_entry(entry_id, BenchEntryStatus.PENDING_INVITE)

        await self.store.commit()
        record_transition("invitation", InvitationStatus.PENDING, InvitationStatus.CANCELLED)
        logger.info(f"Invitation {invitation_id} cancelled by {actor_id}")
        return updated

    async def list_invitations(self, actor_id: str) -> List[InvitationView]:
        """Invitations received by the actor, with expiry applied at read time."""
        now = self.clock()
        invitations = await self.store.list_invitations_for_profile(actor_id)
        return [InvitationView(inv, effective_invitation_status(inv, now)) for inv in invitations]

    # ==================== Entries ====================

    async def update_entry(self, entry_id: str, actor_id: str, **fields) -> FirmBenchEntry:
        """Edit display fields of a live entry. Priority is reorder()'s alone."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise self._reject(
                "bench_entry", ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
            )
        for required in ("categories", "visibility_public"):
            if required in fields and fields[required] is None:
                raise self._reject("bench_entry", ValidationError(f"{required} cannot be null"))

        entry = await self.store.get_bench_entry(entry_id)
        if entry is None:
            raise self._reject("bench_entry", NotFound("Bench entry not found"))
        await self._require_admin(entry.firm_id, actor_id, "bench_entry")
        if entry.status == BenchEntryStatus.REMOVED:
            raise self._reject("bench_entry", InvalidTransition("Bench entry has been removed"))
        self._validate_fields(fields.get("categories"), fields.get("custom_title"))

        if not fields:
            return entry

        updated = await self.store.update_bench_entry(entry_id, entry.status, **fields)
        if updated is None:
            raise self._reject(
                "bench_entry", InvalidTransition("Bench entry changed concurrently, reload and retry")
            )
        await self.store.commit()
        logger.info(f"Bench entry {entry_id} updated by {actor_id}: {sorted(fields)}")
        return updated

    async def remove_entry(self, entry_id: str, actor_id: str) -> FirmBenchEntry:
        """Soft-delete an active entry; the row stays for history."""
        entry = await self.store.get_bench_entry(entry_id)
        if entry is None:
            raise self._reject("bench_entry", NotFound("Bench entry not found"))
        await self._require_admin(entry.firm_id, actor_id, "bench_entry")
        if entry.status != BenchEntryStatus.ACTIVE:
            raise self._reject(
                "bench_entry", InvalidTransition(f"Cannot remove a {entry.status.value} entry")
            )

        updated = await self.store.update_bench_entry(
            entry_id, BenchEntryStatus.ACTIVE, status=BenchEntryStatus.REMOVED
        )
        if updated is None:
            raise self._reject(
                "bench_entry", InvalidTransition("Bench entry changed concurrently, reload and retry")
            )
        await self.store.commit()
        record_transition("bench_entry", BenchEntryStatus.ACTIVE, BenchEntryStatus.REMOVED)
        logger.info(f"Bench entry {entry_id} removed by {actor_id}")
        return updated
