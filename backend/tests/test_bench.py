"""
Tests for the firm bench ordering service

Tests cover:
- reorder() priorities for every permutation of a small bench
- Rejected batches leave every priority unchanged
- Firm admin checks
- Invite idempotency, acceptance, decline, cancel and read-time expiry
- Entry edits and soft removal
"""

import itertools

import pytest

from proexchange.services.bench import assign_priorities
from proexchange.services.errors import (
    DuplicateInvite,
    Forbidden,
    InvalidTransition,
    InvitationExpired,
    NotFound,
    ValidationError,
)
from proexchange.services.notifications import NotificationKind
from proexchange.services.transitions import BenchEntryStatus, FirmRole, InvitationStatus


async def _firm_with_admin(factory):
    firm = await factory.firm()
    admin = await factory.profile()
    await factory.member(firm, admin, role=FirmRole.ADMIN)
    return firm, admin


async def _activate(bench, factory, firm, admin, count):
    """Invite and accept ``count`` professionals; returns entry ids in display order."""
    entry_ids = []
    for _ in range(count):
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        entry = await bench.accept_invite(invitation.id, pro)
        entry_ids.append(entry.id)
    return entry_ids


async def _priorities(store, firm):
    return {e.id: e.priority for e in await store.list_active_bench_entries(firm)}


class TestAssignPriorities:
    """Tests for priority numbering."""

    def test_base_minus_index_times_step(self):
        """First id gets BASE, then steps down."""
        assert assign_priorities(["c", "a", "b"]) == {"c": 100, "a": 90, "b": 80}

    def test_custom_base_and_step(self):
        """Base and step should be configurable."""
        assert assign_priorities(["x", "y"], base=1000, step=5) == {"x": 1000, "y": 995}


class TestReorder:
    """Tests for bench reordering."""

    @pytest.mark.asyncio
    async def test_every_permutation_is_displayed_in_order(self, bench, factory, store):
        """Any submitted order should be the order listed back."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 4)

        for ordering in itertools.permutations(entry_ids):
            result = await bench.reorder(firm, list(ordering), admin)

            assert [e.id for e in result] == list(ordering)
            priorities = [e.priority for e in result]
            assert priorities == [100 - i * 10 for i in range(len(ordering))]
            assert len(set(priorities)) == len(priorities)

    @pytest.mark.asyncio
    async def test_manager_may_reorder(self, bench, factory):
        """Managers count as firm admins."""
        firm, admin = await _firm_with_admin(factory)
        manager = await factory.profile()
        await factory.member(firm, manager, role=FirmRole.MANAGER)
        entry_ids = await _activate(bench, factory, firm, admin, 2)

        result = await bench.reorder(firm, list(reversed(entry_ids)), manager)

        assert [e.id for e in result] == list(reversed(entry_ids))

    @pytest.mark.asyncio
    async def test_plain_member_forbidden(self, bench, factory, store):
        """Plain members should not reorder."""
        firm, admin = await _firm_with_admin(factory)
        member = await factory.profile()
        await factory.member(firm, member, role=FirmRole.MEMBER)
        entry_ids = await _activate(bench, factory, firm, admin, 2)
        before = await _priorities(store, firm)

        with pytest.raises(Forbidden):
            await bench.reorder(firm, list(reversed(entry_ids)), member)

        assert await _priorities(store, firm) == before

    @pytest.mark.asyncio
    async def test_duplicate_ids_rejected(self, bench, factory, store):
        """Duplicate ids should reject the whole batch."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 3)
        before = await _priorities(store, firm)

        with pytest.raises(ValidationError):
            await bench.reorder(firm, [entry_ids[0], entry_ids[0], entry_ids[1], entry_ids[2]], admin)

        assert await _priorities(store, firm) == before

    @pytest.mark.asyncio
    async def test_foreign_entry_rejected(self, bench, factory, store):
        """Another firm's entry should reject the whole batch."""
        firm, admin = await _firm_with_admin(factory)
        other_firm, other_admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 2)
        foreign = await _activate(bench, factory, other_firm, other_admin, 1)
        before = await _priorities(store, firm)

        with pytest.raises(ValidationError):
            await bench.reorder(firm, list(reversed(entry_ids)) + foreign, admin)

        assert await _priorities(store, firm) == before

    @pytest.mark.asyncio
    async def test_partial_batch_rejected(self, bench, factory, store):
        """A batch missing an active entry should be rejected."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 3)
        before = await _priorities(store, firm)

        with pytest.raises(ValidationError):
            await bench.reorder(firm, [entry_ids[2], entry_ids[0]], admin)

        assert await _priorities(store, firm) == before

    @pytest.mark.asyncio
    async def test_empty_batch_rejected(self, bench, factory):
        """An empty batch should be rejected."""
        firm, admin = await _firm_with_admin(factory)
        with pytest.raises(ValidationError):
            await bench.reorder(firm, [], admin)

    @pytest.mark.asyncio
    async def test_pending_entries_cannot_be_ordered(self, bench, factory):
        """Only active entries take part in ordering."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 1)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)

        with pytest.raises(ValidationError):
            await bench.reorder(firm, entry_ids + [invitation.bench_entry_id], admin)


class TestInvite:
    """Tests for bench invitations."""

    @pytest.mark.asyncio
    async def test_creates_pending_entry_and_notifies(self, bench, factory, store, notifications, clock):
        """Invite should create a pending entry and notify the invitee."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()

        invitation = await bench.invite(firm, pro, admin, categories=["Tax Prep"], custom_title="Senior Preparer")

        assert invitation.status == InvitationStatus.PENDING
        assert (invitation.expires_at - clock.now).days == 14
        entry = await store.get_bench_entry(invitation.bench_entry_id)
        assert entry.status == BenchEntryStatus.PENDING_INVITE
        assert entry.priority is None
        assert entry.categories == ["Tax Prep"]

        sent = notifications.of_kind(NotificationKind.BENCH_INVITATION)
        assert len(sent) == 1
        assert sent[0].recipient_profile_id == pro
        assert sent[0].payload["invitation_id"] == invitation.id

    @pytest.mark.asyncio
    async def test_second_invite_while_pending(self, bench, factory, store):
        """A pending invite should block a second one."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        first = await bench.invite(firm, pro, admin)

        with pytest.raises(DuplicateInvite) as exc_info:
            await bench.invite(firm, pro, admin)

        assert exc_info.value.existing_id == first.id
        pending = await store.list_bench_entries(firm, [BenchEntryStatus.PENDING_INVITE])
        assert len(pending) == 1

    @pytest.mark.asyncio
    async def test_invite_active_member(self, bench, factory):
        """A profile already on the bench cannot be invited."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        entry = await bench.accept_invite(invitation.id, pro)

        with pytest.raises(DuplicateInvite) as exc_info:
            await bench.invite(firm, pro, admin)

        assert exc_info.value.existing_id == entry.id

    @pytest.mark.asyncio
    async def test_non_admin_cannot_invite(self, bench, factory):
        """Inviting requires a firm admin or manager."""
        firm, _ = await _firm_with_admin(factory)
        outsider = await factory.profile()
        pro = await factory.profile()

        with pytest.raises(Forbidden):
            await bench.invite(firm, pro, outsider)

    @pytest.mark.asyncio
    async def test_unknown_profile(self, bench, factory):
        firm, admin = await _firm_with_admin(factory)
        with pytest.raises(NotFound):
            await bench.invite(firm, "missing", admin)

    @pytest.mark.asyncio
    async def test_too_many_categories(self, bench, factory):
        """Category lists are capped."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        with pytest.raises(ValidationError):
            await bench.invite(firm, pro, admin, categories=[f"c{i}" for i in range(9)])


class TestAcceptInvite:
    """Tests for accepting invitations."""

    @pytest.mark.asyncio
    async def test_first_entry_gets_base_priority(self, bench, factory):
        """An empty bench starts at BASE."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)

        entry = await bench.accept_invite(invitation.id, pro)

        assert entry.status == BenchEntryStatus.ACTIVE
        assert entry.priority == 100

    @pytest.mark.asyncio
    async def test_new_entry_lands_at_the_end(self, bench, factory):
        """Accepted entries should sort after existing ones."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 3)
        await bench.reorder(firm, entry_ids, admin)

        late = await _activate(bench, factory, firm, admin, 1)
        listed = await bench.list_bench(firm, admin)

        assert [e.id for e in listed] == entry_ids + late
        assert listed[-1].priority == 79

    @pytest.mark.asyncio
    async def test_only_invitee_accepts(self, bench, factory):
        """Only the invited profile may accept."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)

        with pytest.raises(Forbidden):
            await bench.accept_invite(invitation.id, admin)

    @pytest.mark.asyncio
    async def test_accept_twice(self, bench, factory):
        """A second accept should be an invalid transition."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        await bench.accept_invite(invitation.id, pro)

        with pytest.raises(InvalidTransition):
            await bench.accept_invite(invitation.id, pro)

    @pytest.mark.asyncio
    async def test_unknown_invitation(self, bench, factory):
        pro = await factory.profile()
        with pytest.raises(NotFound):
            await bench.accept_invite("missing", pro)


class TestExpiry:
    """Tests for read-time invitation expiry."""

    @pytest.mark.asyncio
    async def test_expired_invite_cannot_be_accepted(self, bench, factory, store, clock):
        """Accepting after expiry should mark it expired."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        invitation_id, entry_id = invitation.id, invitation.bench_entry_id
        clock.advance(days=15)

        with pytest.raises(InvitationExpired):
            await bench.accept_invite(invitation_id, pro)

        expired = await store.get_invitation(invitation_id)
        assert expired.status == InvitationStatus.EXPIRED
        assert await store.get_bench_entry(entry_id) is None

    @pytest.mark.asyncio
    async def test_reinvite_after_expiry(self, bench, factory, store, clock):
        """An expired invitation should not block a new invite."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        first = await bench.invite(firm, pro, admin)
        first_id = first.id
        clock.advance(days=14, seconds=1)

        second = await bench.invite(firm, pro, admin)

        assert second.id != first_id
        assert (await store.get_invitation(first_id)).status == InvitationStatus.EXPIRED
        pending = await store.list_bench_entries(firm, [BenchEntryStatus.PENDING_INVITE])
        assert [e.id for e in pending] == [second.bench_entry_id]

    @pytest.mark.asyncio
    async def test_listing_reports_expiry_without_writing(self, bench, factory, store, clock):
        """Listing should report expired without storing it."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        clock.advance(days=20)

        views = await bench.list_invitations(pro)

        assert [v.status for v in views] == [InvitationStatus.EXPIRED]
        assert (await store.get_invitation(invitation.id)).status == InvitationStatus.PENDING


class TestDeclineAndCancel:
    """Tests for decline and cancel."""

    @pytest.mark.asyncio
    async def test_decline_deletes_pending_entry(self, bench, factory, store):
        """Decline should remove the pending entry."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        entry_id = invitation.bench_entry_id

        declined = await bench.decline_invite(invitation.id, pro)

        assert declined.status == InvitationStatus.DECLINED
        assert declined.responded_at is not None
        assert await store.get_bench_entry(entry_id) is None

    @pytest.mark.asyncio
    async def test_admin_cancels(self, bench, factory, store):
        """Admins may cancel a pending invitation."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        entry_id = invitation.bench_entry_id

        cancelled = await bench.cancel_invite(invitation.id, admin)

        assert cancelled.status == InvitationStatus.CANCELLED
        assert await store.get_bench_entry(entry_id) is None
        # A fresh invite is allowed once the old one is closed
        again = await bench.invite(firm, pro, admin)
        assert again.status == InvitationStatus.PENDING

    @pytest.mark.asyncio
    async def test_invitee_cannot_cancel(self, bench, factory):
        """Cancel belongs to the firm, not the invitee."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)

        with pytest.raises(Forbidden):
            await bench.cancel_invite(invitation.id, pro)

    @pytest.mark.asyncio
    async def test_cannot_cancel_accepted(self, bench, factory):
        """Accepted invitations cannot be cancelled."""
        firm, admin = await _firm_with_admin(factory)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)
        await bench.accept_invite(invitation.id, pro)

        with pytest.raises(InvalidTransition):
            await bench.cancel_invite(invitation.id, admin)


class TestEntries:
    """Tests for bench entry reads and edits."""

    @pytest.mark.asyncio
    async def test_list_requires_membership(self, bench, factory):
        """Non-members should not read the bench."""
        firm, admin = await _firm_with_admin(factory)
        outsider = await factory.profile()

        with pytest.raises(Forbidden):
            await bench.list_bench(firm, outsider)

    @pytest.mark.asyncio
    async def test_list_with_pending(self, bench, factory):
        """includePending should add pending entries."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 2)
        pro = await factory.profile()
        invitation = await bench.invite(firm, pro, admin)

        active_only = await bench.list_bench(firm, admin)
        with_pending = await bench.list_bench(firm, admin, include_pending=True)

        assert [e.id for e in active_only] == entry_ids
        assert [e.id for e in with_pending] == entry_ids + [invitation.bench_entry_id]

    @pytest.mark.asyncio
    async def test_update_display_fields(self, bench, factory):
        """Display fields should be editable."""
        firm, admin = await _firm_with_admin(factory)
        [entry_id] = await _activate(bench, factory, firm, admin, 1)

        entry = await bench.update_entry(
            entry_id, admin, custom_title="Audit Lead", categories=["Audit", "SOX"], visibility_public=True
        )

        assert entry.custom_title == "Audit Lead"
        assert entry.categories == ["Audit", "SOX"]
        assert entry.visibility_public is True

    @pytest.mark.asyncio
    async def test_priority_is_not_editable(self, bench, factory):
        """Priority changes only through reorder."""
        firm, admin = await _firm_with_admin(factory)
        [entry_id] = await _activate(bench, factory, firm, admin, 1)

        with pytest.raises(ValidationError):
            await bench.update_entry(entry_id, admin, priority=1)

    @pytest.mark.asyncio
    async def test_category_limit(self, bench, factory):
        """Category edits respect the cap."""
        firm, admin = await _firm_with_admin(factory)
        [entry_id] = await _activate(bench, factory, firm, admin, 1)

        with pytest.raises(ValidationError):
            await bench.update_entry(entry_id, admin, categories=[str(i) for i in range(9)])

    @pytest.mark.asyncio
    async def test_remove_is_soft(self, bench, factory, store):
        """Remove should keep the row as removed."""
        firm, admin = await _firm_with_admin(factory)
        entry_ids = await _activate(bench, factory, firm, admin, 2)

        removed = await bench.remove_entry(entry_ids[0], admin)

        assert removed.status == BenchEntryStatus.REMOVED
        assert (await store.get_bench_entry(entry_ids[0])) is not None
        assert [e.id for e in await bench.list_bench(firm, admin)] == entry_ids[1:]
        # Remaining roster reorders without the removed entry
        result = await bench.reorder(firm, entry_ids[1:], admin)
        assert [e.priority for e in result] == [100]

    @pytest.mark.asyncio
    async def test_removed_entry_cannot_be_edited(self, bench, factory):
        """Removed entries are read-only."""
        firm, admin = await _firm_with_admin(factory)
        [entry_id] = await _activate(bench, factory, firm, admin, 1)
        await bench.remove_entry(entry_id, admin)

        with pytest.raises(InvalidTransition):
            await bench.update_entry(entry_id, admin, note="back?")
        with pytest.raises(InvalidTransition):
            await bench.remove_entry(entry_id, admin)
