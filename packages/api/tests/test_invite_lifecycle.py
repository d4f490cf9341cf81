"""Tests for fetching, accepting and deleting a single invitation."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest
from db.enums import MemberLevel
from db.models import GroupInvite

from src.services.activity import Actor
from src.services.errors import ForbiddenError, GoneError, NotFoundError
from src.services.invite_lifecycle import InvitationLifecycle
from tests.factories import (
    NOW,
    InMemoryMemberships,
    InMemoryUsers,
    make_group,
    make_invite,
    make_session,
    make_user,
    result_of,
)

VALID = timedelta(days=GroupInvite.VALID_DAYS)


class _World:
    def __init__(self, invite_level=MemberLevel.WRITE, age=timedelta(days=1)):
        self.admin = make_user(email="admin@example.com", name="Admin")
        self.invitee = make_user(email="a@b.com", name="A")
        self.group = make_group(creator_id=self.admin.id)
        self.invite = make_invite(
            self.group.id, self.admin.id, self.invitee.id, invite_level, created_at=NOW - age
        )
        self.users = InMemoryUsers([self.admin, self.invitee])
        self.memberships = InMemoryMemberships([(self.group.id, self.admin.id, MemberLevel.ADMIN)])
        self.activities = AsyncMock()
        self.permissions = AsyncMock()
        self.now = NOW

    def lifecycle(self, *results):
        self.session = make_session(*results)
        return InvitationLifecycle(
            self.session,
            self.memberships,
            self.users,
            self.activities,
            self.permissions,
            clock=lambda: self.now,
        )

    def as_invitee(self):
        return Actor.user(self.invitee.id, ip="127.0.0.1")


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_fetch_fresh_invite_confirms_email():
    world = _World(age=timedelta(days=3))
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    view = await lifecycle.fetch(world.invite.id, world.group.id)

    assert view.invite is world.invite
    assert view.created_days_ago == 3
    assert view.already_resolved is False
    assert view.creator is world.admin
    assert world.invitee.email_is_verified is True


@pytest.mark.asyncio
async def test_fetch_unknown_invite_is_not_found():
    world = _World()
    lifecycle = world.lifecycle(result_of(None))
    with pytest.raises(NotFoundError):
        await lifecycle.fetch(world.invite.id, world.group.id)


@pytest.mark.asyncio
async def test_fetch_at_exact_validity_boundary_is_valid():
    world = _World(age=VALID)
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))
    view = await lifecycle.fetch(world.invite.id, world.group.id)
    assert view.created_days_ago == GroupInvite.VALID_DAYS


@pytest.mark.asyncio
async def test_fetch_just_past_boundary_is_gone_with_expiry_code():
    world = _World(age=VALID + timedelta(seconds=1))
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    with pytest.raises(GoneError) as exc_info:
        await lifecycle.fetch(world.invite.id, world.group.id)

    assert exc_info.value.code == 41002
    assert world.invitee.email_is_verified is False


@pytest.mark.asyncio
async def test_fetch_deleted_invite_with_access_is_resolved():
    world = _World()
    world.invite.soft_delete(NOW)
    world.permissions.evaluate.return_value = True
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    view = await lifecycle.fetch(world.invite.id, world.group.id)

    assert view.already_resolved is True
    world.permissions.evaluate.assert_awaited_once_with(
        world.group.id, world.invitee.id, MemberLevel.READ
    )


@pytest.mark.asyncio
async def test_fetch_deleted_invite_without_access_is_gone():
    world = _World()
    world.invite.soft_delete(NOW)
    world.permissions.evaluate.return_value = False
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    with pytest.raises(GoneError) as exc_info:
        await lifecycle.fetch(world.invite.id, world.group.id)

    assert exc_info.value.code == 41001


@pytest.mark.asyncio
async def test_fetch_invite_to_deleted_group_is_not_found():
    """A soft-deleted group hides its invitations; the email stays unconfirmed."""
    world = _World()
    lifecycle = world.lifecycle(result_of(world.invite), result_of(None))

    with pytest.raises(NotFoundError):
        await lifecycle.fetch(world.invite.id, world.group.id)

    assert world.invitee.email_is_verified is False
    world.permissions.evaluate.assert_not_awaited()


# ---------------------------------------------------------------------------
# accept
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_accept_creates_membership_and_consumes_invite():
    world = _World(invite_level=MemberLevel.WRITE)
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    member, created = await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert created is True
    assert member.level == MemberLevel.WRITE
    assert world.memberships.rows[(world.group.id, world.invitee.id)] is member
    assert world.invite.is_deleted
    assert world.invitee.email_is_verified is True
    world.activities.record_accept.assert_awaited_once()


@pytest.mark.asyncio
async def test_accept_by_someone_else_is_forbidden():
    world = _World()
    lifecycle = world.lifecycle(result_of(world.invite))

    with pytest.raises(ForbiddenError):
        await lifecycle.accept(world.invite.id, world.group.id, Actor.user(world.admin.id))

    assert not world.invite.is_deleted


@pytest.mark.asyncio
async def test_accept_expired_without_membership_is_gone():
    world = _World(age=VALID + timedelta(minutes=1))
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    with pytest.raises(GoneError):
        await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert (world.group.id, world.invitee.id) not in world.memberships.rows


@pytest.mark.asyncio
async def test_accept_at_boundary_succeeds():
    world = _World(age=VALID)
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))
    _, created = await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())
    assert created is True


@pytest.mark.asyncio
@pytest.mark.parametrize("current", [MemberLevel.WRITE, MemberLevel.ADMIN])
async def test_accept_never_downgrades(current):
    world = _World(invite_level=MemberLevel.READ, age=VALID * 3)
    await world.memberships.create(world.group.id, world.invitee.id, current)
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    member, created = await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert created is False
    assert member.level == current
    world.activities.record_update.assert_not_awaited()


@pytest.mark.asyncio
async def test_accept_upgrades_existing_lower_membership_even_when_expired():
    world = _World(invite_level=MemberLevel.ADMIN, age=VALID * 2)
    await world.memberships.create(world.group.id, world.invitee.id, MemberLevel.READ)
    lifecycle = world.lifecycle(result_of(world.invite), result_of(world.group))

    member, created = await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert created is False
    assert member.level == MemberLevel.ADMIN
    world.activities.record_update.assert_awaited_once()


@pytest.mark.asyncio
async def test_accept_missing_invite_returns_existing_membership():
    world = _World()
    existing = await world.memberships.create(world.group.id, world.invitee.id, MemberLevel.READ)
    lifecycle = world.lifecycle(result_of(None))

    member, created = await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert member is existing
    assert created is False


@pytest.mark.asyncio
async def test_accept_missing_invite_without_membership_is_not_found():
    world = _World()
    lifecycle = world.lifecycle(result_of(None))
    with pytest.raises(NotFoundError):
        await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())


@pytest.mark.asyncio
async def test_accept_invite_to_deleted_group_is_not_found():
    world = _World()
    lifecycle = world.lifecycle(result_of(world.invite), result_of(None))

    with pytest.raises(NotFoundError):
        await lifecycle.accept(world.invite.id, world.group.id, world.as_invitee())

    assert (world.group.id, world.invitee.id) not in world.memberships.rows
    assert not world.invite.is_deleted
    world.activities.record_accept.assert_not_awaited()


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_records_activity():
    world = _World()
    lifecycle = world.lifecycle(result_of(rowcount=1), result_of(world.group))

    await lifecycle.delete(world.invite.id, world.group.id, Actor.user(world.admin.id))

    world.activities.record_delete.assert_awaited_once()
    target = world.activities.record_delete.await_args.kwargs["target"]
    assert target is world.group


@pytest.mark.asyncio
async def test_delete_nothing_is_not_found_with_sub_code():
    world = _World()
    lifecycle = world.lifecycle(result_of(rowcount=0))

    with pytest.raises(NotFoundError) as exc_info:
        await lifecycle.delete(world.invite.id, world.group.id, Actor.user(world.admin.id))

    assert exc_info.value.code == 40401
    world.activities.record_delete.assert_not_awaited()
