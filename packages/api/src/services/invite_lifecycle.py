"""Invitation lifecycle: fetch, accept and delete a single invitation.

An invitation is pending until it is accepted (soft-deleted, membership
created), explicitly deleted, or older than ``GroupInvite.VALID_DAYS``.
Expiry is inclusive: an invitation exactly ``VALID_DAYS`` old is still
valid.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from db import Group, GroupInvite, GroupMember, User
from db.enums import MemberLevel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .activity import Actor, ActivityRecorder, EntityRef
from .errors import ForbiddenError, GoneError, NotFoundError
from .membership import MembershipStore
from .permissions import PermissionEvaluator
from .users import UserDirectory

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class InvitationView:
    invite: GroupInvite
    group: Group
    creator: User | None
    invitee: User | None
    created_days_ago: int
    already_resolved: bool = False


class InvitationLifecycle:
    def __init__(
        self,
        session: AsyncSession,
        memberships: MembershipStore,
        users: UserDirectory,
        activities: ActivityRecorder,
        permissions: PermissionEvaluator,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.memberships = memberships
        self.users = users
        self.activities = activities
        self.permissions = permissions
        self.clock = clock

    def is_expired(self, invite: GroupInvite) -> bool:
        return self.clock() - invite.created_at > timedelta(days=GroupInvite.VALID_DAYS)

    def expired_error(self) -> GoneError:
        return GoneError(
            f"The invite has expired. Invites are valid for {GroupInvite.VALID_DAYS} days",
            2,
        )

    async def _load(self, invite_id: uuid.UUID, group_id: uuid.UUID, *, include_deleted: bool):
        stmt = select(GroupInvite).where(
            GroupInvite.id == invite_id,
            GroupInvite.group_id == group_id,
        )
        if include_deleted:
            stmt = stmt.execution_options(include_deleted=True)
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def _live_group(self, group_id: uuid.UUID) -> Group:
        """The invitation's group; an invitation to a deleted group no longer exists."""
        group = (
            await self.session.execute(select(Group).where(Group.id == group_id))
        ).scalar_one_or_none()
        if group is None:
            raise NotFoundError("Invite not found")
        return group

    async def fetch(self, invite_id: uuid.UUID, group_id: uuid.UUID) -> InvitationView:
        """Return an invitation, including one that was already used.

        Fetching a fresh invitation confirms the invitee's email: receiving
        the invite link proves ownership of the address.
        """
        invite = await self._load(invite_id, group_id, include_deleted=True)
        if invite is None:
            raise NotFoundError("Invite not found")

        group = await self._live_group(group_id)
        people = await self.users.get_many({invite.creator_id, invite.user_id})
        view = InvitationView(
            invite=invite,
            group=group,
            creator=people.get(invite.creator_id),
            invitee=people.get(invite.user_id),
            created_days_ago=(self.clock() - invite.created_at).days,
        )

        if invite.is_deleted:
            has_access = await self.permissions.evaluate(group_id, invite.user_id, MemberLevel.READ)
            if has_access:
                view.already_resolved = True
                return view
            raise GoneError("The invite has been deleted", 1)

        if self.is_expired(invite):
            raise self.expired_error()

        await self.users.confirm_email(invite.user_id)
        return view

    async def accept(
        self,
        invite_id: uuid.UUID,
        group_id: uuid.UUID,
        actor: Actor,
        *,
        action: str | None = None,
    ) -> tuple[GroupMember, bool]:
        """Accept an invitation. Returns (membership, created)."""
        invite = await self._load(invite_id, group_id, include_deleted=False)
        existing = await self.memberships.get(group_id, actor.id)

        if invite is None:
            if existing is not None:
                return existing, False
            raise NotFoundError()

        if invite.user_id != actor.id:
            raise ForbiddenError()

        group = await self._live_group(group_id)

        if existing is not None:
            # An established membership wins over the invitation; expiry is not consulted.
            level = MemberLevel(invite.level)
            if level.outranks(existing.level):
                previous = MemberLevel(existing.level)
                existing = await self.memberships.upsert_level(group_id, actor.id, level)
                await self.activities.record_update(
                    existing,
                    actor,
                    action,
                    changes={"level": {"from": previous.value, "to": level.value}},
                )
            return existing, False

        if self.is_expired(invite):
            raise self.expired_error()

        member = await self.memberships.create(group_id, actor.id, invite.level)
        invite.soft_delete(self.clock())
        await self.users.confirm_email(actor.id)
        await self.activities.record_accept(
            invite,
            actor,
            action,
            target=group,
            data={"creator_id": str(invite.creator_id), "level": MemberLevel(invite.level).value},
        )
        await self.session.flush()
        logger.info("Invite %s accepted by %s", invite_id, actor.id)
        return member, True

    async def delete(
        self,
        invite_id: uuid.UUID,
        group_id: uuid.UUID,
        actor: Actor,
        *,
        action: str | None = None,
    ) -> None:
        now = self.clock()
        stmt = (
            update(GroupInvite)
            .where(
                GroupInvite.id == invite_id,
                GroupInvite.group_id == group_id,
                GroupInvite.deleted_at.is_(None),
            )
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount == 0:
            raise NotFoundError("Invite not found", 1)
        group = (
            await self.session.execute(select(Group).where(Group.id == group_id))
        ).scalar_one_or_none()
        await self.activities.record_delete(
            EntityRef("GroupInvite", invite_id), actor, action, target=group
        )
        logger.info("Invite %s deleted by %s", invite_id, actor.id)
