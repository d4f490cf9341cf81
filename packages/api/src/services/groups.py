"""Group CRUD and listing queries."""

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta

from db import Group, GroupInvite, GroupMember, User
from db.enums import GroupVisibility, MemberLevel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity import Actor, ActivityRecorder
from .errors import NotFoundError
from .membership import MembershipStore

logger = logging.getLogger(__name__)

PUBLIC_LIST_DEFAULT_LIMIT = 26
PUBLIC_LIST_MAX_LIMIT = 100


@dataclass
class GroupSummary:
    """A group with the data list endpoints show next to it."""

    group: Group
    creator: User | None
    member_count: int
    level: MemberLevel | None = None
    members: list[tuple[GroupMember, User]] | None = None


async def _member_counts(session: AsyncSession, group_ids) -> dict[uuid.UUID, int]:
    ids = list(group_ids)
    if not ids:
        return {}
    stmt = (
        select(GroupMember.group_id, func.count(GroupMember.id))
        .where(GroupMember.group_id.in_(ids))
        .group_by(GroupMember.group_id)
    )
    return {group_id: count for group_id, count in (await session.execute(stmt)).all()}


async def create_group(
    session: AsyncSession,
    memberships: MembershipStore,
    activities: ActivityRecorder,
    actor: Actor,
    *,
    name: str,
    visibility: GroupVisibility = GroupVisibility.PRIVATE,
    parent_id: uuid.UUID | None = None,
    source_partner_id: uuid.UUID | None = None,
    action: str | None = None,
) -> Group:
    """Create a group; the creator becomes its first admin."""
    group = Group(
        id=uuid.uuid4(),
        name=name,
        visibility=visibility,
        parent_id=parent_id,
        creator_id=actor.id,
        source_partner_id=source_partner_id,
    )
    session.add(group)
    await session.flush()
    await memberships.create(group.id, actor.id, MemberLevel.ADMIN)
    await activities.record_create(group, actor, action)
    logger.info("Group %s created by %s", group.id, actor.id)
    return group


async def get_group(session: AsyncSession, group_id: uuid.UUID) -> GroupSummary:
    stmt = select(Group, User).join(User, User.id == Group.creator_id, isouter=True).where(
        Group.id == group_id
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        raise NotFoundError("No such Group found.")
    group, creator = row
    counts = await _member_counts(session, [group.id])
    return GroupSummary(group=group, creator=creator, member_count=counts.get(group.id, 0))


async def update_group(
    session: AsyncSession,
    activities: ActivityRecorder,
    group_id: uuid.UUID,
    actor: Actor,
    *,
    name: str | None = None,
    visibility: GroupVisibility | None = None,
    action: str | None = None,
) -> Group:
    group = (await session.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
    if group is None:
        raise NotFoundError("No such Group found.")

    changes = {}
    if name is not None and name != group.name:
        changes["name"] = {"from": group.name, "to": name}
        group.name = name
    if visibility is not None and visibility != group.visibility:
        changes["visibility"] = {"from": GroupVisibility(group.visibility).value, "to": visibility.value}
        group.visibility = visibility

    if changes:
        await session.flush()
        await activities.record_update(group, actor, action, changes=changes)
    return group


async def delete_group(
    session: AsyncSession,
    memberships: MembershipStore,
    activities: ActivityRecorder,
    group_id: uuid.UUID,
    actor: Actor,
    *,
    action: str | None = None,
) -> None:
    group = (await session.execute(select(Group).where(Group.id == group_id))).scalar_one_or_none()
    if group is None:
        raise NotFoundError("No such Group found.")
    removed = await memberships.soft_delete_all(group_id)
    group.soft_delete()
    await session.flush()
    await activities.record_delete(group, actor, action)
    logger.info("Group %s deleted by %s (%d memberships removed)", group_id, actor.id, removed)


async def list_user_groups(
    session: AsyncSession,
    user_id: uuid.UUID,
    *,
    include_members: bool = False,
) -> list[GroupSummary]:
    """Groups the user belongs to, most recently updated first."""
    stmt = (
        select(Group, GroupMember.level, User)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .join(User, User.id == Group.creator_id, isouter=True)
        .where(GroupMember.user_id == user_id)
        .order_by(Group.updated_at.desc())
    )
    rows = (await session.execute(stmt)).all()
    counts = await _member_counts(session, [group.id for group, _, _ in rows])

    summaries = [
        GroupSummary(
            group=group,
            creator=creator,
            member_count=counts.get(group.id, 0),
            level=MemberLevel(level),
        )
        for group, level, creator in rows
    ]

    if include_members and summaries:
        member_stmt = (
            select(GroupMember, User)
            .join(User, User.id == GroupMember.user_id)
            .where(GroupMember.group_id.in_([s.group.id for s in summaries]))
            .order_by(User.name.asc())
        )
        by_group: dict[uuid.UUID, list] = {}
        for member, user in (await session.execute(member_stmt)).all():
            by_group.setdefault(member.group_id, []).append((member, user))
        for summary in summaries:
            summary.members = by_group.get(summary.group.id, [])

    return summaries


def clamp_public_limit(limit: int | None) -> int:
    """Out-of-range limits fall back to the default rather than failing."""
    if limit is None or limit < 1 or limit > PUBLIC_LIST_MAX_LIMIT:
        return PUBLIC_LIST_DEFAULT_LIMIT
    return limit


async def list_public_groups(
    session: AsyncSession,
    *,
    name: str | None = None,
    source_partner_id: uuid.UUID | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[GroupSummary], int]:
    filters = [Group.visibility == GroupVisibility.PUBLIC, Group.name.is_not(None)]
    if name:
        filters.append(Group.name.ilike(f"%{name}%"))
    if source_partner_id is not None:
        filters.append(Group.source_partner_id == source_partner_id)

    total = (await session.execute(select(func.count(Group.id)).where(*filters))).scalar() or 0

    stmt = (
        select(Group, User)
        .join(User, User.id == Group.creator_id, isouter=True)
        .where(*filters)
        .order_by(Group.updated_at.desc())
        .offset(offset)
        .limit(clamp_public_limit(limit))
    )
    rows = (await session.execute(stmt)).all()
    counts = await _member_counts(session, [group.id for group, _ in rows])
    summaries = [
        GroupSummary(group=group, creator=creator, member_count=counts.get(group.id, 0))
        for group, creator in rows
    ]
    return summaries, total


async def list_pending_invites(
    session: AsyncSession,
    group_id: uuid.UUID,
    now,
    *,
    limit: int = 10,
    offset: int = 0,
    search: str | None = None,
) -> tuple[list[tuple[GroupInvite, User]], int]:
    """Live invitations still inside the validity window, by invitee name."""
    filters = [
        GroupInvite.group_id == group_id,
        GroupInvite.created_at >= now - timedelta(days=GroupInvite.VALID_DAYS),
    ]
    if search:
        filters.append(User.name.ilike(f"%{search}%"))

    count_stmt = (
        select(func.count(GroupInvite.id))
        .join(User, User.id == GroupInvite.user_id)
        .where(*filters)
    )
    total = (await session.execute(count_stmt)).scalar() or 0

    stmt = (
        select(GroupInvite, User)
        .join(User, User.id == GroupInvite.user_id)
        .where(*filters)
        .order_by(User.name.asc())
        .offset(offset)
        .limit(limit)
    )
    rows = [(invite, user) for invite, user in (await session.execute(stmt)).all()]
    return rows, total
