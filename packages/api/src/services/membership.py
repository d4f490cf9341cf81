"""Group membership store.

Reads and writes ``GroupMember`` rows. Every path that could drop a
group's last admin (removal or demotion) checks ``list_admins`` first and
raises ``LastAdminError`` instead. The store never commits; callers own the
transaction.
"""

import logging
import uuid
from datetime import UTC, datetime

from db import GroupMember, User
from db.enums import MemberLevel
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .errors import LastAdminError

logger = logging.getLogger(__name__)


class MembershipStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, group_id: uuid.UUID, user_id: uuid.UUID) -> GroupMember | None:
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def create(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        level: MemberLevel = MemberLevel.READ,
    ) -> GroupMember:
        member = GroupMember(group_id=group_id, user_id=user_id, level=MemberLevel(level))
        self.session.add(member)
        await self.session.flush()
        return member

    async def list_admins(self, group_id: uuid.UUID) -> list[GroupMember]:
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id,
            GroupMember.level == MemberLevel.highest(),
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def count(self, group_id: uuid.UUID) -> int:
        stmt = select(func.count(GroupMember.id)).where(GroupMember.group_id == group_id)
        return (await self.session.execute(stmt)).scalar() or 0

    async def _ensure_not_last_admin(
        self, group_id: uuid.UUID, user_id: uuid.UUID, message: str
    ) -> None:
        admins = await self.list_admins(group_id)
        if len(admins) == 1 and admins[0].user_id == user_id:
            logger.info("Rejected last-admin change: group=%s user=%s", group_id, user_id)
            raise LastAdminError(message)

    async def upsert_level(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID,
        level: MemberLevel,
    ) -> GroupMember:
        """Set the member's level, creating the membership when absent."""
        level = MemberLevel(level)
        member = await self.get(group_id, user_id)
        if member is None:
            return await self.create(group_id, user_id, level)

        top = MemberLevel.highest()
        if member.level == top and level != top:
            await self._ensure_not_last_admin(
                group_id,
                user_id,
                "Cannot revoke admin permissions from the last admin member.",
            )

        member.level = level
        await self.session.flush()
        return member

    async def remove(self, group_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        """Soft-delete one membership. Returns False when there was none."""
        member = await self.get(group_id, user_id)
        if member is None:
            return False

        if member.level == MemberLevel.highest():
            await self._ensure_not_last_admin(
                group_id, user_id, "Cannot delete the last admin member."
            )

        now = datetime.now(UTC)
        stmt = (
            update(GroupMember)
            .where(
                GroupMember.group_id == group_id,
                GroupMember.user_id == user_id,
                GroupMember.deleted_at.is_(None),
            )
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        member.deleted_at = now
        return result.rowcount > 0

    async def soft_delete_all(self, group_id: uuid.UUID) -> int:
        """Soft-delete every live membership of a group (group deletion)."""
        stmt = (
            update(GroupMember)
            .where(GroupMember.group_id == group_id, GroupMember.deleted_at.is_(None))
            .values(deleted_at=datetime.now(UTC))
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def list_for_group(
        self,
        group_id: uuid.UUID,
        *,
        limit: int = 10,
        offset: int = 0,
        search: str | None = None,
    ) -> tuple[list[tuple[GroupMember, User]], int]:
        """Members joined with their users, ordered by name. Returns (rows, total)."""
        filters = [GroupMember.group_id == group_id]
        if search:
            filters.append(User.name.ilike(f"%{search}%"))

        count_stmt = (
            select(func.count(GroupMember.id))
            .join(User, User.id == GroupMember.user_id)
            .where(*filters)
        )
        total = (await self.session.execute(count_stmt)).scalar() or 0

        stmt = (
            select(GroupMember, User)
            .join(User, User.id == GroupMember.user_id)
            .where(*filters)
            .order_by(User.name.asc())
            .offset(offset)
            .limit(limit)
        )
        rows = [(member, user) for member, user in (await self.session.execute(stmt)).all()]
        return rows, total
