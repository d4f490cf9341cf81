"""Group permission evaluator.

Answers whether a user may act on a group at a required level. A missing
or soft-deleted group fails closed: the answer is simply "not allowed".
"""

import logging
import uuid

from db import Group, GroupMember
from db.enums import GroupVisibility, MemberLevel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class PermissionEvaluator:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def evaluate(
        self,
        group_id: uuid.UUID,
        user_id: uuid.UUID | None,
        required_level: MemberLevel,
        *,
        allow_public: bool = False,
        allow_self: bool = False,
        subject_user_id: uuid.UUID | str | None = None,
    ) -> bool:
        """Return True when access is allowed.

        Allowed when any of these holds:
          - the user's membership level is at least ``required_level``
          - ``allow_public`` is set and the group is public
          - ``allow_self`` is set, the user is a member, and
            ``subject_user_id`` is the user's own id
        """
        group = (
            await self.session.execute(select(Group).where(Group.id == group_id))
        ).scalar_one_or_none()
        if group is None:
            return False

        member = None
        if user_id is not None:
            member = (
                await self.session.execute(
                    select(GroupMember).where(
                        GroupMember.group_id == group_id,
                        GroupMember.user_id == user_id,
                    )
                )
            ).scalar_one_or_none()

        if member is not None and MemberLevel(member.level).satisfies(required_level):
            return True

        if allow_public and group.visibility == GroupVisibility.PUBLIC:
            return True

        if (
            allow_self
            and member is not None
            and subject_user_id is not None
            and str(subject_user_id) == str(user_id)
        ):
            return True

        return False
