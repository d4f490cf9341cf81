"""Shared test factories: ORM builders, mock sessions and in-memory stores.

The in-memory stores mirror the public methods of ``MembershipStore`` and
``UserDirectory`` so reconciler and lifecycle tests can assert on state
rather than on call sequences.
"""

import uuid
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

from db.enums import GroupVisibility, MemberLevel, UserSource
from db.models import Group, GroupInvite, GroupMember, User

from src.services.errors import LastAdminError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_user(email="owner@example.com", name="Owner", user_id=None, **kwargs) -> User:
    return User(
        id=user_id or uuid.uuid4(),
        email=email,
        name=name,
        language=kwargs.pop("language", "en"),
        source=UserSource.CITIZENOS,
        email_is_verified=kwargs.pop("email_is_verified", False),
        email_verification_code=uuid.uuid4(),
        **kwargs,
    )


def make_group(creator_id=None, name="Tallinn Cyclists", visibility=GroupVisibility.PRIVATE) -> Group:
    return Group(
        id=uuid.uuid4(),
        name=name,
        visibility=visibility,
        creator_id=creator_id or uuid.uuid4(),
        created_at=NOW,
        updated_at=NOW,
    )


def make_invite(group_id, creator_id, user_id, level=MemberLevel.READ, created_at=NOW) -> GroupInvite:
    return GroupInvite(
        id=uuid.uuid4(),
        group_id=group_id,
        creator_id=creator_id,
        user_id=user_id,
        level=level,
        created_at=created_at,
        updated_at=created_at,
    )


def result_of(value=None, *, rows=None, rowcount=None) -> MagicMock:
    """A mock ``Result`` answering the accessors the services use."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    result.scalar_one.return_value = value
    result.scalar.return_value = value
    result.scalars.return_value.all.return_value = rows if rows is not None else []
    result.all.return_value = rows if rows is not None else []
    result.first.return_value = (rows or [None])[0]
    result.rowcount = rowcount
    return result


def make_session(*results) -> AsyncMock:
    """AsyncMock session whose ``execute`` returns ``results`` in order."""
    session = AsyncMock()
    session.add = MagicMock()
    session.execute = AsyncMock(side_effect=list(results))
    return session


class InMemoryMemberships:
    """Dict-backed stand-in for ``MembershipStore``."""

    def __init__(self, members=()):
        self.rows: dict[tuple, GroupMember] = {}
        for group_id, user_id, level in members:
            self.rows[(group_id, user_id)] = GroupMember(
                group_id=group_id, user_id=user_id, level=MemberLevel(level)
            )

    async def get(self, group_id, user_id):
        return self.rows.get((group_id, user_id))

    async def create(self, group_id, user_id, level=MemberLevel.READ):
        member = GroupMember(group_id=group_id, user_id=user_id, level=MemberLevel(level))
        self.rows[(group_id, user_id)] = member
        return member

    async def list_admins(self, group_id):
        top = MemberLevel.highest()
        return [
            m for (g, _), m in self.rows.items() if g == group_id and m.level == top
        ]

    async def count(self, group_id):
        return sum(1 for g, _ in self.rows if g == group_id)

    async def upsert_level(self, group_id, user_id, level):
        member = self.rows.get((group_id, user_id))
        if member is None:
            return await self.create(group_id, user_id, level)
        admins = await self.list_admins(group_id)
        top = MemberLevel.highest()
        if member.level == top and level != top and len(admins) == 1:
            raise LastAdminError()
        member.level = MemberLevel(level)
        return member

    async def remove(self, group_id, user_id):
        return self.rows.pop((group_id, user_id), None) is not None


class InMemoryUsers:
    """Dict-backed stand-in for ``UserDirectory``."""

    def __init__(self, users=()):
        self.by_id = {u.id: u for u in users}
        self.placeholder_calls = []

    async def get(self, user_id):
        return self.by_id.get(user_id)

    async def get_many(self, user_ids):
        return {i: self.by_id[i] for i in user_ids if i in self.by_id}

    async def find_by_emails(self, emails):
        wanted = {e.lower() for e in emails}
        return {
            u.email.lower(): u for u in self.by_id.values() if u.email and u.email.lower() in wanted
        }

    async def create_placeholders(self, emails, actor, action):
        self.placeholder_calls.append((dict(emails), actor))
        created = []
        for email, language in emails.items():
            user = make_user(email=email, name=email.split("@")[0], language=language or "en")
            user.password = None
            self.by_id[user.id] = user
            created.append(user)
        return created

    async def confirm_email(self, user_id):
        user = self.by_id.get(user_id)
        if user is not None:
            user.email_is_verified = True
        return user
