"""User directory: identity lookups, placeholder accounts, profile changes."""

import logging
import uuid
from datetime import UTC, datetime

from db import User, UserConnection
from db.enums import ConnectionId, UserSource
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity import Actor, ActivityRecorder
from .errors import BadRequestError, NotFoundError
from .identity_validation import email_to_display_name, is_valid_email, is_valid_identifier

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"

_PROFILE_FIELDS = ("name", "company", "email", "language", "image_url", "terms_version")


class UserDirectory:
    def __init__(self, session: AsyncSession, activities: ActivityRecorder):
        self.session = session
        self.activities = activities

    async def get(self, user_id: uuid.UUID) -> User | None:
        return (
            await self.session.execute(select(User).where(User.id == user_id))
        ).scalar_one_or_none()

    async def get_many(self, user_ids) -> dict[uuid.UUID, User]:
        ids = list(user_ids)
        if not ids:
            return {}
        result = await self.session.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}

    async def find_by_emails(self, emails) -> dict[str, User]:
        """Case-insensitive lookup keyed by lower-cased email."""
        lowered = sorted({e.strip().lower() for e in emails})
        if not lowered:
            return {}
        result = await self.session.execute(select(User).where(func.lower(User.email).in_(lowered)))
        return {user.email.lower(): user for user in result.scalars().all()}

    async def create_placeholders(
        self,
        emails: dict[str, str | None],
        actor: Actor,
        action: str | None,
    ) -> list[User]:
        """Create password-less accounts for invited emails with no account.

        ``emails`` maps each email to the invitee's preferred language (or None).
        """
        users = []
        for email, language in emails.items():
            user = User(
                id=uuid.uuid4(),
                email=email,
                name=email_to_display_name(email),
                password=None,
                language=language or "en",
                source=UserSource.CITIZENOS,
                email_is_verified=False,
                email_verification_code=uuid.uuid4(),
            )
            self.session.add(user)
            users.append(user)
        if users:
            await self.session.flush()
            for user in users:
                await self.activities.record_create(user, actor, action)
            logger.info("Created %d placeholder account(s)", len(users))
        return users

    async def confirm_email(self, user_id: uuid.UUID) -> User | None:
        user = await self.get(user_id)
        if user is not None and not user.email_is_verified:
            user.email_is_verified = True
            await self.session.flush()
        return user


async def update_profile(
    session: AsyncSession,
    activities: ActivityRecorder,
    user_id: uuid.UUID,
    actor: Actor,
    action: str | None,
    **changes,
) -> tuple[User, bool]:
    """Apply profile changes. Returns (user, email_changed).

    An email change resets verification and issues a new verification
    code; the caller sends the verification mail after commit.
    """
    user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    updates = {k: v for k, v in changes.items() if k in _PROFILE_FIELDS and v is not None}
    email_changed = False

    new_email = updates.pop("email", None)
    if new_email is not None:
        new_email = new_email.strip()
        if not is_valid_email(new_email):
            raise BadRequestError("Invalid email")
        if (user.email or "").lower() != new_email.lower():
            existing = (
                await session.execute(
                    select(User).where(
                        func.lower(User.email) == new_email.lower(), User.id != user.id
                    )
                )
            ).scalar_one_or_none()
            if existing is not None:
                raise BadRequestError("The email address is already in use", 2)
            user.email = new_email
            user.email_is_verified = False
            user.email_verification_code = uuid.uuid4()
            email_changed = True
            await _refresh_citizenos_connection(session, user)

    new_terms = updates.pop("terms_version", None)
    if new_terms is not None and new_terms != user.terms_version:
        user.terms_version = new_terms
        user.terms_accepted_at = datetime.now(UTC)

    for field, value in updates.items():
        setattr(user, field, value)

    await session.flush()
    changed = sorted(set(changes) & set(_PROFILE_FIELDS))
    await activities.record_update(user, actor, action, changes={"fields": changed})
    return user, email_changed


async def _refresh_citizenos_connection(session: AsyncSession, user: User) -> None:
    stmt = select(UserConnection).where(
        UserConnection.user_id == user.id,
        UserConnection.connection_id == ConnectionId.CITIZENOS,
    )
    connection = (await session.execute(stmt)).scalar_one_or_none()
    if connection is not None:
        connection.connection_data = {"id": str(user.id), "email": user.email}


async def anonymize_and_delete(
    session: AsyncSession,
    activities: ActivityRecorder,
    user_id: uuid.UUID,
    actor: Actor,
    action: str | None,
) -> User:
    """Scrub personal data, soft-delete the user and drop their connections."""
    user = (await session.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
    if user is None:
        raise NotFoundError("User not found")

    user.name = ANONYMOUS_NAME
    user.email = None
    user.company = None
    user.image_url = None
    user.password = None
    user.soft_delete()

    await session.execute(delete(UserConnection).where(UserConnection.user_id == user.id))
    await session.flush()
    await activities.record_delete(user, actor, action)
    return user


async def list_connection_ids(session: AsyncSession, identifier: str) -> list[str]:
    """Connection ids of a user looked up by UUID or email, alphabetical."""
    identifier = (identifier or "").strip()
    if is_valid_identifier(identifier):
        where = User.id == uuid.UUID(identifier)
    elif is_valid_email(identifier):
        where = func.lower(User.email) == identifier.lower()
    else:
        raise BadRequestError("Invalid userId", 1)

    user = (await session.execute(select(User).where(where))).scalar_one_or_none()
    if user is None:
        raise NotFoundError()

    result = await session.execute(
        select(UserConnection.connection_id).where(UserConnection.user_id == user.id)
    )
    return sorted(ConnectionId(c).value for c in result.scalars().all())
