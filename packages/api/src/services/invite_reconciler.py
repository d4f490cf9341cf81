"""Invitation reconciler.

Turns a batch of invite requests into persisted invitations:

1. Partition identities into emails and user ids; drop anything else.
2. Resolve emails to existing accounts (case-insensitive).
3. Create placeholder accounts for the remaining emails.
4. Drop the inviter from the batch.
5. Per invitee: no membership -> invitation; lower membership -> promote
   in place; equal or higher -> nothing.

Everything runs in the caller's transaction. Invite emails are queued as a
post-commit hook so they never go out for a rolled-back batch.
"""

import logging
import uuid
from dataclasses import dataclass, field

from db import Group, GroupInvite, GroupMember, User
from db.enums import MemberLevel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity import Actor, ActivityRecorder, EntityRef
from .errors import NotFoundError
from .identity_validation import is_valid_email, is_valid_identifier
from .membership import MembershipStore
from .notification import InviteNotice, NotificationService
from .transaction import Transaction
from .users import UserDirectory

logger = logging.getLogger(__name__)


@dataclass
class _Invitee:
    level: MemberLevel
    language: str | None = None


@dataclass
class ReconcileResult:
    created: list[GroupInvite] = field(default_factory=list)
    updated: list[GroupMember] = field(default_factory=list)
    placeholders: list[User] = field(default_factory=list)
    notices: list[InviteNotice] = field(default_factory=list)
    invite_message: str | None = None


def _merge(bucket: dict, key, level: MemberLevel, language: str | None) -> None:
    """Keep one entry per identity, at the highest requested level."""
    current = bucket.get(key)
    if current is None:
        bucket[key] = _Invitee(level=level, language=language)
    elif level.outranks(current.level):
        current.level = level
        current.language = current.language or language


def partition_requests(requests) -> tuple[dict[uuid.UUID, _Invitee], dict[str, _Invitee], dict[str, str]]:
    """Split requests into (by_id, by_email, original_email_spelling).

    Email keys are lower-cased; the spelling of the first occurrence is kept
    for new accounts.
    """
    by_id: dict[uuid.UUID, _Invitee] = {}
    by_email: dict[str, _Invitee] = {}
    spelling: dict[str, str] = {}

    for request in requests:
        identity = (getattr(request, "user_id", None) or "").strip()
        level = MemberLevel(getattr(request, "level", None) or MemberLevel.READ)
        language = getattr(request, "language", None)

        if not identity:
            logger.warning("Missing member id, ignoring invite request")
            continue
        if is_valid_email(identity):
            key = identity.lower()
            spelling.setdefault(key, identity)
            _merge(by_email, key, level, language)
        elif is_valid_identifier(identity):
            _merge(by_id, uuid.UUID(identity), level, language)
        else:
            logger.warning("Invalid member id %r, is not UUID or email, ignoring", identity)

    return by_id, by_email, spelling


class InvitationReconciler:
    def __init__(
        self,
        session: AsyncSession,
        memberships: MembershipStore,
        users: UserDirectory,
        activities: ActivityRecorder,
        notifier: NotificationService,
    ):
        self.session = session
        self.memberships = memberships
        self.users = users
        self.activities = activities
        self.notifier = notifier

    async def reconcile(
        self,
        tx: Transaction,
        group_id: uuid.UUID,
        actor: Actor,
        requests,
        *,
        action: str | None = None,
        invite_message: str | None = None,
    ) -> ReconcileResult:
        """Persist invitations for ``requests`` within ``tx``.

        Returns the created invitations and promoted memberships. Raising
        ``NoInvitesCreatedError`` for an empty result is left to the caller,
        after the transaction has committed.
        """
        group = (
            await self.session.execute(select(Group).where(Group.id == group_id))
        ).scalar_one_or_none()
        if group is None:
            raise NotFoundError("Group not found")

        result = ReconcileResult(invite_message=invite_message)
        by_id, by_email, spelling = partition_requests(requests)

        invitees: dict[uuid.UUID, _Invitee] = dict(by_id)
        known = await self.users.find_by_emails(by_email.keys())
        for email, user in known.items():
            wanted = by_email.pop(email)
            _merge(invitees, user.id, wanted.level, wanted.language)

        if by_email:
            result.placeholders = await self.users.create_placeholders(
                {spelling[email]: wanted.language for email, wanted in by_email.items()},
                Actor.system(ip=actor.ip),
                action,
            )
            for user in result.placeholders:
                wanted = by_email[user.email.lower()]
                _merge(invitees, user.id, wanted.level, wanted.language)

        invitees.pop(actor.id, None)

        accounts = await self.users.get_many(invitees.keys())
        for user_id in list(invitees):
            if user_id not in accounts:
                logger.warning("Invitee %s has no account, ignoring", user_id)
                invitees.pop(user_id)

        inviter = await self.users.get(actor.id) if actor.id is not None else None

        for user_id, wanted in invitees.items():
            member = await self.memberships.get(group_id, user_id)
            if member is None:
                invite = GroupInvite(
                    id=uuid.uuid4(),
                    group_id=group_id,
                    creator_id=actor.id,
                    user_id=user_id,
                    level=wanted.level,
                )
                self.session.add(invite)
                await self.session.flush()
                await self.activities.record_invite(
                    group,
                    actor,
                    action,
                    target=EntityRef("User", user_id),
                    data={"invite_id": str(invite.id), "level": wanted.level.value},
                )
                result.created.append(invite)
                invitee = accounts[user_id]
                result.notices.append(
                    InviteNotice(
                        invite_id=invite.id,
                        group_id=group_id,
                        group_name=group.name,
                        level=wanted.level.value,
                        invitee_email=invitee.email,
                        invitee_name=invitee.name,
                        invitee_language=wanted.language or invitee.language,
                        inviter_name=inviter.name if inviter is not None else None,
                        invite_message=invite_message,
                    )
                )
            elif wanted.level.outranks(member.level):
                previous = MemberLevel(member.level)
                member = await self.memberships.upsert_level(group_id, user_id, wanted.level)
                await self.activities.record_update(
                    member,
                    actor,
                    action,
                    target=group,
                    changes={"level": {"from": previous.value, "to": wanted.level.value}},
                )
                result.updated.append(member)

        logger.info(
            "Invite batch for group %s: %d created, %d promoted, %d placeholder(s)",
            group_id,
            len(result.created),
            len(result.updated),
            len(result.placeholders),
        )

        if result.notices:
            notices = list(result.notices)
            tx.after_commit(lambda: self.notifier.send_group_invite_created(notices))

        return result
