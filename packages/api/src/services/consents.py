"""User consents for partner sites, and partner lookups."""

import logging
import uuid

from db import Partner, UserConsent
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .activity import Actor, ActivityRecorder
from .errors import NotFoundError

logger = logging.getLogger(__name__)


async def get_partner(session: AsyncSession, partner_id: uuid.UUID) -> Partner:
    partner = (
        await session.execute(select(Partner).where(Partner.id == partner_id))
    ).scalar_one_or_none()
    if partner is None:
        raise NotFoundError("Partner not found")
    return partner


async def add_consent(
    session: AsyncSession,
    activities: ActivityRecorder,
    user_id: uuid.UUID,
    partner_id: uuid.UUID,
    actor: Actor,
    *,
    action: str | None = None,
) -> tuple[UserConsent, bool]:
    """Idempotent upsert. Returns (consent, created)."""
    partner = await get_partner(session, partner_id)
    stmt = select(UserConsent).where(
        UserConsent.user_id == user_id,
        UserConsent.partner_id == partner_id,
    )
    consent = (await session.execute(stmt)).scalar_one_or_none()
    if consent is not None:
        return consent, False

    consent = UserConsent(user_id=user_id, partner_id=partner_id)
    session.add(consent)
    await session.flush()
    await activities.record_create(consent, actor, action, target=partner)
    return consent, True


async def list_consented_partners(session: AsyncSession, user_id: uuid.UUID) -> list[Partner]:
    stmt = (
        select(Partner)
        .join(UserConsent, UserConsent.partner_id == Partner.id)
        .where(UserConsent.user_id == user_id)
        .order_by(UserConsent.created_at.asc())
    )
    return list((await session.execute(stmt)).scalars().all())


async def remove_consent(
    session: AsyncSession,
    activities: ActivityRecorder,
    user_id: uuid.UUID,
    partner_id: uuid.UUID,
    actor: Actor,
    *,
    action: str | None = None,
) -> None:
    stmt = select(UserConsent).where(
        UserConsent.user_id == user_id,
        UserConsent.partner_id == partner_id,
    )
    consent = (await session.execute(stmt)).scalar_one_or_none()
    if consent is None:
        raise NotFoundError("Consent not found")

    await activities.record_delete(consent, actor, action)
    await session.execute(
        delete(UserConsent)
        .where(UserConsent.id == consent.id)
        .execution_options(synchronize_session=False)
    )
