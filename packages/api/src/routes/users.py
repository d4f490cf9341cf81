"""User profile, consent and connection routes."""

import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from ..dependencies import (
    Action,
    RequestActor,
    Session,
    get_activity_recorder,
    get_notification_service,
)
from ..middleware.auth import PathUser
from ..schemas import Envelope, ListPage, envelope
from ..schemas.user import (
    ConsentCreate,
    ConsentResponse,
    PartnerResponse,
    UserConnectionsResponse,
    UserResponse,
    UserUpdate,
)
from ..services import consents as consent_service
from ..services import users as user_service
from ..services.activity import ActivityRecorder
from ..services.errors import NotFoundError
from ..services.notification import NotificationService
from ..services.transaction import Transaction
from ..services.users import UserDirectory

router = APIRouter()

Activities = Annotated[ActivityRecorder, Depends(get_activity_recorder)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]


def _build_user_response(user) -> UserResponse:
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        company=user.company,
        language=user.language,
        image_url=user.image_url,
        email_is_verified=bool(user.email_is_verified),
        source=user.source,
        terms_version=user.terms_version,
        terms_accepted_at=user.terms_accepted_at,
        created_at=user.created_at,
    )


@router.get("/{user_id}", response_model=Envelope[UserResponse])
async def read_user(user: PathUser, session: Session, activities: Activities) -> Envelope:
    found = await UserDirectory(session, activities).get(user.user_id)
    if found is None:
        raise NotFoundError("User not found")
    return envelope(_build_user_response(found))


@router.put("/{user_id}", response_model=Envelope[UserResponse])
async def update_user(
    body: UserUpdate,
    user: PathUser,
    actor: RequestActor,
    action: Action,
    session: Session,
    activities: Activities,
    notifier: Notifier,
) -> Envelope:
    """Update the caller's profile. A new email must be verified again."""
    async with Transaction(session) as tx:
        updated, email_changed = await user_service.update_profile(
            session,
            activities,
            user.user_id,
            actor,
            action,
            **body.model_dump(exclude_unset=True),
        )
        if email_changed:
            email, code = updated.email, updated.email_verification_code
            tx.after_commit(lambda: notifier.send_account_verification(email, code))
    return envelope(_build_user_response(updated))


@router.delete("/{user_id}", response_model=Envelope[None])
async def delete_user(
    user: PathUser,
    actor: RequestActor,
    action: Action,
    session: Session,
    activities: Activities,
) -> Envelope:
    """Anonymize and soft-delete the caller's account."""
    async with Transaction(session):
        await user_service.anonymize_and_delete(session, activities, user.user_id, actor, action)
    return envelope()


# ---------------------------------------------------------------------------
# Consents
# ---------------------------------------------------------------------------


@router.post("/{user_id}/consents", response_model=Envelope[ConsentResponse])
async def create_consent(
    body: ConsentCreate,
    response: Response,
    user: PathUser,
    actor: RequestActor,
    action: Action,
    session: Session,
    activities: Activities,
) -> Envelope:
    """Idempotent: an existing consent is returned with 200."""
    async with Transaction(session):
        consent, created = await consent_service.add_consent(
            session, activities, user.user_id, body.partner_id, actor, action=action
        )
    data = ConsentResponse(
        user_id=consent.user_id, partner_id=consent.partner_id, created_at=consent.created_at
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
        return envelope(data, status.HTTP_201_CREATED)
    return envelope(data)


@router.get("/{user_id}/consents", response_model=Envelope[ListPage[PartnerResponse]])
async def list_consents(user: PathUser, session: Session) -> Envelope:
    partners = await consent_service.list_consented_partners(session, user.user_id)
    rows = [PartnerResponse.model_validate(p) for p in partners]
    return envelope(ListPage(count=len(rows), rows=rows))


@router.delete("/{user_id}/consents/{partner_id}", response_model=Envelope[None])
async def delete_consent(
    partner_id: uuid.UUID,
    user: PathUser,
    actor: RequestActor,
    action: Action,
    session: Session,
    activities: Activities,
) -> Envelope:
    async with Transaction(session):
        await consent_service.remove_consent(
            session, activities, user.user_id, partner_id, actor, action=action
        )
    return envelope()


# ---------------------------------------------------------------------------
# Connections (unauthenticated: used by login forms before sign-in)
# ---------------------------------------------------------------------------


@router.get("/{user_id}/userconnections", response_model=Envelope[UserConnectionsResponse])
async def list_user_connections(user_id: str, session: Session) -> Envelope:
    """``user_id`` may be a user UUID or an email address."""
    connection_ids = await user_service.list_connection_ids(session, user_id)
    rows = [{"connection_id": c} for c in connection_ids]
    return envelope(UserConnectionsResponse(count=len(rows), rows=rows))
