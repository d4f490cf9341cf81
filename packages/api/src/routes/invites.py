"""Group invitation routes.

Single-invite endpoints answer on both ``/api/groups/{group_id}/...`` and
the ``/api/users/{user_id}/groups/{group_id}/...`` alias.
"""

import uuid
from typing import Annotated

from db.enums import MemberLevel
from fastapi import APIRouter, Depends, Query, Response, status

from ..dependencies import (
    Action,
    RequestActor,
    Session,
    get_invitation_lifecycle,
    get_invitation_reconciler,
    require_group_level,
)
from ..schemas import Envelope, ListPage, envelope
from ..schemas.group import CreatorSummary
from ..schemas.invite import (
    InviteCreatedList,
    InviteDetailResponse,
    InviteeSummary,
    InviteGroupSummary,
    InviteResponse,
    InviteUserRequest,
    PendingInviteResponse,
)
from ..schemas.member import MemberResponse
from ..services import groups as group_service
from ..services.errors import NoInvitesCreatedError
from ..services.invite_lifecycle import InvitationLifecycle, InvitationView
from ..services.invite_reconciler import InvitationReconciler
from ..services.transaction import Transaction

router = APIRouter()

Reconciler = Annotated[InvitationReconciler, Depends(get_invitation_reconciler)]
Lifecycle = Annotated[InvitationLifecycle, Depends(get_invitation_lifecycle)]

_INVITE_PATHS = (
    "/groups/{group_id}/invites/users/{invite_id}",
    "/users/{user_id}/groups/{group_id}/invites/users/{invite_id}",
)


def _build_invite_response(invite, invite_message: str | None = None) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        group_id=invite.group_id,
        creator_id=invite.creator_id,
        user_id=invite.user_id,
        level=invite.level,
        invite_message=invite_message,
        created_at=invite.created_at,
    )


def _build_invite_detail_response(view: InvitationView) -> InviteDetailResponse:
    creator = None
    if view.creator is not None:
        creator = CreatorSummary(
            id=view.creator.id, name=view.creator.name, company=view.creator.company
        )
    return InviteDetailResponse(
        id=view.invite.id,
        level=view.invite.level,
        created_at=view.invite.created_at,
        created_days_ago=view.created_days_ago,
        group=InviteGroupSummary(
            id=view.group.id,
            name=view.group.name,
            visibility=view.group.visibility,
        ),
        creator=creator,
        user=InviteeSummary(
            id=view.invite.user_id,
            email=view.invitee.email if view.invitee is not None else None,
        ),
    )


def _build_member_response(member) -> MemberResponse:
    return MemberResponse(
        group_id=member.group_id,
        user_id=member.user_id,
        level=member.level,
        created_at=member.created_at,
        updated_at=member.updated_at,
    )


@router.post(
    "/users/{user_id}/groups/{group_id}/invites/users",
    response_model=Envelope[InviteCreatedList],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
async def create_invites(
    group_id: uuid.UUID,
    body: InviteUserRequest | list[InviteUserRequest],
    actor: RequestActor,
    action: Action,
    session: Session,
    reconciler: Reconciler,
) -> Envelope:
    """Invite users by id or email. Accepts one request object or a list."""
    requests = body if isinstance(body, list) else [body]
    invite_message = requests[0].invite_message if requests else None

    async with Transaction(session) as tx:
        result = await reconciler.reconcile(
            tx,
            group_id,
            actor,
            requests,
            action=action,
            invite_message=invite_message,
        )

    if not result.created:
        raise NoInvitesCreatedError()

    rows = [_build_invite_response(i, result.invite_message) for i in result.created]
    return envelope(InviteCreatedList(count=len(rows), rows=rows), status.HTTP_201_CREATED)


@router.get(
    "/users/{user_id}/groups/{group_id}/invites/users",
    response_model=Envelope[ListPage[PendingInviteResponse]],
    dependencies=[Depends(require_group_level(MemberLevel.READ))],
)
async def list_invites(
    group_id: uuid.UUID,
    session: Session,
    lifecycle: Lifecycle,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    search: str | None = None,
) -> Envelope:
    """Pending invitations still inside the validity window."""
    rows, total = await group_service.list_pending_invites(
        session, group_id, lifecycle.clock(), limit=limit, offset=offset, search=search
    )
    data = [
        PendingInviteResponse(
            id=invite.id,
            level=invite.level,
            created_at=invite.created_at,
            user=CreatorSummary(id=user.id, name=user.name, company=user.company),
        )
        for invite, user in rows
    ]
    return envelope(ListPage(count_total=total, count=len(data), rows=data))


@router.get(_INVITE_PATHS[0], response_model=Envelope[InviteDetailResponse])
@router.get(_INVITE_PATHS[1], response_model=Envelope[InviteDetailResponse])
async def read_invite(
    group_id: uuid.UUID,
    invite_id: uuid.UUID,
    session: Session,
    lifecycle: Lifecycle,
) -> Envelope:
    """Fetch one invitation. No authentication: the invite link is the credential.

    A used invitation whose invitee already has access answers with
    sub-code 1 instead of 410.
    """
    async with Transaction(session):
        view = await lifecycle.fetch(invite_id, group_id)
    return envelope(_build_invite_detail_response(view), sub_code=1 if view.already_resolved else 0)


@router.delete(
    _INVITE_PATHS[0],
    response_model=Envelope[None],
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
@router.delete(
    _INVITE_PATHS[1],
    response_model=Envelope[None],
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
async def delete_invite(
    group_id: uuid.UUID,
    invite_id: uuid.UUID,
    actor: RequestActor,
    action: Action,
    session: Session,
    lifecycle: Lifecycle,
) -> Envelope:
    async with Transaction(session):
        await lifecycle.delete(invite_id, group_id, actor, action=action)
    return envelope()


@router.post(f"{_INVITE_PATHS[0]}/accept", response_model=Envelope[MemberResponse])
@router.post(f"{_INVITE_PATHS[1]}/accept", response_model=Envelope[MemberResponse])
async def accept_invite(
    group_id: uuid.UUID,
    invite_id: uuid.UUID,
    response: Response,
    actor: RequestActor,
    action: Action,
    session: Session,
    lifecycle: Lifecycle,
) -> Envelope:
    """Accept an invitation as its invitee.

    201 when a membership was created, 200 when an existing membership was
    returned (possibly promoted to the invitation's level).
    """
    async with Transaction(session):
        member, created = await lifecycle.accept(invite_id, group_id, actor, action=action)

    if created:
        response.status_code = status.HTTP_201_CREATED
        return envelope(_build_member_response(member), status.HTTP_201_CREATED)
    return envelope(_build_member_response(member))
