"""Group CRUD routes and the public group list."""

import uuid
from typing import Annotated

from db.enums import MemberLevel
from fastapi import APIRouter, Depends, Query, status

from ..dependencies import (
    Action,
    RequestActor,
    Session,
    get_activity_recorder,
    get_membership_store,
    require_group_level,
)
from ..middleware.auth import CurrentUser
from ..schemas import Envelope, ListPage, envelope
from ..schemas.group import (
    CreatorSummary,
    GroupCreate,
    GroupResponse,
    GroupUpdate,
    MembersBlock,
    MemberUserSummary,
)
from ..services import groups as group_service
from ..services.activity import ActivityRecorder
from ..services.groups import GroupSummary
from ..services.membership import MembershipStore
from ..services.transaction import Transaction

router = APIRouter()

Activities = Annotated[ActivityRecorder, Depends(get_activity_recorder)]
Memberships = Annotated[MembershipStore, Depends(get_membership_store)]


def _build_group_response(summary: GroupSummary) -> GroupResponse:
    group = summary.group
    creator = None
    if summary.creator is not None:
        creator = CreatorSummary(
            id=summary.creator.id,
            name=summary.creator.name,
            company=summary.creator.company,
        )
    users = None
    if summary.members is not None:
        users = [
            MemberUserSummary(
                id=user.id,
                name=user.name,
                company=user.company,
                image_url=user.image_url,
                level=member.level,
            )
            for member, user in summary.members
        ]
    return GroupResponse(
        id=group.id,
        parent_id=group.parent_id,
        name=group.name,
        visibility=group.visibility,
        source_partner_id=group.source_partner_id,
        creator=creator,
        members=MembersBlock(count=summary.member_count, users=users),
        permission_level=summary.level,
        created_at=group.created_at,
        updated_at=group.updated_at,
    )


@router.post(
    "/users/{user_id}/groups",
    response_model=Envelope[GroupResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_group(
    body: GroupCreate,
    user: CurrentUser,
    actor: RequestActor,
    action: Action,
    session: Session,
    memberships: Memberships,
    activities: Activities,
) -> Envelope:
    """Create a group. The caller becomes its admin."""
    async with Transaction(session):
        group = await group_service.create_group(
            session,
            memberships,
            activities,
            actor,
            name=body.name,
            visibility=body.visibility,
            parent_id=body.parent_id,
            source_partner_id=user.partner_id,
            action=action,
        )
    summary = await group_service.get_group(session, group.id)
    summary.level = MemberLevel.ADMIN
    return envelope(_build_group_response(summary), status.HTTP_201_CREATED)


@router.get("/users/{user_id}/groups", response_model=Envelope[ListPage[GroupResponse]])
async def list_my_groups(
    user: CurrentUser,
    session: Session,
    include: list[str] | None = Query(default=None),
) -> Envelope:
    """Groups the caller is a member of, most recently updated first."""
    summaries = await group_service.list_user_groups(
        session,
        user.user_id,
        include_members="member.user" in (include or []),
    )
    rows = [_build_group_response(s) for s in summaries]
    return envelope(ListPage(count=len(rows), rows=rows))


@router.get(
    "/users/{user_id}/groups/{group_id}",
    response_model=Envelope[GroupResponse],
    dependencies=[Depends(require_group_level(MemberLevel.READ))],
)
async def read_group(group_id: uuid.UUID, session: Session) -> Envelope:
    summary = await group_service.get_group(session, group_id)
    return envelope(_build_group_response(summary))


@router.put(
    "/users/{user_id}/groups/{group_id}",
    response_model=Envelope[GroupResponse],
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
async def update_group(
    group_id: uuid.UUID,
    body: GroupUpdate,
    actor: RequestActor,
    action: Action,
    session: Session,
    activities: Activities,
) -> Envelope:
    async with Transaction(session):
        await group_service.update_group(
            session,
            activities,
            group_id,
            actor,
            name=body.name,
            visibility=body.visibility,
            action=action,
        )
    summary = await group_service.get_group(session, group_id)
    return envelope(_build_group_response(summary))


@router.delete(
    "/users/{user_id}/groups/{group_id}",
    response_model=Envelope[None],
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
async def delete_group(
    group_id: uuid.UUID,
    actor: RequestActor,
    action: Action,
    session: Session,
    memberships: Memberships,
    activities: Activities,
) -> Envelope:
    """Soft-delete the group and all its memberships."""
    async with Transaction(session):
        await group_service.delete_group(
            session, memberships, activities, group_id, actor, action=action
        )
    return envelope()


@router.get("/groups", response_model=Envelope[ListPage[GroupResponse]])
async def list_public_groups(
    session: Session,
    name: str | None = None,
    source_partner_id: uuid.UUID | None = None,
    limit: int | None = None,
    offset: int = Query(default=0, ge=0),
) -> Envelope:
    """Public groups, newest first. No authentication required."""
    summaries, total = await group_service.list_public_groups(
        session,
        name=name,
        source_partner_id=source_partner_id,
        limit=limit,
        offset=offset,
    )
    rows = [_build_group_response(s) for s in summaries]
    return envelope(ListPage(count_total=total, count=len(rows), rows=rows))
