"""Group member routes: list, change level, remove."""

import uuid
from typing import Annotated

from db.enums import MemberLevel
from fastapi import APIRouter, Depends, Query

from ..dependencies import (
    Action,
    RequestActor,
    Session,
    get_activity_recorder,
    get_membership_store,
    require_group_level,
)
from ..schemas import Envelope, ListPage, envelope
from ..schemas.member import GroupMemberUserResponse, MemberLevelUpdate, MemberResponse
from ..services.activity import ActivityRecorder
from ..services.errors import NotFoundError
from ..services.membership import MembershipStore
from ..services.transaction import Transaction

router = APIRouter()

Activities = Annotated[ActivityRecorder, Depends(get_activity_recorder)]
Memberships = Annotated[MembershipStore, Depends(get_membership_store)]


def _build_member_response(member) -> MemberResponse:
    return MemberResponse(
        group_id=member.group_id,
        user_id=member.user_id,
        level=member.level,
        created_at=member.created_at,
        updated_at=member.updated_at,
    )


@router.get(
    "/users",
    response_model=Envelope[ListPage[GroupMemberUserResponse]],
    dependencies=[Depends(require_group_level(MemberLevel.READ))],
)
async def list_members(
    group_id: uuid.UUID,
    memberships: Memberships,
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    search: str | None = None,
) -> Envelope:
    rows, total = await memberships.list_for_group(
        group_id, limit=limit, offset=offset, search=search
    )
    data = [
        GroupMemberUserResponse(
            id=user.id,
            name=user.name,
            company=user.company,
            image_url=user.image_url,
            level=member.level,
        )
        for member, user in rows
    ]
    return envelope(ListPage(count_total=total, count=len(data), rows=data))


@router.put(
    "/users/{member_id}",
    response_model=Envelope[MemberResponse],
    dependencies=[Depends(require_group_level(MemberLevel.ADMIN))],
)
async def update_member_level(
    group_id: uuid.UUID,
    member_id: uuid.UUID,
    body: MemberLevelUpdate,
    actor: RequestActor,
    action: Action,
    session: Session,
    memberships: Memberships,
    activities: Activities,
) -> Envelope:
    """Change a member's level. Demoting the last admin is rejected."""
    async with Transaction(session):
        member = await memberships.get(group_id, member_id)
        if member is None:
            raise NotFoundError("Member not found")
        previous = MemberLevel(member.level)
        if previous != body.level:
            member = await memberships.upsert_level(group_id, member_id, body.level)
            await activities.record_update(
                member,
                actor,
                action,
                changes={"level": {"from": previous.value, "to": body.level.value}},
            )
    return envelope(_build_member_response(member))


@router.delete(
    "/users/{member_id}",
    response_model=Envelope[None],
    dependencies=[
        Depends(require_group_level(MemberLevel.ADMIN, allow_self_param="member_id"))
    ],
)
async def remove_member(
    group_id: uuid.UUID,
    member_id: uuid.UUID,
    actor: RequestActor,
    action: Action,
    session: Session,
    memberships: Memberships,
    activities: Activities,
) -> Envelope:
    """Remove a member. Admins may remove anyone; members may leave."""
    async with Transaction(session):
        member = await memberships.get(group_id, member_id)
        if member is None or not await memberships.remove(group_id, member_id):
            raise NotFoundError("Member not found")
        await activities.record_delete(member, actor, action)
    return envelope()
