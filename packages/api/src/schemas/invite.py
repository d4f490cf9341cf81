"""Group invitation schemas."""

import uuid
from datetime import datetime

from db.enums import GroupVisibility, MemberLevel
from pydantic import BaseModel

from .group import CreatorSummary


class InviteUserRequest(BaseModel):
    """One invitee. ``user_id`` is a user UUID or an email address."""

    user_id: str | None = None
    level: MemberLevel = MemberLevel.READ
    language: str | None = None
    invite_message: str | None = None


class InviteResponse(BaseModel):
    id: uuid.UUID
    group_id: uuid.UUID
    creator_id: uuid.UUID
    user_id: uuid.UUID
    level: MemberLevel
    invite_message: str | None = None
    created_at: datetime | None = None


class InviteCreatedList(BaseModel):
    count: int
    rows: list[InviteResponse]


class InviteGroupSummary(BaseModel):
    id: uuid.UUID
    name: str
    visibility: GroupVisibility


class InviteeSummary(BaseModel):
    id: uuid.UUID
    email: str | None = None


class InviteDetailResponse(BaseModel):
    id: uuid.UUID
    level: MemberLevel
    created_at: datetime | None = None
    created_days_ago: int
    group: InviteGroupSummary
    creator: CreatorSummary | None = None
    user: InviteeSummary


class PendingInviteResponse(BaseModel):
    id: uuid.UUID
    level: MemberLevel
    created_at: datetime | None = None
    user: CreatorSummary
