"""Group request/response schemas."""

import uuid
from datetime import datetime

from db.enums import GroupVisibility, MemberLevel
from pydantic import BaseModel, ConfigDict, Field


class GroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    parent_id: uuid.UUID | None = None
    visibility: GroupVisibility = GroupVisibility.PRIVATE


class GroupUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    visibility: GroupVisibility | None = None


class CreatorSummary(BaseModel):
    id: uuid.UUID
    name: str | None = None
    company: str | None = None


class MemberUserSummary(BaseModel):
    id: uuid.UUID
    name: str | None = None
    company: str | None = None
    image_url: str | None = None
    level: MemberLevel


class MembersBlock(BaseModel):
    count: int
    users: list[MemberUserSummary] | None = None


class GroupResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    parent_id: uuid.UUID | None = None
    name: str
    visibility: GroupVisibility
    source_partner_id: uuid.UUID | None = None
    creator: CreatorSummary | None = None
    members: MembersBlock
    permission_level: MemberLevel | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
