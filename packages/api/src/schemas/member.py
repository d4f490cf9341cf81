"""Group member schemas."""

import uuid
from datetime import datetime

from db.enums import MemberLevel
from pydantic import BaseModel, ConfigDict


class MemberLevelUpdate(BaseModel):
    level: MemberLevel


class MemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    group_id: uuid.UUID
    user_id: uuid.UUID
    level: MemberLevel
    created_at: datetime | None = None
    updated_at: datetime | None = None


class GroupMemberUserResponse(BaseModel):
    """A member row in the group's member list."""

    id: uuid.UUID
    name: str | None = None
    company: str | None = None
    image_url: str | None = None
    level: MemberLevel
