"""User, consent, connection and partner schemas."""

import uuid
from datetime import datetime

from db.enums import UserSource
from pydantic import BaseModel, ConfigDict, Field


class UserUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    company: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=254)
    language: str | None = Field(default=None, min_length=2, max_length=5)
    image_url: str | None = None
    terms_version: str | None = Field(default=None, max_length=20)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str | None = None
    email: str | None = None
    company: str | None = None
    language: str
    image_url: str | None = None
    email_is_verified: bool
    source: UserSource
    terms_version: str | None = None
    terms_accepted_at: datetime | None = None
    created_at: datetime | None = None


class ConsentCreate(BaseModel):
    partner_id: uuid.UUID


class ConsentResponse(BaseModel):
    user_id: uuid.UUID
    partner_id: uuid.UUID
    created_at: datetime | None = None


class PartnerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    website: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class UserConnectionsResponse(BaseModel):
    count: int
    rows: list[dict[str, str]]
