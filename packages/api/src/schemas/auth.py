"""Authentication schemas."""

import uuid

from pydantic import BaseModel, ConfigDict


class UserContext(BaseModel):
    """Injected by auth middleware into every authenticated request."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    email: str = ""
    name: str = ""
    partner_id: uuid.UUID | None = None


class TokenPayload(BaseModel):
    """Decoded JWT token claims."""

    sub: str
    email: str = ""
    preferred_username: str = ""
    name: str = ""
    partner_id: str | None = None
