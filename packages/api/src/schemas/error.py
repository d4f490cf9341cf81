"""Error body of the response envelope."""

from pydantic import BaseModel, Field

from . import StatusBlock


class ErrorResponse(BaseModel):
    """``{"status": {"code": ..., "message": ...}, "errors": {...}}``.

    ``errors`` maps a request field to its validation message and is only
    present for per-field validation failures.
    """

    status: StatusBlock
    errors: dict[str, str] | None = Field(
        default=None,
        description="Per-field validation messages.",
    )
