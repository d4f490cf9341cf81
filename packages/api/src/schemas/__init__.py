"""Shared schema components: the response envelope and list pages."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class StatusBlock(BaseModel):
    """``code`` is the HTTP status times 100 plus an endpoint sub-code."""

    code: int
    message: str | None = None


class Envelope(BaseModel, Generic[T]):
    """Uniform success body: ``{"status": {"code": ...}, "data": ...}``."""

    status: StatusBlock
    data: T | None = None


class ListPage(BaseModel, Generic[T]):
    """Paged list payload."""

    count_total: int | None = None
    count: int
    rows: list[T] = Field(default_factory=list)


def envelope(data=None, status_code: int = 200, sub_code: int = 0) -> Envelope:
    return Envelope(status=StatusBlock(code=status_code * 100 + sub_code), data=data)
