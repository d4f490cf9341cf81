"""
Async engine, session factory and soft-delete query filtering.

Rows of tables using ``SoftDeleteMixin`` are hidden from every ORM SELECT
once ``deleted_at`` is set. A statement opts back in with
``.execution_options(include_deleted=True)``.
"""

import logging
from collections.abc import AsyncGenerator
from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, event, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import ORMExecuteState, Session, declarative_base, with_loader_criteria

from .config import db_settings

logger = logging.getLogger(__name__)

Base = declarative_base()


class SoftDeleteMixin:
    """Adds a nullable ``deleted_at`` marker excluded from default reads."""

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    def soft_delete(self, when: datetime | None = None) -> None:
        self.deleted_at = when or datetime.now(UTC)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@event.listens_for(Session, "do_orm_execute")
def _filter_soft_deleted(execute_state: ORMExecuteState) -> None:
    if (
        execute_state.is_select
        and not execute_state.is_column_load
        and not execute_state.is_relationship_load
        and not execute_state.execution_options.get("include_deleted", False)
    ):
        execute_state.statement = execute_state.statement.options(
            with_loader_criteria(
                SoftDeleteMixin,
                lambda cls: cls.deleted_at.is_(None),
                include_aliases=True,
            )
        )


engine = create_async_engine(
    db_settings.DATABASE_URL, echo=db_settings.SQL_ECHO, pool_pre_ping=True
)

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards."""
    async with SessionLocal() as session:
        yield session


class DatabaseService:
    """Thin wrapper around the engine for health checks and shutdown."""

    def __init__(self, engine=engine):
        self.engine = engine

    async def health_check(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database health check failed")
            return False

    async def close(self) -> None:
        await self.engine.dispose()


db_service = DatabaseService()


async def get_db_service() -> DatabaseService:
    return db_service
