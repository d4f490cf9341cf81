"""Activity (audit) trail writer.

Every state-changing operation records one append-only ``Activity`` row in
the same transaction as the change it documents. Rows are added and
flushed; the caller's ``Transaction`` commits or rolls them back together
with the mutation.
"""

import logging
from dataclasses import dataclass
from typing import Any

from db import Activity
from db.enums import ActivityType, ActorType
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who performed an action, as recorded in the activity trail."""

    type: ActorType
    id: Any = None
    ip: str | None = None

    @classmethod
    def user(cls, user_id, ip: str | None = None) -> "Actor":
        return cls(type=ActorType.USER, id=user_id, ip=ip)

    @classmethod
    def system(cls, ip: str | None = None) -> "Actor":
        return cls(type=ActorType.SYSTEM, ip=ip)


@dataclass(frozen=True)
class EntityRef:
    """Reference to an entity that is not loaded as an ORM object."""

    type: str
    id: Any


def _describe(entity) -> tuple[str | None, str | None]:
    if entity is None:
        return None, None
    if isinstance(entity, EntityRef):
        return entity.type, str(entity.id)
    entity_id = getattr(entity, "id", None)
    return type(entity).__name__, str(entity_id) if entity_id is not None else None


class ActivityRecorder:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _record(
        self,
        event_type: ActivityType,
        obj,
        actor: Actor,
        action: str | None,
        target=None,
        data: dict | None = None,
    ) -> Activity:
        # Rows without a primary key yet need one before they can be referenced.
        if getattr(obj, "id", 0) is None or getattr(target, "id", 0) is None:
            await self.session.flush()

        object_type, object_id = _describe(obj)
        target_type, target_id = _describe(target)
        activity = Activity(
            event_type=event_type,
            actor_type=actor.type,
            actor_id=str(actor.id) if actor.id is not None else None,
            actor_ip=actor.ip,
            object_type=object_type,
            object_id=object_id,
            target_type=target_type,
            target_id=target_id,
            action=action,
            event_data=data,
        )
        self.session.add(activity)
        await self.session.flush()
        logger.debug(
            "Activity %s %s:%s by %s:%s",
            event_type.value,
            object_type,
            object_id,
            actor.type.value,
            actor.id,
        )
        return activity

    async def record_create(self, obj, actor: Actor, action: str | None, target=None) -> Activity:
        return await self._record(ActivityType.CREATE, obj, actor, action, target)

    async def record_update(
        self, obj, actor: Actor, action: str | None, target=None, changes: dict | None = None
    ) -> Activity:
        return await self._record(ActivityType.UPDATE, obj, actor, action, target, changes)

    async def record_delete(self, obj, actor: Actor, action: str | None, target=None) -> Activity:
        return await self._record(ActivityType.DELETE, obj, actor, action, target)

    async def record_invite(
        self, obj, actor: Actor, action: str | None, target=None, data: dict | None = None
    ) -> Activity:
        return await self._record(ActivityType.INVITE, obj, actor, action, target, data)

    async def record_accept(
        self, obj, actor: Actor, action: str | None, target=None, data: dict | None = None
    ) -> Activity:
        return await self._record(ActivityType.ACCEPT, obj, actor, action, target, data)
