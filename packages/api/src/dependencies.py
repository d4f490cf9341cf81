"""FastAPI dependency providers.

Services are built per request from the request's database session and
handed to route handlers explicitly.
"""

import logging
import uuid
from typing import Annotated

from db import get_db
from db.enums import MemberLevel
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .middleware.auth import CurrentUser
from .schemas.auth import UserContext
from .services.activity import Actor, ActivityRecorder
from .services.invite_lifecycle import InvitationLifecycle
from .services.invite_reconciler import InvitationReconciler
from .services.membership import MembershipStore
from .services.notification import NotificationService
from .services.permissions import PermissionEvaluator
from .services.users import UserDirectory

logger = logging.getLogger(__name__)

Session = Annotated[AsyncSession, Depends(get_db)]


def get_activity_recorder(session: Session) -> ActivityRecorder:
    return ActivityRecorder(session)


def get_membership_store(session: Session) -> MembershipStore:
    return MembershipStore(session)


def get_permission_evaluator(session: Session) -> PermissionEvaluator:
    return PermissionEvaluator(session)


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_user_directory(
    session: Session,
    activities: Annotated[ActivityRecorder, Depends(get_activity_recorder)],
) -> UserDirectory:
    return UserDirectory(session, activities)


def get_invitation_reconciler(
    session: Session,
    memberships: Annotated[MembershipStore, Depends(get_membership_store)],
    users: Annotated[UserDirectory, Depends(get_user_directory)],
    activities: Annotated[ActivityRecorder, Depends(get_activity_recorder)],
    notifier: Annotated[NotificationService, Depends(get_notification_service)],
) -> InvitationReconciler:
    return InvitationReconciler(session, memberships, users, activities, notifier)


def get_invitation_lifecycle(
    session: Session,
    memberships: Annotated[MembershipStore, Depends(get_membership_store)],
    users: Annotated[UserDirectory, Depends(get_user_directory)],
    activities: Annotated[ActivityRecorder, Depends(get_activity_recorder)],
    permissions: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
) -> InvitationLifecycle:
    return InvitationLifecycle(session, memberships, users, activities, permissions)


def action_label(request: Request) -> str:
    """``"<METHOD> <path>"`` as stored on activity rows."""
    return f"{request.method} {request.url.path}"


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def get_actor(request: Request, user: CurrentUser) -> Actor:
    return Actor.user(user.user_id, ip=client_ip(request))


RequestActor = Annotated[Actor, Depends(get_actor)]
Action = Annotated[str, Depends(action_label)]


def require_group_level(
    level: MemberLevel,
    *,
    allow_public: bool = False,
    allow_self_param: str | None = None,
):
    """Dependency factory: the caller needs ``level`` on the ``{group_id}`` group.

    ``allow_self_param`` names a path parameter holding a user id; when it
    resolves to the caller, members may act on their own record regardless
    of level.

    Usage:
        @router.put("/{group_id}", dependencies=[Depends(require_group_level(MemberLevel.ADMIN))])
    """

    async def _check(
        request: Request,
        group_id: uuid.UUID,
        user: CurrentUser,
        permissions: Annotated[PermissionEvaluator, Depends(get_permission_evaluator)],
    ) -> UserContext:
        subject = None
        if allow_self_param is not None:
            subject = request.path_params.get(allow_self_param)

        allowed = await permissions.evaluate(
            group_id,
            user.user_id,
            level,
            allow_public=allow_public,
            allow_self=allow_self_param is not None,
            subject_user_id=subject,
        )
        if not allowed:
            logger.warning(
                "Group permission denied: user=%s group=%s required=%s",
                user.user_id,
                group_id,
                MemberLevel(level).value,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return user

    return _check
