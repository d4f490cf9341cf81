__version__ = "0.1.0"

from .database import Base, DatabaseService, SoftDeleteMixin, get_db, get_db_service
from .enums import (
    ActivityType,
    ActorType,
    ConnectionId,
    GroupVisibility,
    MemberLevel,
    UserSource,
)
from .models import (
    Activity,
    Group,
    GroupInvite,
    GroupMember,
    Partner,
    User,
    UserConnection,
    UserConsent,
)

__all__ = [
    "Base",
    "DatabaseService",
    "SoftDeleteMixin",
    "get_db",
    "get_db_service",
    "__version__",
    # Enums
    "ActivityType",
    "ActorType",
    "ConnectionId",
    "GroupVisibility",
    "MemberLevel",
    "UserSource",
    # Models
    "Activity",
    "Group",
    "GroupInvite",
    "GroupMember",
    "Partner",
    "User",
    "UserConnection",
    "UserConsent",
]
