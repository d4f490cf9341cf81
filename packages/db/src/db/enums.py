"""
Domain enums for groups, membership and user identity.

Shared domain types used by both SQLAlchemy models (db package)
and Pydantic schemas (api package).
"""

import enum


class MemberLevel(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @classmethod
    def ordering(cls) -> dict["MemberLevel", int]:
        """Total order of permission levels: read < write < admin."""
        return {
            cls.READ: 0,
            cls.WRITE: 1,
            cls.ADMIN: 2,
        }

    @classmethod
    def highest(cls) -> "MemberLevel":
        ranks = cls.ordering()
        return max(ranks, key=ranks.__getitem__)

    def rank(self) -> int:
        return MemberLevel.ordering()[self]

    def outranks(self, other: "MemberLevel") -> bool:
        """True when this level is strictly higher than ``other``."""
        return self.rank() > MemberLevel(other).rank()

    def satisfies(self, required: "MemberLevel") -> bool:
        """True when this level is equal to or higher than ``required``."""
        return self.rank() >= MemberLevel(required).rank()


class GroupVisibility(str, enum.Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class UserSource(str, enum.Enum):
    CITIZENOS = "citizenos"
    ESTEID = "esteid"
    SMARTID = "smartid"
    FACEBOOK = "facebook"
    GOOGLE = "google"


class ConnectionId(str, enum.Enum):
    ESTEID = "esteid"
    SMARTID = "smartid"
    CITIZENOS = "citizenos"
    FACEBOOK = "facebook"
    GOOGLE = "google"


class ActivityType(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    INVITE = "invite"
    ACCEPT = "accept"


class ActorType(str, enum.Enum):
    USER = "User"
    SYSTEM = "System"
