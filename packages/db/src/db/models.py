"""
Citizen OS -- domain models

Users and their consents/connections, groups, group membership,
group invitations and the activity (audit) trail.
"""

import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import relationship

from .database import Base, SoftDeleteMixin
from .enums import ActivityType, ActorType, ConnectionId, GroupVisibility, MemberLevel, UserSource


def _enum(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [m.value for m in members],
    )


class User(SoftDeleteMixin, Base):
    """Platform account. Invite placeholders have no password."""

    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=True)
    email = Column(String(254), nullable=True)
    password = Column(String(255), nullable=True)
    email_is_verified = Column(Boolean, nullable=False, default=False)
    email_verification_code = Column(Uuid, nullable=False, default=uuid.uuid4)
    language = Column(String(5), nullable=False, default="en")
    company = Column(String(255), nullable=True)
    image_url = Column(Text, nullable=True)
    source = Column(_enum(UserSource, "user_source"), nullable=False, default=UserSource.CITIZENOS)
    source_id = Column(String(255), nullable=True)
    terms_version = Column(String(20), nullable=True)
    terms_accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    connections = relationship("UserConnection", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}')>"


Index(
    "uq_users_email_lower",
    func.lower(User.email),
    unique=True,
    postgresql_where=User.deleted_at.is_(None),
)


class Partner(SoftDeleteMixin, Base):
    """Third-party site using the platform through its API."""

    __tablename__ = "partners"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    website = Column(String(255), nullable=False)
    redirect_uri_regexp = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Partner(id={self.id}, website='{self.website}')>"


class UserConsent(SoftDeleteMixin, Base):
    """A user's consent for a partner to act on their behalf."""

    __tablename__ = "user_consents"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        UniqueConstraint("user_id", "partner_id", name="uq_user_consent_user_partner"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    partner_id = Column(Uuid, ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    partner = relationship("Partner")

    def __repr__(self):
        return f"<UserConsent(user_id={self.user_id}, partner_id={self.partner_id})>"


class UserConnection(Base):
    """An authentication method linked to a user."""

    __tablename__ = "user_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "connection_id", name="uq_user_connection_user_connection"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    connection_id = Column(_enum(ConnectionId, "connection_id"), nullable=False)
    connection_user_id = Column(String(255), nullable=False)
    connection_data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="connections")

    def __repr__(self):
        return f"<UserConnection(user_id={self.user_id}, connection='{self.connection_id}')>"


class Group(SoftDeleteMixin, Base):
    """A group of users sharing topics."""

    __tablename__ = "groups"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    visibility = Column(
        _enum(GroupVisibility, "group_visibility"),
        nullable=False,
        default=GroupVisibility.PRIVATE,
    )
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    parent_id = Column(Uuid, ForeignKey("groups.id"), nullable=True)
    source_partner_id = Column(Uuid, ForeignKey("partners.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    creator = relationship("User", foreign_keys=[creator_id])
    members = relationship("GroupMember", back_populates="group")

    def __repr__(self):
        return f"<Group(id={self.id}, name='{self.name}')>"


class GroupMember(SoftDeleteMixin, Base):
    """Membership of a user in a group at a permission level."""

    __tablename__ = "group_members"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        Index(
            "uq_group_members_group_user_live",
            "group_id",
            "user_id",
            unique=True,
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    group_id = Column(Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(_enum(MemberLevel, "member_level"), nullable=False, default=MemberLevel.READ)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    group = relationship("Group", back_populates="members")
    user = relationship("User")

    def __repr__(self):
        return f"<GroupMember(group_id={self.group_id}, user_id={self.user_id}, level='{self.level}')>"


class GroupInvite(SoftDeleteMixin, Base):
    """Pending invitation of a user into a group."""

    __tablename__ = "group_invites"
    __mapper_args__ = {"eager_defaults": True}

    VALID_DAYS = 14

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    group_id = Column(Uuid, ForeignKey("groups.id", ondelete="CASCADE"), nullable=False, index=True)
    creator_id = Column(Uuid, ForeignKey("users.id"), nullable=False)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    level = Column(_enum(MemberLevel, "member_level"), nullable=False, default=MemberLevel.READ)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    group = relationship("Group")
    creator = relationship("User", foreign_keys=[creator_id])
    user = relationship("User", foreign_keys=[user_id])

    def __repr__(self):
        return f"<GroupInvite(id={self.id}, group_id={self.group_id}, user_id={self.user_id})>"


class Activity(Base):
    """Append-only activity trail. INSERT + SELECT only -- no UPDATE or DELETE."""

    __tablename__ = "activities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    event_type = Column(_enum(ActivityType, "activity_type"), nullable=False, index=True)
    actor_type = Column(_enum(ActorType, "actor_type"), nullable=False)
    actor_id = Column(String(255), nullable=True, index=True)
    actor_ip = Column(String(64), nullable=True)
    object_type = Column(String(50), nullable=False)
    object_id = Column(String(255), nullable=True, index=True)
    target_type = Column(String(50), nullable=True)
    target_id = Column(String(255), nullable=True, index=True)
    action = Column(String(512), nullable=True)
    event_data = Column(JSON, nullable=True)

    def __repr__(self):
        return f"<Activity(id={self.id}, type='{self.event_type}', object='{self.object_type}')>"
