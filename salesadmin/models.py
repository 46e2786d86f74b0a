from __future__ import annotations

import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class UserRole(str, enum.Enum):
    Admin = "Admin"
    Developer = "Developer"
    User = "User"


class AppType(str, enum.Enum):
    Game = "Game"
    DLC = "DLC"
    Tool = "Tool"
    Demo = "Demo"
    Soundtrack = "Soundtrack"


class PlatformType(str, enum.Enum):
    Steam = "Steam"
    Generic = "Generic"


class PlatformReleaseState(str, enum.Enum):
    Unreleased = "Unreleased"
    Beta = "Beta"
    Released = "Released"


DEFAULT_RELEASE_STATE = PlatformReleaseState.Released


class UrlType(str, enum.Enum):
    StorePage = "StorePage"
    Website = "Website"
    Trailer = "Trailer"
    Press = "Press"
    Social = "Social"
    Other = "Other"


class EventVisibility(str, enum.Enum):
    Public = "Public"
    Private = "Private"
    Hidden = "Hidden"


class ParticipationStatus(str, enum.Enum):
    """Status of an app platform inside an event.

    The prefix is part of the contract: ``OK_*`` values count as taking part,
    everything else does not.
    """

    OK_Confirmed = "OK_Confirmed"
    OK_Pending = "OK_Pending"
    OK_Invited = "OK_Invited"
    NOK_Declined = "NOK_Declined"
    NOK_NotEligible = "NOK_NotEligible"
    NOK_NoResponse = "NOK_NoResponse"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, index=True, nullable=False)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.User)
    password_hash = Column(String(200), nullable=False)

    memberships = relationship("StudioMember", back_populates="user", cascade="all, delete-orphan")
    coordinated_events = relationship(
        "EventCoordinator", back_populates="user", cascade="all, delete-orphan"
    )


class Studio(Base):
    __tablename__ = "studios"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)
    comment = Column(Text, nullable=True)
    main_contact_id = Column(
        Integer, ForeignKey("studio_members.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    main_contact = relationship("StudioMember", foreign_keys=[main_contact_id], post_update=True)
    members = relationship(
        "StudioMember",
        back_populates="studio",
        foreign_keys="StudioMember.studio_id",
        cascade="all, delete-orphan",
    )
    links = relationship(
        "StudioLink", back_populates="studio", cascade="all, delete-orphan", order_by="StudioLink.id"
    )
    apps = relationship("App", back_populates="studio", cascade="all, delete-orphan", order_by="App.name")


class StudioMember(Base):
    __tablename__ = "studio_members"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    position = Column(String(200), nullable=True)
    comment = Column(Text, nullable=True)

    studio = relationship("Studio", back_populates="members", foreign_keys=[studio_id])
    user = relationship("User", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("studio_id", "user_id", name="uq_studio_member"),
    )


class StudioLink(Base):
    __tablename__ = "studio_links"

    id = Column(Integer, primary_key=True, index=True)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False)
    url = Column(String(500), nullable=False)
    title = Column(String(200), nullable=False)
    type = Column(Enum(UrlType), nullable=True)
    comment = Column(Text, nullable=True)

    studio = relationship("Studio", back_populates="links")


class App(Base):
    __tablename__ = "apps"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False, index=True)
    type = Column(Enum(AppType), nullable=False, default=AppType.Game)
    studio_id = Column(Integer, ForeignKey("studios.id", ondelete="CASCADE"), nullable=False)
    comment = Column(Text, nullable=True)

    studio = relationship("Studio", back_populates="apps")
    app_platforms = relationship("AppPlatform", back_populates="app", cascade="all, delete-orphan")


class Platform(Base):
    __tablename__ = "platforms"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), unique=True, nullable=False)
    type = Column(Enum(PlatformType), nullable=False, default=PlatformType.Generic)
    url = Column(String(500), nullable=True)
    comment = Column(Text, nullable=True)

    app_platforms = relationship("AppPlatform", back_populates="platform", cascade="all, delete-orphan")


class AppPlatform(Base):
    __tablename__ = "app_platforms"

    id = Column(Integer, primary_key=True, index=True)
    app_id = Column(Integer, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False)
    platform_id = Column(Integer, ForeignKey("platforms.id", ondelete="CASCADE"), nullable=False)
    release_state = Column(Enum(PlatformReleaseState), nullable=False, default=DEFAULT_RELEASE_STATE)
    is_early_access = Column(Boolean, nullable=False, default=False)
    is_free_to_play = Column(Boolean, nullable=False, default=False)
    comment = Column(Text, nullable=True)

    app = relationship("App", back_populates="app_platforms")
    platform = relationship("Platform", back_populates="app_platforms")
    links = relationship(
        "AppPlatformLink",
        back_populates="app_platform",
        cascade="all, delete-orphan",
        order_by="AppPlatformLink.id",
    )
    event_app_platforms = relationship(
        "EventAppPlatform", back_populates="app_platform", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("app_id", "platform_id", name="uq_app_platform"),
    )


class AppPlatformLink(Base):
    __tablename__ = "app_platform_links"

    id = Column(Integer, primary_key=True, index=True)
    app_platform_id = Column(Integer, ForeignKey("app_platforms.id", ondelete="CASCADE"), nullable=False)
    url = Column(String(500), nullable=False)
    title = Column(String(200), nullable=False)
    type = Column(Enum(UrlType), nullable=True)
    comment = Column(Text, nullable=True)

    app_platform = relationship("AppPlatform", back_populates="links")


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    running_from = Column(DateTime, nullable=False)
    running_to = Column(DateTime, nullable=False)
    visibility = Column(Enum(EventVisibility), nullable=False, default=EventVisibility.Private)

    coordinators = relationship("EventCoordinator", back_populates="event", cascade="all, delete-orphan")
    event_app_platforms = relationship(
        "EventAppPlatform", back_populates="event", cascade="all, delete-orphan"
    )


class EventCoordinator(Base):
    __tablename__ = "event_coordinators"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    event = relationship("Event", back_populates="coordinators")
    user = relationship("User", back_populates="coordinated_events")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_coordinator"),
    )


class EventAppPlatform(Base):
    __tablename__ = "event_app_platforms"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    app_platform_id = Column(Integer, ForeignKey("app_platforms.id", ondelete="CASCADE"), nullable=False)
    status = Column(Enum(ParticipationStatus), nullable=False)
    comment = Column(Text, nullable=True)

    event = relationship("Event", back_populates="event_app_platforms")
    app_platform = relationship("AppPlatform", back_populates="event_app_platforms")

    __table_args__ = (
        UniqueConstraint("event_id", "app_platform_id", name="uq_event_app_platform"),
    )
