"""
Database models: the "truth layer."

Design principles:
  - Group → Subgroup → Link is a strict tree; cascades are done explicitly
    by the store, never by the database
  - Link.short_code is globally unique (unique index), Link.clicks only grows
  - audit_logs and error_logs are append-only (no updates/deletes)
  - Every timestamp is written in UTC
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.orm import DeclarativeBase, relationship

from smartlink.core.clock import as_utc, utcnow


class Base(DeclarativeBase):
    pass


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC in and out, whatever the backend keeps (SQLite drops tzinfo)."""
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return as_utc(value)

    def process_result_value(self, value, dialect):
        return as_utc(value)


def new_id() -> str:
    return uuid4().hex


class GroupStatus(str, Enum):
    UNPUBLISHED = "unpublished"
    PUBLISHED = "published"


# ---------------------------------------------------------------------------
# Campaign tree
# ---------------------------------------------------------------------------

class Group(Base):
    __tablename__ = "link_groups"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=GroupStatus.UNPUBLISHED.value)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    published_at = Column(UTCDateTime(), nullable=True)  # only while published
    created_by = Column(String(255), nullable=False)

    subgroups = relationship(
        "Subgroup",
        back_populates="group",
        order_by="Subgroup.created_at",
    )


class Subgroup(Base):
    __tablename__ = "link_subgroups"

    id = Column(String(32), primary_key=True, default=new_id)
    group_id = Column(String(32), ForeignKey("link_groups.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    created_by = Column(String(255), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    group = relationship("Group", back_populates="subgroups")
    links = relationship("Link", back_populates="subgroup", order_by="Link.created_at")


class Link(Base):
    __tablename__ = "links"

    id = Column(String(32), primary_key=True, default=new_id)
    subgroup_id = Column(String(32), ForeignKey("link_subgroups.id"), nullable=False, index=True)
    label = Column(String(255), nullable=False)
    target_url = Column(Text, nullable=False)
    short_code = Column(String(32), nullable=False)
    clicks = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    expires_at = Column(Date, nullable=False)  # inclusive through the whole day
    created_by = Column(String(255), nullable=False)

    subgroup = relationship("Subgroup", back_populates="links")

    __table_args__ = (
        Index("ix_links_short_code", "short_code", unique=True),
    )


# ---------------------------------------------------------------------------
# Append-only tables
# ---------------------------------------------------------------------------

class AuditLog(Base):
    """One row per mutation or classified redirect attempt."""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(50), nullable=False)   # group, subgroup, link
    entity_id = Column(String(64), nullable=False)
    action = Column(String(50), nullable=False)        # CREATE, CLICK_REAL, CRAWLER_PREVIEW, ...
    actor_email = Column(String(255), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_created", "created_at"),
    )


class ErrorLog(Base):
    """Server-side failures, captured off the response path."""
    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    endpoint = Column(String(500), nullable=False)
    method = Column(String(10), nullable=False)
    message = Column(Text, nullable=False)
    stacktrace = Column(Text, nullable=True)
    request_context = Column(JSON, nullable=True)      # headers subset, path params, client ip
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)
