import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, text

from shortlinks.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Uniqueness only holds among rows that have not been soft-deleted
LIVE_ROWS = text("deleted_at IS NULL")


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(320), nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("uq_users_email_live", "email", unique=True,
              sqlite_where=LIVE_ROWS, postgresql_where=LIVE_ROWS),
    )


class ShortLink(Base):
    __tablename__ = "short_links"

    id = Column(String(36), primary_key=True, default=new_id)
    code = Column(String(16), index=True, nullable=False)
    original_url = Column(String(2048), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)
    click_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("uq_short_links_code_live", "code", unique=True,
              sqlite_where=LIVE_ROWS, postgresql_where=LIVE_ROWS),
    )


class ClickEvent(Base):
    __tablename__ = "click_events"

    id = Column(String(36), primary_key=True, default=new_id)
    # No cascade: events outlive a soft-deleted link
    short_link_id = Column(String(36), ForeignKey("short_links.id"), nullable=False, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
