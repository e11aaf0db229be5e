"""
Reminder, item and device-token tables.
"""
from datetime import datetime, timezone as dt_timezone
import uuid

from sqlalchemy import Column, String, DateTime, Float, Integer, JSON, Index

from cleansort.db.base import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


class Item(Base):
    """A receipt item awaiting disposal."""
    __tablename__ = "items"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(String(128), nullable=True, index=True)  # NULL/empty in legacy rows
    name = Column(String(100), nullable=False)
    category = Column(String(32), nullable=False)
    quantity = Column(Float, nullable=True)
    unit = Column(String(20), nullable=True)
    interval = Column(Integer, nullable=True)  # days until disposal
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)


class Reminder(Base):
    """Disposal reminder tied to an item; item_name/category are snapshots taken at creation."""
    __tablename__ = "reminders"

    id = Column(String(64), primary_key=True, default=_new_id)
    item_id = Column(String(64), nullable=True, index=True)
    item_name = Column(String(100), nullable=False, default="")
    category = Column(String(32), nullable=False, default="")
    user_id = Column(String(128), nullable=True, index=True)
    due_date = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="upcoming")
    last_notification_sent = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_reminders_item_created", "item_id", "created_at"),
    )


class DeviceToken(Base):
    """Registered push token for one of a user's devices."""
    __tablename__ = "device_tokens"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(String(128), nullable=False, index=True)
    token = Column(String(4096), nullable=False)
    platform = Column(String(16), nullable=True)  # ios, android, web
    device_info = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_device_tokens_user_created", "user_id", "created_at"),
    )
