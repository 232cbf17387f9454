"""Read models for the chat tables the dispatcher consults, plus rate-limit bookkeeping."""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, DateTime, Integer, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Room(Base):
  __tablename__ = "rooms"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  name: Mapped[str | None] = mapped_column(Text, nullable=True)


class RoomMember(Base):
  __tablename__ = "room_members"

  room_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
  user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)


class Profile(Base):
  __tablename__ = "profiles"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)
  display_name: Mapped[str | None] = mapped_column(Text, nullable=True)


class Message(Base):
  __tablename__ = "messages"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  room_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
  user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
  type: Mapped[str] = mapped_column(Text, nullable=False, default="chat")
  content: Mapped[str | None] = mapped_column(Text, nullable=True)


class TurnSession(Base):
  __tablename__ = "turn_sessions"

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  room_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
  current_turn_user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class NotificationPrefs(Base):
  """Per-room notification switches; a missing row means everything is enabled."""

  __tablename__ = "notification_prefs"
  __table_args__ = (UniqueConstraint("user_id", "room_id"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  room_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  turn_notifs_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  message_notifs_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class NotificationRateLimit(Base):
  __tablename__ = "notification_rate_limit"
  __table_args__ = (UniqueConstraint("user_id", "room_id"),)

  id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
  user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  room_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
  last_sent_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  pending_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
