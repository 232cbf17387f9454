"""Read-side queries against the chat tables, plus the stalled-turn procedure."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import and_, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.notifications.contracts import ChatMessage, ChatLookup, MemberNotificationPreference
from app.schema.chat import Message, NotificationPrefs, Profile, Room, RoomMember, TurnSession


@dataclass(frozen=True)
class StalledTurn:
  """A turn the store auto-skipped; the next player should be told."""

  room_id: uuid.UUID
  skipped_user_id: uuid.UUID
  removed: bool


class ChatRepository(ChatLookup):
  """SQLAlchemy binding for the chat lookups used during dispatch."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def get_message(self, *, message_id: uuid.UUID) -> ChatMessage | None:
    async with self._session_factory() as session:
      row = await session.get(Message, message_id)
      if row is None:
        return None
      return ChatMessage(id=row.id, room_id=row.room_id, user_id=row.user_id, type=row.type, content=row.content)

  async def get_room_name(self, *, room_id: uuid.UUID) -> str | None:
    async with self._session_factory() as session:
      result = await session.execute(select(Room.name).where(Room.id == room_id))
      return result.scalar_one_or_none()

  async def get_display_name(self, *, user_id: uuid.UUID) -> str | None:
    async with self._session_factory() as session:
      result = await session.execute(select(Profile.display_name).where(Profile.id == user_id))
      return result.scalar_one_or_none()

  async def get_current_turn_user(self, *, room_id: uuid.UUID) -> uuid.UUID | None:
    """Return the player whose turn it is in the room's active session, if any."""
    async with self._session_factory() as session:
      stmt = select(TurnSession.current_turn_user_id).where(TurnSession.room_id == room_id, TurnSession.is_active.is_(True)).limit(1)
      result = await session.execute(stmt)
      return result.scalars().first()

  async def members_for_notification(self, *, room_id: uuid.UUID, exclude_user_id: uuid.UUID) -> list[MemberNotificationPreference]:
    """List room members other than the actor, with their message-notification switch.

    Members without a preferences row default to enabled.
    """
    async with self._session_factory() as session:
      enabled = func.coalesce(NotificationPrefs.message_notifs_enabled, True)
      stmt = (
        select(RoomMember.user_id, enabled)
        .outerjoin(NotificationPrefs, and_(NotificationPrefs.user_id == RoomMember.user_id, NotificationPrefs.room_id == RoomMember.room_id))
        .where(RoomMember.room_id == room_id, RoomMember.user_id != exclude_user_id)
      )
      result = await session.execute(stmt)
      return [MemberNotificationPreference(user_id=user_id, message_notifs_enabled=bool(is_enabled)) for user_id, is_enabled in result.all()]

  async def process_stalled_turns(self) -> list[StalledTurn]:
    """Run the store's auto-skip procedure and return the turns it advanced."""
    async with self._session_factory() as session:
      result = await session.execute(text("SELECT room_id, skipped_user_id, removed FROM process_stalled_turns()"))
      rows = result.all()
      await session.commit()
      return [StalledTurn(room_id=row.room_id, skipped_user_id=row.skipped_user_id, removed=bool(row.removed)) for row in rows]
