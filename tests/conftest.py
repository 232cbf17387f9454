"""Shared fixtures: in-memory collaborators for the push dispatcher."""

from __future__ import annotations

import uuid
from unittest.mock import MagicMock

import pytest

from app.config import get_database_settings, get_settings
from app.notifications.contracts import ChatMessage, MemberNotificationPreference, PushEndpoint, RateLimitDecision
from app.notifications.dispatcher import DispatcherConfig, PushDispatcher
from app.notifications.factory import get_push_dispatcher
from app.notifications.push_sender import VapidConfig

VAPID = VapidConfig(public_key="pub", private_key="priv", sub="mailto:test@example.com")
P256DH = "BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I"
AUTH = "gq8Yh5xA9l2mQ6pR"


@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture(autouse=True)
def _clear_cached_settings():
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  get_push_dispatcher.cache_clear()
  yield
  get_settings.cache_clear()
  get_database_settings.cache_clear()
  get_push_dispatcher.cache_clear()


class FakeSubscriptions:
  """Dict-backed subscription store keyed by user."""

  def __init__(self) -> None:
    self.by_user: dict[uuid.UUID, list[PushEndpoint]] = {}
    self.deleted: list[uuid.UUID] = []
    self.lookups: list[uuid.UUID] = []

  def add(self, user_id: uuid.UUID, endpoint: str | None = None) -> PushEndpoint:
    sub_id = uuid.uuid4()
    entry = PushEndpoint(id=sub_id, user_id=user_id, endpoint=endpoint or f"https://fcm.googleapis.com/fcm/send/{sub_id}", p256dh=P256DH, auth=AUTH)
    self.by_user.setdefault(user_id, []).append(entry)
    return entry

  async def list_for_user(self, *, user_id: uuid.UUID) -> list[PushEndpoint]:
    self.lookups.append(user_id)
    return list(self.by_user.get(user_id, []))

  async def delete_by_id(self, *, subscription_id: uuid.UUID) -> None:
    self.deleted.append(subscription_id)
    for user_id, entries in self.by_user.items():
      self.by_user[user_id] = [entry for entry in entries if entry.id != subscription_id]


class FakeChat:
  """Single-room chat snapshot."""

  def __init__(self, *, room_id: uuid.UUID, room_name: str | None = "Friday Crew") -> None:
    self.room_id = room_id
    self.room_name = room_name
    self.messages: dict[uuid.UUID, ChatMessage] = {}
    self.names: dict[uuid.UUID, str] = {}
    self.members: list[MemberNotificationPreference] = []
    self.current_turn_user: uuid.UUID | None = None

  def add_member(self, user_id: uuid.UUID, *, name: str | None = None, enabled: bool = True) -> None:
    self.members.append(MemberNotificationPreference(user_id=user_id, message_notifs_enabled=enabled))
    if name:
      self.names[user_id] = name

  def add_message(self, *, sender_id: uuid.UUID, content: str | None, type: str = "chat") -> ChatMessage:
    message = ChatMessage(id=uuid.uuid4(), room_id=self.room_id, user_id=sender_id, type=type, content=content)
    self.messages[message.id] = message
    return message

  async def get_message(self, *, message_id: uuid.UUID) -> ChatMessage | None:
    return self.messages.get(message_id)

  async def get_room_name(self, *, room_id: uuid.UUID) -> str | None:
    return self.room_name

  async def get_display_name(self, *, user_id: uuid.UUID) -> str | None:
    return self.names.get(user_id)

  async def get_current_turn_user(self, *, room_id: uuid.UUID) -> uuid.UUID | None:
    return self.current_turn_user

  async def members_for_notification(self, *, room_id: uuid.UUID, exclude_user_id: uuid.UUID) -> list[MemberNotificationPreference]:
    return [member for member in self.members if member.user_id != exclude_user_id]


class AllowAllRateLimiter:
  def __init__(self, pending_count: int = 0) -> None:
    self.pending_count = pending_count
    self.calls: list[tuple[uuid.UUID, uuid.UUID]] = []

  async def check(self, *, user_id: uuid.UUID, room_id: uuid.UUID) -> RateLimitDecision:
    self.calls.append((user_id, room_id))
    return RateLimitDecision(should_send=True, pending_count=self.pending_count)


@pytest.fixture
def room_id() -> uuid.UUID:
  return uuid.uuid4()


@pytest.fixture
def subscriptions() -> FakeSubscriptions:
  return FakeSubscriptions()


@pytest.fixture
def chat(room_id) -> FakeChat:
  return FakeChat(room_id=room_id)


@pytest.fixture
def rate_limiter() -> AllowAllRateLimiter:
  return AllowAllRateLimiter()


@pytest.fixture
def push_sender() -> MagicMock:
  return MagicMock()


@pytest.fixture
def dispatcher(push_sender, subscriptions, chat, rate_limiter) -> PushDispatcher:
  config = DispatcherConfig(push_credentials=VAPID, session_factory=MagicMock(), send_timeout_seconds=1.0, max_concurrency=4)
  return PushDispatcher(config=config, sender=push_sender, subscriptions=subscriptions, chat=chat, rate_limiter=rate_limiter)
