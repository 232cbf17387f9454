"""Contracts for push notification dispatch."""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class PushEndpoint:
  """A registered Web Push destination owned by one user."""

  id: uuid.UUID
  user_id: uuid.UUID
  endpoint: str
  p256dh: str
  auth: str


@dataclass(frozen=True)
class NotificationPayload:
  """Content of a push message before encryption."""

  title: str
  body: str
  tag: str
  room_id: uuid.UUID | None = None
  url: str | None = None

  def to_wire(self) -> dict[str, Any]:
    """Return the JSON shape the service worker reads."""
    wire: dict[str, Any] = {"title": self.title, "body": self.body}
    if self.room_id is not None:
      wire["roomId"] = str(self.room_id)
    if self.url is not None:
      wire["url"] = self.url
    wire["tag"] = self.tag
    return wire


@dataclass(frozen=True)
class PushMessage:
  """A payload addressed to a single endpoint."""

  endpoint: str
  p256dh: str
  auth: str
  payload: NotificationPayload


@dataclass(frozen=True)
class RateLimitDecision:
  should_send: bool
  pending_count: int


@dataclass(frozen=True)
class MemberNotificationPreference:
  user_id: uuid.UUID
  message_notifs_enabled: bool


@dataclass(frozen=True)
class ChatMessage:
  id: uuid.UUID
  room_id: uuid.UUID
  user_id: uuid.UUID | None
  type: str
  content: str | None


@dataclass(frozen=True)
class MessagePosted:
  room_id: uuid.UUID
  message_id: uuid.UUID
  sender_id: uuid.UUID


@dataclass(frozen=True)
class TurnAdvanced:
  room_id: uuid.UUID


@dataclass(frozen=True)
class NudgeSent:
  room_id: uuid.UUID
  nudged_user_id: uuid.UUID


NotificationEvent = MessagePosted | TurnAdvanced | NudgeSent


class DeliveryStatus(enum.Enum):
  DELIVERED = "delivered"
  GONE = "gone"
  FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
  """Result of one delivery attempt to one endpoint."""

  endpoint_id: uuid.UUID
  status: DeliveryStatus
  error: str | None = None

  @property
  def delivered(self) -> bool:
    return self.status is DeliveryStatus.DELIVERED


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Raised when the push service rejects or fails a delivery."""

  def __init__(self, message: str, *, status_code: int | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code


class InvalidPushSubscriptionError(NotificationProviderError):
  """The endpoint is permanently gone (404/410) and must be removed."""


class TransientPushProviderError(NotificationProviderError):
  """Any other failure; the endpoint stays registered."""


class InvalidDispatchRequest(NotificationError):
  """Raised when a trigger arrives without the identifiers it needs."""


class PushSender(Protocol):
  """Delivery contract for a single endpoint."""

  def send(self, message: PushMessage) -> None:
    """Send synchronously, raising a NotificationProviderError subclass on failure."""


class PushSubscriptionStore(Protocol):
  async def list_for_user(self, *, user_id: uuid.UUID) -> list[PushEndpoint]: ...

  async def delete_by_id(self, *, subscription_id: uuid.UUID) -> None: ...


class RateLimiter(Protocol):
  async def check(self, *, user_id: uuid.UUID, room_id: uuid.UUID) -> RateLimitDecision: ...


class ChatLookup(Protocol):
  """Read access to the chat tables the dispatcher needs."""

  async def get_message(self, *, message_id: uuid.UUID) -> ChatMessage | None: ...

  async def get_room_name(self, *, room_id: uuid.UUID) -> str | None: ...

  async def get_display_name(self, *, user_id: uuid.UUID) -> str | None: ...

  async def get_current_turn_user(self, *, room_id: uuid.UUID) -> uuid.UUID | None: ...

  async def members_for_notification(self, *, room_id: uuid.UUID, exclude_user_id: uuid.UUID) -> list[MemberNotificationPreference]: ...
