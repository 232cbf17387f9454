"""Pure formatting of notification titles, bodies and tags."""

from __future__ import annotations

import json
import uuid

from app.notifications.contracts import ChatMessage, NotificationPayload

PREVIEW_MAX_CHARS = 80
ELLIPSIS = "..."
PHOTO_PREVIEW = "Sent a photo"
TURN_BODY = "It's your turn!"
NUDGE_BODY = "\U0001f440 Nudge — it's your turn!"
TEST_TITLE = "Spin the Chat"
TEST_BODY = "Test notification - Push is working!"
TEST_TAG = "test-notification"
FALLBACK_SENDER_NAME = "Someone"


def room_url(room_id: uuid.UUID) -> str:
  return f"/room/{room_id}"


def _is_photo_turn(content: str | None) -> bool:
  if not content:
    return False
  try:
    parsed = json.loads(content)
  except ValueError:
    return False
  return isinstance(parsed, dict) and parsed.get("kind") == "photo_turn"


def _truncate(content: str) -> str:
  if len(content) > PREVIEW_MAX_CHARS:
    return content[:PREVIEW_MAX_CHARS] + ELLIPSIS
  return content


def format_preview(message: ChatMessage, sender_name: str | None) -> str:
  """Render the one-line preview shown in a message notification.

  Photos (plain image messages and photo turn responses) never leak their
  literal content; everything else is truncated to PREVIEW_MAX_CHARS.
  """
  sender = sender_name or FALLBACK_SENDER_NAME
  if message.type == "image":
    return f"{sender}: {PHOTO_PREVIEW}"
  if message.type == "turn_response" and _is_photo_turn(message.content):
    return f"{sender}: {PHOTO_PREVIEW}"
  return f"{sender}: {_truncate(message.content or '')}"


def with_pending_count(body: str, pending_count: int) -> str:
  if pending_count > 0:
    return f"{body} (+{pending_count} more)"
  return body


def format_message_payload(*, room_id: uuid.UUID, room_name: str, preview: str, pending_count: int) -> NotificationPayload:
  return NotificationPayload(title=room_name, body=with_pending_count(preview, pending_count), room_id=room_id, url=room_url(room_id), tag=f"message-{room_id}")


def format_turn_payload(*, room_id: uuid.UUID, room_name: str, body: str | None = None) -> NotificationPayload:
  return NotificationPayload(title=room_name, body=body or TURN_BODY, room_id=room_id, url=room_url(room_id), tag=f"turn-{room_id}")


def format_nudge_payload(*, room_id: uuid.UUID, room_name: str) -> NotificationPayload:
  return NotificationPayload(title=room_name, body=NUDGE_BODY, room_id=room_id, url=room_url(room_id), tag=f"nudge-{room_id}")


def format_test_payload() -> NotificationPayload:
  return NotificationPayload(title=TEST_TITLE, body=TEST_BODY, tag=TEST_TAG)
