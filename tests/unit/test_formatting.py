from __future__ import annotations

import json
import uuid

from app.notifications.contracts import ChatMessage
from app.notifications.formatting import (
  NUDGE_BODY,
  TEST_BODY,
  TURN_BODY,
  format_message_payload,
  format_nudge_payload,
  format_preview,
  format_test_payload,
  format_turn_payload,
  with_pending_count,
)


def _message(content: str | None, *, type: str = "chat") -> ChatMessage:
  return ChatMessage(id=uuid.uuid4(), room_id=uuid.uuid4(), user_id=uuid.uuid4(), type=type, content=content)


def test_preview_keeps_short_text_verbatim():
  assert format_preview(_message("hello there"), "Alice") == "Alice: hello there"


def test_preview_truncates_long_text_to_80_chars_plus_ellipsis():
  preview = format_preview(_message("x" * 200), "Alice")
  assert preview == "Alice: " + "x" * 80 + "..."


def test_preview_exactly_80_chars_is_not_truncated():
  assert format_preview(_message("y" * 80), "Bob") == "Bob: " + "y" * 80


def test_preview_hides_image_content():
  assert format_preview(_message("https://cdn.example.com/p.jpg", type="image"), "Bob") == "Bob: Sent a photo"


def test_preview_hides_photo_turn_response():
  content = json.dumps({"kind": "photo_turn", "url": "https://cdn.example.com/p.jpg"})
  assert format_preview(_message(content, type="turn_response"), "Bob") == "Bob: Sent a photo"


def test_preview_shows_text_turn_response_even_when_json_like():
  assert format_preview(_message("{not json", type="turn_response"), "Bob") == "Bob: {not json"
  assert format_preview(_message(json.dumps({"kind": "text"}), type="turn_response"), "Bob") == 'Bob: {"kind": "text"}'


def test_preview_falls_back_to_someone_when_sender_has_no_name():
  assert format_preview(_message("hi"), None) == "Someone: hi"
  assert format_preview(_message("hi"), "") == "Someone: hi"


def test_preview_handles_missing_content():
  assert format_preview(_message(None), "Alice") == "Alice: "


def test_pending_count_suffix_only_when_positive():
  assert with_pending_count("Alice: hi", 0) == "Alice: hi"
  assert with_pending_count("Alice: hi", 3) == "Alice: hi (+3 more)"


def test_message_payload_uses_room_scoped_tag_and_url():
  room_id = uuid.uuid4()
  payload = format_message_payload(room_id=room_id, room_name="Friday Crew", preview="Alice: hi", pending_count=2)

  assert payload.to_wire() == {"title": "Friday Crew", "body": "Alice: hi (+2 more)", "roomId": str(room_id), "url": f"/room/{room_id}", "tag": f"message-{room_id}"}


def test_turn_payload_defaults_body_and_accepts_override():
  room_id = uuid.uuid4()
  payload = format_turn_payload(room_id=room_id, room_name="Friday Crew")
  assert payload.body == TURN_BODY
  assert payload.tag == f"turn-{room_id}"

  custom = format_turn_payload(room_id=room_id, room_name="Friday Crew", body="Wake up")
  assert custom.body == "Wake up"
  assert custom.tag == payload.tag


def test_message_and_turn_tags_never_collide():
  room_id = uuid.uuid4()
  message_tag = format_message_payload(room_id=room_id, room_name="r", preview="p", pending_count=0).tag
  turn_tag = format_turn_payload(room_id=room_id, room_name="r").tag
  nudge_tag = format_nudge_payload(room_id=room_id, room_name="r").tag
  assert len({message_tag, turn_tag, nudge_tag}) == 3


def test_nudge_payload_body():
  assert format_nudge_payload(room_id=uuid.uuid4(), room_name="r").body == NUDGE_BODY


def test_test_payload_has_no_room():
  wire = format_test_payload().to_wire()
  assert wire == {"title": "Spin the Chat", "body": TEST_BODY, "tag": "test-notification"}
