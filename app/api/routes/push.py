"""Push triggers and Web Push subscription lifecycle."""

from __future__ import annotations

import logging
import re
import urllib.parse
import uuid
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from app.core.security import require_internal_secret
from app.notifications.contracts import InvalidDispatchRequest, MessagePosted, NudgeSent, TurnAdvanced
from app.notifications.dispatcher import FAILED_TO_SEND, PushDispatcher
from app.notifications.factory import get_push_dispatcher, get_subscription_repository
from app.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository

logger = logging.getLogger(__name__)

_ALLOWED_PUSH_HOSTS = {"fcm.googleapis.com", "updates.push.services.mozilla.com", "push.services.mozilla.com", "web.push.apple.com"}
_ALLOWED_PUSH_HOST_SUFFIXES = (".notify.windows.com",)
_BASE64_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

router = APIRouter()

Dispatcher = Annotated[PushDispatcher, Depends(get_push_dispatcher)]


def _parse_uuid(raw: Any) -> uuid.UUID | None:
  if not isinstance(raw, str) or not raw.strip():
    return None
  try:
    return uuid.UUID(raw.strip())
  except ValueError:
    return None


def _require_uuids(*values: Any, error: str) -> tuple[uuid.UUID, ...]:
  parsed = [_parse_uuid(value) for value in values]
  if any(value is None for value in parsed):
    raise InvalidDispatchRequest(error)
  return tuple(parsed)


async def _read_trigger_body(request: Request) -> dict[str, Any] | None:
  """Return the JSON object a database trigger posted, or None when the body is not JSON at all.

  Trigger routes validate ids themselves so that a wrong-typed id is a 400 `{error}` like a missing one.
  """
  try:
    body = await request.json()
  except ValueError as exc:
    logger.warning("Trigger body is not JSON path=%s error=%s", request.url.path, exc)
    return None
  return body if isinstance(body, dict) else {}


class NudgeRequest(BaseModel):
  room_id: str | None = Field(default=None, alias="roomId")
  nudged_user_id: str | None = Field(default=None, alias="nudgedUserId")
  model_config = ConfigDict(populate_by_name=True)


class DirectSendRequest(BaseModel):
  user_id: str | None = Field(default=None, alias="userId")
  room_id: str | None = Field(default=None, alias="roomId")
  room_name: str | None = Field(default=None, alias="roomName", max_length=200)
  message: str | None = Field(default=None, max_length=500)
  model_config = ConfigDict(populate_by_name=True)


class TestPushRequest(BaseModel):
  user_id: str | None = Field(default=None, alias="userId")
  model_config = ConfigDict(populate_by_name=True)


@router.post("/notify-message")
async def notify_message(request: Request, dispatcher: Dispatcher) -> JSONResponse:
  """Fan a new chat message out to the other members of its room."""
  if (unconfigured := dispatcher.unconfigured_result()) is not None:
    return JSONResponse(content=unconfigured.to_payload())

  if (body := await _read_trigger_body(request)) is None:
    return JSONResponse(content={"sent": 0, "error": FAILED_TO_SEND})

  room_id, message_id, sender_id = _require_uuids(body.get("roomId"), body.get("messageId"), body.get("senderId"), error="Missing roomId, messageId, or senderId")

  result = await dispatcher.dispatch(MessagePosted(room_id=room_id, message_id=message_id, sender_id=sender_id))
  return JSONResponse(content=result.to_payload())


@router.post("/notify-turn")
async def notify_turn(request: Request, dispatcher: Dispatcher) -> JSONResponse:
  """Tell the current player of a room that it is their turn."""
  if (unconfigured := dispatcher.unconfigured_result()) is not None:
    return JSONResponse(content=unconfigured.to_payload())

  if (body := await _read_trigger_body(request)) is None:
    return JSONResponse(content={"sent": 0, "error": FAILED_TO_SEND})

  (room_id,) = _require_uuids(body.get("roomId"), error="Missing roomId")

  result = await dispatcher.dispatch(TurnAdvanced(room_id=room_id))
  return JSONResponse(content=result.to_payload())


@router.post("/nudge", dependencies=[Depends(require_internal_secret)])
async def nudge(payload: NudgeRequest, dispatcher: Dispatcher) -> JSONResponse:
  """Push a nudge that the store has already validated and recorded."""
  if (unconfigured := dispatcher.unconfigured_result()) is not None:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"success": False, "error": unconfigured.message})

  room_id, nudged_user_id = _parse_uuid(payload.room_id), _parse_uuid(payload.nudged_user_id)
  if room_id is None or nudged_user_id is None:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"success": False, "error": "Missing roomId or nudgedUserId"})

  result = await dispatcher.dispatch(NudgeSent(room_id=room_id, nudged_user_id=nudged_user_id))
  if result.error:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"success": False, "error": "Internal server error"})
  if not result.total:
    return JSONResponse(content={"success": True, "sent": False, "message": "Nudge recorded but user has notifications off"})
  return JSONResponse(content={"success": True, "sent": result.sent > 0})


@router.post("/send", dependencies=[Depends(require_internal_secret)])
async def send_push(payload: DirectSendRequest, dispatcher: Dispatcher) -> JSONResponse:
  """Push to every device of one user, with optional custom title and body."""
  if (unconfigured := dispatcher.unconfigured_result()) is not None:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": unconfigured.message})

  user_id, room_id = _require_uuids(payload.user_id, payload.room_id, error="Missing userId or roomId")

  result = await dispatcher.send_to_user(user_id=user_id, room_id=room_id, room_name=payload.room_name, body=payload.message)
  if result.error:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to send push"})
  return JSONResponse(content=result.to_payload())


@router.post("/test", dependencies=[Depends(require_internal_secret)])
async def send_test_push(payload: TestPushRequest, dispatcher: Dispatcher) -> JSONResponse:
  """Send a fixed test notification so a user can verify their devices."""
  if (unconfigured := dispatcher.unconfigured_result()) is not None:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": unconfigured.message})

  (user_id,) = _require_uuids(payload.user_id, error="Missing userId")

  result = await dispatcher.send_test(user_id=user_id)
  if result.error:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to send test push"})
  if not result.total:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "No push subscriptions found. Enable notifications first."})

  message = "Test notification sent!" if result.sent > 0 else "No notifications delivered"
  return JSONResponse(content={"success": True, "sent": result.sent, "total": result.total, "message": message})


def _validate_endpoint(value: str) -> str:
  """Restrict endpoints to known push services over HTTPS."""
  normalized = value.strip()
  parsed = urllib.parse.urlparse(normalized)

  if parsed.scheme.lower() != "https":
    raise PydanticCustomError("push_endpoint_https", "endpoint must use https.")

  host = (parsed.hostname or "").lower()
  if host not in _ALLOWED_PUSH_HOSTS and not host.endswith(_ALLOWED_PUSH_HOST_SUFFIXES):
    raise PydanticCustomError("push_endpoint_host", "endpoint host is not allowed.")

  return normalized


def _validate_key(value: str, *, name: str, min_length: int) -> str:
  normalized = value.strip()
  if len(normalized) < min_length:
    raise PydanticCustomError(f"push_{name}_short", f"{name} key is too short.")
  if not _BASE64_RE.fullmatch(normalized):
    raise PydanticCustomError(f"push_{name}_format", f"{name} must be base64url encoded.")
  return normalized


class PushSubscriptionKeys(BaseModel):
  """Browser-provided key material for payload encryption."""

  p256dh: str = Field(min_length=40, max_length=512)
  auth: str = Field(min_length=16, max_length=256)
  model_config = ConfigDict(extra="forbid")

  @field_validator("p256dh")
  @classmethod
  def validate_p256dh(cls, value: str) -> str:
    return _validate_key(value, name="p256dh", min_length=40)

  @field_validator("auth")
  @classmethod
  def validate_auth(cls, value: str) -> str:
    return _validate_key(value, name="auth", min_length=16)


class PushSubscribeRequest(BaseModel):
  """A browser PushSubscription plus the owning user, as relayed by the web tier."""

  user_id: uuid.UUID = Field(alias="userId")
  endpoint: str = Field(min_length=1, max_length=2048)
  expiration_time: int | None = Field(default=None, alias="expirationTime")
  keys: PushSubscriptionKeys
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


class PushUnsubscribeRequest(BaseModel):
  user_id: uuid.UUID = Field(alias="userId")
  endpoint: str = Field(min_length=1, max_length=2048)
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


SubscriptionRepo = Annotated[PushSubscriptionRepository, Depends(get_subscription_repository)]


@router.post("/subscribe", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_internal_secret)])
async def subscribe_to_push(payload: PushSubscribeRequest, repo: SubscriptionRepo, user_agent: str | None = Header(default=None)) -> Response:
  """Register (or refresh the keys of) a device for push delivery."""
  if not repo.is_configured:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": "Database not configured"})

  normalized_user_agent = user_agent.strip()[:512] or None if user_agent else None
  try:
    await repo.upsert(PushSubscriptionEntry(user_id=payload.user_id, endpoint=payload.endpoint, p256dh=payload.keys.p256dh, auth=payload.keys.auth, user_agent=normalized_user_agent))
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed to save push subscription user_id=%s error=%s", payload.user_id, exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to save push subscription"})

  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/unsubscribe", status_code=status.HTTP_204_NO_CONTENT, dependencies=[Depends(require_internal_secret)])
async def unsubscribe_from_push(payload: PushUnsubscribeRequest, repo: SubscriptionRepo) -> Response:
  """Remove a device; unknown endpoints are ignored."""
  if not repo.is_configured:
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"error": "Database not configured"})

  try:
    await repo.delete_for_user_endpoint(user_id=payload.user_id, endpoint=payload.endpoint)
  except Exception as exc:  # noqa: BLE001
    logger.error("Failed to delete push subscription user_id=%s error=%s", payload.user_id, exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to delete push subscription"})

  return Response(status_code=status.HTTP_204_NO_CONTENT)
