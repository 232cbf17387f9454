"""Push dispatch for chat events: recipient resolution, rate limiting, fan-out and cleanup."""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any

import anyio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import DEFAULT_ROOM_NAME
from app.notifications.contracts import (
  ChatLookup,
  DeliveryOutcome,
  DeliveryStatus,
  InvalidPushSubscriptionError,
  MessagePosted,
  NotificationEvent,
  NotificationPayload,
  NotificationProviderError,
  NudgeSent,
  PushEndpoint,
  PushMessage,
  PushSender,
  PushSubscriptionStore,
  RateLimiter,
  TurnAdvanced,
)
from app.notifications.formatting import format_message_payload, format_nudge_payload, format_preview, format_test_payload, format_turn_payload
from app.notifications.push_sender import VapidConfig

logger = logging.getLogger(__name__)

FAILED_TO_SEND = "Failed to send"


@dataclass(frozen=True)
class DispatcherConfig:
  """Deployment inputs resolved once at startup. None means not configured."""

  push_credentials: VapidConfig | None
  session_factory: async_sessionmaker[AsyncSession] | None
  default_room_name: str = DEFAULT_ROOM_NAME
  send_timeout_seconds: float = 10.0
  max_concurrency: int = 8


@dataclass(frozen=True)
class DispatchResult:
  """Aggregate outcome reported back to the trigger."""

  sent: int
  total: int | None = None
  failed: int | None = None
  message: str | None = None
  error: str | None = None

  def to_payload(self) -> dict[str, Any]:
    payload: dict[str, Any] = {"sent": self.sent}
    for key in ("total", "failed", "message", "error"):
      value = getattr(self, key)
      if value is not None:
        payload[key] = value
    return payload


class PushDispatcher:
  """Turns chat events into Web Push deliveries.

  Every public entry point is best-effort: the triggering write has already
  been committed, so failures are logged and folded into the result instead of
  being raised to the caller.
  """

  def __init__(self, *, config: DispatcherConfig, sender: PushSender, subscriptions: PushSubscriptionStore | None, chat: ChatLookup | None, rate_limiter: RateLimiter | None) -> None:
    self._config = config
    self._sender = sender
    self._subscriptions = subscriptions
    self._chat = chat
    self._rate_limiter = rate_limiter

  def unconfigured_result(self) -> DispatchResult | None:
    """Return the soft no-op result when credentials or the store are missing."""
    if self._config.push_credentials is None:
      return DispatchResult(sent=0, message="VAPID not configured")
    if self._config.session_factory is None or self._subscriptions is None or self._chat is None:
      return DispatchResult(sent=0, message="Database not configured")
    return None

  async def dispatch(self, event: NotificationEvent) -> DispatchResult:
    if isinstance(event, MessagePosted):
      return await self.dispatch_message_notification(room_id=event.room_id, message_id=event.message_id, sender_id=event.sender_id)
    if isinstance(event, TurnAdvanced):
      return await self.dispatch_turn_notification(room_id=event.room_id)
    if isinstance(event, NudgeSent):
      return await self.dispatch_nudge_notification(room_id=event.room_id, nudged_user_id=event.nudged_user_id)
    raise TypeError(f"Unsupported notification event: {type(event).__name__}")

  async def dispatch_message_notification(self, *, room_id: uuid.UUID, message_id: uuid.UUID, sender_id: uuid.UUID) -> DispatchResult:
    """Notify every other member of the room about a new message."""
    if (unconfigured := self.unconfigured_result()) is not None:
      return unconfigured

    try:
      return await self._dispatch_message(room_id=room_id, message_id=message_id, sender_id=sender_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notify message failed room_id=%s message_id=%s error=%s", room_id, message_id, exc, exc_info=True)
      return DispatchResult(sent=0, error=FAILED_TO_SEND)

  async def _dispatch_message(self, *, room_id: uuid.UUID, message_id: uuid.UUID, sender_id: uuid.UUID) -> DispatchResult:
    assert self._chat is not None

    message = await self._chat.get_message(message_id=message_id)
    if message is None:
      # The message may have been deleted between the write and this trigger.
      return DispatchResult(sent=0, message="Message not found")

    room_name = await self._room_name(room_id)
    sender_name = await self._chat.get_display_name(user_id=sender_id)
    preview = format_preview(message, sender_name)

    members = await self._chat.members_for_notification(room_id=room_id, exclude_user_id=sender_id)
    if not members:
      logger.info("No members to notify room_id=%s", room_id)
      return DispatchResult(sent=0, message="No eligible members")

    eligible = [member for member in members if member.message_notifs_enabled and member.user_id != sender_id]
    if not eligible:
      logger.info("All members muted message notifications room_id=%s members=%d", room_id, len(members))
      return DispatchResult(sent=0, message="All members have notifications disabled")

    sent = 0
    for member in eligible:
      if await self._notify_member(user_id=member.user_id, room_id=room_id, room_name=room_name, preview=preview):
        sent += 1

    logger.info("Message notifications dispatched room_id=%s sent=%d total=%d", room_id, sent, len(eligible))
    return DispatchResult(sent=sent, total=len(eligible))

  async def _notify_member(self, *, user_id: uuid.UUID, room_id: uuid.UUID, room_name: str, preview: str) -> bool:
    """Deliver to one recipient; True when at least one endpoint accepted the push."""
    assert self._rate_limiter is not None

    try:
      decision = await self._rate_limiter.check(user_id=user_id, room_id=room_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Rate limit check failed user_id=%s room_id=%s error=%s", user_id, room_id, exc, exc_info=True)
      return False

    if not decision.should_send:
      logger.debug("Rate limited user_id=%s room_id=%s pending=%d", user_id, room_id, decision.pending_count)
      return False

    endpoints = await self._list_endpoints(user_id)
    if not endpoints:
      return False

    payload = format_message_payload(room_id=room_id, room_name=room_name, preview=preview, pending_count=decision.pending_count)
    outcomes = await self._fan_out(endpoints, payload)
    return any(outcome.delivered for outcome in outcomes)

  async def dispatch_turn_notification(self, *, room_id: uuid.UUID) -> DispatchResult:
    """Tell the player whose turn it now is. Turn changes are not rate limited."""
    if (unconfigured := self.unconfigured_result()) is not None:
      return unconfigured

    try:
      assert self._chat is not None
      user_id = await self._chat.get_current_turn_user(room_id=room_id)
      if user_id is None:
        return DispatchResult(sent=0, message="No active turn session")

      payload = format_turn_payload(room_id=room_id, room_name=await self._room_name(room_id))
      return await self._deliver_to_single_user(user_id, payload)
    except Exception as exc:  # noqa: BLE001
      logger.error("Notify turn failed room_id=%s error=%s", room_id, exc, exc_info=True)
      return DispatchResult(sent=0, error=FAILED_TO_SEND)

  async def dispatch_nudge_notification(self, *, room_id: uuid.UUID, nudged_user_id: uuid.UUID) -> DispatchResult:
    """Deliver a nudge the store has already recorded."""
    if (unconfigured := self.unconfigured_result()) is not None:
      return unconfigured

    try:
      payload = format_nudge_payload(room_id=room_id, room_name=await self._room_name(room_id))
      return await self._deliver_to_single_user(nudged_user_id, payload)
    except Exception as exc:  # noqa: BLE001
      logger.error("Nudge push failed room_id=%s error=%s", room_id, exc, exc_info=True)
      return DispatchResult(sent=0, error=FAILED_TO_SEND)

  async def send_to_user(self, *, user_id: uuid.UUID, room_id: uuid.UUID, room_name: str | None = None, body: str | None = None) -> DispatchResult:
    """Push a turn-style notification with optional custom text to one user."""
    if (unconfigured := self.unconfigured_result()) is not None:
      return unconfigured

    try:
      payload = format_turn_payload(room_id=room_id, room_name=room_name or self._config.default_room_name, body=body)
      result = await self._deliver_to_single_user(user_id, payload)
      return replace(result, failed=(result.total or 0) - result.sent)
    except Exception as exc:  # noqa: BLE001
      logger.error("Direct push failed user_id=%s room_id=%s error=%s", user_id, room_id, exc, exc_info=True)
      return DispatchResult(sent=0, error=FAILED_TO_SEND)

  async def send_test(self, *, user_id: uuid.UUID) -> DispatchResult:
    if (unconfigured := self.unconfigured_result()) is not None:
      return unconfigured

    try:
      return await self._deliver_to_single_user(user_id, format_test_payload())
    except Exception as exc:  # noqa: BLE001
      logger.error("Test push failed user_id=%s error=%s", user_id, exc, exc_info=True)
      return DispatchResult(sent=0, error=FAILED_TO_SEND)

  async def _deliver_to_single_user(self, user_id: uuid.UUID, payload: NotificationPayload) -> DispatchResult:
    """Fan out to one user's endpoints; counts are per endpoint."""
    endpoints = await self._list_endpoints(user_id)
    if not endpoints:
      return DispatchResult(sent=0, total=0, message="No subscriptions for user")

    outcomes = await self._fan_out(endpoints, payload)
    sent = sum(1 for outcome in outcomes if outcome.delivered)
    logger.info("Push dispatched user_id=%s tag=%s sent=%d total=%d", user_id, payload.tag, sent, len(outcomes))
    return DispatchResult(sent=sent, total=len(outcomes))

  async def _room_name(self, room_id: uuid.UUID) -> str:
    assert self._chat is not None
    return await self._chat.get_room_name(room_id=room_id) or self._config.default_room_name

  async def _list_endpoints(self, user_id: uuid.UUID) -> list[PushEndpoint]:
    assert self._subscriptions is not None
    try:
      return await self._subscriptions.list_for_user(user_id=user_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push subscription lookup failed user_id=%s error=%s", user_id, exc, exc_info=True)
      return []

  async def _fan_out(self, endpoints: list[PushEndpoint], payload: NotificationPayload) -> list[DeliveryOutcome]:
    """Deliver to every endpoint concurrently; one failure never cancels the others."""
    semaphore = asyncio.Semaphore(self._config.max_concurrency)

    async def _bounded(endpoint: PushEndpoint) -> DeliveryOutcome:
      async with semaphore:
        return await self._deliver(endpoint, payload)

    return list(await asyncio.gather(*(_bounded(endpoint) for endpoint in endpoints)))

  async def _deliver(self, endpoint: PushEndpoint, payload: NotificationPayload) -> DeliveryOutcome:
    message = PushMessage(endpoint=endpoint.endpoint, p256dh=endpoint.p256dh, auth=endpoint.auth, payload=payload)
    try:
      # The worker thread is abandoned on timeout; pywebpush also bounds the HTTP call.
      with anyio.fail_after(self._config.send_timeout_seconds):
        await anyio.to_thread.run_sync(self._sender.send, message, abandon_on_cancel=True)
    except InvalidPushSubscriptionError as exc:
      await self._remove_endpoint(endpoint, reason=str(exc))
      return DeliveryOutcome(endpoint_id=endpoint.id, status=DeliveryStatus.GONE, error=str(exc))
    except TimeoutError:
      logger.warning("Push delivery timed out subscription_id=%s after %.1fs", endpoint.id, self._config.send_timeout_seconds)
      return DeliveryOutcome(endpoint_id=endpoint.id, status=DeliveryStatus.FAILED, error="timeout")
    except NotificationProviderError as exc:
      logger.warning("Push delivery failed (provider error) subscription_id=%s: %s", endpoint.id, exc)
      return DeliveryOutcome(endpoint_id=endpoint.id, status=DeliveryStatus.FAILED, error=str(exc))
    except Exception as exc:  # noqa: BLE001
      logger.error("Push delivery failed subscription_id=%s: %s", endpoint.id, exc, exc_info=True)
      return DeliveryOutcome(endpoint_id=endpoint.id, status=DeliveryStatus.FAILED, error=str(exc))

    return DeliveryOutcome(endpoint_id=endpoint.id, status=DeliveryStatus.DELIVERED)

  async def _remove_endpoint(self, endpoint: PushEndpoint, *, reason: str) -> None:
    assert self._subscriptions is not None
    logger.info("Removing gone push subscription subscription_id=%s user_id=%s reason=%s", endpoint.id, endpoint.user_id, reason)
    try:
      await self._subscriptions.delete_by_id(subscription_id=endpoint.id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed deleting gone push subscription subscription_id=%s error=%s", endpoint.id, exc, exc_info=True)
