"""Web Push delivery client."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from http import HTTPStatus

from pywebpush import WebPushException, webpush

from app.notifications.contracts import InvalidPushSubscriptionError, PushMessage, PushSender, TransientPushProviderError

logger = logging.getLogger(__name__)

GONE_STATUS_CODES = frozenset({HTTPStatus.NOT_FOUND, HTTPStatus.GONE})


@dataclass(frozen=True)
class VapidConfig:
  """Keypair and contact used to sign Web Push requests."""

  public_key: str
  private_key: str
  sub: str


class WebPushSender(PushSender):
  """`pywebpush` backed sender that classifies failures as gone or transient."""

  def __init__(self, *, vapid_config: VapidConfig, timeout_seconds: float = 10.0) -> None:
    self._vapid_config = vapid_config
    self._timeout_seconds = timeout_seconds

  def send(self, message: PushMessage) -> None:
    """Encrypt and post one payload. A failed attempt is reported, never retried."""
    subscription_info = {"endpoint": message.endpoint, "keys": {"p256dh": message.p256dh, "auth": message.auth}}
    data = json.dumps(message.payload.to_wire(), separators=(",", ":"), ensure_ascii=False)

    try:
      webpush(subscription_info=subscription_info, data=data, vapid_private_key=self._vapid_config.private_key, vapid_claims={"sub": self._vapid_config.sub}, timeout=self._timeout_seconds)
    except WebPushException as exc:
      status_code = _extract_status_code(exc)
      raise classify_status(status_code) from exc
    except Exception as exc:  # noqa: BLE001
      # Timeouts and connection resets surface as requests exceptions, not WebPushException.
      raise TransientPushProviderError(f"Push delivery failed ({type(exc).__name__})") from exc


class NullPushSender(PushSender):
  """No-op sender used when VAPID keys are not configured."""

  def send(self, message: PushMessage) -> None:
    logger.debug("Push notifications disabled; dropping push tag=%s", message.payload.tag)


def classify_status(status_code: int | None) -> InvalidPushSubscriptionError | TransientPushProviderError:
  """Map a push service status code onto the gone/transient split."""
  if status_code in GONE_STATUS_CODES:
    return InvalidPushSubscriptionError(f"Push subscription is gone (status={status_code})", status_code=status_code)

  label = status_code if status_code is not None else "unknown"
  return TransientPushProviderError(f"Push delivery failed (status={label})", status_code=status_code)


def _extract_status_code(exc: WebPushException) -> int | None:
  """Extract an HTTP status code from a pywebpush exception when available."""
  response = getattr(exc, "response", None)
  if response is None:
    return None

  status = getattr(response, "status_code", None)
  if isinstance(status, int):
    return status

  return None
