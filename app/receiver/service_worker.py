"""Reference model of the push receiver: display the notification, route the click.

The service never runs this code. Browsers run `app/static/sw.js`, which must
match this module event for event, including the icon, the defaults and the
same-origin rule for reusing a window. Keeping the model in Python lets the
receiver contract be tested alongside the sender. The receiver is a two-state
actor; OS-level coalescing by `tag` is the only deduplication.
"""

from __future__ import annotations

import enum
import json
import logging
import urllib.parse
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from app.config import DEFAULT_ROOM_NAME
from app.notifications.formatting import TURN_BODY

logger = logging.getLogger(__name__)

# Kept in step with ICON in app/static/sw.js.
NOTIFICATION_ICON = "/icons/icon-192.png"
VIBRATE_PATTERN = (100, 50, 100)
DEFAULT_TAG = "turn-notification"
_DEFAULT_PORTS = {"http": 80, "https": 443}


class ReceiverState(enum.Enum):
  IDLE = "idle"
  DISPLAYING = "displaying"


@dataclass(frozen=True)
class NotificationOptions:
  body: str
  icon: str
  badge: str
  tag: str
  data: dict[str, Any]
  vibrate: tuple[int, ...] = VIBRATE_PATTERN
  require_interaction: bool = False


@dataclass
class DisplayedNotification:
  """A notification the OS is showing."""

  title: str
  options: NotificationOptions
  closed: bool = field(default=False)

  @property
  def data(self) -> dict[str, Any]:
    return self.options.data

  def close(self) -> None:
    self.closed = True


class Registration(Protocol):
  async def show_notification(self, title: str, options: NotificationOptions) -> DisplayedNotification: ...


class WindowClient(Protocol):
  url: str

  async def navigate(self, url: str) -> WindowClient | None: ...

  async def focus(self) -> WindowClient: ...


class Clients(Protocol):
  async def match_all(self, *, include_uncontrolled: bool = True) -> Sequence[WindowClient]: ...

  async def open_window(self, url: str) -> WindowClient | None: ...


def parse_push_data(raw: bytes | str | None) -> dict[str, Any] | None:
  """Decode a push body; anything that is not a JSON object is rejected."""
  if raw is None or raw == b"" or raw == "":
    return None
  try:
    decoded = json.loads(raw)
  except (ValueError, UnicodeDecodeError):
    return None
  if not isinstance(decoded, dict):
    return None
  return decoded


def url_origin(url: str) -> tuple[str, str, int | None] | None:
  """Scheme, host and port of `url`, the parts a browser origin is made of."""
  try:
    parts = urllib.parse.urlsplit(url)
    port = parts.port or _DEFAULT_PORTS.get(parts.scheme.lower())
  except ValueError:
    return None
  if not parts.scheme or not parts.hostname:
    return None
  return parts.scheme.lower(), parts.hostname, port


def build_notification(data: dict[str, Any], *, icon: str = NOTIFICATION_ICON) -> tuple[str, NotificationOptions]:
  room_id = data.get("roomId")
  url = data.get("url") or f"/room/{room_id}"
  options = NotificationOptions(body=data.get("body") or TURN_BODY, icon=icon, badge=icon, tag=data.get("tag") or DEFAULT_TAG, data={"roomId": room_id, "url": url})
  return data.get("title") or DEFAULT_ROOM_NAME, options


class PushReceiver:
  """IDLE --push--> DISPLAYING --click--> IDLE."""

  def __init__(self, *, registration: Registration, clients: Clients, origin: str, icon: str = NOTIFICATION_ICON) -> None:
    self._registration = registration
    self._clients = clients
    self._origin = url_origin(origin)
    self._icon = icon
    self.state = ReceiverState.IDLE

  async def on_push(self, raw: bytes | str | None) -> DisplayedNotification | None:
    """Show a notification for a delivered payload; malformed payloads are dropped."""
    data = parse_push_data(raw)
    if data is None:
      logger.warning("Dropping push event with missing or malformed payload")
      return None

    title, options = build_notification(data, icon=self._icon)
    try:
      shown = await self._registration.show_notification(title, options)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to display notification tag=%s: %s", options.tag, exc)
      return None

    self.state = ReceiverState.DISPLAYING
    return shown

  async def on_notification_click(self, notification: DisplayedNotification) -> WindowClient | None:
    """Close the notification and bring the app to the stashed url."""
    notification.close()
    self.state = ReceiverState.IDLE
    url = notification.data.get("url") or "/"

    for client in await self._clients.match_all(include_uncontrolled=True):
      if self._origin is None or url_origin(client.url) != self._origin:
        continue
      try:
        await client.navigate(url)
        return await client.focus()
      except Exception as exc:  # noqa: BLE001
        # The window may be closing or mid-navigation.
        logger.warning("Navigating existing window failed, opening a new one: %s", exc)
        break

    return await self._clients.open_window(url)
