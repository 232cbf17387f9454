import logging
import re
import time
import uuid
from typing import Any

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger("app.core.middleware")

# Database webhooks and the web tier may forward their own id so one trace covers insert to push.
_FORWARDED_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{8,64}$")
_TRIGGER_PATHS = {"/api/push/notify-message", "/api/push/notify-turn"}
# Polled by load balancers and browsers; logged at debug only.
_QUIET_PATHS = {"/health", "/sw.js"}


def _build_request_url(scope: Scope) -> str:
  """Build a readable path with query string for logging."""
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"

  return path


def resolve_request_id(scope: Scope) -> str:
  """Reuse a well-formed inbound x-request-id, otherwise mint a new one."""
  forwarded = Headers(scope=scope).get("x-request-id", "").strip()
  if _FORWARDED_REQUEST_ID.fullmatch(forwarded):
    return forwarded
  return str(uuid.uuid4())


def classify_route(path: str) -> str:
  """Name the caller class of a push service route for log filtering."""
  if path in _TRIGGER_PATHS:
    return "trigger"
  if path.startswith("/api/push/"):
    return "internal"
  if path.startswith("/api/cron/"):
    return "cron"
  return "app"


class RequestLoggingMiddleware:
  """Tag each request with an id and log caller class, status and latency, never bodies."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    # Exception handlers read the id back from request.state.
    request_id = resolve_request_id(scope)
    scope.setdefault("state", {})["request_id"] = request_id

    path = scope.get("path", "")
    kind = classify_route(path)
    level = logging.DEBUG if path in _QUIET_PATHS else logging.INFO
    started = time.perf_counter()
    logger.log(level, "Incoming request request_id=%s kind=%s %s %s", request_id, kind, scope.get("method", "UNKNOWN"), _build_request_url(scope))

    status_code = 0

    async def send_wrapper(message: dict[str, Any]) -> None:
      nonlocal status_code
      if message.get("type") == "http.response.start":
        status_code = message.get("status") or 0
        MutableHeaders(scope=message)["x-request-id"] = request_id

      await send(message)

    await self.app(scope, receive, send_wrapper)

    elapsed_ms = (time.perf_counter() - started) * 1000
    if status_code >= 500:
      level = logging.WARNING
    logger.log(level, "Response request_id=%s kind=%s status=%s (took %.2fms)", request_id, kind, status_code, elapsed_ms)


class SecurityHeadersMiddleware:
  """Strip headers that advertise server internals and forbid MIME sniffing of sw.js and JSON."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: dict[str, Any]) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in ("x-powered-by", "server"):
          if name in headers:
            del headers[name]
        headers.setdefault("x-content-type-options", "nosniff")

      await send(message)

    await self.app(scope, receive, send_wrapper)
