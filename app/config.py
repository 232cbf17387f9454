"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

DEFAULT_VAPID_SUB = "mailto:hello@spinthechat.com"
DEFAULT_ROOM_NAME = "Spin the Chat"
_PRODUCTION_ENVIRONMENTS = {"production", "prod"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the push dispatch service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  push_vapid_public_key: str | None
  push_vapid_private_key: str | None
  push_vapid_sub: str
  push_send_timeout_seconds: float
  push_max_concurrency: int
  message_rate_limit_seconds: int
  default_room_name: str
  internal_api_secret: str | None
  cron_secret: str | None

  @property
  def is_production(self) -> bool:
    return self.environment in _PRODUCTION_ENVIRONMENTS

  @property
  def push_configured(self) -> bool:
    return bool(self.push_vapid_public_key and self.push_vapid_private_key)


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if "*" in origins:
    raise ValueError("SPIN_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("SPIN_ENV", "development").strip().lower()
  debug = _parse_bool(os.getenv("SPIN_DEBUG"))

  log_max_bytes = _positive_int("SPIN_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("SPIN_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("SPIN_LOG_BACKUP_COUNT must be zero or a positive integer.")

  push_vapid_sub = _optional_str(os.getenv("SPIN_PUSH_VAPID_SUB")) or DEFAULT_VAPID_SUB
  if not (push_vapid_sub.startswith("mailto:") or push_vapid_sub.startswith("https://")):
    raise ValueError("SPIN_PUSH_VAPID_SUB must start with 'mailto:' or 'https://'.")

  push_send_timeout_seconds = float(os.getenv("SPIN_PUSH_SEND_TIMEOUT_SECONDS", "10"))
  if push_send_timeout_seconds <= 0:
    raise ValueError("SPIN_PUSH_SEND_TIMEOUT_SECONDS must be positive.")

  database = get_database_settings()

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("SPIN_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("SPIN_LOG_HTTP_4XX")),
    pg_dsn=database.pg_dsn,
    pg_connect_timeout=database.pg_connect_timeout,
    push_vapid_public_key=_optional_str(os.getenv("SPIN_PUSH_VAPID_PUBLIC_KEY")),
    push_vapid_private_key=_optional_str(os.getenv("SPIN_PUSH_VAPID_PRIVATE_KEY")),
    push_vapid_sub=push_vapid_sub,
    push_send_timeout_seconds=push_send_timeout_seconds,
    push_max_concurrency=_positive_int("SPIN_PUSH_MAX_CONCURRENCY", "8"),
    message_rate_limit_seconds=_positive_int("SPIN_MESSAGE_RATE_LIMIT_SECONDS", "60"),
    default_room_name=_optional_str(os.getenv("SPIN_DEFAULT_ROOM_NAME")) or DEFAULT_ROOM_NAME,
    internal_api_secret=_optional_str(os.getenv("SPIN_INTERNAL_API_SECRET")),
    cron_secret=_optional_str(os.getenv("SPIN_CRON_SECRET")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration."""
  debug = _parse_bool(os.getenv("SPIN_DEBUG"))
  pg_connect_timeout = _positive_int("SPIN_PG_CONNECT_TIMEOUT", "5")

  # DATABASE_URL is the platform default; the prefixed variable wins when both are set.
  pg_dsn = _optional_str(os.getenv("SPIN_PG_DSN")) or _optional_str(os.getenv("DATABASE_URL"))

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
