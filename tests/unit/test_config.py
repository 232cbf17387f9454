from __future__ import annotations

import os

import pytest

from app.config import DEFAULT_ROOM_NAME, DEFAULT_VAPID_SUB, get_settings
from app.utils.env import load_env_file

_SPIN_VARS = (
  "SPIN_ENV",
  "SPIN_PG_DSN",
  "DATABASE_URL",
  "SPIN_PUSH_VAPID_PUBLIC_KEY",
  "SPIN_PUSH_VAPID_PRIVATE_KEY",
  "SPIN_PUSH_VAPID_SUB",
  "SPIN_ALLOWED_ORIGINS",
  "SPIN_MESSAGE_RATE_LIMIT_SECONDS",
  "SPIN_PUSH_SEND_TIMEOUT_SECONDS",
  "SPIN_DEFAULT_ROOM_NAME",
  "SPIN_CRON_SECRET",
  "SPIN_INTERNAL_API_SECRET",
)


@pytest.fixture
def clean_env(monkeypatch):
  for name in _SPIN_VARS:
    monkeypatch.delenv(name, raising=False)
  return monkeypatch


def test_defaults_leave_push_unconfigured(clean_env):
  settings = get_settings()

  assert settings.push_configured is False
  assert settings.pg_dsn is None
  assert settings.push_vapid_sub == DEFAULT_VAPID_SUB
  assert settings.default_room_name == DEFAULT_ROOM_NAME
  assert settings.message_rate_limit_seconds == 60
  assert settings.is_production is False


def test_vapid_keys_and_database_url_fallback(clean_env):
  clean_env.setenv("SPIN_PUSH_VAPID_PUBLIC_KEY", "pub")
  clean_env.setenv("SPIN_PUSH_VAPID_PRIVATE_KEY", "priv")
  clean_env.setenv("DATABASE_URL", "postgres://u:p@db/spin")

  settings = get_settings()

  assert settings.push_configured is True
  assert settings.pg_dsn == "postgres://u:p@db/spin"


def test_prefixed_dsn_wins_over_database_url(clean_env):
  clean_env.setenv("DATABASE_URL", "postgres://u:p@db/other")
  clean_env.setenv("SPIN_PG_DSN", "postgresql://u:p@db/spin")
  assert get_settings().pg_dsn == "postgresql://u:p@db/spin"


def test_blank_values_are_treated_as_unset(clean_env):
  clean_env.setenv("SPIN_PUSH_VAPID_PUBLIC_KEY", "   ")
  clean_env.setenv("SPIN_PUSH_VAPID_PRIVATE_KEY", "priv")
  assert get_settings().push_configured is False


def test_vapid_subject_must_be_mailto_or_https(clean_env):
  clean_env.setenv("SPIN_PUSH_VAPID_SUB", "hello@spinthechat.com")
  with pytest.raises(ValueError):
    get_settings()


def test_wildcard_origin_is_rejected(clean_env):
  clean_env.setenv("SPIN_ALLOWED_ORIGINS", "https://spinthechat.com,*")
  with pytest.raises(ValueError):
    get_settings()


def test_rate_limit_window_must_be_positive(clean_env):
  clean_env.setenv("SPIN_MESSAGE_RATE_LIMIT_SECONDS", "0")
  with pytest.raises(ValueError):
    get_settings()


def test_env_file_does_not_override_existing_values(tmp_path, clean_env):
  env_file = tmp_path / ".env"
  env_file.write_text("# local\nexport SPIN_DEFAULT_ROOM_NAME='Game Night'\nSPIN_ENV=production\nBROKEN_LINE\n", encoding="utf-8")
  clean_env.setenv("SPIN_ENV", "staging")
  # Register the key so monkeypatch removes what the loader exports.
  clean_env.setenv("SPIN_DEFAULT_ROOM_NAME", "placeholder")
  clean_env.delenv("SPIN_DEFAULT_ROOM_NAME")

  load_env_file(env_file)

  assert os.environ["SPIN_DEFAULT_ROOM_NAME"] == "Game Night"
  assert os.environ["SPIN_ENV"] == "staging"
  assert "BROKEN_LINE" not in os.environ
