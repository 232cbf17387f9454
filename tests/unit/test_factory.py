from __future__ import annotations

import dataclasses
import uuid
from unittest.mock import MagicMock

import pytest

from app.config import get_settings
from app.notifications.factory import build_push_dispatcher
from app.notifications.push_subscription_repo import PushSubscriptionRepository
from app.notifications.rate_limit import MessageRateLimiter


def test_missing_vapid_keys_build_an_unconfigured_dispatcher():
  settings = dataclasses.replace(get_settings(), push_vapid_public_key=None, push_vapid_private_key=None)
  dispatcher = build_push_dispatcher(settings, session_factory=MagicMock())
  assert dispatcher.unconfigured_result().message == "VAPID not configured"


def test_missing_database_builds_an_unconfigured_dispatcher():
  settings = dataclasses.replace(get_settings(), push_vapid_public_key="pub", push_vapid_private_key="priv")
  dispatcher = build_push_dispatcher(settings, session_factory=None)
  assert dispatcher.unconfigured_result().message == "Database not configured"


def test_fully_configured_dispatcher_uses_configured_window():
  settings = dataclasses.replace(get_settings(), push_vapid_public_key="pub", push_vapid_private_key="priv", message_rate_limit_seconds=30)
  dispatcher = build_push_dispatcher(settings, session_factory=MagicMock())

  assert dispatcher.unconfigured_result() is None
  assert isinstance(dispatcher._rate_limiter, MessageRateLimiter)
  assert dispatcher._rate_limiter._policy.min_interval_seconds == 30


@pytest.mark.anyio
async def test_subscription_repository_without_database_is_a_no_op():
  repo = PushSubscriptionRepository(None)
  assert repo.is_configured is False
  assert await repo.list_for_user(user_id=uuid.uuid4()) == []
  await repo.delete_by_id(subscription_id=uuid.uuid4())
