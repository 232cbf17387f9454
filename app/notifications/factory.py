"""Factory helpers for the push dispatcher."""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.core.database import get_session_factory
from app.notifications.chat_repo import ChatRepository
from app.notifications.contracts import PushSender
from app.notifications.dispatcher import DispatcherConfig, PushDispatcher
from app.notifications.push_sender import NullPushSender, VapidConfig, WebPushSender
from app.notifications.push_subscription_repo import PushSubscriptionRepository
from app.notifications.rate_limit import MessageRateLimiter, RateLimitPolicy


def build_dispatcher_config(settings: Settings, session_factory: async_sessionmaker[AsyncSession] | None) -> DispatcherConfig:
  """Resolve optional credentials and store handle into an explicit config."""
  push_credentials = None
  if settings.push_vapid_public_key and settings.push_vapid_private_key:
    push_credentials = VapidConfig(public_key=settings.push_vapid_public_key, private_key=settings.push_vapid_private_key, sub=settings.push_vapid_sub)

  return DispatcherConfig(
    push_credentials=push_credentials,
    session_factory=session_factory,
    default_room_name=settings.default_room_name,
    send_timeout_seconds=settings.push_send_timeout_seconds,
    max_concurrency=settings.push_max_concurrency,
  )


def build_push_dispatcher(settings: Settings, *, session_factory: async_sessionmaker[AsyncSession] | None = None) -> PushDispatcher:
  """Construct a dispatcher; missing pieces leave it in the soft "not configured" state."""
  config = build_dispatcher_config(settings, session_factory)

  if config.push_credentials is not None:
    sender: PushSender = WebPushSender(vapid_config=config.push_credentials, timeout_seconds=config.send_timeout_seconds)
  else:
    sender = NullPushSender()

  if session_factory is None:
    return PushDispatcher(config=config, sender=sender, subscriptions=None, chat=None, rate_limiter=None)

  return PushDispatcher(
    config=config,
    sender=sender,
    subscriptions=PushSubscriptionRepository(session_factory),
    chat=ChatRepository(session_factory),
    rate_limiter=MessageRateLimiter(session_factory, policy=RateLimitPolicy(min_interval_seconds=settings.message_rate_limit_seconds)),
  )


@lru_cache(maxsize=1)
def get_push_dispatcher() -> PushDispatcher:
  """FastAPI dependency returning the process-wide dispatcher."""
  return build_push_dispatcher(get_settings(), session_factory=get_session_factory())


def get_chat_repository() -> ChatRepository | None:
  session_factory = get_session_factory()
  if session_factory is None:
    return None
  return ChatRepository(session_factory)


def get_subscription_repository() -> PushSubscriptionRepository:
  return PushSubscriptionRepository(get_session_factory())
