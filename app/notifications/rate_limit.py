"""Per-recipient, per-room rate limiting for message notifications.

A recipient gets at most one message notification per room every
`min_interval_seconds`. Notifications that arrive inside the window are
coalesced: the stored counter grows, and the next notification that is
allowed through reports how many were folded into it.
"""

from __future__ import annotations

import datetime
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.notifications.contracts import RateLimitDecision, RateLimiter
from app.schema.chat import NotificationRateLimit

# Seed value for pairs that have never been notified.
NEVER_SENT = datetime.datetime(1970, 1, 1, tzinfo=datetime.UTC)


@dataclass(frozen=True)
class RateLimitState:
  last_sent_at: datetime.datetime
  pending_count: int


@dataclass(frozen=True)
class RateLimitPolicy:
  """Pure decision rule; the caller persists the returned state."""

  min_interval_seconds: int = 60

  def evaluate(self, state: RateLimitState, now: datetime.datetime) -> tuple[RateLimitDecision, RateLimitState]:
    window = datetime.timedelta(seconds=self.min_interval_seconds)
    if state.last_sent_at + window < now:
      return RateLimitDecision(should_send=True, pending_count=state.pending_count), RateLimitState(last_sent_at=now, pending_count=0)

    pending = state.pending_count + 1
    return RateLimitDecision(should_send=False, pending_count=pending), RateLimitState(last_sent_at=state.last_sent_at, pending_count=pending)


def _utcnow() -> datetime.datetime:
  return datetime.datetime.now(datetime.UTC)


class MessageRateLimiter(RateLimiter):
  """Postgres-backed limiter; each check is one transaction holding the row lock."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession], *, policy: RateLimitPolicy | None = None, clock: Callable[[], datetime.datetime] = _utcnow) -> None:
    self._session_factory = session_factory
    self._policy = policy or RateLimitPolicy()
    self._clock = clock

  async def check(self, *, user_id: uuid.UUID, room_id: uuid.UUID) -> RateLimitDecision:
    """Decide whether to notify now and record the outcome atomically."""
    async with self._session_factory() as session, session.begin():
      seed = insert(NotificationRateLimit).values(user_id=user_id, room_id=room_id, last_sent_at=NEVER_SENT, pending_count=0).on_conflict_do_nothing(index_elements=["user_id", "room_id"])
      await session.execute(seed)

      # FOR UPDATE serialises concurrent triggers for the same pair.
      stmt = select(NotificationRateLimit).where(NotificationRateLimit.user_id == user_id, NotificationRateLimit.room_id == room_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one()

      decision, new_state = self._policy.evaluate(RateLimitState(last_sent_at=row.last_sent_at, pending_count=row.pending_count), self._clock())
      row.last_sent_at = new_state.last_sent_at
      row.pending_count = new_state.pending_count

    return decision
