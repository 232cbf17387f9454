"""Repository helpers for Web Push subscription persistence."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.notifications.contracts import PushEndpoint
from app.schema.push_subscriptions import PushSubscription


@dataclass(frozen=True)
class PushSubscriptionEntry:
  """A browser subscription as submitted by the client."""

  user_id: uuid.UUID
  endpoint: str
  p256dh: str
  auth: str
  user_agent: str | None


class PushSubscriptionRepository:
  """Persist and manage push subscriptions in Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None) -> None:
    self._session_factory = session_factory

  @property
  def is_configured(self) -> bool:
    return self._session_factory is not None

  async def upsert(self, entry: PushSubscriptionEntry) -> None:
    """Insert a subscription, or rotate its keys when the (user, endpoint) pair already exists."""
    if self._session_factory is None:
      return

    async with self._session_factory() as session:
      stmt = insert(PushSubscription).values(user_id=entry.user_id, endpoint=entry.endpoint, p256dh=entry.p256dh, auth=entry.auth, user_agent=entry.user_agent)
      stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "endpoint"], set_={"p256dh": stmt.excluded.p256dh, "auth": stmt.excluded.auth, "user_agent": stmt.excluded.user_agent, "created_at": func.now()}
      )
      await session.execute(stmt)
      await session.commit()

  async def list_for_user(self, *, user_id: uuid.UUID) -> list[PushEndpoint]:
    """List every endpoint registered by a user."""
    if self._session_factory is None:
      return []

    async with self._session_factory() as session:
      stmt = select(PushSubscription).where(PushSubscription.user_id == user_id)
      result = await session.execute(stmt)
      rows = result.scalars().all()
      return [PushEndpoint(id=row.id, user_id=row.user_id, endpoint=row.endpoint, p256dh=row.p256dh, auth=row.auth) for row in rows]

  async def delete_by_id(self, *, subscription_id: uuid.UUID) -> None:
    """Remove one subscription row; deleting a missing row is a no-op."""
    if self._session_factory is None:
      return

    async with self._session_factory() as session:
      await session.execute(delete(PushSubscription).where(PushSubscription.id == subscription_id))
      await session.commit()

  async def delete_for_user_endpoint(self, *, user_id: uuid.UUID, endpoint: str) -> None:
    """Delete a subscription scoped to its owner."""
    if self._session_factory is None:
      return

    async with self._session_factory() as session:
      await session.execute(delete(PushSubscription).where(PushSubscription.user_id == user_id, PushSubscription.endpoint == endpoint))
      await session.commit()
