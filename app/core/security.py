"""Shared-secret guards for internal and cron endpoints."""

from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _bearer_matches(authorization: str | None, secret: str) -> bool:
  return secrets.compare_digest(authorization or "", f"Bearer {secret}")


async def require_internal_secret(request: Request, settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Reject callers that do not present the internal API secret.

  When SPIN_INTERNAL_API_SECRET is unset the check is skipped, matching local
  development where the web tier and this service share a private network.
  """
  if not settings.internal_api_secret:
    return
  if not _bearer_matches(authorization, settings.internal_api_secret):
    logger.warning("Unauthorized internal call path=%s", request.url.path)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_cron_secret(request: Request, settings: Annotated[Settings, Depends(get_settings)], authorization: str | None = Header(default=None)) -> None:
  """Enforce the scheduler secret in production environments only."""
  if not settings.is_production or not settings.cron_secret:
    return
  if not _bearer_matches(authorization, settings.cron_secret):
    logger.warning("Unauthorized cron call path=%s", request.url.path)
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
