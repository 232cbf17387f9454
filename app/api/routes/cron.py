"""Scheduler entry points."""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.security import require_cron_secret
from app.notifications.chat_repo import ChatRepository
from app.notifications.contracts import TurnAdvanced
from app.notifications.dispatcher import PushDispatcher
from app.notifications.factory import get_chat_repository, get_push_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter()


@router.api_route("/auto-skip", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
async def auto_skip(chat: Annotated[ChatRepository | None, Depends(get_chat_repository)], dispatcher: Annotated[PushDispatcher, Depends(get_push_dispatcher)]) -> JSONResponse:
  """Advance stalled turns and tell each room's next player."""
  if chat is None:
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Database not configured"})

  try:
    stalled = await chat.process_stalled_turns()
  except Exception as exc:  # noqa: BLE001
    logger.error("Auto-skip procedure failed error=%s", exc, exc_info=True)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "Failed to process stalled turns"})

  skipped: list[dict[str, Any]] = []
  for turn in stalled:
    if turn.removed:
      logger.info("Removed repeatedly inactive member room_id=%s user_id=%s", turn.room_id, turn.skipped_user_id)

    # Dispatch never raises; a failed notification still counts as processed.
    result = await dispatcher.dispatch(TurnAdvanced(room_id=turn.room_id))
    skipped.append({"roomId": str(turn.room_id), "skippedUserId": str(turn.skipped_user_id), "removed": turn.removed, "notified": result.sent > 0})

  logger.info("Auto-skip processed %d stalled turn(s)", len(skipped))
  return JSONResponse(content={"success": True, "processed": len(skipped), "skipped": skipped})
