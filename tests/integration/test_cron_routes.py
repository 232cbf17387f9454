from __future__ import annotations

import dataclasses
import uuid
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from app.config import get_settings
from app.main import app
from app.notifications.chat_repo import StalledTurn
from app.notifications.factory import get_chat_repository, get_push_dispatcher


def _production_settings(cron_secret: str | None = "cron-s3cret"):
  return dataclasses.replace(get_settings(), environment="production", cron_secret=cron_secret)


def test_auto_skip_notifies_each_skipped_room(dispatcher, chat, subscriptions, room_id):
  chat.current_turn_user = uuid.uuid4()
  subscriptions.add(chat.current_turn_user)
  skipped_user = uuid.uuid4()
  repo = MagicMock()
  repo.process_stalled_turns = AsyncMock(return_value=[StalledTurn(room_id=room_id, skipped_user_id=skipped_user, removed=True)])
  app.dependency_overrides[get_chat_repository] = lambda: repo
  app.dependency_overrides[get_push_dispatcher] = lambda: dispatcher
  client = TestClient(app)

  try:
    response = client.get("/api/cron/auto-skip")
    assert response.status_code == 200
    assert response.json() == {"success": True, "processed": 1, "skipped": [{"roomId": str(room_id), "skippedUserId": str(skipped_user), "removed": True, "notified": True}]}
  finally:
    app.dependency_overrides.clear()


def test_auto_skip_with_nothing_stalled(dispatcher):
  repo = MagicMock()
  repo.process_stalled_turns = AsyncMock(return_value=[])
  app.dependency_overrides[get_chat_repository] = lambda: repo
  app.dependency_overrides[get_push_dispatcher] = lambda: dispatcher
  client = TestClient(app)

  try:
    response = client.post("/api/cron/auto-skip")
    assert response.json() == {"success": True, "processed": 0, "skipped": []}
  finally:
    app.dependency_overrides.clear()


def test_auto_skip_requires_cron_secret_in_production(dispatcher):
  repo = MagicMock()
  repo.process_stalled_turns = AsyncMock(return_value=[])
  app.dependency_overrides[get_chat_repository] = lambda: repo
  app.dependency_overrides[get_push_dispatcher] = lambda: dispatcher
  app.dependency_overrides[get_settings] = lambda: _production_settings()
  client = TestClient(app)

  try:
    assert client.get("/api/cron/auto-skip").status_code == 401
    assert client.get("/api/cron/auto-skip", headers={"Authorization": "Bearer cron-s3cret"}).status_code == 200
    repo.process_stalled_turns.assert_awaited_once()
  finally:
    app.dependency_overrides.clear()


def test_auto_skip_reports_procedure_failure(dispatcher):
  repo = MagicMock()
  repo.process_stalled_turns = AsyncMock(side_effect=RuntimeError("function does not exist"))
  app.dependency_overrides[get_chat_repository] = lambda: repo
  app.dependency_overrides[get_push_dispatcher] = lambda: dispatcher
  client = TestClient(app)

  try:
    response = client.get("/api/cron/auto-skip")
    assert response.status_code == 500
    assert response.json() == {"error": "Failed to process stalled turns"}
  finally:
    app.dependency_overrides.clear()


def test_auto_skip_without_database(dispatcher):
  app.dependency_overrides[get_chat_repository] = lambda: None
  app.dependency_overrides[get_push_dispatcher] = lambda: dispatcher
  client = TestClient(app)

  try:
    assert client.get("/api/cron/auto-skip").status_code == 500
  finally:
    app.dependency_overrides.clear()
