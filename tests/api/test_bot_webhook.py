import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock, patch

from tgauth.api.deps import get_bot
from tgauth.main import app
from tgauth.services.bot import BotHandler
from tgauth.services.challenge import ChallengeNotFoundError
from tgauth.telegram.client import TelegramApiError
from tgauth.settings import settings

client = TestClient(app)

SECRET = "hook-secret"
HEADERS = {"x-telegram-bot-api-secret-token": SECRET}
UPDATE = {
    "update_id": 5,
    "message": {"message_id": 1, "chat": {"id": 99}, "text": "AbCd1234"},
}


@pytest.fixture(autouse=True)
def bot():
    mock_bot = MagicMock()
    mock_bot.handle_update.return_value = True
    saved = app.state.bot
    app.state.bot = mock_bot
    with patch.object(settings, "BOT_SECRET", SECRET), patch.object(settings, "BOT_UPDATE_MODE", "sync"):
        yield mock_bot
    app.state.bot = saved


def test_rejects_missing_secret(bot):
    assert client.post("/api/bot", json=UPDATE).status_code == 401
    bot.handle_update.assert_not_called()


def test_rejects_wrong_secret(bot):
    response = client.post("/api/bot", json=UPDATE, headers={"x-telegram-bot-api-secret-token": "nope"})
    assert response.status_code == 401


def test_rejects_everything_when_secret_unset(bot):
    with patch.object(settings, "BOT_SECRET", ""):
        response = client.post("/api/bot", json=UPDATE, headers={"x-telegram-bot-api-secret-token": ""})
    assert response.status_code == 401


def test_handles_update_inline(bot):
    response = client.post("/api/bot", json=UPDATE, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"ok": True, "handled": True}
    update = bot.handle_update.call_args.args[0]
    assert update.update_id == 5
    assert update.message.text == "AbCd1234"


def test_unparseable_update_is_acknowledged(bot):
    response = client.post("/api/bot", json={"something": "else"}, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"ok": True}
    bot.handle_update.assert_not_called()


def test_non_object_body_is_acknowledged(bot):
    response = client.post("/api/bot", json=[1, 2], headers=HEADERS)
    assert response.status_code == 200
    bot.handle_update.assert_not_called()


@patch("tgauth.api.routes.enqueue_update")
def test_rq_mode_enqueues(mock_enqueue, bot):
    with patch.object(settings, "BOT_UPDATE_MODE", "rq"):
        response = client.post("/api/bot", json=UPDATE, headers=HEADERS)
    assert response.status_code == 200
    mock_enqueue.assert_called_once_with(UPDATE)
    bot.handle_update.assert_not_called()


@patch("tgauth.api.deps.build_bot_handler")
def test_bot_is_built_on_first_call(mock_build):
    app.state.bot = None
    mock_build.return_value.handle_update.return_value = False

    response = client.post("/api/bot", json=UPDATE, headers=HEADERS)

    assert response.json() == {"ok": True, "handled": False}
    mock_build.assert_called_once_with(app.state.challenges)
    assert app.state.bot is mock_build.return_value


def test_handler_failure_still_acknowledged(bot):
    bot.handle_update.side_effect = RuntimeError("boom")
    response = client.post("/api/bot", json=UPDATE, headers=HEADERS)
    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_blocked_bot_still_acknowledged():
    challenges = MagicMock()
    challenges.lookup.side_effect = ChallengeNotFoundError("Challenge not found")
    tg = MagicMock()
    tg.send_message.side_effect = TelegramApiError("sendMessage", "Forbidden: bot was blocked by the user", 403)
    app.state.bot = BotHandler(challenges, tg, seal_key=bytes(32))

    response = client.post("/api/bot", json=UPDATE, headers=HEADERS)

    assert response.status_code == 200
    assert tg.send_message.call_count == 2


@patch("tgauth.api.routes.enqueue_update")
def test_enqueue_failure_still_acknowledged(mock_enqueue, bot):
    mock_enqueue.side_effect = ConnectionError("redis down")
    with patch.object(settings, "BOT_UPDATE_MODE", "rq"):
        response = client.post("/api/bot", json=UPDATE, headers=HEADERS)
    assert response.status_code == 200


def test_bot_is_built_once_under_concurrency():
    app.state.bot = None
    request = MagicMock()
    request.app = app
    built = []

    def slow_build(challenges):
        built.append(challenges)
        time.sleep(0.05)
        return MagicMock()

    with patch("tgauth.api.deps.build_bot_handler", side_effect=slow_build):
        with ThreadPoolExecutor(max_workers=8) as pool:
            bots = list(pool.map(lambda _: get_bot(request), range(8)))

    assert len(built) == 1
    assert all(b is bots[0] for b in bots)
