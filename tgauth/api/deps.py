import threading

from fastapi import Request
from redis import Redis

from tgauth.services.bot import BotHandler, build_bot_handler
from tgauth.services.challenge import ChallengeService

_bot_lock = threading.Lock()


def get_redis_client(request: Request) -> Redis:
    return request.app.state.redis


def get_challenges(request: Request) -> ChallengeService:
    return request.app.state.challenges


def get_bot(request: Request) -> BotHandler:
    # Built on first webhook call, so BOT_TOKEN is only required by the bot.
    # Webhook calls run in the threadpool; only one of them may build it.
    bot = getattr(request.app.state, "bot", None)
    if bot is not None:
        return bot
    with _bot_lock:
        bot = getattr(request.app.state, "bot", None)
        if bot is None:
            bot = build_bot_handler(request.app.state.challenges)
            request.app.state.bot = bot
    return bot
