from typing import Any, Dict

from tgauth.observability.logging import log
from tgauth.queue.rq_conn import get_queue
from tgauth.services.bot import build_bot_handler
from tgauth.services.challenge import ChallengeService
from tgauth.store.redis_conn import get_redis


def enqueue_update(update: Dict[str, Any]) -> str:
    q = get_queue()
    job = q.enqueue(handle_update_job, update)
    log(event="bot_update_enqueued", updateId=update.get("update_id"), rq_job_id=getattr(job, "id", "") or "")
    return getattr(job, "id", "") or ""


def handle_update_job(update: Dict[str, Any]) -> bool:
    """
    Background job handling one Telegram update.
    Clients are built per job and closed afterwards.
    """
    redis = get_redis()
    bot = build_bot_handler(ChallengeService(redis))
    try:
        log(event="bot_update_job_start", updateId=update.get("update_id"))
        return bot.handle_update(update)
    except Exception as e:
        log(event="bot_update_job_exception", updateId=update.get("update_id"), error=str(e)[:500])
        raise
    finally:
        bot.tg.close()
        if bot.uploader is not None:
            bot.uploader.close()
        redis.close()
