import threading
from typing import Optional

from redis import Redis
from rq import Queue

from tgauth.settings import settings

_conn: Optional[Redis] = None
_conn_lock = threading.Lock()


def _queue_connection() -> Redis:
    # RQ stores pickled job data, so this client keeps raw bytes and cannot
    # share the decoded client from tgauth.store.redis_conn.
    global _conn
    with _conn_lock:
        if _conn is None:
            _conn = Redis.from_url(settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SEC)
        return _conn


def get_queue(connection: Optional[Redis] = None) -> Queue:
    return Queue(
        settings.RQ_QUEUE_NAME,
        connection=connection or _queue_connection(),
        default_timeout=settings.RQ_JOB_TIMEOUT_SEC,
    )
