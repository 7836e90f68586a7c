"""
Challenge Counters
------------------
Lightweight Redis counters per challenge transition, read back by
/admin/metrics. Writes are best-effort: a metrics failure never changes
the outcome of the transition being counted.
The INCR is issued after the transition has committed, as its own round trip;
the one-round-trip rule for transitions does not cover counters.
"""
from __future__ import annotations
import time
from typing import Dict

from redis import Redis
from redis.exceptions import RedisError

from tgauth.observability.logging import log

PREFIX = "metrics:challenge:"

EVENTS = (
    "created",
    "conflict",
    "passed",
    "consumed",
    "cancelled",
    "not_found",
    "invalid_token",
)


def _key(event: str) -> str:
    return f"{PREFIX}{event}"


def increment(redis: Redis, event: str) -> None:
    try:
        redis.incr(_key(event), 1)
    except RedisError as e:
        log(event="metrics_write_failed", metric=event, error=str(e)[:200])


def snapshot(redis: Redis) -> Dict[str, object]:
    values = redis.mget([_key(e) for e in EVENTS])
    counters = {e: int(v or 0) for e, v in zip(EVENTS, values)}
    created = counters["created"]
    consumed = counters["consumed"]
    return {
        "counters": counters,
        "completion_rate": round((consumed / created) * 100.0, 3) if created else 0.0,
        "snapshot_at": int(time.time()),
    }
