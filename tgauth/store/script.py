import hashlib
import threading
from typing import Any, Sequence

from redis import Redis
from redis.exceptions import NoScriptError


class AtomicScript:
    """
    Server-side Lua script addressed by its SHA1.
    Runs EVALSHA first; if the server does not know the script yet, EVAL
    sends the source, which also caches it under the same hash.
    """

    def __init__(self, source: str):
        self.source = source.strip()
        self._sha = None
        self._lock = threading.Lock()

    @property
    def sha(self) -> str:
        if self._sha is None:
            with self._lock:
                if self._sha is None:
                    self._sha = hashlib.sha1(self.source.encode("utf-8")).hexdigest()
        return self._sha

    def __call__(self, redis: Redis, keys: Sequence[str], args: Sequence[Any] = ()) -> Any:
        try:
            return redis.evalsha(self.sha, len(keys), *keys, *args)
        except NoScriptError:
            return redis.eval(self.source, len(keys), *keys, *args)
