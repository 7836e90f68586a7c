"""
Challenge state machine.

    pending --pass--> passed --consume--> (deleted)
    pending|passed --cancel--> (deleted)
    any --TTL--> (absent)

Records live in Redis under challenge:<code>. Every check-then-write runs as
one Lua script, so concurrent callers on the same code are serialized by the
server. The bearer token is an expiring seal of the raw challenge id with the
same absolute expiry as the record's TTL.

Each transition is a single round trip to the store. Counters in
tgauth.observability.metrics are sent afterwards as a separate INCR; they are
not part of the transition and a lost INCR only skews the counters.
"""
from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from redis import Redis

from tgauth.crypto.keys import load_seal_key
from tgauth.crypto.seal import (
    ExpiredSealedValueError,
    ExpiringSealedValue,
    InvalidSealedValueError,
)
from tgauth.errors import ConflictError, NotFoundError, UnauthorizedError
from tgauth.models.challenge import (
    PASSED,
    PENDING,
    ChallengeRecord,
    ChallengeRef,
    challenge_key,
    is_valid_challenge_code,
)
from tgauth.models.user import User
from tgauth.observability import metrics
from tgauth.observability.logging import log
from tgauth.settings import settings
from tgauth.store.challenge_scripts import (
    CANCEL_CHALLENGE,
    CONSUME_CHALLENGE,
    PASS_CHALLENGE,
    Outcome,
    UnexpectedScriptReply,
    parse_reply,
)


class InvalidChallengeTokenError(UnauthorizedError):
    pass


class ExpiredChallengeTokenError(UnauthorizedError):
    pass


class ChallengeNotFoundError(NotFoundError):
    pass


class ChallengeConflictError(ConflictError):
    pass


@dataclass
class CreateChallengeResult:
    code: str
    token: str
    mnemonic: str


@dataclass
class ReadChallengeResult:
    token: str
    mnemonic: str
    clientHints: Optional[str] = None


@dataclass
class PassChallengeResult:
    token: str
    status: str = PASSED


@dataclass
class ConsumeChallengeResult:
    token: str
    status: str
    # Identity payload exactly as attached by pass_challenge
    user: Optional[Dict[str, Any]] = None


class ChallengeService:
    def __init__(
        self,
        redis: Redis,
        seal_key: Optional[bytes] = None,
        *,
        ttl: Optional[int] = None,
        clock_tolerance: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.ttl = int(ttl if ttl is not None else settings.CHALLENGE_TTL_SEC)
        self.clock_tolerance = int(
            clock_tolerance if clock_tolerance is not None else settings.SEAL_CLOCK_TOLERANCE_SEC
        )
        self._seal_key = seal_key
        self._clock = clock

    def create(self, client_hints: Optional[str] = None) -> CreateChallengeResult:
        sealer = self._sealer()
        ref = ChallengeRef.create()
        exat = self._now() + self.ttl

        record = ChallengeRecord(id=ref.id, exat=exat, status=PENDING, clientHints=client_hints)
        created = self.redis.set(ref.key, record.to_json(), nx=True, exat=exat)

        if not created:
            metrics.increment(self.redis, "conflict")
            log(event="challenge_conflict", code=ref.code)
            raise ChallengeConflictError("Challenge code already in use")

        metrics.increment(self.redis, "created")
        log(event="challenge_created", code=ref.code, exat=exat, clientHints=client_hints or "")
        return CreateChallengeResult(code=ref.code, token=ref.token(sealer, exat), mnemonic=ref.mnemonic)

    def create_with_retry(self, client_hints: Optional[str] = None, attempts: Optional[int] = None) -> CreateChallengeResult:
        """Retry code collisions with a fresh identifier each time."""
        attempts = max(1, int(attempts if attempts is not None else settings.CHALLENGE_CREATE_ATTEMPTS))
        for _ in range(attempts - 1):
            try:
                return self.create(client_hints)
            except ChallengeConflictError:
                continue
        return self.create(client_hints)

    def read(self, token: str) -> ReadChallengeResult:
        ref = self._ref_from_token(token)
        record = self._load(ref.key)

        # Passed challenges must be consumed, not shown again
        if record is None or record.id != ref.id or record.status == PASSED:
            metrics.increment(self.redis, "not_found")
            raise ChallengeNotFoundError("Challenge not found")

        return ReadChallengeResult(token=token, mnemonic=ref.mnemonic, clientHints=record.clientHints)

    def lookup(self, code: str) -> ReadChallengeResult:
        """
        Find a pending challenge by the code an approver typed, and re-mint
        its token with the record's own expiry.
        """
        if not is_valid_challenge_code(code):
            raise ChallengeNotFoundError("Challenge not found")

        record = self._load(challenge_key(code))
        if record is None or record.status == PASSED:
            metrics.increment(self.redis, "not_found")
            raise ChallengeNotFoundError("Challenge not found")

        ref = ChallengeRef(record.id)
        if ref.code != code:
            raise ChallengeNotFoundError("Challenge not found")

        return ReadChallengeResult(
            token=ref.token(self._sealer(), record.exat),
            mnemonic=ref.mnemonic,
            clientHints=record.clientHints,
        )

    def pass_challenge(self, token: str, user: Union[User, dict]) -> PassChallengeResult:
        ref = self._ref_from_token(token)
        payload = user.to_dict() if isinstance(user, User) else dict(user)

        reply = parse_reply(PASS_CHALLENGE(self.redis, [ref.key], [ref.id, json.dumps(payload)]))

        if reply.outcome is Outcome.NOT_FOUND:
            metrics.increment(self.redis, "not_found")
            raise ChallengeNotFoundError("Challenge not found")
        if reply.outcome is Outcome.CONFLICT:
            raise ChallengeConflictError("Challenge already passed")
        if reply.outcome is not Outcome.OK:
            raise UnexpectedScriptReply(f"Unexpected pass outcome: {reply.outcome.value}")

        metrics.increment(self.redis, "passed")
        log(event="challenge_passed", code=ref.code)
        return PassChallengeResult(token=token, status=PASSED)

    def try_consume(self, token: str) -> ConsumeChallengeResult:
        """
        Exactly-once redemption. A second call after a successful one sees
        NotFound, which callers cannot tell apart from expiry.
        """
        ref = self._ref_from_token(token)
        reply = parse_reply(CONSUME_CHALLENGE(self.redis, [ref.key], [ref.id]))

        if reply.outcome is Outcome.NOT_FOUND:
            metrics.increment(self.redis, "not_found")
            raise ChallengeNotFoundError("Challenge not found")
        if reply.outcome is Outcome.PENDING:
            return ConsumeChallengeResult(token=token, status=PENDING)
        if reply.outcome is not Outcome.PASSED:
            raise UnexpectedScriptReply(f"Unexpected consume outcome: {reply.outcome.value}")

        metrics.increment(self.redis, "consumed")
        log(event="challenge_consumed", code=ref.code)
        return ConsumeChallengeResult(token=token, status=PASSED, user=reply.user)

    def cancel(self, token: str) -> None:
        ref = self._ref_from_token(token)
        reply = parse_reply(CANCEL_CHALLENGE(self.redis, [ref.key], [ref.id]))

        if reply.outcome is Outcome.NOT_FOUND:
            metrics.increment(self.redis, "not_found")
            raise ChallengeNotFoundError("Challenge not found")
        if reply.outcome is not Outcome.OK:
            raise UnexpectedScriptReply(f"Unexpected cancel outcome: {reply.outcome.value}")

        metrics.increment(self.redis, "cancelled")
        log(event="challenge_cancelled", code=ref.code)

    # -----------------------------------------------------------------------

    def _now(self) -> int:
        return int(self._clock())

    def _sealer(self) -> ExpiringSealedValue:
        key = self._seal_key if self._seal_key is not None else load_seal_key()
        return ExpiringSealedValue(key)

    def _ref_from_token(self, token: str) -> ChallengeRef:
        sealer = self._sealer()
        try:
            payload = sealer.unseal(token, now=self._now(), clock_tolerance=self.clock_tolerance)
        except ExpiredSealedValueError as e:
            metrics.increment(self.redis, "invalid_token")
            raise ExpiredChallengeTokenError("Challenge token has expired") from e
        except InvalidSealedValueError as e:
            metrics.increment(self.redis, "invalid_token")
            raise InvalidChallengeTokenError("Challenge token is invalid") from e
        return ChallengeRef.from_bytes(payload)

    def _load(self, key: str) -> Optional[ChallengeRecord]:
        raw = self.redis.get(key)
        if not raw:
            return None
        return ChallengeRecord.from_json(raw)
