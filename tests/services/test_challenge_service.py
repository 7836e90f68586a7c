import json
import time

import fakeredis
import pytest
from unittest.mock import MagicMock, patch

from tgauth.crypto.seal import ExpiringSealedValue, parse_exat
from tgauth.errors import ConfigError
from tgauth.models.challenge import PASSED, PENDING, ChallengeRef
from tgauth.models.user import User
from tgauth.services.challenge import (
    ChallengeConflictError,
    ChallengeNotFoundError,
    ChallengeService,
    ExpiredChallengeTokenError,
    InvalidChallengeTokenError,
)
from tgauth.settings import settings

KEY = bytes(range(32))
# Records expire in real time on the fake server, so keep the clock near it
NOW = int(time.time())
USER = User(id="pub-id", name="Ann Lee", lang="de")


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def redis():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def clock():
    return Clock(NOW)


@pytest.fixture
def service(redis, clock):
    return ChallengeService(redis, KEY, ttl=600, clock_tolerance=0, clock=clock)


def test_create_stores_pending_record(service, redis):
    res = service.create("Firefox on Linux")

    assert len(res.code) == 8
    assert len(res.mnemonic.split(" ")) == 12
    assert parse_exat(res.token) == NOW + 600

    record = json.loads(redis.get(f"challenge:{res.code}"))
    assert record["status"] == PENDING
    assert record["id"].startswith(res.code)
    assert record["clientHints"] == "Firefox on Linux"
    assert record["exat"] == NOW + 600
    assert redis.get("metrics:challenge:created") == "1"


def test_create_without_hints_omits_field(service, redis):
    res = service.create()
    assert "clientHints" not in json.loads(redis.get(f"challenge:{res.code}"))


def test_create_conflict_when_code_taken(clock):
    redis = MagicMock()
    redis.set.return_value = None
    service = ChallengeService(redis, KEY, ttl=600, clock=clock)

    with pytest.raises(ChallengeConflictError):
        service.create()
    kwargs = redis.set.call_args.kwargs
    assert kwargs["nx"] is True
    assert kwargs["exat"] == NOW + 600


def test_create_with_retry_gives_up_after_attempts(clock):
    redis = MagicMock()
    redis.set.return_value = None
    service = ChallengeService(redis, KEY, ttl=600, clock=clock)

    with pytest.raises(ChallengeConflictError):
        service.create_with_retry(attempts=3)
    assert redis.set.call_count == 3


def test_create_with_retry_recovers(clock):
    redis = MagicMock()
    redis.set.side_effect = [None, True]
    service = ChallengeService(redis, KEY, ttl=600, clock=clock)

    res = service.create_with_retry(attempts=3)
    assert res.code
    assert redis.set.call_count == 2
    first_key = redis.set.call_args_list[0].args[0]
    second_key = redis.set.call_args_list[1].args[0]
    assert first_key != second_key


def test_create_without_seal_key_fails_before_writing(redis, clock):
    service = ChallengeService(redis, ttl=600, clock=clock)
    with patch.object(settings, "SEAL_KEY", ""):
        with pytest.raises(ConfigError):
            service.create()
    assert redis.keys("challenge:*") == []


def test_full_sign_in(service, redis):
    created = service.create("Safari on iPhone")

    read = service.read(created.token)
    assert read.mnemonic == created.mnemonic
    assert read.clientHints == "Safari on iPhone"

    assert service.try_consume(created.token).status == PENDING

    assert service.pass_challenge(created.token, USER).status == PASSED

    consumed = service.try_consume(created.token)
    assert consumed.status == PASSED
    assert consumed.user == USER.to_dict()
    assert redis.get(f"challenge:{created.code}") is None

    with pytest.raises(ChallengeNotFoundError):
        service.try_consume(created.token)


def test_pass_accepts_plain_dict(service):
    created = service.create()
    service.pass_challenge(created.token, {"id": "x", "name": "Bo", "lang": "en", "image": "https://i/x.jpg"})
    assert service.try_consume(created.token).user["image"] == "https://i/x.jpg"


def test_consume_returns_payload_unchanged(service):
    created = service.create()
    payload = {"id": "u1", "name": "Ann", "locale": "fr", "image": ""}
    service.pass_challenge(created.token, payload)

    assert service.try_consume(created.token).user == payload


def test_transition_commits_before_counting(service, redis):
    created = service.create()
    service.pass_challenge(created.token, USER)
    key = f"challenge:{created.code}"
    seen = []

    def record_state(r, event):
        seen.append((event, r.exists(key)))

    with patch("tgauth.services.challenge.metrics.increment", side_effect=record_state):
        service.try_consume(created.token)

    assert seen == [("consumed", 0)]


def test_pass_keeps_remaining_ttl(service, redis):
    created = service.create()
    service.pass_challenge(created.token, USER)
    ttl = redis.ttl(f"challenge:{created.code}")
    assert 0 < ttl <= 600
    record = json.loads(redis.get(f"challenge:{created.code}"))
    assert record["status"] == PASSED
    assert record["user"] == USER.to_dict()


def test_pass_twice_conflicts(service):
    created = service.create()
    service.pass_challenge(created.token, USER)
    with pytest.raises(ChallengeConflictError):
        service.pass_challenge(created.token, USER)


def test_read_after_pass_is_not_found(service):
    created = service.create()
    service.pass_challenge(created.token, USER)
    with pytest.raises(ChallengeNotFoundError):
        service.read(created.token)


def test_cancel_then_read_is_not_found(service):
    created = service.create()
    service.cancel(created.token)
    with pytest.raises(ChallengeNotFoundError):
        service.read(created.token)
    with pytest.raises(ChallengeNotFoundError):
        service.cancel(created.token)


def test_cancel_passed_challenge(service):
    created = service.create()
    service.pass_challenge(created.token, USER)
    service.cancel(created.token)
    with pytest.raises(ChallengeNotFoundError):
        service.try_consume(created.token)


def test_token_for_other_record_with_same_code(service, redis, clock):
    created = service.create()
    record = json.loads(redis.get(f"challenge:{created.code}"))

    impostor = ChallengeRef(created.code + "A" * 16)
    assert impostor.id != record["id"]
    token = impostor.token(ExpiringSealedValue(KEY), NOW + 600)

    with pytest.raises(ChallengeNotFoundError):
        service.read(token)
    with pytest.raises(ChallengeNotFoundError):
        service.pass_challenge(token, USER)
    with pytest.raises(ChallengeNotFoundError):
        service.try_consume(token)
    with pytest.raises(ChallengeNotFoundError):
        service.cancel(token)
    assert json.loads(redis.get(f"challenge:{created.code}"))["status"] == PENDING


def test_expired_token(service, clock):
    created = service.create()
    clock.now = NOW + 600
    assert service.read(created.token).mnemonic == created.mnemonic

    clock.now = NOW + 601
    for op in (service.read, service.try_consume, service.cancel):
        with pytest.raises(ExpiredChallengeTokenError):
            op(created.token)
    with pytest.raises(ExpiredChallengeTokenError):
        service.pass_challenge(created.token, USER)


def test_clock_tolerance(redis, clock):
    service = ChallengeService(redis, KEY, ttl=600, clock_tolerance=30, clock=clock)
    created = service.create()
    clock.now = NOW + 630
    assert service.read(created.token)
    clock.now = NOW + 631
    with pytest.raises(ExpiredChallengeTokenError):
        service.read(created.token)


def test_invalid_token(service, redis):
    with pytest.raises(InvalidChallengeTokenError):
        service.read("garbage")
    assert redis.get("metrics:challenge:invalid_token") == "1"


def test_token_from_other_key_is_invalid(service, redis, clock):
    created = service.create()
    other = ChallengeService(redis, bytes(32), ttl=600, clock=clock)
    with pytest.raises(InvalidChallengeTokenError):
        other.read(created.token)


def test_lookup_reissues_token_with_record_expiry(service, clock):
    created = service.create("Chrome on Windows")
    clock.now = NOW + 100

    found = service.lookup(created.code)
    assert found.mnemonic == created.mnemonic
    assert found.clientHints == "Chrome on Windows"
    assert parse_exat(found.token) == NOW + 600
    assert found.token != created.token

    service.pass_challenge(found.token, USER)
    assert service.try_consume(created.token).status == PASSED


def test_lookup_unknown_or_malformed_code(service):
    with pytest.raises(ChallengeNotFoundError):
        service.lookup("ZZZZZZZZ")
    with pytest.raises(ChallengeNotFoundError):
        service.lookup("not a code")


def test_lookup_passed_is_not_found(service):
    created = service.create()
    service.pass_challenge(created.token, USER)
    with pytest.raises(ChallengeNotFoundError):
        service.lookup(created.code)


def test_metrics_failure_does_not_break_create(clock):
    from redis.exceptions import ConnectionError as RedisConnectionError

    redis = MagicMock()
    redis.set.return_value = True
    redis.incr.side_effect = RedisConnectionError("down")
    service = ChallengeService(redis, KEY, ttl=600, clock=clock)

    assert service.create().code
