"""
Atomic check-and-set transitions for challenge records.

KEYS[1] is the record key, ARGV[1] the full challenge id from the token.
Every script re-checks the stored id, so a collision on the short code never
grants access to another record. Replies are tagged arrays; the first
element is an Outcome value.
"""
import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from tgauth.store.script import AtomicScript


class Outcome(str, Enum):
    OK = "OK"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    PENDING = "PENDING"
    PASSED = "PASSED"


@dataclass
class ScriptReply:
    outcome: Outcome
    user: Optional[dict] = None


class UnexpectedScriptReply(Exception):
    pass


def _text(v: Any) -> str:
    if isinstance(v, (bytes, bytearray)):
        return v.decode("utf-8")
    return str(v)


def parse_reply(reply: Any) -> ScriptReply:
    if not isinstance(reply, (list, tuple)) or not reply:
        raise UnexpectedScriptReply(f"Unexpected script reply: {reply!r}")
    try:
        outcome = Outcome(_text(reply[0]))
    except ValueError:
        raise UnexpectedScriptReply(f"Unknown script outcome: {reply[0]!r}") from None

    user = None
    if outcome is Outcome.PASSED:
        if len(reply) < 2:
            raise UnexpectedScriptReply("PASSED reply without user payload")
        user = json.loads(_text(reply[1]))
    return ScriptReply(outcome=outcome, user=user)


# ARGV[2]: serialized identity payload
PASS_CHALLENGE = AtomicScript("""
local data = redis.call('GET', KEYS[1])
if not data then
  return {'NOT_FOUND'}
end

local challenge = cjson.decode(data)
if challenge.id ~= ARGV[1] then
  return {'NOT_FOUND'}
end

if challenge.status ~= 'pending' then
  return {'CONFLICT'}
end

challenge.status = 'passed'
challenge.user = cjson.decode(ARGV[2])

redis.call('SET', KEYS[1], cjson.encode(challenge), 'KEEPTTL')
return {'OK'}
""")

CONSUME_CHALLENGE = AtomicScript("""
local data = redis.call('GET', KEYS[1])
if not data then
  return {'NOT_FOUND'}
end

local challenge = cjson.decode(data)
if challenge.id ~= ARGV[1] then
  return {'NOT_FOUND'}
end

if challenge.status ~= 'passed' then
  return {'PENDING'}
end

redis.call('DEL', KEYS[1])
return {'PASSED', cjson.encode(challenge.user)}
""")

CANCEL_CHALLENGE = AtomicScript("""
local data = redis.call('GET', KEYS[1])
if not data then
  return {'NOT_FOUND'}
end

local challenge = cjson.decode(data)
if challenge.id ~= ARGV[1] then
  return {'NOT_FOUND'}
end

redis.call('DEL', KEYS[1])
return {'OK'}
""")
