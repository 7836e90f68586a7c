import json
import re
import time
from tgauth.settings import settings

# Fields that may carry bearer tokens or personal data, at any depth
SENSITIVE_KEYS = {
    "token", "data", "text", "name", "first_name", "last_name", "username",
    "user", "payload", "clientHints", "mnemonic", "image",
}

# Bot API URLs embed the bot token (".../bot123:AA.../sendMessage"); httpx
# error messages carry the URL.
_BOT_TOKEN_RE = re.compile(r"/bot\d+:[A-Za-z0-9_-]+")


def _redact_value(v):
    if isinstance(v, str) and len(v) > 0:
        return f"[REDACTED:{len(v)}chars]"
    if isinstance(v, dict):
        return {k: _redact_value(val) for k, val in v.items()}
    if isinstance(v, (list, tuple)):
        return [_redact_value(x) for x in v]
    return v


def _scrub(v):
    if isinstance(v, str):
        return _BOT_TOKEN_RE.sub("/bot[REDACTED]", v)
    if isinstance(v, dict):
        return {k: (_redact_value(val) if k in SENSITIVE_KEYS else _scrub(val)) for k, val in v.items()}
    if isinstance(v, (list, tuple)):
        return [_scrub(x) for x in v]
    return v


def log(event: str, **fields):
    payload = {"ts": int(time.time()), "event": event}
    if settings.ENABLE_PII_REDACTION:
        payload.update(_scrub(fields))
    else:
        payload.update(fields)
    print(json.dumps(payload, ensure_ascii=False, default=str))
