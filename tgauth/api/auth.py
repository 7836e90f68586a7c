import hmac

from fastapi import Header, HTTPException

from tgauth.settings import settings


def secret_matches(given: str, expected: str) -> bool:
    """Constant-time comparison; an unset expected secret never matches."""
    if not expected:
        return False
    return hmac.compare_digest((given or "").encode(), expected.encode())


def require_bot_secret(
    secret: str = Header(default="", alias="x-telegram-bot-api-secret-token"),
):
    """
    Telegram echoes the secret given to setWebhook in this header.
    An unset BOT_SECRET rejects every webhook call.
    """
    if not secret_matches(secret, settings.BOT_SECRET):
        raise HTTPException(status_code=401, detail="Unauthorized")
