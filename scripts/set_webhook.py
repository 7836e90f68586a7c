#!/usr/bin/env python3
"""
Point the bot's webhook at <url>/api/bot, using BOT_SECRET as the secret
token Telegram echoes back on every call.

    python -m scripts.set_webhook https://example.com
"""
import sys

from tgauth.settings import settings
from tgauth.telegram.client import TelegramApiError, TelegramClient


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print("Usage: set_webhook.py <url>", file=sys.stderr)
        return 1
    if not settings.BOT_SECRET:
        print("BOT_SECRET is not set", file=sys.stderr)
        return 1

    webhook = f"{argv[0].rstrip('/')}/api/bot"
    tg = TelegramClient()
    try:
        tg.set_webhook(webhook, settings.BOT_SECRET)
    except TelegramApiError as e:
        print(f"Failed to set bot webhook {e.error_code}: {e.description}", file=sys.stderr)
        return 1
    finally:
        tg.close()

    print(f"Webhook set to {webhook}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
