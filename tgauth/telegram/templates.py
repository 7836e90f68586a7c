"""Outgoing bot messages (HTML parse mode)."""
from html import escape
from typing import Any, Dict, List

from tgauth.services.challenge import ReadChallengeResult

MessageTemplate = Dict[str, Any]


def _message(text: str, keyboard: List[List[Dict[str, str]]] = None) -> MessageTemplate:
    msg: MessageTemplate = {"text": text.strip(), "parse_mode": "HTML"}
    if keyboard:
        msg["reply_markup"] = {"inline_keyboard": keyboard}
    return msg


def challenge_not_found() -> MessageTemplate:
    return _message(
        "<b>Invalid authentication code.</b> Looks like you’ve sent an authentication code, "
        "but it doesn’t seem to be valid.\n\n"
        "There might be a typo in the code, or the code could have already expired."
    )


def prompt(challenge: ReadChallengeResult) -> MessageTemplate:
    device = escape(challenge.clientHints or "a new device")
    return _message(
        f"<b>You’re about to sign in.</b> Once confirmed, you’ll be signed in on <i>{device}</i>.\n\n"
        "Only confirm if this is your device, and the magic phrase matches what you see on screen:\n\n"
        f"<code>{escape(challenge.mnemonic)}</code>",
        keyboard=[[
            {"text": "Sign In", "callback_data": f"y:{challenge.token}"},
            {"text": "Cancel", "callback_data": f"n:{challenge.token}"},
        ]],
    )


def prompt_expired() -> MessageTemplate:
    return _message(
        "<b>Authentication attempt has expired.</b> If you still want to sign in, "
        "start over with a new authentication code."
    )


def prompt_confirmed() -> MessageTemplate:
    return _message("<b>You have signed in.</b>")


def prompt_rejected() -> MessageTemplate:
    return _message("<b>Authentication attempt cancelled.</b>")


def error(err: BaseException) -> MessageTemplate:
    detail = str(err) if isinstance(err, Exception) and str(err) else "Unknown error"
    return _message(
        "<b>Something went wrong on our side.</b> You can try again. The error was:\n\n"
        f"<code>{escape(detail)}</code>"
    )
