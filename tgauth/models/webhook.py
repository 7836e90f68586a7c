"""
Subset of the Telegram Update object the bot reads, plus classification of
the two update shapes it acts on.
"""
from typing import Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field

from tgauth.models.challenge import is_valid_challenge_code


class _TgModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class Chat(_TgModel):
    id: int


class TgUser(_TgModel):
    id: int
    first_name: str = ""
    last_name: Optional[str] = None
    language_code: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(x for x in (self.first_name, self.last_name) if x)


class Message(_TgModel):
    message_id: int
    chat: Chat
    text: Optional[str] = None
    from_user: Optional[TgUser] = Field(default=None, alias="from")


class CallbackQuery(_TgModel):
    id: str
    from_user: TgUser = Field(alias="from")
    data: Optional[str] = None
    message: Optional[Message] = None


class Update(_TgModel):
    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None


PROMPT_ACTIONS = ("y", "n")


def as_challenge_code(update: Update) -> Optional[str]:
    if not update.message or not update.message.text:
        return None
    text = update.message.text.strip()
    return text if is_valid_challenge_code(text) else None


def as_prompt_response(update: Update) -> Optional[Tuple[str, str]]:
    """Returns (action, token) for `y:<token>` / `n:<token>` button presses."""
    cq = update.callback_query
    if not cq or not cq.data or cq.message is None:
        return None
    action, sep, token = cq.data.partition(":")
    if not sep or action not in PROMPT_ACTIONS or not token:
        return None
    return action, token
