from typing import Any, Dict, Optional, Union

from tgauth.crypto.keys import load_seal_key
from tgauth.crypto.seal import SealedId
from tgauth.errors import NotFoundError, UnauthorizedError, ConflictError
from tgauth.models.user import User, UserRef
from tgauth.models.webhook import CallbackQuery, Update, as_challenge_code, as_prompt_response
from tgauth.observability.logging import log
from tgauth.services.challenge import ChallengeService
from tgauth.services.photos import BlobUploader, UserPhotoUploadError, host_user_photo
from tgauth.telegram import templates
from tgauth.telegram.client import TelegramClient


class BotHandler:
    """
    Approver side of the handshake: turns Telegram updates into challenge
    transitions and renders the result back into the chat.
    """

    def __init__(
        self,
        challenges: ChallengeService,
        tg: TelegramClient,
        uploader: Optional[BlobUploader] = None,
        seal_key: Optional[bytes] = None,
    ):
        self.challenges = challenges
        self.tg = tg
        self.uploader = uploader
        self._seal_key = seal_key

    def handle_update(self, update: Union[Update, Dict[str, Any]]) -> bool:
        """Returns True if the update was one the bot acts on."""
        if not isinstance(update, Update):
            update = Update.model_validate(update)

        chat_id = None
        try:
            code = as_challenge_code(update)
            if code is not None:
                chat_id = update.message.chat.id
                self._handle_challenge_code(chat_id, code)
                return True

            response = as_prompt_response(update)
            if response is not None:
                chat_id = update.callback_query.message.chat.id
                self._handle_prompt_response(update.callback_query, *response)
                return True
        except Exception as e:
            log(event="bot_update_failed", updateId=update.update_id, errorType=type(e).__name__, error=str(e)[:500])
            if chat_id is not None:
                self._send_error_notice(update.update_id, chat_id, e)
            return True

        return False

    def _send_error_notice(self, update_id: int, chat_id: int, err: Exception) -> None:
        # Telegram itself may be the failure (e.g. the user blocked the bot)
        try:
            self.tg.send_message(chat_id, templates.error(err))
        except Exception as e:
            log(
                event="bot_update_error_notice_failed",
                updateId=update_id,
                errorType=type(e).__name__,
                error=str(e)[:500],
            )

    def _handle_challenge_code(self, chat_id: int, code: str) -> None:
        try:
            res = self.challenges.lookup(code)
        except NotFoundError:
            self.tg.send_message(chat_id, templates.challenge_not_found())
            return

        self.tg.send_message(chat_id, templates.prompt(res))

    def _handle_prompt_response(self, cq: CallbackQuery, action: str, token: str) -> None:
        try:
            if action == "y":
                self._handle_prompt_confirm(cq, token)
            else:
                self._handle_prompt_reject(cq, token)
        finally:
            self.tg.answer_callback_query(cq.id)

    def _handle_prompt_confirm(self, cq: CallbackQuery, token: str) -> None:
        ref = UserRef(cq.from_user.id)
        user = User(
            id=ref.public_id(SealedId(self._key())),
            name=cq.from_user.full_name,
            lang=cq.from_user.language_code or "en",
            image=self._host_photo(ref),
        )

        try:
            self.challenges.pass_challenge(token, user)
        except (NotFoundError, ConflictError, UnauthorizedError):
            self._edit(cq, templates.prompt_expired())
            return

        self._edit(cq, templates.prompt_confirmed())

    def _handle_prompt_reject(self, cq: CallbackQuery, token: str) -> None:
        try:
            self.challenges.cancel(token)
        except (NotFoundError, UnauthorizedError):
            self._edit(cq, templates.prompt_expired())
            return

        self._edit(cq, templates.prompt_rejected())

    def _host_photo(self, ref: UserRef) -> Optional[str]:
        # Image is optional; upload failures leave it unset.
        if self.uploader is None or not self.uploader.enabled:
            return None
        try:
            return host_user_photo(ref, self.tg, self.uploader)
        except UserPhotoUploadError as e:
            log(event="user_photo_upload_failed", error=str(e)[:500])
            return None

    def _edit(self, cq: CallbackQuery, message: Dict[str, Any]) -> None:
        self.tg.edit_message_text(cq.message.chat.id, cq.message.message_id, message)

    def _key(self) -> bytes:
        return self._seal_key if self._seal_key is not None else load_seal_key()


def build_bot_handler(challenges: ChallengeService) -> BotHandler:
    return BotHandler(challenges, TelegramClient(), uploader=BlobUploader())
