import httpx
from typing import Any, Dict, Optional

from tgauth.errors import ConfigError
from tgauth.settings import settings


class TelegramApiError(Exception):
    def __init__(self, method: str, description: str, error_code: Optional[int] = None):
        super().__init__(f"Telegram {method} failed: {error_code} {description}")
        self.method = method
        self.description = description
        self.error_code = error_code


class TelegramClient:
    """Minimal Bot API client over httpx (only the calls the bot makes)."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.token = token if token is not None else settings.BOT_TOKEN
        if not self.token:
            raise ConfigError("Missing configuration: BOT_TOKEN")
        self.base_url = (base_url or settings.TELEGRAM_API_BASE).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout or settings.TELEGRAM_TIMEOUT_SEC)

    def close(self) -> None:
        self._client.close()

    def call(self, method: str, **params) -> Any:
        body = {k: v for k, v in params.items() if v is not None}
        resp = self._client.post(f"{self.base_url}/bot{self.token}/{method}", json=body)
        try:
            data = resp.json()
        except ValueError:
            raise TelegramApiError(method, (resp.text or "")[:200], resp.status_code) from None

        if not data.get("ok"):
            raise TelegramApiError(method, str(data.get("description") or ""), data.get("error_code"))
        return data.get("result")

    def send_message(self, chat_id: int, message: Dict[str, Any]) -> Any:
        return self.call("sendMessage", chat_id=chat_id, **message)

    def edit_message_text(self, chat_id: int, message_id: int, message: Dict[str, Any]) -> Any:
        return self.call("editMessageText", chat_id=chat_id, message_id=message_id, **message)

    def answer_callback_query(self, callback_query_id: str) -> Any:
        return self.call("answerCallbackQuery", callback_query_id=callback_query_id)

    def get_user_profile_photos(self, user_id: int, limit: int = 1) -> Dict[str, Any]:
        return self.call("getUserProfilePhotos", user_id=user_id, limit=limit)

    def get_file(self, file_id: str) -> Dict[str, Any]:
        return self.call("getFile", file_id=file_id)

    def file_url(self, file_path: str) -> str:
        return f"{self.base_url}/file/bot{self.token}/{file_path}"

    def download(self, url: str) -> httpx.Response:
        return self._client.get(url)

    def set_webhook(self, url: str, secret_token: str) -> Any:
        return self.call(
            "setWebhook",
            url=url,
            secret_token=secret_token,
            allowed_updates=["message", "callback_query"],
        )
