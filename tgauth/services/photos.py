import posixpath
from typing import Any, Dict, List, Optional

import httpx

from tgauth.models.user import UserRef
from tgauth.settings import settings
from tgauth.telegram.client import TelegramApiError, TelegramClient


class UserPhotoUploadError(Exception):
    pass


class BlobUploader:
    """Uploads public files to Vercel Blob through its HTTP API."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.token = token if token is not None else settings.BLOB_READ_WRITE_TOKEN
        self.api_url = (api_url or settings.BLOB_API_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=settings.TELEGRAM_TIMEOUT_SEC)

    @property
    def enabled(self) -> bool:
        return bool(self.token)

    def close(self) -> None:
        self._client.close()

    def put(self, path: str, body: bytes, content_type: str = "image/jpeg") -> str:
        headers = {
            "authorization": f"Bearer {self.token}",
            "x-api-version": "7",
            "x-add-random-suffix": "0",
            "x-allow-overwrite": "1",
            "x-content-type": content_type,
        }
        try:
            resp = self._client.put(f"{self.api_url}/{path}", content=body, headers=headers)
        except httpx.HTTPError as e:
            raise UserPhotoUploadError("Failed to upload to blob storage") from e

        if resp.status_code >= 400:
            raise UserPhotoUploadError(f"Failed to upload to blob storage: {resp.status_code} {(resp.text or '')[:200]}")
        try:
            return resp.json()["url"]
        except (ValueError, KeyError) as e:
            raise UserPhotoUploadError("Blob storage returned no url") from e


def pick_photo_size(sizes: List[Dict[str, Any]], preferred_size: int) -> Dict[str, Any]:
    """
    Closest size to `preferred_size`, preferring larger photos over smaller.
    Falls back to the largest available.
    """
    best = None
    for size in sizes:
        width = int(size.get("width") or 0)
        if width >= preferred_size and (best is None or width < int(best.get("width") or 0)):
            best = size
    return best if best is not None else sizes[-1]


def _file_ext(file_path: str) -> str:
    ext = posixpath.splitext(file_path or "")[1]
    return ext if ext else ".jpg"


def host_user_photo(ref: UserRef, tg: TelegramClient, uploader: BlobUploader) -> Optional[str]:
    """
    Re-hosts the user's Telegram profile photo and returns its public URL.
    Returns None if the user has no profile photos.
    Raises UserPhotoUploadError if the photo cannot be fetched or uploaded.
    """
    try:
        res = tg.get_user_profile_photos(ref.tg_id, limit=1)
    except (TelegramApiError, httpx.HTTPError) as e:
        raise UserPhotoUploadError("Failed to get user profile photos") from e

    photos = (res or {}).get("photos") or []
    if not int((res or {}).get("total_count") or 0) or not photos or not photos[0]:
        return None

    photo = pick_photo_size(photos[0], settings.PHOTO_PREFERRED_SIZE)

    try:
        file = tg.get_file(photo["file_id"])
        file_path = file.get("file_path") or ""
        resp = tg.download(tg.file_url(file_path))
    except (TelegramApiError, httpx.HTTPError, KeyError) as e:
        raise UserPhotoUploadError("Failed to get user profile photo file") from e

    if resp.status_code >= 400:
        raise UserPhotoUploadError(f"Failed to fetch user profile photo: {resp.status_code}")
    if not resp.content:
        raise UserPhotoUploadError("Failed to fetch user profile photo: response body is empty")

    ext = _file_ext(file_path)
    content_type = "image/png" if ext.lower() == ".png" else "image/jpeg"
    return uploader.put(f"photos/{ref.digest()}{ext}", resp.content, content_type=content_type)
