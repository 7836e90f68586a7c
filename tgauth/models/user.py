from __future__ import annotations

import hashlib
import struct
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from tgauth.crypto.seal import InvalidSealedValueError, SealedId


class InvalidUserIdError(Exception):
    pass


@dataclass
class User:
    """Identity payload attached to a challenge when it is passed."""
    id: str
    name: str
    lang: str = "en"
    image: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        if data.get("image") is None:
            data.pop("image", None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            lang=str(data.get("lang") or "en"),
            image=data.get("image") or None,
        )


class UserRef:
    """
    Reference to a Telegram user. The public id is a deterministic seal of
    the Telegram id, stable across sign-ins without revealing it.
    """

    def __init__(self, tg_id: int):
        self.tg_id = tg_id
        self._bytes: Optional[bytes] = None

    @classmethod
    def from_public_id(cls, public_id: str, sealer: SealedId) -> "UserRef":
        try:
            payload = sealer.unseal(public_id)
        except InvalidSealedValueError as e:
            raise InvalidUserIdError("User ID is invalid") from e
        if len(payload) != 8:
            raise InvalidUserIdError("User ID is invalid")
        (tg_id,) = struct.unpack(">d", payload)
        return cls(int(tg_id))

    @property
    def bytes(self) -> bytes:
        if self._bytes is None:
            # 8-byte big-endian double
            self._bytes = struct.pack(">d", float(self.tg_id))
        return self._bytes

    def public_id(self, sealer: SealedId) -> str:
        return sealer.seal(self.bytes)

    def digest(self) -> str:
        return hashlib.sha256(self.bytes).hexdigest()
