from __future__ import annotations

import json
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_account.hdaccount import Language, Mnemonic

from tgauth.crypto.seal import ExpiringSealedValue, b64url_decode, b64url_encode

PENDING = "pending"
PASSED = "passed"

CODE_LENGTH = 8
RANDOMNESS_LENGTH = 16
KEY_PREFIX = "challenge:"

_ALPHANUM = string.ascii_letters + string.digits
_URL_ALPHABET = _ALPHANUM + "-_"
_CODE_RE = re.compile(rf"^[A-Za-z0-9]{{{CODE_LENGTH}}}$")

_mnemonic = Mnemonic(Language.ENGLISH)


def challenge_key(code: str) -> str:
    return f"{KEY_PREFIX}{code}"


def is_valid_challenge_code(maybe_code: str) -> bool:
    return bool(maybe_code) and bool(_CODE_RE.match(maybe_code))


def generate_id() -> str:
    """
    Challenge ID is a random 8-character alphanumeric code (typed by the
    approver and used for lookups) followed by 16 more random base64url
    characters. 24 base64url characters decode to exactly 18 bytes.
    """
    code = "".join(secrets.choice(_ALPHANUM) for _ in range(CODE_LENGTH))
    randomness = "".join(secrets.choice(_URL_ALPHABET) for _ in range(RANDOMNESS_LENGTH))
    return f"{code}{randomness}"


class ChallengeRef:
    """Value object over a challenge identifier. Nothing here is persisted on its own."""

    def __init__(self, id: str):
        self.id = id
        self.code = id[:CODE_LENGTH]
        self._bytes: Optional[bytes] = None
        self._mnemonic: Optional[str] = None

    @classmethod
    def create(cls) -> "ChallengeRef":
        return cls(generate_id())

    @classmethod
    def from_bytes(cls, raw: bytes) -> "ChallengeRef":
        return cls(b64url_encode(raw))

    @property
    def key(self) -> str:
        return challenge_key(self.code)

    @property
    def bytes(self) -> bytes:
        if self._bytes is None:
            self._bytes = b64url_decode(self.id)
        return self._bytes

    @property
    def mnemonic(self) -> str:
        if self._mnemonic is None:
            # BIP39 entropy must be a multiple of 32 bits
            entropy_length = (len(self.bytes) // 4) * 4
            self._mnemonic = _mnemonic.to_mnemonic(self.bytes[:entropy_length])
        return self._mnemonic

    def token(self, sealer: ExpiringSealedValue, exat: int) -> str:
        return sealer.seal(self.bytes, exat=exat)

    def __eq__(self, other):
        return isinstance(other, ChallengeRef) and other.id == self.id

    def __hash__(self):
        return hash(self.id)

    def __repr__(self):
        return f"ChallengeRef(code={self.code!r})"


@dataclass
class ChallengeRecord:
    id: str
    exat: int
    status: str = PENDING
    clientHints: Optional[str] = None
    user: Optional[Dict[str, Any]] = field(default=None)

    def to_json(self) -> str:
        data: Dict[str, Any] = {"id": self.id, "status": self.status, "exat": int(self.exat)}
        if self.clientHints is not None:
            data["clientHints"] = self.clientHints
        if self.user is not None:
            data["user"] = self.user
        return json.dumps(data)

    @classmethod
    def from_json(cls, raw: str) -> "ChallengeRecord":
        data = json.loads(raw)
        return cls(
            id=data["id"],
            exat=int(data.get("exat") or 0),
            status=data.get("status") or PENDING,
            clientHints=data.get("clientHints"),
            user=data.get("user"),
        )
