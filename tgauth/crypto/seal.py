"""
Sealed values
-------------
Authenticated encryption of small payloads into compact base64url tokens.

All three flavours share AES-256-GCM-SIV with a 96-bit nonce:
  - SealedValue: random nonce, prepended to the ciphertext.
  - ExpiringSealedValue: random nonce whose first 4 bytes carry a big-endian
    unix expiry. The nonce feeds the tag, so the expiry is readable without
    the key but cannot be changed without it.
  - SealedId: all-zero nonce, not prepended. Equal payloads give equal
    tokens; only for obfuscating stable identifiers.
"""
from __future__ import annotations

import base64
import binascii
import re
import secrets
import struct
import time
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCMSIV

KEY_LENGTH = 32
NONCE_LENGTH = 12
MAX_UINT32 = 0xFFFF_FFFF

_B64URL_RE = re.compile(r"^[A-Za-z0-9_-]*$")


class InvalidSealedValueError(Exception):
    """Token is malformed or fails authentication."""


class ExpiredSealedValueError(Exception):
    """Token authenticated, but its embedded expiry has passed."""


class SealKeyError(Exception):
    """Key is not exactly 32 bytes."""


class SealValidationError(ValueError):
    pass


def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def b64url_decode(text: str) -> bytes:
    """Strict unpadded base64url decode; non-canonical input is rejected."""
    if not isinstance(text, str) or not _B64URL_RE.match(text):
        raise ValueError("not base64url")
    try:
        raw = base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError) as e:
        raise ValueError("not base64url") from e
    # Unused trailing bits must be zero, otherwise two texts map to one token.
    if b64url_encode(raw) != text:
        raise ValueError("non-canonical base64url")
    return raw


def _now() -> int:
    return int(time.time())


class _Sealer:
    prepend_nonce = True

    def __init__(self, key: bytes):
        if not isinstance(key, (bytes, bytearray)) or len(key) != KEY_LENGTH:
            raise SealKeyError(f"Key must have length {KEY_LENGTH}")
        self._aead = AESGCMSIV(bytes(key))

    def _make_nonce(self, **options) -> bytes:
        return secrets.token_bytes(NONCE_LENGTH)

    def _split(self, raw: bytes) -> Tuple[bytes, bytes]:
        if len(raw) < NONCE_LENGTH:
            raise InvalidSealedValueError("Sealed value is malformed")
        return raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]

    def _seal(self, payload: bytes, nonce: bytes) -> str:
        ct = self._aead.encrypt(nonce, bytes(payload), None)
        return b64url_encode(nonce + ct if self.prepend_nonce else ct)

    def _decode(self, token: str) -> bytes:
        try:
            return b64url_decode(token)
        except ValueError:
            raise InvalidSealedValueError("Sealed value is malformed") from None

    def _open(self, nonce: bytes, ct: bytes) -> bytes:
        try:
            return self._aead.decrypt(nonce, ct, None)
        except InvalidTag:
            raise InvalidSealedValueError("Sealed value is invalid") from None


class SealedValue(_Sealer):
    def seal(self, payload: bytes) -> str:
        return self._seal(payload, self._make_nonce())

    def unseal(self, token: str) -> bytes:
        nonce, ct = self._split(self._decode(token))
        return self._open(nonce, ct)


class ExpiringSealedValue(_Sealer):
    def seal(
        self,
        payload: bytes,
        *,
        ex: Optional[int] = None,
        exat: Optional[int] = None,
        now: Optional[int] = None,
    ) -> str:
        """Seal with either a relative lifetime `ex` or an absolute `exat` (unix seconds)."""
        if (ex is None) == (exat is None):
            raise SealValidationError("Exactly one of ex or exat is required")
        if exat is None:
            exat = int(_now() if now is None else now) + int(ex)
        exat = int(exat)
        if exat < 0 or exat > MAX_UINT32:
            raise SealValidationError(f"Expiration timestamp must be between 0 and {MAX_UINT32}")

        nonce = bytearray(secrets.token_bytes(NONCE_LENGTH))
        struct.pack_into(">I", nonce, 0, exat)
        return self._seal(payload, bytes(nonce))

    def unseal(self, token: str, *, now: Optional[int] = None, clock_tolerance: int = 0) -> bytes:
        nonce, ct = self._split(self._decode(token))
        payload = self._open(nonce, ct)

        # Only trust the timestamp once the tag has vouched for it.
        exat = struct.unpack_from(">I", nonce, 0)[0]
        if exat + int(clock_tolerance or 0) < int(_now() if now is None else now):
            raise ExpiredSealedValueError("Sealed value expired")
        return payload


class SealedId(_Sealer):
    prepend_nonce = False

    def _make_nonce(self, **options) -> bytes:
        return bytes(NONCE_LENGTH)

    def seal(self, payload: bytes) -> str:
        return self._seal(payload, self._make_nonce())

    def unseal(self, token: str) -> bytes:
        return self._open(self._make_nonce(), self._decode(token))


def parse_exat(token: str) -> int:
    """
    Read the declared expiry of an expiring token without the key.
    The value is unauthenticated until the token is unsealed.
    """
    try:
        raw = b64url_decode(token)
    except ValueError:
        raise InvalidSealedValueError("Sealed value is malformed") from None
    if len(raw) < NONCE_LENGTH:
        raise InvalidSealedValueError("Sealed value is malformed")
    return struct.unpack_from(">I", raw, 0)[0]
