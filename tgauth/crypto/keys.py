import secrets
from typing import Optional

from tgauth.errors import ConfigError
from tgauth.settings import settings


def load_seal_key(hex_value: Optional[str] = None) -> bytes:
    """
    Decode the hex SEAL_KEY setting. Called per use, so a missing key fails
    the request that needs it rather than process start.
    Length is checked by the sealers themselves.
    """
    value = (hex_value if hex_value is not None else settings.SEAL_KEY) or ""
    value = value.strip()
    if not value:
        raise ConfigError("Missing configuration: SEAL_KEY")
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise ConfigError("SEAL_KEY must be hex-encoded") from e


def generate_key(length: int = 32) -> str:
    if not isinstance(length, int) or length <= 0:
        raise ValueError("length must be a positive integer")
    return secrets.token_hex(length)
