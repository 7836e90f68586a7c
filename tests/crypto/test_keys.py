import pytest
from unittest.mock import patch

from tgauth.crypto.keys import generate_key, load_seal_key
from tgauth.crypto.seal import SealKeyError, SealedValue
from tgauth.errors import ConfigError
from tgauth.settings import settings


def test_generate_key_default_length():
    key = generate_key()
    assert len(key) == 64
    assert len(bytes.fromhex(key)) == 32


def test_generate_key_is_random():
    assert generate_key() != generate_key()


@pytest.mark.parametrize("length", [0, -1, "32", 1.5])
def test_generate_key_rejects_bad_length(length):
    with pytest.raises(ValueError):
        generate_key(length)


def test_load_seal_key_from_argument():
    hex_key = generate_key()
    assert load_seal_key(f"  {hex_key}\n") == bytes.fromhex(hex_key)


def test_load_seal_key_from_settings():
    hex_key = generate_key()
    with patch.object(settings, "SEAL_KEY", hex_key):
        assert load_seal_key() == bytes.fromhex(hex_key)


def test_load_seal_key_missing():
    with patch.object(settings, "SEAL_KEY", ""):
        with pytest.raises(ConfigError):
            load_seal_key()


def test_load_seal_key_not_hex():
    with pytest.raises(ConfigError):
        load_seal_key("zz" * 32)


def test_short_key_is_rejected_by_sealer():
    key = load_seal_key(generate_key(16))
    with pytest.raises(SealKeyError):
        SealedValue(key)
