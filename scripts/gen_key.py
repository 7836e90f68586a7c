#!/usr/bin/env python3
"""
Print a fresh hex-encoded random key for SEAL_KEY (or BOT_SECRET).

    python -m scripts.gen_key        # 32 bytes -> 64 hex chars
    python -m scripts.gen_key 16
"""
import sys

from tgauth.crypto.keys import generate_key


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    try:
        length = int(argv[0]) if argv else 32
        print(generate_key(length))
    except ValueError:
        print("Usage: gen_key.py [length]", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
