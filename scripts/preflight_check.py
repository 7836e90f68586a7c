#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Dummy env so settings load without a real deployment
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import tgauth.main
    print("Import tgauth.main: OK")

    import tgauth.queue.jobs
    print("Import tgauth.queue.jobs: OK")

    from tgauth.crypto.keys import load_seal_key
    from tgauth.crypto.seal import ExpiringSealedValue
    if os.getenv("SEAL_KEY"):
        ExpiringSealedValue(load_seal_key())
        print("SEAL_KEY: OK")
    else:
        print("SEAL_KEY: not set (challenge endpoints will fail)")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
