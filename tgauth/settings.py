import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT_SEC: float = float(os.getenv("REDIS_SOCKET_TIMEOUT_SEC", "5"))
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "bot-updates")
    # Upper bound for one bot update job
    RQ_JOB_TIMEOUT_SEC: int = int(os.getenv("RQ_JOB_TIMEOUT_SEC", "60"))

    # Hex-encoded 32-byte key. Decoded lazily by tgauth.crypto.keys so a
    # missing key only fails the requests that need it.
    SEAL_KEY: str = os.getenv("SEAL_KEY", "")
    SEAL_CLOCK_TOLERANCE_SEC: int = int(os.getenv("SEAL_CLOCK_TOLERANCE_SEC", "0"))

    CHALLENGE_TTL_SEC: int = int(os.getenv("CHALLENGE_TTL_SEC", "600"))
    CHALLENGE_CREATE_ATTEMPTS: int = int(os.getenv("CHALLENGE_CREATE_ATTEMPTS", "3"))

    # Telegram bot
    BOT_TOKEN: str = os.getenv("BOT_TOKEN", "")
    BOT_SECRET: str = os.getenv("BOT_SECRET", "")
    TELEGRAM_API_BASE: str = os.getenv("TELEGRAM_API_BASE", "https://api.telegram.org")
    TELEGRAM_TIMEOUT_SEC: float = float(os.getenv("TELEGRAM_TIMEOUT_SEC", "10"))
    # Modes:
    # - "sync": handle webhook updates inline
    # - "rq": enqueue updates for a worker
    BOT_UPDATE_MODE: str = os.getenv("BOT_UPDATE_MODE", "sync").lower()

    # Profile photo re-hosting (Vercel Blob). Empty token disables photos.
    BLOB_READ_WRITE_TOKEN: str = os.getenv("BLOB_READ_WRITE_TOKEN", "")
    BLOB_API_URL: str = os.getenv("BLOB_API_URL", "https://blob.vercel-storage.com")
    PHOTO_PREFERRED_SIZE: int = int(os.getenv("PHOTO_PREFERRED_SIZE", "256"))

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "")

    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"
    ADMIN_RBAC_ENABLED: bool = os.getenv("ADMIN_RBAC_ENABLED", "true").lower() == "true"
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")

settings = Settings()
