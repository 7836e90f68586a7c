from fastapi import APIRouter, Depends, HTTPException, Header
from redis import Redis

from tgauth.api.auth import secret_matches
from tgauth.api.deps import get_redis_client
from tgauth.settings import settings
import tgauth.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])


def require_admin(x_admin_key: str = Header(default="", alias="x-admin-key")):
    if not settings.ADMIN_RBAC_ENABLED:
        return
    if not settings.ADMIN_API_KEY:
        raise HTTPException(status_code=403, detail="Admin access disabled (no key configured)")
    if not secret_matches(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=403, detail="Invalid admin key")


@router.get("/metrics")
def get_metrics(_=Depends(require_admin), redis: Redis = Depends(get_redis_client)):
    """Challenge transition counters backed by Redis."""
    return metrics.snapshot(redis)
