from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from tgauth.api.routes import router
from tgauth.api.admin_routes import router as admin_router
from tgauth.errors import ConfigError, ConflictError, NotFoundError, UnauthorizedError
from tgauth.observability.logging import log
from tgauth.services.challenge import ChallengeService
from tgauth.settings import settings
from tgauth.store.redis_conn import get_redis


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    bot = getattr(app.state, "bot", None)
    if bot is not None:
        bot.tg.close()
        if bot.uploader is not None:
            bot.uploader.close()
    app.state.redis.close()


app = FastAPI(title="Telegram Sign-In API", lifespan=lifespan)

# Redis.from_url only builds a pool; nothing connects until the first command.
app.state.redis = get_redis()
app.state.challenges = ChallengeService(app.state.redis)
app.state.bot = None

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Error kinds map onto distinct statuses; never collapse them into a 500.
# NotFound never says whether a code existed.
# ---------------------------------------------------------------------------
@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    return JSONResponse(status_code=401, content={"error": "invalid_token", "detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": "not_found", "detail": "Challenge not found"})


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse(status_code=409, content={"error": "conflict", "detail": str(exc)})


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    log(event="config_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": "misconfigured", "detail": "Service is not configured"})
