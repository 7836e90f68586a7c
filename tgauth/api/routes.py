from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from tgauth.api.auth import require_bot_secret
from tgauth.api.deps import get_bot, get_challenges
from tgauth.api.schemas import (
    CancelChallengeResponse,
    ConsumeChallengeResponse,
    CreateChallengeRequest,
    CreateChallengeResponse,
    ReadChallengeResponse,
    TokenRequest,
)
from tgauth.models.webhook import Update
from tgauth.observability.logging import log
from tgauth.queue.jobs import enqueue_update
from tgauth.services.challenge import ChallengeService
from tgauth.settings import settings

router = APIRouter()


@router.post("/api/challenge", response_model=CreateChallengeResponse)
async def create_challenge(
    body: Optional[CreateChallengeRequest] = None,
    challenges: ChallengeService = Depends(get_challenges),
):
    hints = body.clientHints if body else None
    res = await run_in_threadpool(challenges.create_with_retry, hints)
    return CreateChallengeResponse(code=res.code, token=res.token, mnemonic=res.mnemonic)


@router.post("/api/challenge/read", response_model=ReadChallengeResponse)
async def read_challenge(body: TokenRequest, challenges: ChallengeService = Depends(get_challenges)):
    res = await run_in_threadpool(challenges.read, body.token)
    return ReadChallengeResponse(token=res.token, mnemonic=res.mnemonic, clientHints=res.clientHints)


@router.post("/api/challenge/consume", response_model=ConsumeChallengeResponse, response_model_exclude_unset=True)
async def consume_challenge(body: TokenRequest, challenges: ChallengeService = Depends(get_challenges)):
    """Poll until the approver has signed in. Returns the user exactly once."""
    res = await run_in_threadpool(challenges.try_consume, body.token)
    if res.user is None:
        return ConsumeChallengeResponse(token=res.token, status=res.status)
    return ConsumeChallengeResponse(token=res.token, status=res.status, user=res.user)


@router.post("/api/challenge/cancel", response_model=CancelChallengeResponse)
async def cancel_challenge(body: TokenRequest, challenges: ChallengeService = Depends(get_challenges)):
    await run_in_threadpool(challenges.cancel, body.token)
    return CancelChallengeResponse()


@router.post("/api/bot", dependencies=[Depends(require_bot_secret)])
async def bot_webhook(request: Request, payload: Any = Body(None)):
    """
    Telegram webhook. Always 200 once authenticated; Telegram would
    otherwise redeliver the same update.
    """
    if not isinstance(payload, dict):
        return {"ok": True}

    try:
        update = Update.model_validate(payload)
    except ValidationError:
        log(event="bot_update_unparsed", keys=sorted(payload.keys())[:10])
        return {"ok": True}

    try:
        if settings.BOT_UPDATE_MODE == "rq":
            await run_in_threadpool(enqueue_update, payload)
            return {"ok": True}

        bot = await run_in_threadpool(get_bot, request)
        handled = await run_in_threadpool(bot.handle_update, update)
    except Exception as e:
        log(
            event="bot_webhook_failed",
            updateId=update.update_id,
            mode=settings.BOT_UPDATE_MODE,
            errorType=type(e).__name__,
            error=str(e)[:500],
        )
        return {"ok": True}
    return {"ok": True, "handled": bool(handled)}
