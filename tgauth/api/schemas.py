from typing import Any, Dict, Literal, Optional
from pydantic import BaseModel, Field

Status = Literal["pending", "passed"]


class CreateChallengeRequest(BaseModel):
    clientHints: Optional[str] = Field(default=None, max_length=200)


class CreateChallengeResponse(BaseModel):
    code: str
    token: str
    mnemonic: str


class TokenRequest(BaseModel):
    token: str = Field(min_length=1, max_length=512)


class ConsumeChallengeResponse(BaseModel):
    token: str
    status: Status
    # Opaque identity payload, returned as stored
    user: Optional[Dict[str, Any]] = None


class CancelChallengeResponse(BaseModel):
    status: Literal["cancelled"] = "cancelled"


class ReadChallengeResponse(BaseModel):
    token: str
    mnemonic: str
    clientHints: Optional[str] = None
