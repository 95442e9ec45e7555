from typing import Literal, Optional

from pydantic import BaseModel


class SendMessageRequest(BaseModel):
    number: str
    message: str = ""
    urlMedia: Optional[str] = None


class TriggerRequest(BaseModel):
    number: str
    name: Optional[str] = None


class BlacklistRequest(BaseModel):
    number: str
    intent: Literal["add", "remove"]


class BlacklistResponse(BaseModel):
    status: str
    number: str
    intent: str
