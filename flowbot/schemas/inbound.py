from typing import Optional

from pydantic import BaseModel


class InboundRequest(BaseModel):
    number: str
    message: str = ""
    name: Optional[str] = None


class InboundResponse(BaseModel):
    status: str
    number: str
    replies: list[str] = []
