from flowbot.schemas.inbound import InboundRequest, InboundResponse
from flowbot.schemas.trigger import BlacklistRequest, BlacklistResponse, SendMessageRequest, TriggerRequest

__all__ = [
    "InboundRequest",
    "InboundResponse",
    "SendMessageRequest",
    "TriggerRequest",
    "BlacklistRequest",
    "BlacklistResponse",
]
