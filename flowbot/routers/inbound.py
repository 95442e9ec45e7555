from fastapi import APIRouter, Depends

from flowbot.runtime import get_bridge
from flowbot.schemas.inbound import InboundRequest, InboundResponse
from flowbot.services.dispatch_bridge import DispatchBridge

router = APIRouter(prefix="/v1")


@router.post("/inbound", response_model=InboundResponse)
async def handle_inbound(request: InboundRequest, bridge: DispatchBridge = Depends(get_bridge)):
    """Webhook for messages received by the WhatsApp provider."""
    if bridge.is_blacklisted(request.number):
        return InboundResponse(status="ignored", number=request.number)

    effects = await bridge.handle_inbound(request.number, request.message, name=request.name)
    replies = [effect.text or effect.media for effect in effects]
    return InboundResponse(status="ok", number=request.number, replies=replies)
