from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from flowbot.flows import REGISTER_FLOW, SAMPLES
from flowbot.runtime import get_bridge
from flowbot.schemas.trigger import BlacklistRequest, BlacklistResponse, SendMessageRequest, TriggerRequest
from flowbot.services.dispatch_bridge import DispatchBridge

router = APIRouter(prefix="/v1")


@router.post("/messages", response_class=PlainTextResponse)
async def send_message(request: SendMessageRequest, bridge: DispatchBridge = Depends(get_bridge)):
    """Send a message straight to a number, outside any flow."""
    await bridge.send_direct(request.number, request.message, request.urlMedia)
    return "sended"


@router.post("/register", response_class=PlainTextResponse)
async def trigger_register(request: TriggerRequest, bridge: DispatchBridge = Depends(get_bridge)):
    await bridge.handle_external_trigger(REGISTER_FLOW, request.number, {"from": request.number, "name": request.name})
    return "trigger"


@router.post("/samples", response_class=PlainTextResponse)
async def trigger_samples(request: TriggerRequest, bridge: DispatchBridge = Depends(get_bridge)):
    await bridge.handle_external_trigger(SAMPLES, request.number, {"from": request.number, "name": request.name})
    return "trigger"


@router.post("/blacklist", response_model=BlacklistResponse)
def update_blacklist(request: BlacklistRequest, bridge: DispatchBridge = Depends(get_bridge)):
    if request.intent == "remove":
        bridge.remove_from_blacklist(request.number)
    if request.intent == "add":
        bridge.add_to_blacklist(request.number)
    return BlacklistResponse(status="ok", number=request.number, intent=request.intent)
