# operator routes for pending human auth requests

from fastapi import APIRouter, Depends
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.core.dependencies import get_human_auth_bridge, require_operator_key
from pocket_pilot.human_auth.bridge import HumanAuthBridge
from pocket_pilot.human_auth.commands import handle_operator_command

from pocket_pilot.api.response_models.human_auth import OperatorCommandResponse, PendingHumanAuthResponse
from pocket_pilot.api.request_models.human_auth import OperatorCommandRequest

router = APIRouter(
    prefix="/operator/human-auth",
    tags=["Operator Human Auth"],
    dependencies=[Depends(require_operator_key)],
)

@router.get("/pending", response_model=PendingHumanAuthResponse)
async def list_pending(bridge: HumanAuthBridge = Depends(get_human_auth_bridge)):
    return PendingHumanAuthResponse(pending=bridge.list_pending())

@router.post("/commands", response_model=OperatorCommandResponse)
async def run_command(
    request: OperatorCommandRequest,
    bridge: HumanAuthBridge = Depends(get_human_auth_bridge),
):
    result = handle_operator_command(bridge, request.command)
    logger.info(f"Operator command '{request.command}' handled={result.handled}")
    return OperatorCommandResponse(handled=result.handled, message=result.message)
