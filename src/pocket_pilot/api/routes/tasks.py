# task routes: start a task in the background, poll its status, request a stop

from fastapi import APIRouter, Depends, HTTPException, status
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.core.dependencies import get_agent_runtime, get_settings, require_operator_key
from pocket_pilot.agent_service.core_agent.agent_runtime import AgentRuntime, BUSY_MESSAGE, LoggingProgressReporter
from pocket_pilot.agent_service.common.types.agent_outputs import TaskStatus
from pocket_pilot.config.app_config import ServiceSettings

# response models
from pocket_pilot.api.response_models.tasks import TaskAcceptedResponse, TaskStopResponse
# request body models
from pocket_pilot.api.request_models.tasks import TaskRequest

router = APIRouter(prefix="/tasks", tags=["Tasks"], dependencies=[Depends(require_operator_key)])

@router.post("", response_model=TaskAcceptedResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_task(
    request: TaskRequest,
    agent_runtime: AgentRuntime = Depends(get_agent_runtime),
    settings: ServiceSettings = Depends(get_settings),
):
    model = request.model or settings.DEFAULT_MODEL_PROFILE
    if model not in settings.MODEL_PROFILES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown model profile '{model}'. Available: {sorted(settings.MODEL_PROFILES)}",
        )

    scheduled = agent_runtime.start_background_task(request.task, model, LoggingProgressReporter())
    if scheduled is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=BUSY_MESSAGE)

    logger.info(f"Task accepted (model={model}): {request.task}")
    return TaskAcceptedResponse(accepted=True, task=request.task, model=model)

@router.get("/status", response_model=TaskStatus)
async def task_status(agent_runtime: AgentRuntime = Depends(get_agent_runtime)):
    return agent_runtime.status()

@router.post("/stop", response_model=TaskStopResponse)
async def stop_task(agent_runtime: AgentRuntime = Depends(get_agent_runtime)):
    if agent_runtime.request_stop():
        return TaskStopResponse(stop_requested=True, message="Stop requested. The task ends before its next step.")
    return TaskStopResponse(stop_requested=False, message="No task is running.")
