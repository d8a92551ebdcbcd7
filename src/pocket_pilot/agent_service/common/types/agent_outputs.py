# outputs passed between the step model, the runtime and its callers

from typing import Optional, Protocol
from pydantic import BaseModel, Field
from pocket_pilot.agent_service.common.types.actions import AgentAction

class ModelStepOutput(BaseModel):
    """
    One decision from the step model: what it thought and which action it picked.
    """
    thought: str = ""
    action: AgentAction
    raw: str = Field(default="", description="Raw text or tool call payload, kept for the session log.")

class AgentRunResult(BaseModel):
    ok: bool
    message: str
    session_path: str = ""

class AgentProgressUpdate(BaseModel):
    step: int
    max_steps: int
    current_app: str
    action_type: str
    message: str
    thought: str = ""

class ProgressReporter(Protocol):
    """Receives step progress. Failures here never affect the task."""
    async def report(self, update: AgentProgressUpdate) -> None: ...

class TaskStatus(BaseModel):
    busy: bool
    task: Optional[str] = None
    runtime_ms: Optional[int] = None
    last_result: Optional[AgentRunResult] = None
