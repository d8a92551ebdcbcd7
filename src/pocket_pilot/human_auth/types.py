# request/decision types for human authorization escalations

import secrets
import time
from datetime import datetime, timezone
from typing import Literal, Optional, Protocol
from pydantic import BaseModel, Field

from pocket_pilot.agent_service.common.types.actions import HumanAuthCapability

HumanAuthStatus = Literal["approved", "rejected", "timeout"]

class HumanAuthChannelError(RuntimeError):
    """The authorization channel could not deliver or collect a decision."""

def new_request_id(prefix: str = "auth") -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(8)}"

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

class HumanAuthRequest(BaseModel):
    """
    A task step that needs a human to grant or deny a real-world capability.
    """
    request_id: str = Field(default_factory=new_request_id)
    session_id: str = ""
    session_path: str = ""
    task: str
    step: int
    capability: HumanAuthCapability = HumanAuthCapability.UNKNOWN
    instruction: str
    reason: str = ""
    timeout_sec: int = 300
    current_app: str = "unknown"
    screenshot_path: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

class HumanAuthArtifact(BaseModel):
    """
    Proof delegated back by the human: typed text (codes), a geo fix, or an image on local disk.
    """
    kind: Literal["text", "geo", "image"]
    text: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    path: Optional[str] = None
    mime_type: Optional[str] = None

class HumanAuthDecision(BaseModel):
    request_id: str
    status: HumanAuthStatus
    message: str = ""
    artifact: Optional[HumanAuthArtifact] = None
    decided_at: datetime = Field(default_factory=utc_now)

    @property
    def approved(self) -> bool:
        return self.status == "approved"

class HumanAuthOpenContext(BaseModel):
    """What an operator needs to act on a freshly opened request."""
    request_id: str
    capability: HumanAuthCapability
    instruction: str
    open_url: Optional[str] = None
    expires_at: datetime
    relay_enabled: bool = False
    manual_approve_command: str
    manual_reject_command: str

class HumanAuthPendingSummary(BaseModel):
    request_id: str
    task: str
    capability: HumanAuthCapability
    current_app: str
    created_at: datetime
    expires_at: datetime
    relay_enabled: bool

class HumanAuthChannel(Protocol):
    """
    Anything that can turn a request into a decision.
    Implementations must always return a decision (timeout included) rather than hang forever.
    """
    async def request(self, request: HumanAuthRequest) -> HumanAuthDecision: ...

class HumanAuthOpenedNotifier(Protocol):
    async def __call__(self, context: HumanAuthOpenContext) -> None: ...
