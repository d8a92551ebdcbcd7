# response models for the human auth relay and operator routes

from datetime import datetime
from pydantic import BaseModel
from typing import Literal, Optional
from pocket_pilot.api.request_models.human_auth import RelayArtifactPayload
from pocket_pilot.human_auth.types import HumanAuthPendingSummary

RelayStatus = Literal["pending", "approved", "rejected", "timeout"]

class RelayCreateResponse(BaseModel):
    request_id: str
    open_url: str
    poll_token: str
    expires_at: datetime

class RelayPollResponse(BaseModel):
    request_id: str
    status: RelayStatus
    note: Optional[str] = None
    decided_at: Optional[datetime] = None
    artifact: Optional[RelayArtifactPayload] = None

class RelayResolveResponse(BaseModel):
    request_id: str
    status: RelayStatus
    decided_at: datetime

class OperatorCommandResponse(BaseModel):
    handled: bool
    message: str

class PendingHumanAuthResponse(BaseModel):
    pending: list[HumanAuthPendingSummary]
