# request bodies for the human auth relay and operator routes

from pydantic import BaseModel, Field
from typing import Literal, Optional

class RelayArtifactPayload(BaseModel):
    """
    Proof attached by the human on the portal page.
    image: mime_type + base64, text: text, geo: latitude + longitude.
    """
    kind: Literal["text", "geo", "image"] = "image"
    mime_type: Optional[str] = None
    base64: Optional[str] = Field(default=None, max_length=6_000_000)
    text: Optional[str] = Field(default=None, max_length=2000)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)

class RelayCreateRequest(BaseModel):
    """
    Request body for opening a new authorization request on the relay.
    """
    request_id: Optional[str] = None # relay generates one when omitted
    task: str = ""
    session_id: str = ""
    step: int = 0
    capability: str = "unknown"
    instruction: str = ""
    reason: str = ""
    timeout_sec: float = 300
    current_app: str = "unknown"
    screenshot_path: Optional[str] = None
    public_base_url: Optional[str] = None

class RelayResolveRequest(BaseModel):
    """
    Request body submitted by the portal page. token is the single-use open token.
    """
    token: str
    approved: bool = False
    note: str = ""
    artifact: Optional[RelayArtifactPayload] = None

class OperatorCommandRequest(BaseModel):
    """
    Request body for operator commands, e.g. "approve auth-123 looks fine" or a bare code "493021".
    """
    command: str
