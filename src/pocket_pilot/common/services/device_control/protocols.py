# protocols for device controllers
# the agent runtime only talks to a device through this surface

import base64
from datetime import datetime
from typing import Optional, Protocol
from pydantic import BaseModel, Field
from pocket_pilot.agent_service.common.types.actions import AgentAction

class DeviceControllerError(RuntimeError):
    """Raised when the device cannot be reached or a command fails."""

class ScreenSnapshot(BaseModel):
    """
    Captured screen plus the metadata the model and the runtime need.
    image_bytes is the (possibly downscaled) PNG sent to the model;
    width/height are device-native, scale_x/scale_y map model coordinates back.
    """
    device_id: str
    current_app: str = "unknown"
    width: int
    height: int
    image_bytes: bytes = b""
    scaled_width: int
    scaled_height: int
    scale_x: float = 1.0
    scale_y: float = 1.0
    captured_at: datetime = Field(default_factory=datetime.now)

    @property
    def screenshot_base64(self) -> str:
        return base64.b64encode(self.image_bytes).decode("ascii")

class DeviceController(Protocol):
    async def capture_snapshot(self, device_id: Optional[str] = None, model_name: str = "") -> ScreenSnapshot: ...

    async def execute(self, action: AgentAction, device_id: Optional[str] = None) -> str: ...

    async def dump_ui_hierarchy(self, device_id: Optional[str] = None) -> str: ...

    async def set_geo_location(self, latitude: float, longitude: float, device_id: Optional[str] = None) -> str: ...

    async def push_file(self, local_path: str, device_id: Optional[str] = None) -> str: ...
