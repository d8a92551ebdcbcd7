# carry an approved human authorization back into the device
# every delegation step is best-effort: failures become result lines, never task errors

import re
from typing import Optional
from pydantic import BaseModel, Field

from pocket_pilot.agent_service.common.types.actions import (
    CODE_CAPABILITIES,
    HumanAuthCapability,
    TapAction,
    TypeAction,
)
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.device_control.protocols import DeviceController
from pocket_pilot.common.services.device_control.ui_hierarchy import parse_ui_hierarchy
from pocket_pilot.human_auth.permission_dialog import PermissionIntent, resolve_permission_dialog_tap
from pocket_pilot.human_auth.types import HumanAuthDecision, HumanAuthRequest

_CODE_PATTERN = re.compile(r"[A-Za-z0-9]{3,12}")

class DelegationResult(BaseModel):
    lines: list[str] = Field(default_factory=list)
    # extra lines for the model's execution history
    history_hints: list[str] = Field(default_factory=list)

def extract_code(text: Optional[str]) -> Optional[str]:
    """
    A short alphanumeric code with at least one digit, e.g. "493 021" or "AB-12C9".
    Free-form notes ("approved, thanks") are not codes.
    """
    if not text:
        return None
    candidate = re.sub(r"[\s-]", "", text.strip())
    if _CODE_PATTERN.fullmatch(candidate) and any(ch.isdigit() for ch in candidate):
        return candidate
    return None

async def tap_permission_dialog(
    device: DeviceController,
    intent: PermissionIntent,
    device_id: Optional[str] = None,
) -> str:
    """
    Dump the current screen, pick the approve/deny control and tap its center.
    Coordinates are device-native, so no model rescaling applies.
    """
    xml_text = await device.dump_ui_hierarchy(device_id)
    resolution = resolve_permission_dialog_tap(parse_ui_hierarchy(xml_text), intent)
    if not resolution.found or resolution.x is None or resolution.y is None:
        return f"permission dialog {intent}: {resolution.detail}"

    await device.execute(TapAction(x=resolution.x, y=resolution.y, reason=f"permission_dialog_{intent}"), device_id)
    label = ""
    if resolution.node is not None:
        label = resolution.node.text or resolution.node.content_desc or resolution.node.resource_id
    return f"permission dialog {intent}: tapped '{label}' at ({resolution.x}, {resolution.y}) via {resolution.detail}"

async def apply_human_auth_delegation(
    device: DeviceController,
    request: HumanAuthRequest,
    decision: HumanAuthDecision,
    *,
    device_id: Optional[str] = None,
    permission_packages: Optional[list[str]] = None,
) -> DelegationResult:
    result = DelegationResult()
    artifact = decision.artifact
    capability = request.capability

    if capability == HumanAuthCapability.LOCATION and artifact is not None and artifact.kind == "geo":
        try:
            message = await device.set_geo_location(artifact.latitude, artifact.longitude, device_id) # type: ignore[arg-type]
            result.lines.append(f"delegation location: {message}")
        except Exception as e:
            logger.warning(f"[delegation] location injection failed: {e}")
            result.lines.append(f"delegation location failed: {e}")

    if capability in CODE_CAPABILITIES:
        code = extract_code(artifact.text if artifact is not None and artifact.kind == "text" else None)
        code = code or extract_code(decision.message)
        if code:
            try:
                message = await device.execute(TypeAction(text=code, reason="human_auth_code"), device_id)
                result.lines.append(f"delegation code: {message}")
            except Exception as e:
                logger.warning(f"[delegation] typing code failed: {e}")
                result.lines.append(f"delegation code failed: {e}")

    if artifact is not None and artifact.kind == "image" and artifact.path:
        try:
            remote_path = await device.push_file(artifact.path, device_id)
            result.lines.append(f"delegation image: pushed to {remote_path}")
            result.history_hints.append(
                f"human provided an image at {remote_path}; import it through the app's gallery/photo picker"
            )
        except Exception as e:
            logger.warning(f"[delegation] image push failed: {e}")
            result.lines.append(f"delegation image failed: {e}")

    if permission_packages and request.current_app in permission_packages:
        try:
            result.lines.append(await tap_permission_dialog(device, "approve", device_id))
        except Exception as e:
            logger.warning(f"[delegation] permission dialog tap failed: {e}")
            result.lines.append(f"permission dialog approve failed: {e}")

    return result
