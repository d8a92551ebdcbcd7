# canonical device actions the agent can take, one model per action tag
# NOTE: normalize_action() is the only place raw model output becomes an AgentAction

import math
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, Field

class HumanAuthCapability(str, Enum):
    """
    Real-world proof a step may need from a human operator.
    """
    CAMERA = "camera"
    QR = "qr"
    MICROPHONE = "microphone"
    VOICE = "voice"
    NFC = "nfc"
    SMS = "sms"
    TWO_FA = "2fa"
    LOCATION = "location"
    BIOMETRIC = "biometric"
    NOTIFICATION = "notification"
    CONTACTS = "contacts"
    CALENDAR = "calendar"
    FILES = "files"
    OAUTH = "oauth"
    PAYMENT = "payment"
    PERMISSION = "permission"
    UNKNOWN = "unknown"

# capabilities whose proof is a short code the human reads back
CODE_CAPABILITIES = {
    HumanAuthCapability.SMS,
    HumanAuthCapability.TWO_FA,
    HumanAuthCapability.QR,
    HumanAuthCapability.VOICE,
}

DEFAULT_HUMAN_AUTH_INSTRUCTION = "Human authorization is required to continue."

class BaseAction(BaseModel):
    reason: Optional[str] = None

class TapAction(BaseAction):
    type: Literal["tap"] = "tap"
    x: float = 0
    y: float = 0

class SwipeAction(BaseAction):
    type: Literal["swipe"] = "swipe"
    x1: float = 0
    y1: float = 0
    x2: float = 0
    y2: float = 0
    duration_ms: float = 300

class TypeAction(BaseAction):
    type: Literal["type"] = "type"
    text: str = ""

class KeyEventAction(BaseAction):
    type: Literal["keyevent"] = "keyevent"
    keycode: str = "KEYCODE_ENTER"

class LaunchAppAction(BaseAction):
    type: Literal["launch_app"] = "launch_app"
    package_name: str = ""

class ShellAction(BaseAction):
    type: Literal["shell"] = "shell"
    command: str = ""

class RunScriptAction(BaseAction):
    type: Literal["run_script"] = "run_script"
    script: str = ""
    timeout_sec: float = 60

class RequestHumanAuthAction(BaseAction):
    type: Literal["request_human_auth"] = "request_human_auth"
    capability: HumanAuthCapability = HumanAuthCapability.UNKNOWN
    instruction: str = DEFAULT_HUMAN_AUTH_INSTRUCTION
    timeout_sec: float = 300

class WaitAction(BaseAction):
    type: Literal["wait"] = "wait"
    duration_ms: float = 1000

class FinishAction(BaseAction):
    type: Literal["finish"] = "finish"
    message: str = "Task finished."

# closed tagged union, discriminated on `type`
AgentAction = Annotated[
    Union[
        TapAction,
        SwipeAction,
        TypeAction,
        KeyEventAction,
        LaunchAppAction,
        ShellAction,
        RunScriptAction,
        RequestHumanAuthAction,
        WaitAction,
        FinishAction,
    ],
    Field(discriminator="type"),
]

ACTION_TYPES = (
    "tap", "swipe", "type", "keyevent", "launch_app",
    "shell", "run_script", "request_human_auth", "wait", "finish",
)

def to_number(value: Any, fallback: float) -> float:
    """
    Coerce loose model values (numbers, numeric strings, bools) to a finite float.
    Anything else, or a non-finite result, gives the fallback.
    """
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return fallback
    else:
        return fallback
    return number if math.isfinite(number) else fallback

def _field(raw: dict, *names: str) -> Any:
    # model output may use snake_case or camelCase keys
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return None

def _text(value: Any, default: str) -> str:
    return default if value is None else str(value)

def _reason(raw: dict) -> Optional[str]:
    reason = raw.get("reason")
    return str(reason) if reason else None

def parse_capability(value: Any) -> HumanAuthCapability:
    candidate = str(value if value is not None else "unknown").strip().lower()
    try:
        return HumanAuthCapability(candidate)
    except ValueError:
        return HumanAuthCapability.UNKNOWN

def normalize_action(raw: Any) -> AgentAction:
    """
    Turn untyped model output into one of the ten action variants.
    Never raises: bad payloads and unknown tags degrade to a wait with a diagnostic reason.
    """
    if not isinstance(raw, dict):
        return WaitAction(duration_ms=1000, reason="invalid action payload")

    action_type = str(raw.get("type") if raw.get("type") is not None else "").strip()
    reason = _reason(raw)

    if action_type == "tap":
        return TapAction(
            x=to_number(raw.get("x"), 0),
            y=to_number(raw.get("y"), 0),
            reason=reason,
        )

    if action_type == "swipe":
        return SwipeAction(
            x1=to_number(raw.get("x1"), 0),
            y1=to_number(raw.get("y1"), 0),
            x2=to_number(raw.get("x2"), 0),
            y2=to_number(raw.get("y2"), 0),
            duration_ms=to_number(_field(raw, "duration_ms", "durationMs"), 300),
            reason=reason,
        )

    if action_type == "type":
        return TypeAction(text=_text(raw.get("text"), ""), reason=reason)

    if action_type == "keyevent":
        return KeyEventAction(keycode=_text(raw.get("keycode"), "KEYCODE_ENTER"), reason=reason)

    if action_type == "launch_app":
        return LaunchAppAction(
            package_name=_text(_field(raw, "package_name", "packageName"), ""),
            reason=reason,
        )

    if action_type == "shell":
        return ShellAction(command=_text(raw.get("command"), ""), reason=reason)

    if action_type == "run_script":
        return RunScriptAction(
            script=_text(raw.get("script"), ""),
            timeout_sec=to_number(_field(raw, "timeout_sec", "timeoutSec"), 60),
            reason=reason,
        )

    if action_type == "request_human_auth":
        capability = parse_capability(raw.get("capability"))
        given = raw.get("instruction") or raw.get("reason")
        if capability is HumanAuthCapability.UNKNOWN:
            # keep whatever the model said, but always lead with the generic ask
            instruction = DEFAULT_HUMAN_AUTH_INSTRUCTION
            if given:
                instruction = f"{instruction} {given}"
        else:
            instruction = str(given) if given else DEFAULT_HUMAN_AUTH_INSTRUCTION
        return RequestHumanAuthAction(
            capability=capability,
            instruction=instruction,
            timeout_sec=to_number(_field(raw, "timeout_sec", "timeoutSec"), 300),
            reason=reason,
        )

    if action_type == "wait":
        return WaitAction(
            duration_ms=to_number(_field(raw, "duration_ms", "durationMs"), 1000),
            reason=reason,
        )

    if action_type == "finish":
        return FinishAction(message=_text(raw.get("message"), "Task finished."), reason=reason)

    return WaitAction(duration_ms=1000, reason=f"unknown action type '{action_type}'")
