# helpers to pull one decision out of raw model responses
# works on SDK response objects and plain dicts alike

import json
import re
from typing import Any, Optional

from pocket_pilot.agent_service.common.types.actions import normalize_action
from pocket_pilot.agent_service.common.types.agent_outputs import ModelStepOutput
from pocket_pilot.common.services.llm_service.tool_calling.device_action_tools import tool_call_to_raw_action

_FENCED_JSON = re.compile(r"```json\s*([\s\S]*?)```", re.IGNORECASE)
_FENCED_ANY = re.compile(r"```\s*([\s\S]*?)```")

def _get(obj: Any, key: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(key, default)
    return getattr(obj, key, default)

def extract_json_object(text: str) -> str:
    """
    Find the single JSON object in free text.
    Prefers a fenced block, then the first balanced top-level {...} (quote/escape aware).
    Falls back to the stripped text.
    """
    fenced = _FENCED_JSON.search(text) or _FENCED_ANY.search(text)
    if fenced and fenced.group(1).strip():
        return fenced.group(1).strip()

    start = text.find("{")
    if start < 0:
        return text.strip()

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if escaped:
            escaped = False
            continue
        if ch == "\\":
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1].strip()

    return text.strip()

def read_content(raw: Any) -> str:
    """Chat message content may be a plain string or a list of text parts."""
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list):
        chunks = []
        for item in raw:
            if isinstance(item, str):
                chunks.append(item)
            elif _get(item, "type") == "text" and _get(item, "text") is not None:
                chunks.append(str(_get(item, "text")))
        return "\n".join(chunk for chunk in chunks if chunk)
    return ""

def read_response_output_text(response: Any) -> str:
    """Responses API text: `output_text` when present, else the text parts of each output item."""
    output_text = _get(response, "output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text.strip()

    output = _get(response, "output")
    if not isinstance(output, list):
        return ""

    chunks: list[str] = []
    for item in output:
        content = _get(item, "content")
        if not isinstance(content, list):
            continue
        for part in content:
            if _get(part, "type") in ("output_text", "text") and isinstance(_get(part, "text"), str):
                chunks.append(_get(part, "text"))
    return "\n".join(chunks).strip()

def _load_arguments(arguments: Any) -> Optional[dict]:
    """Tool call arguments as a dict. None when the model sent arguments that are not a JSON object."""
    if isinstance(arguments, dict):
        return arguments
    if not isinstance(arguments, str) or not arguments.strip():
        return {}
    try:
        parsed = json.loads(arguments)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None

def read_chat_tool_call(message: Any) -> Optional[tuple[str, Optional[dict]]]:
    """First function tool call on a chat message as (name, arguments)."""
    tool_calls = _get(message, "tool_calls") or []
    for call in tool_calls:
        function = _get(call, "function")
        name = _get(function, "name")
        if name:
            return (str(name), _load_arguments(_get(function, "arguments")))
    return None

def read_responses_tool_call(response: Any) -> Optional[tuple[str, Optional[dict]]]:
    """First function_call item in a Responses API output list."""
    output = _get(response, "output")
    if not isinstance(output, list):
        return None
    for item in output:
        if _get(item, "type") == "function_call" and _get(item, "name"):
            return (str(_get(item, "name")), _load_arguments(_get(item, "arguments")))
    return None

def parse_tool_call(name: str, arguments: Optional[dict]) -> ModelStepOutput:
    if arguments is None:
        # malformed arguments degrade to a wait, same as malformed text
        return ModelStepOutput(
            thought="",
            action=normalize_action({"type": "wait", "reason": "invalid tool arguments"}),
            raw=json.dumps({"tool": name, "arguments": None}),
        )
    thought, raw_action = tool_call_to_raw_action(name, arguments)
    return ModelStepOutput(
        thought=thought,
        action=normalize_action(raw_action),
        raw=json.dumps({"tool": name, "arguments": arguments}, ensure_ascii=False, default=str),
    )

def parse_model_text(raw_content: str) -> ModelStepOutput:
    """
    Parse `{"thought": ..., "action": {...}}` out of model text.
    Invalid JSON becomes a wait action with the raw text kept as the thought.
    """
    json_text = extract_json_object(raw_content)
    try:
        parsed = json.loads(json_text)
    except ValueError:
        return ModelStepOutput(
            thought=raw_content,
            action=normalize_action({"type": "wait", "duration_ms": 1200, "reason": "model output was not valid JSON"}),
            raw=raw_content,
        )

    if not isinstance(parsed, dict):
        return ModelStepOutput(
            thought="",
            action=normalize_action(parsed),
            raw=raw_content,
        )

    thought = parsed.get("thought")
    action_raw = parsed.get("action")
    if action_raw is None:
        action_raw = {"type": "wait", "duration_ms": 1000, "reason": "invalid model output"}
    return ModelStepOutput(
        thought=thought if isinstance(thought, str) else "",
        action=normalize_action(action_raw),
        raw=raw_content,
    )
