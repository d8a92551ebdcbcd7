# tool calling declarations for device actions
# each tool maps 1:1 to an action tag, so the model returns structured calls instead of free-form JSON
# NOTE: the same canonical dicts are rendered for chat, responses and Gemini function calling

from typing import Any

thought_param = {
    "type": "string",
    "description": "Your reasoning about what to do and why.",
}

reason_param = {
    "type": "string",
    "description": "Short human-readable explanation of this action.",
}

TOOL_DEFS: list[dict[str, Any]] = [
    {
        "name": "tap",
        "description": "Tap at the given (x, y) coordinate on the screen.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "x": {"type": "number", "description": "X coordinate to tap."},
                "y": {"type": "number", "description": "Y coordinate to tap."},
                "reason": reason_param,
            },
            "required": ["thought", "x", "y"],
        },
    },
    {
        "name": "swipe",
        "description": "Swipe from (x1, y1) to (x2, y2) on the screen.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "x1": {"type": "number", "description": "Start X coordinate."},
                "y1": {"type": "number", "description": "Start Y coordinate."},
                "x2": {"type": "number", "description": "End X coordinate."},
                "y2": {"type": "number", "description": "End Y coordinate."},
                "duration_ms": {"type": "number", "description": "Swipe duration in milliseconds (default 300)."},
                "reason": reason_param,
            },
            "required": ["thought", "x1", "y1", "x2", "y2"],
        },
    },
    {
        "name": "type_text",
        "description": "Type text into the currently focused input field.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "text": {"type": "string", "description": "The text to type."},
                "reason": reason_param,
            },
            "required": ["thought", "text"],
        },
    },
    {
        "name": "keyevent",
        "description": "Send an Android keyevent (e.g. KEYCODE_BACK, KEYCODE_HOME, KEYCODE_ENTER).",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "keycode": {"type": "string", "description": "Android keycode name."},
                "reason": reason_param,
            },
            "required": ["thought", "keycode"],
        },
    },
    {
        "name": "launch_app",
        "description": "Launch an Android application by package name.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "package_name": {"type": "string", "description": "Android package name to launch."},
                "reason": reason_param,
            },
            "required": ["thought", "package_name"],
        },
    },
    {
        "name": "shell",
        "description": "Execute a raw adb shell command.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "command": {"type": "string", "description": "The adb shell command to execute."},
                "reason": reason_param,
            },
            "required": ["thought", "command"],
        },
    },
    {
        "name": "run_script",
        "description": "Run a short deterministic script as a fallback action.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "script": {"type": "string", "description": "The script content to execute."},
                "timeout_sec": {"type": "number", "description": "Timeout in seconds (default 60)."},
                "reason": reason_param,
            },
            "required": ["thought", "script"],
        },
    },
    {
        "name": "request_human_auth",
        "description": (
            "Request human authorization for actions requiring real-device capabilities "
            "(camera, SMS/2FA, biometric, payment, OAuth, system permission, etc.)."
        ),
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "capability": {
                    "type": "string",
                    "description": (
                        "The capability that needs authorization: camera, qr, microphone, voice, nfc, sms, 2fa, "
                        "location, biometric, notification, contacts, calendar, files, oauth, payment, permission, or unknown."
                    ),
                },
                "instruction": {"type": "string", "description": "Clear instruction for the human on what to do."},
                "timeout_sec": {"type": "number", "description": "How long to wait for the human (default 300)."},
                "reason": reason_param,
            },
            "required": ["thought", "capability", "instruction"],
        },
    },
    {
        "name": "wait",
        "description": "Wait / do nothing for a short period, e.g. while content is loading.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "duration_ms": {"type": "number", "description": "Duration to wait in milliseconds (default 1000)."},
                "reason": reason_param,
            },
            "required": ["thought"],
        },
    },
    {
        "name": "finish",
        "description": "Signal that the user task is complete.",
        "parameters": {
            "type": "object",
            "properties": {
                "thought": thought_param,
                "message": {"type": "string", "description": "Summary of what was accomplished."},
            },
            "required": ["thought", "message"],
        },
    },
]

# chat completions format (OpenAI-compatible)
CHAT_TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": tool["name"],
            "description": tool["description"],
            "parameters": tool["parameters"],
        },
    }
    for tool in TOOL_DEFS
]

# responses API format, flat function entries
RESPONSES_TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": tool["name"],
        "description": tool["description"],
        "parameters": tool["parameters"],
    }
    for tool in TOOL_DEFS
]

# Gemini function declarations take the canonical dicts as-is
GEMINI_FUNCTION_DECLARATIONS: list[dict[str, Any]] = TOOL_DEFS

def tool_name_to_action_type(tool_name: str) -> str:
    """Map a tool call name back to its action tag."""
    if tool_name == "type_text":
        return "type"
    return tool_name

def tool_call_to_raw_action(tool_name: str, arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Split tool call arguments into (thought, raw action dict) ready for normalize_action().
    """
    args = dict(arguments)
    thought = args.pop("thought", "")
    args["type"] = tool_name_to_action_type(tool_name)
    return (str(thought) if thought is not None else "", args)
