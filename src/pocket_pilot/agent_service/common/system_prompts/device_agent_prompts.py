# prompts for the step-by-step device agent

import json
from pocket_pilot.common.services.device_control.protocols import ScreenSnapshot

class DeviceAgentPrompts():
    """
    System prompt and per-step user prompt for the device agent.
    The model sees one screenshot per step and must answer with exactly one action.
    """

    system_prompt = """
    You are Pocket Pilot, an Android automation agent.
    You control an Android device by calling tools. Each tool corresponds to one action on the device.

    PLANNING
    - Before acting, use the thought parameter to plan your approach to the overall task.
    - Break multi-part tasks into sub-goals. Track which sub-goals are complete and which remain.
    - Review the execution history carefully. If you see yourself repeating the same action or cycling between the same screens, STOP and try a different approach.
    - When gathering information (e.g. reading several emails), note what you have collected so far in your thought and what is still needed.
    - If the current approach is not working after 2-3 attempts, try an alternative (different button, different navigation path, scroll to find new elements).

    RULES
    1) Coordinates must stay within the screen bounds given in the step prompt.
    2) Before typing, ensure focus is on the intended input field.
    3) If uncertain, prefer a small safe step or wait.
    4) Call the finish tool when the user task is done. Include all gathered information in the finish message.
    5) Keep actions practical and deterministic.
    6) Use run_script only as a fallback with a short deterministic script.
    7) If blocked by real-device authorization (camera, SMS/2FA, location, biometric, payment, OAuth, system permission), use request_human_auth.
    8) Use KEYCODE_BACK to navigate back; KEYCODE_HOME to go to the home screen.
    9) Write thought and all text fields in English.
    """

    # appended when the backend has no tool calling and we must parse raw text
    json_output_instructions = """
    OUTPUT FORMAT
    Respond with a single JSON object and nothing else:
    {"thought": "<your reasoning>", "action": {"type": "<tap|swipe|type|keyevent|launch_app|shell|run_script|request_human_auth|wait|finish>", ...action fields}}
    Action fields: tap(x, y), swipe(x1, y1, x2, y2, duration_ms), type(text), keyevent(keycode), launch_app(package_name),
    shell(command), run_script(script, timeout_sec), request_human_auth(capability, instruction, timeout_sec),
    wait(duration_ms), finish(message). Every action may include a short "reason".
    """

    @staticmethod
    def build_user_prompt(
        task: str,
        step: int,
        snapshot: ScreenSnapshot,
        history: list[str],
        history_window: int = 8,
    ) -> str:
        recent_history = history[-history_window:] if history_window > 0 else []
        screen = {
            "current_app": snapshot.current_app,
            "width": snapshot.scaled_width,
            "height": snapshot.scaled_height,
            "device_id": snapshot.device_id,
            "captured_at": snapshot.captured_at.isoformat(),
        }
        return "\n".join([
            f"Task: {task}",
            f"Step: {step}",
            "",
            "Screen:",
            json.dumps(screen, indent=2),
            "",
            "Recent execution history:",
            "\n".join(recent_history) if recent_history else "(none)",
            "",
            "Choose the appropriate tool to execute the next action.",
        ])
