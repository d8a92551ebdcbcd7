import math

import pytest

from pocket_pilot.agent_service.common.types.actions import (
    ACTION_TYPES,
    DEFAULT_HUMAN_AUTH_INSTRUCTION,
    HumanAuthCapability,
    normalize_action,
    to_number,
)


@pytest.mark.parametrize("raw", [None, "tap", 42, ["type", "tap"], 3.5, True])
def test_non_object_payload_becomes_wait(raw):
    action = normalize_action(raw)
    assert action.type == "wait"
    assert action.reason == "invalid action payload"


def test_unknown_type_becomes_wait_with_reason():
    action = normalize_action({"type": "teleport", "x": 1})
    assert action.type == "wait"
    assert action.reason == "unknown action type 'teleport'"


def test_missing_type_is_unknown():
    action = normalize_action({"x": 1})
    assert action.type == "wait"
    assert action.reason == "unknown action type ''"


@pytest.mark.parametrize(
    "raw, field, expected",
    [
        ({"type": "swipe", "duration_ms": "fast"}, "duration_ms", 300),
        ({"type": "swipe", "durationMs": "450"}, "duration_ms", 450),
        ({"type": "wait", "duration_ms": [1, 2]}, "duration_ms", 1000),
        ({"type": "wait", "durationMs": float("nan")}, "duration_ms", 1000),
        ({"type": "run_script", "timeout_sec": float("inf")}, "timeout_sec", 60),
        ({"type": "request_human_auth", "timeoutSec": "soon"}, "timeout_sec", 300),
        ({"type": "tap", "x": " 12.5 ", "y": None}, "x", 12.5),
        ({"type": "tap", "x": {"nested": 1}}, "x", 0),
    ],
)
def test_numeric_fields_fall_back_to_defaults(raw, field, expected):
    assert getattr(normalize_action(raw), field) == expected


@pytest.mark.parametrize("action_type", ACTION_TYPES)
def test_every_tag_yields_finite_numbers_from_garbage(action_type):
    garbage = {"type": action_type}
    for key in ("x", "y", "x1", "y1", "x2", "y2", "duration_ms", "timeout_sec"):
        garbage[key] = ["not", "a", "number"]
    action = normalize_action(garbage)
    assert action.type == action_type
    for value in action.model_dump().values():
        if isinstance(value, float):
            assert math.isfinite(value)


def test_capability_is_trimmed_and_lowercased():
    action = normalize_action({"type": "request_human_auth", "capability": "  2FA ", "instruction": "Read code"})
    assert action.capability == HumanAuthCapability.TWO_FA
    assert action.instruction == "Read code"


def test_unknown_capability_gets_generated_instruction():
    action = normalize_action({"type": "request_human_auth", "capability": "retina", "instruction": "Look here"})
    assert action.capability == HumanAuthCapability.UNKNOWN
    assert action.instruction.startswith(DEFAULT_HUMAN_AUTH_INSTRUCTION)
    assert action.instruction.endswith("Look here")


def test_launch_app_accepts_camel_case():
    action = normalize_action({"type": "launch_app", "packageName": "com.android.settings"})
    assert action.package_name == "com.android.settings"


def test_finish_defaults_message():
    assert normalize_action({"type": "finish"}).message == "Task finished."


def test_to_number_handles_bools_and_strings():
    assert to_number(True, 5) == 1.0
    assert to_number("7", 5) == 7.0
    assert to_number("", 5) == 5
    assert to_number(object(), 5) == 5
