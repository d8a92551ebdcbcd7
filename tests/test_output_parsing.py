from types import SimpleNamespace

from pocket_pilot.common.services.llm_service.llm_client.output_parsing import (
    extract_json_object,
    parse_model_text,
    parse_tool_call,
    read_chat_tool_call,
    read_content,
    read_response_output_text,
    read_responses_tool_call,
)


def test_extract_prefers_fenced_block():
    text = 'Sure! {"ignored": true}\n```json\n{"thought": "a", "action": {"type": "wait"}}\n```'
    assert extract_json_object(text) == '{"thought": "a", "action": {"type": "wait"}}'


def test_extract_scans_braces_inside_strings():
    text = 'I will do this: {"thought": "press } then {", "action": {"type": "finish"}} trailing'
    assert extract_json_object(text) == '{"thought": "press } then {", "action": {"type": "finish"}}'


def test_parse_model_text_reads_thought_and_action():
    output = parse_model_text('{"thought": "go home", "action": {"type": "keyevent", "keycode": "KEYCODE_HOME"}}')
    assert output.thought == "go home"
    assert output.action.type == "keyevent"
    assert output.action.keycode == "KEYCODE_HOME"


def test_invalid_json_becomes_wait_with_raw_thought():
    output = parse_model_text("I think I should tap the button")
    assert output.action.type == "wait"
    assert output.action.reason == "model output was not valid JSON"
    assert output.action.duration_ms == 1200
    assert output.thought == "I think I should tap the button"


def test_missing_action_becomes_wait():
    output = parse_model_text('{"thought": "hmm"}')
    assert output.action.type == "wait"


def test_read_content_joins_text_parts():
    parts = [{"type": "text", "text": "one"}, {"type": "image_url"}, SimpleNamespace(type="text", text="two")]
    assert read_content(parts) == "one\ntwo"


def test_read_response_output_text_from_items():
    response = SimpleNamespace(
        output_text="",
        output=[SimpleNamespace(content=[SimpleNamespace(type="output_text", text='{"action": {"type": "wait"}}')])],
    )
    assert read_response_output_text(response) == '{"action": {"type": "wait"}}'


def test_tool_calls_map_type_text_to_type():
    message = SimpleNamespace(
        tool_calls=[
            SimpleNamespace(function=SimpleNamespace(name="type_text", arguments='{"thought": "fill", "text": "hello"}'))
        ]
    )
    name, arguments = read_chat_tool_call(message)
    output = parse_tool_call(name, arguments)
    assert output.thought == "fill"
    assert output.action.type == "type"
    assert output.action.text == "hello"


def test_responses_function_call_item():
    response = {"output": [{"type": "reasoning"}, {"type": "function_call", "name": "tap", "arguments": '{"x": 3, "y": 4}'}]}
    assert read_responses_tool_call(response) == ("tap", {"x": 3, "y": 4})


def test_tool_arguments_that_are_not_an_object_become_wait():
    for arguments in ("{not json", "[1, 2]"):
        name, loaded = read_responses_tool_call(
            SimpleNamespace(output=[SimpleNamespace(type="function_call", name="swipe", arguments=arguments)])
        )
        output = parse_tool_call(name, loaded)
        assert output.action.type == "wait"
        assert output.action.reason == "invalid tool arguments"
