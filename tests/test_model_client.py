from types import SimpleNamespace

import pytest

from conftest import make_snapshot
from pocket_pilot.common.services.llm_service.llm_client.openai_compatible_client import AsyncOpenAICompatibleStepClient
from pocket_pilot.common.services.llm_service.llm_client.protocols import ModelEndpointExhaustedError
from pocket_pilot.config.model_profiles import ModelProfile


class FakeEndpoint:
    """One API surface (chat.completions / responses / completions) that records calls."""
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def fake_openai(chat=None, responses=None, completions=None):
    chat = chat or FakeEndpoint(error=RuntimeError("chat unsupported"))
    responses = responses or FakeEndpoint(error=RuntimeError("responses unsupported"))
    completions = completions or FakeEndpoint(error=RuntimeError("completions unsupported"))
    client = SimpleNamespace(
        chat=SimpleNamespace(completions=chat),
        responses=responses,
        completions=completions,
    )
    return client, chat, responses, completions


def make_client(fake, **profile_overrides):
    profile = ModelProfile(model="test-model", api_key="k", **profile_overrides)
    return AsyncOpenAICompatibleStepClient(profile, api_key="k", client=fake, retry_wait=0)


def responses_finish(message="done"):
    return SimpleNamespace(
        output_text="",
        output=[SimpleNamespace(type="function_call", name="finish", arguments=f'{{"thought": "t", "message": "{message}"}}')],
    )


async def next_step(client):
    return await client.next_step("system", "task", 1, make_snapshot(), ["step 0: nothing"])


@pytest.mark.asyncio
async def test_falls_back_and_updates_mode_hint():
    fake, chat, responses, _ = fake_openai(responses=FakeEndpoint(result=responses_finish("via responses")))
    client = make_client(fake)
    assert client.mode_hint == "chat"

    output = await next_step(client)

    assert output.action.type == "finish"
    assert output.action.message == "via responses"
    assert client.mode_hint == "responses"
    assert len(chat.calls) == 1


@pytest.mark.asyncio
async def test_hinted_mode_is_tried_first():
    fake, chat, responses, _ = fake_openai(responses=FakeEndpoint(result=responses_finish()))
    client = make_client(fake)

    await next_step(client)
    await next_step(client)

    # second call goes straight to the remembered mode
    assert len(chat.calls) == 1
    assert len(responses.calls) == 2
    assert client.mode_order() == ["responses", "chat", "completions"]


@pytest.mark.asyncio
async def test_all_modes_failing_aggregates_errors():
    fake, *_ = fake_openai()
    client = make_client(fake)

    with pytest.raises(ModelEndpointExhaustedError) as exc_info:
        await next_step(client)

    message = str(exc_info.value)
    assert message.startswith("All model endpoints failed.")
    assert "chat: chat unsupported" in message
    assert "responses: responses unsupported" in message
    assert "completions: completions unsupported" in message
    assert client.mode_hint == "chat"


@pytest.mark.asyncio
async def test_chat_text_without_tools():
    chat_response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(
            tool_calls=None,
            content='```json\n{"thought": "tap it", "action": {"type": "tap", "x": 10, "y": 20}}\n```',
        ))]
    )
    fake, chat, _, _ = fake_openai(chat=FakeEndpoint(result=chat_response))
    client = make_client(fake, use_tools=False)

    output = await next_step(client)

    assert output.thought == "tap it"
    assert (output.action.x, output.action.y) == (10, 20)
    request = chat.calls[0]
    assert "tools" not in request
    assert "OUTPUT FORMAT" in request["messages"][0]["content"]
    assert request["messages"][1]["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")


@pytest.mark.asyncio
async def test_empty_chat_output_falls_through_to_completions():
    empty_chat = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(tool_calls=None, content=""))])
    completion = SimpleNamespace(choices=[SimpleNamespace(text='{"thought": "x", "action": {"type": "finish", "message": "ok"}}')])
    fake, _, _, completions = fake_openai(
        chat=FakeEndpoint(result=empty_chat),
        completions=FakeEndpoint(result=completion),
    )
    client = make_client(fake)

    output = await next_step(client)

    assert output.action.type == "finish"
    assert client.mode_hint == "completions"
    assert "Return JSON only." in completions.calls[0]["prompt"]


@pytest.mark.asyncio
async def test_preferred_mode_seeds_hint():
    fake, chat, responses, _ = fake_openai(responses=FakeEndpoint(result=responses_finish()))
    client = make_client(fake, preferred_mode="responses")

    await next_step(client)

    assert chat.calls == []
    assert len(responses.calls) == 1


@pytest.mark.asyncio
async def test_malformed_tool_arguments_degrade_to_wait():
    chat_response = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(
            tool_calls=[SimpleNamespace(function=SimpleNamespace(name="tap", arguments="{not json"))],
            content=None,
        ))]
    )
    fake, chat, responses, completions = fake_openai(chat=FakeEndpoint(result=chat_response))
    client = make_client(fake)

    output = await next_step(client)

    assert output.action.type == "wait"
    assert output.action.reason == "invalid tool arguments"
    # the chat backend answered, so no other convention is tried
    assert client.mode_hint == "chat"
    assert responses.calls == []
    assert completions.calls == []
