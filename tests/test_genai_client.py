from types import SimpleNamespace

import pytest

from conftest import make_snapshot
from pocket_pilot.common.services.llm_service.llm_client.dispatcher import create_step_model_client
from pocket_pilot.common.services.llm_service.llm_client.google_genai_client import AsyncGenAIStepClient
from pocket_pilot.common.services.llm_service.llm_client.openai_compatible_client import AsyncOpenAICompatibleStepClient
from pocket_pilot.common.services.llm_service.llm_client.protocols import ModelEndpointExhaustedError
from pocket_pilot.config.model_profiles import ModelProfile, StepModelProvider


class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.response


def make_client(models, **profile_overrides):
    profile = ModelProfile(provider=StepModelProvider.GOOGLE_GENAI, model="gemini-test", **profile_overrides)
    fake = SimpleNamespace(aio=SimpleNamespace(models=models))
    return AsyncGenAIStepClient(profile, api_key="k", client=fake, retry_wait=0)


async def next_step(client):
    return await client.next_step("system", "task", 1, make_snapshot(), [])


@pytest.mark.asyncio
async def test_function_call_becomes_action():
    call = SimpleNamespace(name="tap", args={"thought": "press it", "x": 12, "y": 34})
    models = FakeModels(response=SimpleNamespace(function_calls=[call], text=None))

    output = await next_step(make_client(models))

    assert output.action.type == "tap"
    assert (output.action.x, output.action.y) == (12, 34)
    assert output.thought == "press it"
    assert models.calls[0]["model"] == "gemini-test"


@pytest.mark.asyncio
async def test_text_reply_without_tools():
    text = '{"thought": "done", "action": {"type": "finish", "message": "ok"}}'
    models = FakeModels(response=SimpleNamespace(function_calls=None, text=text))

    output = await next_step(make_client(models, use_tools=False))

    assert output.action.type == "finish"
    assert models.calls[0]["config"].tools is None


@pytest.mark.asyncio
async def test_errors_are_reported_as_exhausted():
    models = FakeModels(error=RuntimeError("quota"))

    with pytest.raises(ModelEndpointExhaustedError) as excinfo:
        await next_step(make_client(models))

    assert "gemini: quota" in str(excinfo.value)
    # non-server errors are not retried
    assert len(models.calls) == 1


def test_dispatcher_picks_client_family():
    gemini = create_step_model_client(
        ModelProfile(provider=StepModelProvider.GOOGLE_GENAI, model="gemini-test"), api_key="k"
    )
    openai_like = create_step_model_client(ModelProfile(model="gpt-test"), api_key="k")

    assert isinstance(gemini, AsyncGenAIStepClient)
    assert isinstance(openai_like, AsyncOpenAICompatibleStepClient)
