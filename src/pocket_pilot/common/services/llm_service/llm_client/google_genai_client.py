# step model client for Google's GenAI (Gemini) API
# NOTE: Gemini has a single calling convention, so there is no mode hint here

from typing import Optional
# use tenacity to retry when desired
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed, retry_if_exception_type

from google import genai # officially recommended import path
from google.genai import types
from google.genai import errors as genai_errors

from pocket_pilot.agent_service.common.system_prompts.device_agent_prompts import DeviceAgentPrompts
from pocket_pilot.agent_service.common.types.agent_outputs import ModelStepOutput
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.device_control.protocols import ScreenSnapshot
from pocket_pilot.common.services.llm_service.tool_calling.device_action_tools import GEMINI_FUNCTION_DECLARATIONS
from pocket_pilot.config.model_profiles import ModelProfile, StepModelProvider
from .output_parsing import parse_model_text, parse_tool_call
from .protocols import ModelEndpointError, ModelEndpointExhaustedError, ProvidesProviderInfo, StepModelProtocol

class AsyncGenAIStepClient(StepModelProtocol, ProvidesProviderInfo):
    def __init__(
        self,
        profile: ModelProfile,
        *,
        api_key: str,
        history_window: int = 8,
        retry_attempts: int = 2,
        retry_wait: float = 0.5,
        client: Optional[genai.Client] = None,
    ):
        # NOTE: this uses the public Gemini API with an API key, not Vertex AI.
        self.client = client or genai.Client(api_key=api_key)
        self.profile = profile
        self.history_window = history_window
        # Provider metadata for reporting
        self.provider = StepModelProvider.GOOGLE_GENAI
        self.model = profile.model
        self.retryer = AsyncRetrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_fixed(retry_wait),
            retry=retry_if_exception_type(genai_errors.ServerError), # 5xx only, client errors won't fix themselves
            reraise=True,
        )

    def _build_config(self, system_prompt: str) -> types.GenerateContentConfig:
        if not self.profile.use_tools:
            return types.GenerateContentConfig(
                system_instruction=f"{system_prompt}\n{DeviceAgentPrompts.json_output_instructions}",
                max_output_tokens=self.profile.max_tokens,
                temperature=self.profile.temperature,
            )

        # wrap function declarations in tool and config objects
        tools = types.Tool(function_declarations=GEMINI_FUNCTION_DECLARATIONS) # type: ignore
        return types.GenerateContentConfig(
            system_instruction=system_prompt,
            tools=[tools],
            # actions come back as function calls, never auto-executed
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
            max_output_tokens=self.profile.max_tokens,
            temperature=self.profile.temperature,
        )

    async def _generate(self, system_prompt: str, user_text: str, snapshot: ScreenSnapshot) -> ModelStepOutput:
        contents = [
            types.Content(
                role="user",
                parts=[
                    types.Part(text=user_text),
                    types.Part.from_bytes(data=snapshot.image_bytes, mime_type="image/png"),
                ],
            )
        ]
        resp = await self.client.aio.models.generate_content(
            model=self.profile.model,
            contents=contents, # type: ignore
            config=self._build_config(system_prompt),
        )

        function_calls = getattr(resp, "function_calls", None) or []
        if function_calls and function_calls[0].name:
            call = function_calls[0]
            logger.debug(f"[model] gemini called '{call.name}' with args: {call.args}")
            return parse_tool_call(call.name, dict(call.args) if call.args else {})

        text = (getattr(resp, "text", None) or "").strip()
        if not text:
            raise ModelEndpointError("Gemini returned neither a function call nor text.")
        return parse_model_text(text)

    async def next_step(
        self,
        system_prompt: str,
        task: str,
        step: int,
        snapshot: ScreenSnapshot,
        history: list[str],
    ) -> ModelStepOutput:
        user_text = DeviceAgentPrompts.build_user_prompt(task, step, snapshot, history, self.history_window)
        try:
            async for attempt in self.retryer:
                with attempt: # let tenacity see context of each attempt instead of swallowing until the last
                    return await self._generate(system_prompt, user_text, snapshot)
        except Exception as e:
            raise ModelEndpointExhaustedError([f"gemini: {e}"]) from e
        raise ModelEndpointError("Gemini request yielded no attempts.")
