# step model client for OpenAI-compatible backends
# NOTE: a backend may only speak one of chat / responses / completions, so every call walks a fallback list
# starting from the mode that worked last time (the mode hint, private to this instance)

from typing import Any, Optional
from openai import AsyncOpenAI, APIConnectionError, APITimeoutError, RateLimitError
# use tenacity to retry transient transport failures within a single mode
from tenacity import AsyncRetrying, stop_after_attempt, wait_fixed, retry_if_exception_type

from pocket_pilot.agent_service.common.system_prompts.device_agent_prompts import DeviceAgentPrompts
from pocket_pilot.agent_service.common.types.agent_outputs import ModelStepOutput
from pocket_pilot.common.logging.logger import logger
from pocket_pilot.common.services.device_control.protocols import ScreenSnapshot
from pocket_pilot.common.services.llm_service.tool_calling.device_action_tools import CHAT_TOOLS, RESPONSES_TOOLS
from pocket_pilot.config.model_profiles import EndpointMode, ModelProfile, StepModelProvider
from .output_parsing import (
    parse_model_text,
    parse_tool_call,
    read_chat_tool_call,
    read_content,
    read_response_output_text,
    read_responses_tool_call,
)
from .protocols import ModelEndpointError, ModelEndpointExhaustedError, ProvidesProviderInfo, StepModelProtocol

FALLBACK_ORDER: tuple[EndpointMode, ...] = ("chat", "responses", "completions")
TRANSIENT_ERRORS = (APIConnectionError, APITimeoutError, RateLimitError)

class AsyncOpenAICompatibleStepClient(StepModelProtocol, ProvidesProviderInfo):
    def __init__(
        self,
        profile: ModelProfile,
        *,
        api_key: str,
        history_window: int = 8,
        retry_attempts: int = 2,
        retry_wait: float = 0.5,
        client: Optional[AsyncOpenAI] = None,
    ):
        # one shared async client per task, reuses the connection pool across steps
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=profile.base_url or None)
        self.profile = profile
        self.history_window = history_window
        # Provider metadata for reporting
        self.provider = StepModelProvider.OPENAI_COMPATIBLE
        self.model = profile.model
        self._mode_hint: EndpointMode = profile.preferred_mode or "chat"
        self.retryer = AsyncRetrying(
            stop=stop_after_attempt(retry_attempts),
            wait=wait_fixed(retry_wait),
            retry=retry_if_exception_type(TRANSIENT_ERRORS), # only retry transport hiccups, not API rejections
            reraise=True,
        )

    @property
    def mode_hint(self) -> EndpointMode:
        return self._mode_hint

    def mode_order(self) -> list[EndpointMode]:
        """Hinted mode first, then the rest in fixed fallback order."""
        return [self._mode_hint] + [mode for mode in FALLBACK_ORDER if mode != self._mode_hint]

    def _system_prompt(self, system_prompt: str, with_tools: bool) -> str:
        if with_tools:
            return system_prompt
        return f"{system_prompt}\n{DeviceAgentPrompts.json_output_instructions}"

    def _build_chat_request(self, system_prompt: str, user_text: str, snapshot: ScreenSnapshot) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.profile.model,
            "max_tokens": self.profile.max_tokens,
            "messages": [
                {"role": "system", "content": self._system_prompt(system_prompt, self.profile.use_tools)},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": user_text},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/png;base64,{snapshot.screenshot_base64}"},
                        },
                    ],
                },
            ],
        }
        if self.profile.use_tools:
            request["tools"] = CHAT_TOOLS
            request["tool_choice"] = "auto"
        if self.profile.reasoning_effort:
            request["reasoning_effort"] = self.profile.reasoning_effort
        if self.profile.temperature is not None:
            request["temperature"] = self.profile.temperature
        return request

    def _build_responses_request(self, system_prompt: str, user_text: str, snapshot: ScreenSnapshot) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.profile.model,
            "max_output_tokens": self.profile.max_tokens,
            "input": [
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": self._system_prompt(system_prompt, self.profile.use_tools)}],
                },
                {
                    "role": "user",
                    "content": [
                        {"type": "input_text", "text": user_text},
                        {"type": "input_image", "image_url": f"data:image/png;base64,{snapshot.screenshot_base64}"},
                    ],
                },
            ],
        }
        if self.profile.use_tools:
            request["tools"] = RESPONSES_TOOLS
        if self.profile.reasoning_effort:
            request["reasoning"] = {"effort": self.profile.reasoning_effort}
        if self.profile.temperature is not None:
            request["temperature"] = self.profile.temperature
        return request

    def _build_completions_request(self, system_prompt: str, user_text: str) -> dict[str, Any]:
        # bare completions never carry tools or images
        request: dict[str, Any] = {
            "model": self.profile.model,
            "max_tokens": self.profile.max_tokens,
            "prompt": f"{self._system_prompt(system_prompt, False)}\n\n{user_text}\n\nReturn JSON only.",
        }
        if self.profile.temperature is not None:
            request["temperature"] = self.profile.temperature
        return request

    async def _request_by_mode(
        self,
        mode: EndpointMode,
        system_prompt: str,
        user_text: str,
        snapshot: ScreenSnapshot,
    ) -> ModelStepOutput:
        if mode == "chat":
            resp = await self.client.chat.completions.create(
                **self._build_chat_request(system_prompt, user_text, snapshot)
            )
            choices = getattr(resp, "choices", None) or []
            message = choices[0].message if choices else None
            tool_call = read_chat_tool_call(message)
            if tool_call is not None:
                return parse_tool_call(*tool_call)
            text = read_content(getattr(message, "content", None)).strip()
            if not text:
                raise ModelEndpointError("Chat API returned empty output.")
            return parse_model_text(text)

        if mode == "responses":
            resp = await self.client.responses.create(
                **self._build_responses_request(system_prompt, user_text, snapshot)
            )
            tool_call = read_responses_tool_call(resp)
            if tool_call is not None:
                return parse_tool_call(*tool_call)
            text = read_response_output_text(resp)
            if not text:
                raise ModelEndpointError("Responses API returned empty text output.")
            return parse_model_text(text)

        resp = await self.client.completions.create(
            **self._build_completions_request(system_prompt, user_text)
        )
        choices = getattr(resp, "choices", None) or []
        text = (getattr(choices[0], "text", "") or "").strip() if choices else ""
        if not text:
            raise ModelEndpointError("Completions API returned empty text output.")
        return parse_model_text(text)

    async def _request_with_retry(
        self,
        mode: EndpointMode,
        system_prompt: str,
        user_text: str,
        snapshot: ScreenSnapshot,
    ) -> ModelStepOutput:
        async for attempt in self.retryer:
            with attempt: # let tenacity see context of each attempt instead of swallowing until the last
                return await self._request_by_mode(mode, system_prompt, user_text, snapshot)
        # NOTE: only reachable with a misconfigured retryer that yields no attempts
        raise ModelEndpointError(f"{mode} request yielded no attempts.")

    async def next_step(
        self,
        system_prompt: str,
        task: str,
        step: int,
        snapshot: ScreenSnapshot,
        history: list[str],
    ) -> ModelStepOutput:
        """
        Ask the backend for one (thought, action) decision.
        Tries the hinted mode first and falls through the others; raises only when all of them fail.
        """
        user_text = DeviceAgentPrompts.build_user_prompt(task, step, snapshot, history, self.history_window)
        errors: list[str] = []

        for mode in self.mode_order():
            try:
                output = await self._request_with_retry(mode, system_prompt, user_text, snapshot)
            except Exception as e:
                # collected, surfaced together if every mode fails
                logger.warning(f"[model] {self.profile.model} {mode} request failed: {e}")
                errors.append(f"{mode}: {e}")
                continue

            if self._mode_hint != mode:
                logger.info(f"[model] switched endpoint mode {self._mode_hint} -> {mode}")
                self._mode_hint = mode
            return output

        raise ModelEndpointExhaustedError(errors)
