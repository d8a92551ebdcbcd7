# model profile definitions, one per configured LLM backend
import os
from enum import Enum
from typing import Literal, Optional
from pydantic import BaseModel, Field

class StepModelProvider(str, Enum):
    """Which client family talks to the backend."""
    OPENAI_COMPATIBLE = "openai_compatible" # chat / responses / completions conventions
    GOOGLE_GENAI = "google_genai" # native Gemini function calling

EndpointMode = Literal["chat", "responses", "completions"]

class ModelProfile(BaseModel):
    """
    A named model backend the agent can drive a task with.
    """
    provider: StepModelProvider = StepModelProvider.OPENAI_COMPATIBLE
    base_url: str = "https://api.openai.com/v1"
    model: str
    api_key: str = ""
    api_key_env: str = "OPENAI_API_KEY"
    max_tokens: int = 4096
    reasoning_effort: Optional[Literal["low", "medium", "high", "xhigh"]] = None
    temperature: Optional[float] = None
    use_tools: bool = Field(default=True, description="Deliver actions as tool calls when the backend supports it.")
    preferred_mode: Optional[EndpointMode] = Field(default=None, description="Initial mode-hint for the endpoint client.")

    def resolve_api_key(self) -> str:
        """Profile key wins over the env var. Empty string when neither is set."""
        if self.api_key.strip():
            return self.api_key.strip()
        if self.api_key_env.strip():
            return os.getenv(self.api_key_env, "").strip()
        return ""

def default_model_profiles() -> dict[str, ModelProfile]:
    return {
        "gpt-5.2-codex": ModelProfile(
            model="gpt-5.2-codex",
            reasoning_effort="medium",
        ),
        "claude-sonnet-4.6": ModelProfile(
            base_url="https://openrouter.ai/api/v1",
            model="claude-sonnet-4.6",
            api_key_env="OPENROUTER_API_KEY",
            reasoning_effort="medium",
        ),
        "gemini-2.5-flash": ModelProfile(
            provider=StepModelProvider.GOOGLE_GENAI,
            base_url="",
            model="gemini-2.5-flash",
            api_key_env="GOOGLE_GENAI_API_KEY",
        ),
        "autoglm-phone": ModelProfile(
            base_url="https://api.z.ai/api/paas/v4",
            model="autoglm-phone-multilingual",
            api_key_env="AUTOGLM_API_KEY",
            max_tokens=3000,
            use_tools=False,
        ),
    }
