# dispatcher for step model clients, picks the client family from the model profile

from pocket_pilot.config.model_profiles import ModelProfile, StepModelProvider
from .protocols import StepModelProtocol
from .openai_compatible_client import AsyncOpenAICompatibleStepClient
from .google_genai_client import AsyncGenAIStepClient

def create_step_model_client(
    profile: ModelProfile,
    api_key: str,
    history_window: int = 8,
) -> StepModelProtocol:
    """
    Build a fresh client for one task.
    NOTE: a new instance per task keeps the mode hint from leaking across tasks/profiles.
    """
    if profile.provider == StepModelProvider.GOOGLE_GENAI:
        return AsyncGenAIStepClient(profile, api_key=api_key, history_window=history_window)
    return AsyncOpenAICompatibleStepClient(profile, api_key=api_key, history_window=history_window)
