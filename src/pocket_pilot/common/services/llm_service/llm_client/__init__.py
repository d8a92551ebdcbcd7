# step model clients: OpenAI-compatible (chat / responses / completions) and Google GenAI

from pocket_pilot.common.services.llm_service.llm_client.dispatcher import create_step_model_client
from pocket_pilot.common.services.llm_service.llm_client.protocols import (
    StepModelProtocol,
    ModelEndpointError,
    ModelEndpointExhaustedError,
)

# NOTE: only supports the generic wrappers here
__all__ = ["create_step_model_client", "StepModelProtocol", "ModelEndpointError", "ModelEndpointExhaustedError"]
