# protocols for step model clients

from typing import Protocol, runtime_checkable
from pocket_pilot.agent_service.common.types.agent_outputs import ModelStepOutput
from pocket_pilot.common.services.device_control.protocols import ScreenSnapshot
from pocket_pilot.config.model_profiles import StepModelProvider

class ModelEndpointError(RuntimeError):
    """A single calling convention failed or returned nothing usable."""

class ModelEndpointExhaustedError(ModelEndpointError):
    """Every calling convention failed. Carries the per-mode errors."""
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"All model endpoints failed. {' | '.join(errors)}")

# Ensures that all step model clients implement this protocol
class StepModelProtocol(Protocol):
    async def next_step(
        self,
        system_prompt: str,
        task: str,
        step: int,
        snapshot: ScreenSnapshot,
        history: list[str],
    ) -> ModelStepOutput: ...

@runtime_checkable
class ProvidesProviderInfo(Protocol):
    """Optional protocol for exposing provider/model metadata for reporting."""
    provider: StepModelProvider
    model: str
