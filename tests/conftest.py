# shared fakes for the agent runtime, human auth and route tests

import asyncio
from pathlib import Path
from typing import Optional

import pytest

from pocket_pilot.agent_service.common.types.actions import AgentAction, WaitAction
from pocket_pilot.agent_service.common.types.agent_outputs import ModelStepOutput
from pocket_pilot.common.services.device_control.protocols import DeviceControllerError, ScreenSnapshot
from pocket_pilot.common.services.script_executor.script_executor import ScriptExecutor
from pocket_pilot.config.app_config import ServiceSettings
from pocket_pilot.config.model_profiles import ModelProfile
from pocket_pilot.human_auth.types import HumanAuthDecision, HumanAuthRequest
from pocket_pilot.memory.workspace import WorkspaceStore
from pocket_pilot.agent_service.core_agent.agent_runtime import AgentRuntime

PERMISSION_APP = "com.android.permissioncontroller"

def make_snapshot(current_app: str = "com.example.app", scale: float = 1.0) -> ScreenSnapshot:
    return ScreenSnapshot(
        device_id="emulator-5554",
        current_app=current_app,
        width=1080,
        height=2400,
        image_bytes=b"\x89PNG fake",
        scaled_width=round(1080 / scale),
        scaled_height=round(2400 / scale),
        scale_x=scale,
        scale_y=scale,
    )

class FakeDevice:
    def __init__(self, apps: Optional[list[str]] = None, scale: float = 1.0):
        # current app per snapshot, the last one repeats
        self.apps = apps or ["com.example.app"]
        self.scale = scale
        self.snapshots = 0
        self.executed: list[AgentAction] = []
        self.fail_types: set[str] = set()
        self.snapshot_error: Optional[Exception] = None
        self.ui_xml = ""
        self.geo: list[tuple[float, float]] = []
        self.pushed: list[str] = []

    async def capture_snapshot(self, device_id=None, model_name=""):
        # real devices always suspend here
        await asyncio.sleep(0)
        if self.snapshot_error is not None:
            raise self.snapshot_error
        app =self.apps[min(self.snapshots, len(self.apps) - 1)]
        self.snapshots += 1
        return make_snapshot(current_app=app, scale=self.scale)

    async def execute(self, action, device_id=None):
        self.executed.append(action)
        if action.type in self.fail_types:
            raise DeviceControllerError(f"{action.type} exploded")
        return f"did {action.type}"

    async def dump_ui_hierarchy(self, device_id=None):
        return self.ui_xml

    async def set_geo_location(self, latitude, longitude, device_id=None):
        self.geo.append((latitude, longitude))
        return f"geo fix set to lat={latitude} lon={longitude}"

    async def push_file(self, local_path, device_id=None):
        self.pushed.append(local_path)
        return f"/sdcard/Pictures/{Path(local_path).name}"

    def executed_types(self) -> list[str]:
        return [action.type for action in self.executed]

class ScriptedModel:
    """Returns the given outputs in order, then waits forever (one wait per step)."""
    def __init__(self, outputs: list[ModelStepOutput]):
        self.outputs = list(outputs)
        self.calls = 0
        self.histories: list[list[str]] = []

    async def next_step(self, system_prompt, task, step, snapshot, history):
        self.calls += 1
        self.histories.append(list(history))
        if self.outputs:
            output = self.outputs.pop(0)
            if isinstance(output, Exception):
                raise output
            return output
        return ModelStepOutput(thought="keep waiting", action=WaitAction(duration_ms=100))

class FakeChannel:
    def __init__(self, status: str = "approved", message: str = "ok", artifact=None, gate: Optional[asyncio.Event] = None):
        self.status = status
        self.message = message
        self.artifact = artifact
        self.gate = gate
        self.requests: list[HumanAuthRequest] = []

    async def request(self, request):
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        return HumanAuthDecision(
            request_id=request.request_id,
            status=self.status,
            message=self.message,
            artifact=self.artifact,
        )

class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

@pytest.fixture()
def settings(tmp_path):
    return ServiceSettings(
        WORKSPACE_DIR=tmp_path / "workspace",
        AGENT_MAX_STEPS=10,
        AGENT_LOOP_DELAY_MS=0,
        DEFAULT_MODEL_PROFILE="test",
        MODEL_PROFILES={"test": ModelProfile(model="test-model", api_key="test-key")},
        HUMAN_AUTH_ARTIFACT_DIR=tmp_path / "artifacts",
        HUMAN_AUTH_RELAY_STATE_FILE=tmp_path / "relay" / "requests.json",
    )

@pytest.fixture()
def workspace(settings):
    return WorkspaceStore(settings.WORKSPACE_DIR)

@pytest.fixture()
def script_executor(settings):
    return ScriptExecutor(
        settings.WORKSPACE_DIR,
        allowed_commands=["echo", "sleep", "cat", "ls"],
        timeout_sec=5,
    )

@pytest.fixture()
def make_runtime(settings, workspace, script_executor):
    """Build a runtime around a fake device and a scripted model; sleeps are recorded, not awaited."""
    def _make(model: ScriptedModel, device: Optional[FakeDevice] = None, channel=None, clock=None, **overrides):
        for key, value in overrides.items():
            setattr(settings, key, value)
        sleeps: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            sleeps.append(seconds)
            await asyncio.sleep(0)

        runtime = AgentRuntime(
            settings=settings,
            device=device or FakeDevice(),
            workspace=workspace,
            script_executor=script_executor,
            human_auth_channel=channel,
            model_client_factory=lambda profile, api_key, history_window=8: model,
            sleep=fake_sleep,
            clock=clock or FakeClock(),
        )
        runtime.recorded_sleeps = sleeps
        return runtime
    return _make

@pytest.fixture()
def fake_device():
    return FakeDevice()

@pytest.fixture()
def scripted_model():
    return ScriptedModel

@pytest.fixture()
def fake_channel():
    return FakeChannel
