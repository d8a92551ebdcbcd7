# mixin settings for the agent loop, model backends, human auth, workspace, etc.
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field
from pocket_pilot.config.model_profiles import ModelProfile, default_model_profiles

DEFAULT_STATE_DIR = Path.home() / ".pocket_pilot"

class AgentSettingsMixin(BaseModel):
    """
    Settings for the task step loop.
    """
    AGENT_MAX_STEPS: int = Field(default=50, description="Hard bound on loop iterations per task.")
    AGENT_LOOP_DELAY_MS: int = Field(default=1200, description="Sleep between device actions.")
    AGENT_PROGRESS_REPORT_INTERVAL: int = Field(default=1, description="Report progress every N steps.")
    AGENT_RETURN_HOME_ON_TASK_END: bool = True
    AGENT_DEVICE_SERIAL: Optional[str] = None
    AGENT_HISTORY_WINDOW: int = Field(default=8, description="Most recent history lines sent to the model.")
    # heuristic allowlist, vendor permission UIs may live elsewhere
    AGENT_PERMISSION_DIALOG_PACKAGES: list[str] = Field(
        default_factory=lambda: [
            "com.android.permissioncontroller",
            "com.google.android.permissioncontroller",
            "com.android.packageinstaller",
            "com.google.android.packageinstaller",
        ]
    )
    AGENT_AUTO_ESCALATION_COOLDOWN_SEC: float = 15.0

class ModelSettingsMixin(BaseModel):
    """
    Model profiles keyed by name. MODEL_PROFILES may be given as JSON in the env file.
    """
    DEFAULT_MODEL_PROFILE: str = "gpt-5.2-codex"
    MODEL_PROFILES: dict[str, ModelProfile] = Field(default_factory=default_model_profiles)

class HumanAuthSettingsMixin(BaseModel):
    """
    Settings for the human authorization bridge and its web relay.
    """
    HUMAN_AUTH_ENABLED: bool = False
    HUMAN_AUTH_RELAY_BASE_URL: str = ""
    HUMAN_AUTH_PUBLIC_BASE_URL: str = ""
    HUMAN_AUTH_API_KEY: str = ""
    HUMAN_AUTH_API_KEY_ENV: str = "POCKET_PILOT_HUMAN_AUTH_KEY"
    # Bearer key for the task and operator routes, falls back to the human auth key when empty
    OPERATOR_API_KEY: str = ""
    HUMAN_AUTH_REQUEST_TIMEOUT_SEC: int = 300
    HUMAN_AUTH_MIN_TIMEOUT_SEC: int = 30
    HUMAN_AUTH_MAX_TIMEOUT_SEC: int = 1800
    HUMAN_AUTH_POLL_INTERVAL_MS: int = 2000
    # serve the relay routes from this service and point the bridge at it
    HUMAN_AUTH_LOCAL_RELAY_ENABLED: bool = True
    HUMAN_AUTH_LOCAL_RELAY_URL: str = "http://127.0.0.1:8000"
    HUMAN_AUTH_RELAY_STATE_FILE: Path = DEFAULT_STATE_DIR / "human-auth-relay" / "requests.json"
    HUMAN_AUTH_ARTIFACT_DIR: Path = DEFAULT_STATE_DIR / "human-auth-artifacts"

class WorkspaceSettingsMixin(BaseModel):
    """
    Where session logs and daily memory are written.
    """
    WORKSPACE_DIR: Path = DEFAULT_STATE_DIR / "workspace"

class ScriptExecutorSettingsMixin(BaseModel):
    """
    Guard rails for the run_script action.
    """
    SCRIPT_EXECUTOR_ENABLED: bool = True
    SCRIPT_EXECUTOR_TIMEOUT_SEC: int = 60
    SCRIPT_EXECUTOR_MAX_OUTPUT_CHARS: int = 6000
    SCRIPT_EXECUTOR_ALLOWED_COMMANDS: list[str] = Field(
        default_factory=lambda: [
            "adb", "am", "pm", "input", "echo", "pwd", "ls", "cat",
            "grep", "rg", "sed", "awk", "bash", "sh", "python3",
        ]
    )
