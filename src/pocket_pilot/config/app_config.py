# main app settings/configs
import os
from pathlib import Path
from pydantic_settings import BaseSettings, SettingsConfigDict
from pocket_pilot.config.settings_mixins import (
    AgentSettingsMixin,
    ModelSettingsMixin,
    HumanAuthSettingsMixin,
    WorkspaceSettingsMixin,
    ScriptExecutorSettingsMixin,
)
from pocket_pilot.config.model_profiles import ModelProfile
from pocket_pilot.common.logging.logger import logger
from functools import lru_cache

# Determine which environment we're in. Default to 'dev'.
APP_ENV = os.getenv("APP_ENV", "dev")

# This file is in pocket_pilot/config/, so we go up three levels to the project root
# NOTE: the .env file names must match the APP_ENV config.
SERVICE_ROOT = Path(__file__).resolve().parents[3]
env_file_path = SERVICE_ROOT / f".env.{APP_ENV}"
logger.info(f"APP_ENV: {APP_ENV}")

class DefaultSettings(BaseSettings):
    """
    The baseline, default settings that govern common functionalities.
    Passed in last to set low priority (allows overrides)
    """
    model_config = SettingsConfigDict(env_file_encoding="utf-8", extra="ignore")

    APP_ENV: str = os.getenv("APP_ENV", "dev")

class ServiceSettings(
    AgentSettingsMixin,
    ModelSettingsMixin,
    HumanAuthSettingsMixin,
    WorkspaceSettingsMixin,
    ScriptExecutorSettingsMixin,
    DefaultSettings # passed in last to set low priority
):
    """
    The main service settings.
    Setting mix-ins are passed in for different components of the agent.
    """

    # FastAPI docs settings
    INCLUDE_DOCS: bool = False # by default disable, only enable in dev

    model_config = SettingsConfigDict(
        env_file=env_file_path, env_file_encoding="utf-8", extra="ignore"
    )

    def get_model_profile(self, name: str | None = None) -> ModelProfile:
        key = name or self.DEFAULT_MODEL_PROFILE
        profile = self.MODEL_PROFILES.get(key)
        if profile is None:
            raise KeyError(f"Unknown model profile '{key}'. Available: {sorted(self.MODEL_PROFILES)}")
        return profile

    def resolve_human_auth_api_key(self) -> str:
        if self.HUMAN_AUTH_API_KEY.strip():
            return self.HUMAN_AUTH_API_KEY.strip()
        if self.HUMAN_AUTH_API_KEY_ENV.strip():
            return os.getenv(self.HUMAN_AUTH_API_KEY_ENV, "").strip()
        return ""

    def resolve_operator_api_key(self) -> str:
        return self.OPERATOR_API_KEY.strip() or self.resolve_human_auth_api_key()

# use lru cache to return a cached instance of service settings
# NOTE: makes settings accessible from anywhere in the app, without being request-scope
@lru_cache()
def get_service_settings() -> ServiceSettings:
    return ServiceSettings()
