"""Process-environment settings using pydantic-settings."""
from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class ToolchainSettings(BaseSettings):
    """Settings read from the environment of the build agent."""
    log_level: str = Field(default="info", validation_alias="LOG_LEVEL")
    android_home: str = Field(default="", validation_alias="ANDROID_HOME")
    android_sdk_root: str = Field(default="", validation_alias="ANDROID_SDK_ROOT")
    state_dir: str = Field(
        default=".android-pipeline", validation_alias="PIPELINE_STATE_DIR"
    )
    slack_webhook_url: str = Field(default="", validation_alias="SLACK_WEBHOOK_URL")
    smtp_host: str = Field(default="localhost", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=25, validation_alias="SMTP_PORT")
    email_from: str = Field(
        default="android-pipeline@localhost", validation_alias="EMAIL_FROM"
    )
    command_timeout: float = Field(
        default=0.0, validation_alias="PIPELINE_COMMAND_TIMEOUT"
    )

    model_config = {
        "populate_by_name": True,
        "extra": "ignore",
    }

    @property
    def sdk_root(self) -> str:
        """ANDROID_HOME, falling back to ANDROID_SDK_ROOT."""
        return self.android_home or self.android_sdk_root
