"""Configuration management for hostguard."""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from hostguard.errors import ConfigurationError


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ThresholdConfig(_Section):
    """Metric thresholds, in percent (load is per logical CPU)."""
    cpu: float = Field(default=80.0, gt=0, le=100)
    memory: float = Field(default=85.0, gt=0, le=100)
    disk: float = Field(default=90.0, gt=0, le=100)
    load_per_cpu: float = Field(default=2.0, gt=0)


class PipelineConfig(_Section):
    """Pipeline orchestration settings."""
    dry_run: bool = False
    use_ai: bool = True
    normal_threshold: int = Field(default=3, ge=1)
    cooldown_seconds: int = Field(default=300, ge=0)


class StatusReportConfig(_Section):
    """Status report settings."""
    enabled: bool = False
    interval_minutes: int = Field(default=60, ge=1)
    report_on_error: bool = False


class RemediationConfig(_Section):
    """Remediation executor settings."""
    timeout_seconds: float = Field(default=300.0, gt=0)
    dry_run: bool = False
    kill_grace_seconds: float = Field(default=2.0, ge=0)


class RetryConfig(_Section):
    """Backoff settings for calls to external services."""
    max_attempts: int = Field(default=4, ge=1)
    initial_delay: float = Field(default=2.0, ge=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, ge=0)


class StateConfig(_Section):
    """Local state storage."""
    state_dir: str = "/var/lib/hostguard"
    lock_timeout_seconds: float = Field(default=30.0, ge=0)

    @property
    def path(self) -> Path:
        return Path(self.state_dir).expanduser()


class ScheduleConfig(_Section):
    """Trigger loop intervals. Zero or negative disables a loop."""
    periodic_check_seconds: int = 300
    alert_poll_seconds: int = 60
    periodic_lock_timeout_seconds: float = 10.0


class NotificationConfig(_Section):
    """Notification channels."""
    slack_webhook_url: str = ""
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    timeout_seconds: float = 10.0


class GitHubConfig(_Section):
    """Issue tracker settings."""
    repo: str = ""
    token: str = ""
    api_url: str = "https://api.github.com"
    labels: List[str] = Field(default_factory=lambda: ["hostguard", "auto-generated"])
    status_issue_title: str = "hostguard status report"
    timeout_seconds: float = 30.0

    @property
    def enabled(self) -> bool:
        return bool(self.repo and self.token)


class AIConfig(_Section):
    """OpenAI-compatible diagnosis endpoint."""
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    timeout: int = 60
    max_tokens: int = 2048
    temperature: float = 0.2


class AlertFeedConfig(_Section):
    """External alert feed polled by the alert loop."""
    url: str = ""
    token: str = ""
    source_name: str = "feed"
    timeout_seconds: float = 30.0


class LoggingConfig(_Section):
    """Logging configuration."""
    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    audit_log_path: str = "/var/log/hostguard/audit.log"


class ServerSettings(_Section):
    """HTTP server settings."""
    host: str = "127.0.0.1"
    port: int = 8080


class ShutdownConfig(_Section):
    """Graceful shutdown budget."""
    timeout_seconds: float = Field(default=30.0, gt=0)
    child_grace_seconds: float = Field(default=5.0, ge=0)


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="HOSTGUARD_",
        env_nested_delimiter="__",
        frozen=True,
    )

    hostname: str = ""

    thresholds: ThresholdConfig = Field(default_factory=ThresholdConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    status_report: StatusReportConfig = Field(default_factory=StatusReportConfig)
    remediation: RemediationConfig = Field(default_factory=RemediationConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    alert_feed: AlertFeedConfig = Field(default_factory=AlertFeedConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerSettings = Field(default_factory=ServerSettings)
    shutdown: ShutdownConfig = Field(default_factory=ShutdownConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from the YAML file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def ai_enabled(self) -> bool:
        return self.pipeline.use_ai and bool(self.ai.api_key)


def load_yaml_config(path: str) -> Dict[str, Any]:
    """Load configuration from YAML file."""
    path = Path(path).expanduser()
    if not path.exists():
        return {}

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level")
    return data


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Load settings from configuration file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (HOSTGUARD_SECTION__KEY)
    2. Config file
    3. Default values

    Raises:
        ConfigurationError: if the file or any value is invalid
    """
    if config_path is None:
        config_path = os.environ.get("HOSTGUARD_CONFIG_PATH", "config/config.yaml")

    yaml_config = load_yaml_config(config_path)

    try:
        return Settings(**yaml_config)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}: {e}") from e


# Global settings instance, used by the application entry point only
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Reset the global settings instance (for testing)."""
    global _settings
    _settings = None
