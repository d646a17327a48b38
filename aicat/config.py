"""
Configuration management for aicat.

Loads settings from environment variables (AICAT_*), an optional .env file,
and an optional YAML config file. Environment variables win over YAML.
"""

import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_PRIMARY_MODELS = [
    "gpt-5",
    "gpt-5-mini",
    "gpt-4o",
    "gpt-4o-mini",
]

DEFAULT_BACKUP_MODELS = [
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gpt-4",
]


class AgentConfig(BaseSettings):
    """Configuration for the aicat gateway and orchestration core."""

    model_config = SettingsConfigDict(
        env_prefix="AICAT_",
        env_file=".env",
        extra="ignore",
    )

    # Persona and command surface
    prefix: str = Field(default="xy", description="Command prefix that addresses the bot")
    enable_reply: bool = Field(default=True, description="Answer prefixed instructions at all")
    bot_name: str = Field(default="Xiyu", description="Display name used in the persona prompt")
    confirm_message: str = Field(default="Xiyu got it, nya~", description="Acknowledgement text")
    send_confirmation: bool = Field(default=True, description="Send the acknowledgement before a run")
    owner_ids: List[str] = Field(default_factory=list, description="Privileged owner user ids")
    owner_code_ttl_seconds: float = Field(default=300.0, description="Lifetime of an owner verification code")

    # Chat transport
    api_url: str = Field(
        default="https://api.openai.com/v1/chat/completions",
        description="OpenAI-compatible chat completions endpoint",
    )
    api_key: str = Field(default="", description="Bearer token for the completions endpoint")
    request_timeout_seconds: float = Field(default=60.0, description="Hard timeout per completion call")
    default_model: str = Field(default="gpt-5", description="Model selected at startup")
    primary_models: List[str] = Field(default_factory=lambda: list(DEFAULT_PRIMARY_MODELS))
    backup_models: List[str] = Field(default_factory=lambda: list(DEFAULT_BACKUP_MODELS))

    # Orchestration limits
    max_rounds: int = Field(default=10, description="Hard cap on transport rounds per instruction")
    max_retries: int = Field(default=2, description="Failover retries per orchestration run")

    # Conversation context
    context_max_turns: int = Field(default=10, ge=1, description="User/assistant pairs kept per conversation")
    context_expire_seconds: int = Field(default=600, description="Idle time before a context expires")
    context_cleanup_interval_seconds: int = Field(default=120, description="Sweep interval for expired contexts")

    # Fire-and-forget confirmation
    confirmation_timeout_seconds: float = Field(default=3.0, description="Wait for a confirming notice")
    early_event_seconds: float = Field(default=2.0, description="Keep unmatched notices this long")
    late_notice_seconds: float = Field(default=10.0, description="Drop notices for operations resolved this recently")

    # OneBot host
    onebot_url: str = Field(default="http://127.0.0.1:3000", description="OneBot HTTP API base URL")
    onebot_token: str = Field(default="", description="OneBot access token")
    host_timeout_seconds: float = Field(default=15.0, description="Timeout for host action calls")

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Directory for JSON stores")
    archive_max_messages: int = Field(default=5000, description="Messages kept in the in-memory archive")
    archive_retention_days: int = Field(default=7, description="Archive retention window")

    # Replies
    long_message_threshold: int = Field(default=300, description="Longer replies are sent as forwards")
    forward_chunk_size: int = Field(default=600, description="Max characters per forwarded node")
    dedup_window_seconds: float = Field(default=3.0, description="Identical replies inside this window are dropped")

    # Web tools
    web_timeout_seconds: float = Field(default=15.0, description="Timeout for web_search / fetch_url")

    # Service
    host: str = Field(default="0.0.0.0", description="Gateway bind host")
    port: int = Field(default=8080, description="Gateway bind port")
    log_dir: Optional[str] = Field(default=None, description="Directory for rotating log files")
    debug: bool = Field(default=False, description="Verbose DEBUG logging")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # YAML values arrive as init kwargs; let the environment override them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def model_list(self) -> List[str]:
        """Primary models followed by backups, duplicates removed."""
        seen = []
        for model in [*self.primary_models, *self.backup_models]:
            if model not in seen:
                seen.append(model)
        return seen

    def is_owner(self, user_id: str) -> bool:
        return str(user_id) in {str(o) for o in self.owner_ids}


def load_yaml_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from YAML file if it exists."""
    if config_path is None:
        env_path = os.getenv("AICAT_CONFIG_FILE")
        config_path = Path(env_path) if env_path else Path("config") / "aicat.yaml"

    if config_path.exists():
        with open(config_path, encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    return {}


_config: Optional[AgentConfig] = None


def get_config() -> AgentConfig:
    """Get the singleton configuration instance."""
    global _config
    if _config is None:
        _config = AgentConfig(**load_yaml_config())
    return _config


def reset_config() -> None:
    """Reset config singleton (useful for testing)."""
    global _config
    _config = None
