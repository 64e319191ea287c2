# src/storypulse/config/config.py
"""Configuration system for StoryPulse."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from storypulse.models.chat import UpstreamFlavor, detect_flavor


class _EnvSection(BaseModel):
    """Section model populated from environment variable names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UpstreamConfig(_EnvSection):
    """Upstream model provider settings."""

    url: str = Field(
        default="http://127.0.0.1:11434/v1/chat/completions",
        validation_alias="OLLAMA_URL",
    )
    default_model: str = Field(default="gpt-oss:20b", validation_alias="OLLAMA_MODEL")
    api_key: str = Field(default="", validation_alias="OLLAMA_API_KEY")
    # Seconds; applies to non-streaming calls only.
    timeout: float = Field(default=90.0, validation_alias="UPSTREAM_TIMEOUT")
    default_max_tokens: int = Field(default=600, validation_alias="DEFAULT_MAX_TOKENS")
    default_temperature: float = Field(
        default=0.6, validation_alias="DEFAULT_TEMPERATURE"
    )

    @property
    def flavor(self) -> UpstreamFlavor:
        """Wire flavor implied by ``url``."""
        return detect_flavor(self.url)


class ModelsConfig(_EnvSection):
    """Model behaviour classification settings."""

    stubborn_patterns: str = Field(
        default="gpt-oss", validation_alias="STUBBORN_MODEL_PATTERNS"
    )
    stubborn_temperature_ceiling: float = Field(
        default=0.4, validation_alias="STUBBORN_TEMPERATURE_CEILING"
    )

    @property
    def patterns(self) -> list[str]:
        return [p.strip() for p in self.stubborn_patterns.split(",") if p.strip()]


class ServerConfig(_EnvSection):
    """HTTP server settings."""

    host: str = Field(default="0.0.0.0", validation_alias="HOST")
    port: int = Field(default=4000, validation_alias="PORT")
    allowed_origins: str = Field(default="*", validation_alias="ALLOWED_ORIGINS")
    heartbeat_interval: float = Field(default=15.0, validation_alias="HEARTBEAT_INTERVAL")

    @property
    def origins(self) -> list[str]:
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()] or ["*"]


class ClientConfig(_EnvSection):
    """Settings for the world-update client."""

    api_base: str = Field(
        default="http://localhost:4000", validation_alias="STORYPULSE_API_BASE"
    )
    summary_limit: int = Field(default=5, validation_alias="WORLD_SUMMARY_LIMIT")
    retry_attempts: int = Field(default=1, validation_alias="CLIENT_RETRY_ATTEMPTS")
    timeout: float = Field(default=120.0, validation_alias="CLIENT_TIMEOUT")


class SystemConfig(_EnvSection):
    """System configuration settings."""

    log_level: str = Field(default="INFO", validation_alias="STORYPULSE_LOG_LEVEL")
    log_format: str = Field(default="", validation_alias="STORYPULSE_LOG_FORMAT")
    # Empty disables raw upstream snapshots.
    debug_dir: str = Field(default="", validation_alias="STORYPULSE_DEBUG_DIR")


class StoryPulseConfig(BaseModel):
    """Main configuration class."""

    upstream: UpstreamConfig = UpstreamConfig()
    models: ModelsConfig = ModelsConfig()
    server: ServerConfig = ServerConfig()
    client: ClientConfig = ClientConfig()
    system: SystemConfig = SystemConfig()

    @classmethod
    def load(cls, environ: Mapping[str, str] | None = None) -> StoryPulseConfig:
        """Load configuration from environment variables."""
        env = dict(os.environ if environ is None else environ)
        return cls(
            upstream=UpstreamConfig.model_validate(env),
            models=ModelsConfig.model_validate(env),
            server=ServerConfig.model_validate(env),
            client=ClientConfig.model_validate(env),
            system=SystemConfig.model_validate(env),
        )


# Global configuration instance
config = StoryPulseConfig.load()
