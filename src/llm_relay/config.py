"""Relay configuration with environment variable support.

Provider credentials and the listen address are read once at process start
and passed explicitly to the components that need them.
"""

from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from llm_relay.protocols import ProviderId


class RelaySettings(BaseSettings):
    """Relay server configuration.

    Loads from environment variables with the RELAY_ prefix. The provider
    credentials and the port keep the variable names used by existing
    deployments.

    Example:
        ```bash
        export DEEPSEEK_API_KEY=sk-...
        export DEEPINFRA_API_KEY=...
        export SOCKETIO_PORT=3001
        export RELAY_LOG_LEVEL=debug
        ```

        ```python
        settings = RelaySettings()  # Loads from env vars
        ```
    """

    host: str = Field(
        default="127.0.0.1",
        description="Server bind address"
    )
    port: int = Field(
        default=3001,
        validation_alias=AliasChoices("SOCKETIO_PORT", "RELAY_PORT"),
        description="Server port"
    )
    log_level: Literal["debug", "info", "warning", "error", "critical"] = Field(
        default="info",
        description="Logging level"
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="Allowed origins for CORS"
    )

    deepseek_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DEEPSEEK_API_KEY", "deepseek_api_key"),
        description="Credential for the DeepSeek provider"
    )
    deepinfra_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DEEPINFRA_API_KEY", "deepinfra_api_key"),
        description="Credential for the DeepInfra provider"
    )

    model_config = SettingsConfigDict(
        env_prefix="RELAY_",
        case_sensitive=False,
        populate_by_name=True,
        frozen=True,
    )

    def api_key_for(self, provider: ProviderId) -> str | None:
        """Return the configured credential for a provider, if any."""
        keys = {
            ProviderId.DEEPSEEK: self.deepseek_api_key,
            ProviderId.DEEPINFRA: self.deepinfra_api_key,
        }
        return keys.get(provider) or None
