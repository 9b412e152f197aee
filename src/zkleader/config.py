from __future__ import annotations

from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from zkleader.errors import ConfigurationError


class ExpiryPolicy(str, Enum):
    """What to do when the coordination session expires."""

    FAIL_FAST = "fail_fast"
    SELF_HEAL = "self_heal"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="ZKLEADER_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    env: str = "dev"
    host: str = "0.0.0.0"  # nosec B104 - intentional for container deployments
    port: int = 8080

    # ZooKeeper ensemble
    zk_connect_string: str | None = Field(default=None, validation_alias="ZK_CONNECT_STRING")
    zk_namespace: str = Field(default="", validation_alias="ZK_NAMESPACE")

    # Payload stored under this process's peer node
    my_description: str | None = Field(default=None, validation_alias="MY_DESCRIPTION")

    # Timeouts (session/connection in milliseconds, requests in seconds)
    session_timeout: int = Field(default=5000, validation_alias="ZOOKEEPER_SESSION_TIMEOUT")
    connection_timeout: int = Field(default=5000, validation_alias="ZOOKEEPER_CONNECTION_TIMEOUT")
    request_timeout: float = 10.0

    # Election behaviour
    wants_to_lead: bool = True
    expiry_policy: ExpiryPolicy = ExpiryPolicy.SELF_HEAL

    # Reconnection after session expiry (self_heal only)
    reconnect_delay_initial: float = 1.0
    reconnect_delay_max: float = 30.0
    reconnect_delay_multiplier: float = 2.0
    max_reconnect_attempts: int = 10

    # Observability
    enable_metrics: bool = True
    log_level: str = "INFO"

    def validate_required(self) -> None:
        """Raise ConfigurationError if the endpoint or description is missing."""
        missing = []
        if not self.zk_connect_string:
            missing.append("ZK_CONNECT_STRING")
        if not self.my_description:
            missing.append("MY_DESCRIPTION")
        if missing:
            raise ConfigurationError(missing)


settings = Settings()
