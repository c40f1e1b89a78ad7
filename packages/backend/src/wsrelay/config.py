"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with WSRELAY_ prefix.
Complex fields take JSON, e.g.:

    WSRELAY_REDIS_NODES='[{"address": "redis-a:6379", "password": "s3cret"}]'

Learn: load_settings() can also read a JSON file whose keys are the
field names. Values from the file win over the environment, so a
deployment can ship one file and still override single knobs in dev.
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings


class RedisNode(BaseModel):
    """One pub/sub backend: its own address and credentials."""

    address: str = "localhost:6379"
    password: str = ""

    @property
    def url(self) -> str:
        if "://" in self.address:
            return self.address
        return f"redis://{self.address}"


class Settings(BaseSettings):
    """All relay configuration. Set via WSRELAY_* env vars."""

    # Pub/sub backends (broadcast fan-out set, not a cluster)
    redis_nodes: list[RedisNode] = Field(default_factory=lambda: [RedisNode()])

    # Server
    environment: str = "development"
    host: str = "0.0.0.0"
    port: int = 8080
    ws_path: str = "/ws"
    health_path: str = "/health"

    # Token authority
    authorize_url: str = "http://localhost:8000/authorize"
    authorize_timeout_seconds: float = 10.0
    cache_ttl_minutes: int = Field(default=5, ge=0)  # 0 = cache without expiry

    # TLS (wss://)
    tls_enabled: bool = False
    tls_cert_file: str = ""
    tls_key_file: str = ""

    # Logging
    log_level: str = "INFO"
    log_file: str = ""  # empty → stdout
    log_json: Optional[bool] = None  # None → JSON outside development

    # Per-connection outbound queue bound
    send_queue_max: int = Field(default=256, ge=1)

    model_config = {"env_prefix": "WSRELAY_"}

    @model_validator(mode="after")
    def validate_required(self):
        """Reject configurations the relay cannot start with."""
        if not self.redis_nodes:
            raise ValueError("WSRELAY_REDIS_NODES must list at least one node")
        if not self.host:
            raise ValueError("WSRELAY_HOST must not be empty")
        if self.tls_enabled and not (self.tls_cert_file and self.tls_key_file):
            raise ValueError(
                "WSRELAY_TLS_CERT_FILE and WSRELAY_TLS_KEY_FILE are required "
                "when TLS is enabled"
            )
        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def public_ws_url(self) -> str:
        """URL clients use to reach the WebSocket route."""
        scheme = "wss" if self.tls_enabled else "ws"
        return f"{scheme}://{self.host}:{self.port}{self.ws_path}"


def load_settings(config_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment, optionally overlaid by a JSON file."""
    if not config_file:
        return Settings()

    path = Path(config_file)
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise ValueError(f"failed to open config file '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"failed to decode JSON config from '{path}': {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"config file '{path}' must contain a JSON object")
    return Settings(**data)


# Singleton: import this everywhere
settings = Settings()
