"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with VAMPSYNC_ prefix.
Server and client settings live side by side: the same package runs the
version/push server and embeds the client sync session.

The entity-group naming table, query map and critical sets are NOT here —
they are static code in vampsync.sync.registry, validated at startup.
"""

from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via VAMPSYNC_* env vars."""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 8000

    # CORS
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    # Version counters and fan-out
    redis_url: str = "redis://localhost:6379/0"
    version_backend: Literal["memory", "redis"] = "memory"
    broadcast_backend: Literal["memory", "redis"] = "memory"
    versions_hash_key: str = "vampsync:versions"
    broadcast_channel: str = "vampsync:updates"
    ws_keepalive_seconds: float = 30.0

    # Auth (session tokens are minted by the host app's login flow)
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    session_token_expire_minutes: int = 60 * 12

    # Client
    api_url: str = "http://localhost:8000"
    ws_url: str = ""  # derived from api_url if empty
    http_timeout_seconds: float = 10.0
    poll_interval_seconds: float = 30.0
    reconnect_base_seconds: float = 1.0
    reconnect_max_seconds: float = 30.0
    reconnect_max_attempts: int = 10  # 0 = retry forever
    state_dir: Path = Path.home() / ".vampsync"
    state_namespace: str = "vamp_data_versions"

    # Logging
    log_level: str = "info"
    log_json: bool = False

    model_config = {"env_prefix": "VAMPSYNC_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Ensure sensitive defaults are changed in non-development environments."""
        if (
            self.environment != "development"
            and self.jwt_secret == "change-me-in-production"
        ):
            raise ValueError(
                "VAMPSYNC_JWT_SECRET must be set to a secure value in "
                "non-development environments."
            )
        return self

    @property
    def resolved_ws_url(self) -> str:
        """WebSocket endpoint, derived from api_url when not set explicitly."""
        if self.ws_url:
            return self.ws_url
        base = self.api_url.rstrip("/")
        if base.startswith("https://"):
            return "wss://" + base[len("https://"):] + "/ws"
        if base.startswith("http://"):
            return "ws://" + base[len("http://"):] + "/ws"
        return base + "/ws"


# Singleton — import this everywhere
settings = Settings()
