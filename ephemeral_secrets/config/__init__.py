"""
Application-wide settings, plus the swappable plugin configuration snapshot.
"""

import os
import threading
from typing import Optional
import redis.asyncio as redis
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(arbitrary_types_allowed=True)

    # Which host adapter to wire up: "mattermost" or "memory".
    host_backend: str = os.getenv("HOST_BACKEND", "mattermost")

    # Chat host connection.
    mattermost_url: str = os.getenv("MATTERMOST_URL", "http://127.0.0.1:8065")
    mattermost_token: str = os.getenv("MATTERMOST_TOKEN", "")
    mattermost_team_id: str = os.getenv("MATTERMOST_TEAM_ID", "")
    plugin_id: str = os.getenv("PLUGIN_ID", "com.mattermost.secrets-plugin")
    public_url: str = os.getenv("PUBLIC_URL", "http://127.0.0.1:8000")
    command_token: Optional[str] = os.getenv("COMMAND_TOKEN")

    # KV backend.
    redis_url: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
    redis_client: redis.Redis = redis.Redis.from_url(
        os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
    )

    # Initial plugin configuration values.
    secret_expiry_time: int = int(os.getenv("SECRET_EXPIRY_TIME", str(24 * 60)))
    allow_copy_to_clipboard: bool = (
        os.getenv("ALLOW_COPY_TO_CLIPBOARD", "true").lower() == "true"
    )

    # Host post body limit, in characters.
    max_message_length: int = int(os.getenv("MAX_MESSAGE_LENGTH", "16383"))

    # Timings (seconds).
    sweep_interval: float = float(os.getenv("SWEEP_INTERVAL", "60"))
    post_delete_delay: float = float(os.getenv("POST_DELETE_DELAY", "5"))
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "30"))

    # Debug logging.
    debug: bool = os.getenv("DEBUG", "false").lower() == "true"


settings = Settings()


class PluginConfiguration(BaseModel):
    """
    Admin-facing plugin options, as the host stores them.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    secret_expiry_time: int = Field(default=24 * 60, gt=0, alias="SecretExpiryTime")
    allow_copy_to_clipboard: bool = Field(default=True, alias="AllowCopyToClipboard")

    @property
    def expiry_millis(self) -> int:
        return self.secret_expiry_time * 60 * 1000


class ConfigHolder:
    """
    Holds the active configuration snapshot.

    Snapshots are immutable, so readers just take the current reference;
    replacing it is serialized so concurrent writers can't interleave.
    """

    def __init__(self, config: Optional[PluginConfiguration] = None):
        self._config = config or PluginConfiguration()
        self._write_lock = threading.Lock()

    def get(self) -> PluginConfiguration:
        return self._config

    def set(self, config: PluginConfiguration) -> PluginConfiguration:
        # Each writer must get back the snapshot it replaced, never one another
        # writer also got; the lock keeps the read and the swap together.
        with self._write_lock:
            previous = self._config
            self._config = config
        return previous

    @classmethod
    def from_settings(cls, source: Settings) -> "ConfigHolder":
        return cls(
            PluginConfiguration(
                secret_expiry_time=source.secret_expiry_time,
                allow_copy_to_clipboard=source.allow_copy_to_clipboard,
            )
        )
