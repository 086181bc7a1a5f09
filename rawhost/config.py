from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

PolicyName = Literal[
    "user_agent",
    "header_password",
    "rotating_password",
    "session",
    "lock",
    "decoy_lock",
]


class Settings(BaseSettings):
    app_name: str = "rawhost"
    app_env: str = "dev"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"

    storage_dir: str = "uploads/files"
    metadata_path: str = "uploads/metadata.json"
    max_upload_size_bytes: int = 50 * 1024 * 1024

    access_policy: PolicyName = "user_agent"
    allowed_user_agents: list[str] = ["Roblox", "HttpService", "Game"]
    blocked_message: str = "ANO SKID PA?"
    sentinel_header: str = "X-Raw-Client"
    sentinel_value: str = "rawhost"
    password_header: str = "X-Raw-Password"
    resource_password_length: int = 12

    session_ttl_seconds: int = 600
    session_sweep_interval_seconds: int = 60
    static_passwords: list[str] = []

    password_length: int = 10
    password_rotation_interval_seconds: int = 300
    password_ttl_seconds: int = 300

    webhook_url: str | None = None
    webhook_timeout_seconds: float = 5.0

    model_config = SettingsConfigDict(env_file=".env", env_prefix="RAWHOST_")


@lru_cache
def get_settings() -> Settings:
    return Settings()
