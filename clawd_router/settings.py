from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    openrouter_api_key: str | None = None
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    clawd_router_host: str = "127.0.0.1"
    clawd_router_port: int = 8403
    routing_config_path: str | None = None
    upstream_connect_timeout_seconds: float = 5.0
    upstream_read_timeout_seconds: float = 120.0
    upstream_write_timeout_seconds: float = 30.0
    upstream_pool_timeout_seconds: float = 5.0
    upstream_transport_retries: int = 2
    routing_oracle_timeout_seconds: float = 15.0
    router_audit_log_enabled: bool = False
    router_audit_log_path: str = "logs/router_decisions.jsonl"

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @property
    def resolved_api_key(self) -> str:
        return (self.openrouter_api_key or "").strip()


@lru_cache
def get_settings() -> Settings:
    return Settings()
