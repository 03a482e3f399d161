"""Configuration for the Workspace Reconciler."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Service Settings
    service_name: str = "workspace-reconciler"
    version: str = "0.1.0"
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8084
    api_prefix: str = "/api/v1"

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./workspaces.db",
        description="Async SQLAlchemy database URL",
    )
    db_connect_retries: int = 5

    # Workspace lifecycle
    default_max_hours_before_termination: int = 24
    max_hours_before_termination_limit: int = 120

    # Agent defaults
    default_dns_zone: str = "workspaces.localdev.me"
    default_network_policy_enabled: bool = True
    default_gitlab_workspaces_proxy_namespace: str = "gitlab-workspaces"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
