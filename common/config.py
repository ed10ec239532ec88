"""Deployment configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Deployment settings loaded from environment variables.

    Values can also come from a .env file. Pulumi stack config set in
    ``__main__.py`` takes precedence over these for stack-specific values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Naming
    project_name: str = "rps"
    app_name: str = "RPS Battle Arena"
    environment: str = "dev"

    # Logging for the declaration pass
    log_level: str = "INFO"

    # Packaged handler code, one directory per function, each an index.js
    # module exporting ``handler``
    handlers_root: str = "../src/handlers"
    lambda_runtime: str = "nodejs22.x"
    lambda_handler: str = "index.handler"
    lambda_timeout_seconds: int = 30
    lambda_memory_mb: int = 128

    # API surfaces
    rest_stage_name: str = "prod"
    websocket_stage_name: str = "prod"
    cors_origins: list[str] = ["*"]

    # Identity
    password_min_length: int = 8
    identity_bridge: bool = False  # Cognito identity pool over the web client

    # Static hosting (dropped in simplified deployments)
    include_frontend: bool = True

    # Teardown disposition for tables, user pool and website bucket
    removal_policy: str = "destroy"

    @property
    def resource_prefix(self) -> str:
        """Prefix shared by every physical resource name, e.g. ``rps-dev``."""
        return f"{self.project_name}-{self.environment}"

    def handler_code(self, handler: str) -> str:
        """Directory holding the packaged code for ``handler``."""
        return f"{self.handlers_root.rstrip('/')}/{handler}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
