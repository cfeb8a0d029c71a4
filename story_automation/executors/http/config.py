"""Configuration for the HTTP API executor."""

from collections.abc import Mapping

from pydantic import BaseModel, Field, SecretStr


class HttpExecutorConfig(BaseModel):
    """Configuration for the HTTP API executor."""

    base_url: str = Field(default="", description="Prefix for relative step targets")
    default_headers: Mapping[str, str] = Field(default_factory=dict)
    auth_token: SecretStr | None = None
    request_timeout: float = Field(default=30.0, gt=0)
    max_concurrent_requests: int = Field(default=10, ge=1)
    health_check_url: str | None = None
