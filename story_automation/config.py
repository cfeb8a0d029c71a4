"""Configuration for the test orchestrator."""

from pydantic import BaseModel, Field


class OrchestratorConfig(BaseModel):
    """Configuration for the test orchestrator."""

    default_max_concurrency: int = Field(
        default=3, ge=1, description="Parallel executions when the caller sets no limit"
    )
    health_check_concurrency: int = Field(
        default=4, ge=1, description="Executors checked at the same time"
    )
    health_check_timeout: float = Field(
        default=10.0, gt=0, description="Seconds before a health check counts as failed"
    )
    statistics_window_days: int = Field(
        default=30, ge=1, description="Default look-back for project statistics"
    )
