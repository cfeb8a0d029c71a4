"""Search criteria for querying stored scenarios and results."""

from collections.abc import Sequence
from datetime import timedelta
from typing import Literal

from pydantic import Field

from story_automation.models.base import Model, UtcDatetime
from story_automation.models.scenario import (
    Environment,
    Priority,
    ScenarioStatus,
    TestType,
)

type ScenarioSortField = Literal[
    "created_at", "updated_at", "title", "type", "status", "priority", "created_by"
]
type ResultSortField = Literal[
    "started_at", "completed_at", "duration", "passed", "environment", "executed_by"
]


class Page(Model):
    """Pagination and ordering shared by all searches."""

    page_number: int = Field(default=1, ge=1, description="1-based page index")
    page_size: int = Field(default=50, ge=1, description="Items per page")
    sort_descending: bool = True

    @property
    def offset(self) -> int:
        """Number of matching items to skip."""
        return (self.page_number - 1) * self.page_size


class ScenarioSearchCriteria(Page):
    """Filters for scenario searches; unset filters match everything."""

    project_id: str | None = None
    type: TestType | None = None
    status: ScenarioStatus | None = None
    priority: Priority | None = None
    tags: Sequence[str] = Field(
        default_factory=list, description="Match scenarios sharing any of these tags"
    )
    created_by: str | None = Field(default=None, description="Substring match")
    created_from: UtcDatetime | None = None
    created_to: UtcDatetime | None = None
    search_text: str | None = Field(
        default=None, description="Substring match on title or description"
    )
    sort_by: ScenarioSortField = "created_at"


class ResultSearchCriteria(Page):
    """Filters for result searches; unset filters match everything."""

    scenario_id: str | None = None
    project_id: str | None = None
    passed: bool | None = None
    environment: Environment | None = None
    executed_by: str | None = Field(default=None, description="Substring match")
    executed_from: UtcDatetime | None = None
    executed_to: UtcDatetime | None = None
    min_duration: timedelta | None = None
    max_duration: timedelta | None = None
    execution_tags: Sequence[str] = Field(default_factory=list)
    sort_by: ResultSortField = "started_at"
