"""Models for test scenarios generated from user stories."""

import uuid
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Literal

from pydantic import Field

from story_automation.models.base import Model, UtcDatetime, Value, utc_now
from story_automation.models.step import TestStep

type TestType = Literal["ui", "api", "mixed", "database", "performance", "security"]
type ScenarioStatus = Literal["draft", "generated", "validated", "active", "deprecated"]
type Priority = Literal["low", "medium", "high", "critical"]
type Environment = Literal["development", "testing", "staging", "production"]

PRIORITY_RANK: Mapping[Priority, int] = {
    "low": 0,
    "medium": 1,
    "high": 2,
    "critical": 3,
}


class TestScenario(Model):
    """A named, ordered set of steps plus the metadata needed to run them."""

    __test__ = False

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str = Field(..., description="Human-readable scenario title")
    description: str = ""
    original_user_story: str = ""
    type: TestType = Field(default="ui", description="Kind of backend required")
    status: ScenarioStatus = "draft"
    priority: Priority = "medium"
    environment: Environment = "development"
    project_id: str = Field(default="", description="Owning project identifier")
    steps: Sequence[TestStep] = Field(default_factory=list)
    tags: Sequence[str] = Field(default_factory=list)
    preconditions: Sequence[str] = Field(default_factory=list)
    expected_outcomes: Sequence[str] = Field(default_factory=list)
    created_at: UtcDatetime = Field(default_factory=utc_now)
    updated_at: UtcDatetime = Field(default_factory=utc_now)
    created_by: str = ""
    timeout: timedelta | None = Field(
        default=None, description="Wall-clock bound for a whole execution"
    )
    retry_count: int = Field(default=0, description="Extra attempts after a failure")
    can_run_in_parallel: bool = True
    metadata: Mapping[str, Value] = Field(default_factory=dict)
    configuration: Mapping[str, Value] = Field(default_factory=dict)
    test_data: Mapping[str, Value] = Field(default_factory=dict)

    def validation_errors(self) -> list[str]:
        """Return structural problems with this scenario, empty when valid."""
        errors: list[str] = []

        if not self.title.strip():
            errors.append("Title is required")
        if not self.project_id.strip():
            errors.append("ProjectId is required")
        if not self.steps:
            errors.append("At least one test step is required")

        for step in self.steps:
            errors.extend(
                f"Step '{step.action}': {error}" for error in step.validation_errors()
            )

        if self.timeout is not None and self.timeout <= timedelta(0):
            errors.append("TimeoutDuration must be positive")
        if self.retry_count < 0:
            errors.append("RetryCount cannot be negative")

        return errors

    def enabled_steps(self) -> Sequence[TestStep]:
        """Steps that should run, in execution order."""
        return sorted((s for s in self.steps if s.enabled), key=lambda s: s.order)

    def clone(self, title: str | None = None) -> "TestScenario":
        """Create a draft copy with a new id, fresh timestamps and cloned steps."""
        now = utc_now()
        return self.model_copy(
            update={
                "id": str(uuid.uuid4()),
                "title": title or f"{self.title} (Copy)",
                "status": "draft",
                "steps": [step.clone() for step in self.steps],
                "created_at": now,
                "updated_at": now,
            },
            deep=True,
        )
