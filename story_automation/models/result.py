"""Models for test execution results."""

import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from pydantic import Field, computed_field

from story_automation.models.base import Model, UtcDatetime, Value, utc_now
from story_automation.models.scenario import Environment, TestScenario
from story_automation.models.step import TestStep

ALL_STEPS_PASSED = "All test steps completed successfully"


class StepResult(Model):
    """Outcome of a single step execution."""

    step_id: str
    step_name: str = ""
    action: str
    target: str = ""
    passed: bool
    message: str = ""
    expected_result: str = ""
    actual_result: str = ""
    started_at: UtcDatetime
    completed_at: UtcDatetime
    screenshot_path: str | None = None
    required: bool = Field(
        default=True, description="False when the step may fail without failing the test"
    )
    data: Mapping[str, Value] = Field(default_factory=dict)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> timedelta:
        """Elapsed time of the step."""
        return self.completed_at - self.started_at

    @classmethod
    def for_step(
        cls,
        step: TestStep,
        *,
        passed: bool,
        message: str,
        started_at: datetime,
        completed_at: datetime | None = None,
        **extra: object,
    ) -> "StepResult":
        """Build a result carrying the identifying fields of ``step``."""
        return cls.model_validate(
            {
                "step_id": step.id,
                "step_name": step.description or step.action,
                "action": step.action,
                "target": step.target,
                "expected_result": step.expected_result,
                "required": not step.continue_on_failure,
                "passed": passed,
                "message": message,
                "started_at": started_at,
                "completed_at": completed_at or utc_now(),
                **extra,
            }
        )


class TestResult(Model):
    """Result of a single scenario execution.

    Immutable once produced; executors assemble it through ``TestResultBuilder``.
    """

    __test__ = False

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    scenario_id: str
    environment: Environment = "development"
    started_at: UtcDatetime
    completed_at: UtcDatetime
    passed: bool
    message: str = ""
    step_results: Sequence[StepResult] = Field(default_factory=list)
    execution_tags: Sequence[str] = Field(default_factory=list)
    executed_by: str = ""
    retry_attempts: int = 0
    error: str | None = Field(
        default=None, description="Exception type when the run aborted on a fault"
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> timedelta:
        """Elapsed time of the whole execution."""
        return self.completed_at - self.started_at

    @property
    def first_failure(self) -> StepResult | None:
        """First step that did not pass, if any."""
        return next((sr for sr in self.step_results if not sr.passed), None)

    @property
    def success_rate(self) -> float:
        """Percentage of passed steps, 0 when no step ran."""
        if not self.step_results:
            return 0.0
        passed = sum(1 for sr in self.step_results if sr.passed)
        return passed / len(self.step_results) * 100


@dataclass(kw_only=True)
class TestResultBuilder:
    """Accumulates step results for one execution and finalizes them once."""

    __test__ = False

    scenario_id: str
    environment: Environment
    executed_by: str = ""
    execution_tags: Sequence[str] = ()
    started_at: datetime = field(default_factory=utc_now)
    step_results: list[StepResult] = field(default_factory=list)
    _abort_message: str | None = field(default=None, init=False)
    _error: str | None = field(default=None, init=False)
    _completed: bool = field(default=False, init=False)

    @classmethod
    def for_scenario(
        cls, scenario: TestScenario, executed_by: str = ""
    ) -> "TestResultBuilder":
        """Start a result for ``scenario``."""
        return cls(
            scenario_id=scenario.id,
            environment=scenario.environment,
            executed_by=executed_by,
            execution_tags=list(scenario.tags),
        )

    def add_step(self, step_result: StepResult) -> None:
        """Append a step outcome."""
        if self._completed:
            raise RuntimeError("Cannot add steps to a completed result")
        self.step_results.append(step_result)

    def fail(self, message: str, error: str | None = None) -> None:
        """Record a scenario-level abort (timeout, cancellation, fault)."""
        if self._abort_message is None:
            self._abort_message = message
            self._error = error

    def complete(self) -> TestResult:
        """Finalize the execution; may only be called once."""
        if self._completed:
            raise RuntimeError("Test result already completed")
        self._completed = True

        first_required_failure = next(
            (sr for sr in self.step_results if sr.required and not sr.passed), None
        )
        passed = self._abort_message is None and first_required_failure is None

        if self._abort_message is not None:
            message = self._abort_message
        elif first_required_failure is not None:
            message = f"Test failed at step: {first_required_failure.step_name}"
        else:
            message = ALL_STEPS_PASSED

        return TestResult(
            scenario_id=self.scenario_id,
            environment=self.environment,
            started_at=self.started_at,
            completed_at=utc_now(),
            passed=passed,
            message=message,
            step_results=list(self.step_results),
            execution_tags=list(self.execution_tags),
            executed_by=self.executed_by,
            error=self._error,
        )
