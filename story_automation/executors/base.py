"""Abstract base class for test execution backends."""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from story_automation.models.base import Value, utc_now
from story_automation.models.result import StepResult, TestResult, TestResultBuilder
from story_automation.models.scenario import TestScenario, TestType
from story_automation.models.step import TestStep

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ExecutorCapabilities:
    """What an executor declares it can do."""

    supported_types: frozenset[TestType]
    supported_actions: frozenset[str]
    max_parallel_executions: int = 1
    supports_screenshots: bool = False
    supports_video_recording: bool = False
    additional: Mapping[str, Value] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class ExecutorValidationResult:
    """Pre-flight verdict on whether an executor can run a scenario."""

    can_execute: bool
    messages: Sequence[str] = ()


@dataclass(frozen=True, kw_only=True)
class HealthCheckResult:
    """Outcome of an executor liveness check."""

    is_healthy: bool
    message: str = ""
    response_time: timedelta = timedelta(0)
    metrics: Mapping[str, Value] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class StepOutcome:
    """What a backend reports for a single step."""

    passed: bool
    message: str = ""
    actual_result: str = ""
    data: Mapping[str, Value] = field(default_factory=dict)
    screenshot_path: str | None = None


@dataclass(kw_only=True)
class ExecutionContext:
    """Per-execution state shared between the steps of one run.

    ``variables`` holds values steps can read and write (seeded from the
    scenario's test data); ``state`` holds backend-specific objects such as
    the last HTTP response.
    """

    scenario: TestScenario
    variables: dict[str, Value] = field(default_factory=dict)
    state: dict[str, Any] = field(default_factory=dict)


def _seconds(duration: timedelta | None) -> float | None:
    return duration.total_seconds() if duration is not None else None


@dataclass(kw_only=True)
class TestExecutor(ABC):
    """Abstract base for execution backends.

    ``execute_test`` drives the steps of a scenario and enforces the
    scenario and step timeouts; subclasses implement ``execute_step`` for
    each action they support. ``initialize`` and ``cleanup`` bracket the
    executor's lifetime, not individual executions.
    """

    __test__ = False

    name: str
    supported_types: frozenset[TestType]

    def can_execute(self, test_type: TestType) -> bool:
        """Check whether this executor handles ``test_type``."""
        return test_type in self.supported_types

    @abstractmethod
    def get_capabilities(self) -> ExecutorCapabilities:
        """Declare supported types, actions and limits."""

    @abstractmethod
    async def execute_step(self, step: TestStep, context: ExecutionContext) -> StepOutcome:
        """Run a single step.

        Args:
            step: Step to run
            context: State of the current execution

        Returns:
            Outcome of the step; a failed assertion is a normal outcome with
            ``passed=False``, not an exception

        """

    @abstractmethod
    async def check_backend(self) -> tuple[bool, str]:
        """Cheap liveness check returning ``(is_healthy, message)``."""

    async def initialize(self, configuration: Mapping[str, Value]) -> bool:
        """Acquire resources before first use."""
        return True

    async def cleanup(self) -> None:
        """Release resources at the end of the executor's lifetime."""

    async def finish_execution(self, context: ExecutionContext) -> None:
        """Release per-execution resources; runs even when cancelled."""

    async def validate_scenario(self, scenario: TestScenario) -> ExecutorValidationResult:
        """Check a scenario against this executor without running it."""
        if not self.can_execute(scenario.type):
            return ExecutorValidationResult(
                can_execute=False,
                messages=[f"{self.name} cannot handle test type: {scenario.type}"],
            )

        messages = list(scenario.validation_errors())
        supported = self.get_capabilities().supported_actions
        messages.extend(
            f"Unsupported action '{step.action}' in step {step.order}"
            for step in scenario.enabled_steps()
            if step.action.lower() not in supported
        )
        return ExecutorValidationResult(can_execute=not messages, messages=messages)

    async def perform_health_check(self) -> HealthCheckResult:
        """Check the backend and time the check."""
        loop = asyncio.get_running_loop()
        start = loop.time()
        try:
            is_healthy, message = await self.check_backend()
        except Exception as exc:
            log.warning("Health check for %s failed: %s", self.name, exc)
            is_healthy, message = False, f"Health check failed: {exc}"

        return HealthCheckResult(
            is_healthy=is_healthy,
            message=message,
            response_time=timedelta(seconds=loop.time() - start),
        )

    async def execute_test(self, scenario: TestScenario) -> TestResult:
        """Run all enabled steps of a scenario and return the finalized result.

        Raises:
            asyncio.CancelledError: When cancelled; ``finish_execution`` has
                already run by then

        """
        builder = TestResultBuilder.for_scenario(scenario, executed_by=self.name)
        context = ExecutionContext(scenario=scenario, variables=dict(scenario.test_data))

        log.info("Starting %s execution for scenario %s", self.name, scenario.id)
        try:
            async with asyncio.timeout(_seconds(scenario.timeout)):
                await self._run_steps(scenario, context, builder)
        except TimeoutError:
            log.warning("Scenario %s timed out after %s", scenario.id, scenario.timeout)
            builder.fail(
                f"Scenario timed out after {scenario.timeout}", error="TimeoutError"
            )
        finally:
            await self.finish_execution(context)

        result = builder.complete()
        log.info(
            "Execution completed: scenario=%s passed=%s duration=%.2fs",
            scenario.id,
            result.passed,
            result.duration.total_seconds(),
        )
        return result

    async def _run_steps(
        self,
        scenario: TestScenario,
        context: ExecutionContext,
        builder: TestResultBuilder,
    ) -> None:
        for step in scenario.enabled_steps():
            step_result = await self._run_step(step, context)
            builder.add_step(step_result)

            if not step_result.passed and not step.continue_on_failure:
                log.warning(
                    "Step %d (%s) failed, stopping execution", step.order, step.action
                )
                break

            if step.wait_after is not None:
                await asyncio.sleep(step.wait_after.total_seconds())

    async def _run_step(self, step: TestStep, context: ExecutionContext) -> StepResult:
        started_at = utc_now()
        try:
            if step.wait_before is not None:
                await asyncio.sleep(step.wait_before.total_seconds())
            async with asyncio.timeout(_seconds(step.timeout)):
                outcome = await self.execute_step(step, context)
        except TimeoutError:
            limit = f" after {step.timeout.total_seconds():.1f}s" if step.timeout else ""
            outcome = StepOutcome(passed=False, message=f"Step timed out{limit}")
        except Exception as exc:
            log.error(
                "Step %s on %s failed: %s", step.action, step.target, exc, exc_info=exc
            )
            outcome = StepOutcome(
                passed=False,
                message=f"Step execution failed: {exc}",
                data={"exception": type(exc).__name__},
            )

        return StepResult.for_step(
            step,
            passed=outcome.passed,
            message=outcome.message,
            started_at=started_at,
            actual_result=outcome.actual_result,
            data=dict(outcome.data),
            screenshot_path=outcome.screenshot_path,
        )
