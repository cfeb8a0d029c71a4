"""Instrumented executor for tests."""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from story_automation.executors.base import (
    ExecutionContext,
    ExecutorCapabilities,
    StepOutcome,
    TestExecutor,
)
from story_automation.models.base import Value
from story_automation.models.result import TestResult
from story_automation.models.scenario import TestScenario, TestType
from story_automation.models.step import KNOWN_ACTIONS, TestStep


@dataclass(kw_only=True)
class ScriptedExecutor(TestExecutor):
    """Executor replaying scripted outcomes and recording how it was used.

    ``outcomes`` gives the pass/fail verdict of every step in the n-th call
    to ``execute_test``; the last entry repeats, and an empty script passes.
    """

    name: str = "Scripted Executor"
    supported_types: frozenset[TestType] = frozenset({"ui", "api"})
    outcomes: Sequence[bool] = ()
    delay: float = 0.0
    fault: Exception | None = None
    healthy: bool = True
    initialized: bool = True
    calls: int = 0
    in_flight: int = 0
    max_in_flight: int = 0
    executed_steps: list[str] = field(default_factory=list)
    finished: int = 0
    cleaned_up: bool = False

    def get_capabilities(self) -> ExecutorCapabilities:
        """Support every known action and fake screenshots."""
        return ExecutorCapabilities(
            supported_types=self.supported_types,
            supported_actions=KNOWN_ACTIONS,
            supports_screenshots=True,
            supports_video_recording=False,
        )

    async def initialize(self, configuration: Mapping[str, Value]) -> bool:
        """Report the scripted initialization verdict."""
        return self.initialized

    async def cleanup(self) -> None:
        """Record the teardown."""
        self.cleaned_up = True

    async def check_backend(self) -> tuple[bool, str]:
        """Report the scripted health."""
        return self.healthy, "scripted"

    async def finish_execution(self, context: ExecutionContext) -> None:
        """Count finished executions, including cancelled ones."""
        self.finished += 1

    async def execute_test(self, scenario: TestScenario) -> TestResult:
        """Track concurrency around the regular execution."""
        self.calls += 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.fault is not None:
                raise self.fault
            return await super().execute_test(scenario)
        finally:
            self.in_flight -= 1

    async def execute_step(self, step: TestStep, context: ExecutionContext) -> StepOutcome:
        """Pass or fail according to the script."""
        self.executed_steps.append(step.action)
        passed = True
        if self.outcomes:
            passed = self.outcomes[min(self.calls, len(self.outcomes)) - 1]
        return StepOutcome(
            passed=passed,
            message="scripted pass" if passed else "scripted failure",
            actual_result=step.target,
            screenshot_path=f"screenshots/{step.id}.png" if step.take_screenshot else None,
        )
