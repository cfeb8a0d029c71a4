"""Test orchestrator coordinating generation, persistence and execution."""

import asyncio
import logging
from collections.abc import Awaitable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from story_automation.config import OrchestratorConfig
from story_automation.errors import (
    ExecutionError,
    GenerationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from story_automation.executors.base import HealthCheckResult, TestExecutor
from story_automation.executors.registry import ExecutorRegistry
from story_automation.generator.base import ScenarioGenerator, ScenarioQualityReport
from story_automation.models.base import Value, as_utc, utc_now
from story_automation.models.criteria import ResultSearchCriteria, ScenarioSearchCriteria
from story_automation.models.result import TestResult
from story_automation.models.scenario import TestScenario
from story_automation.models.statistics import TestStatistics
from story_automation.repository.base import TestRepository

log = logging.getLogger(__name__)

NO_FAILURES = "No failures to analyze"


def _ensure_valid(scenario: TestScenario, message: str) -> None:
    if errors := scenario.validation_errors():
        raise ValidationError(message, errors)


@dataclass(frozen=True, kw_only=True)
class TestOrchestrator:
    """Coordinates the generator, the repository and the executors.

    Executors are picked per scenario from the registry; the first one that
    can run the scenario's type wins.
    """

    __test__ = False

    generator: ScenarioGenerator
    repository: TestRepository
    executors: ExecutorRegistry
    config: OrchestratorConfig = field(default_factory=OrchestratorConfig)

    async def _store[T](self, description: str, call: Awaitable[T]) -> T:
        """Await a repository call, wrapping its faults."""
        try:
            return await call
        except Exception as exc:
            raise PersistenceError(f"Failed to {description}: {exc}") from exc

    async def _generate[T](self, description: str, call: Awaitable[T]) -> T:
        """Await a generator call, wrapping its faults."""
        try:
            return await call
        except Exception as exc:
            raise GenerationError(f"Failed to {description}: {exc}") from exc

    async def get_test_scenario(self, scenario_id: str) -> TestScenario:
        """Load a scenario.

        Raises:
            NotFoundError: If no scenario has this id

        """
        scenario = await self._store(
            "load scenario", self.repository.get_scenario(scenario_id)
        )
        if scenario is None:
            raise NotFoundError(f"Test scenario {scenario_id} not found")
        return scenario

    async def create_from_user_story(
        self, story: str, project_id: str, context: str = ""
    ) -> str:
        """Generate a scenario from a user story and persist it.

        Args:
            story: Free-form user story text
            project_id: Project the scenario belongs to
            context: Project context passed to the generator

        Returns:
            The id of the stored scenario

        Raises:
            GenerationError: If the generator fails
            ValidationError: If the generated scenario is structurally invalid
            PersistenceError: If the scenario cannot be saved

        """
        log.info("Creating test scenario for project %s", project_id)
        generated = await self._generate(
            "generate scenario", self.generator.generate(story, context)
        )

        scenario = generated.model_copy(update={"project_id": project_id})
        _ensure_valid(scenario, "Generated scenario is invalid")

        scenario_id = await self._store(
            "save scenario", self.repository.save_scenario(scenario)
        )
        log.info(
            "Created scenario %s '%s' with %d step(s)",
            scenario_id,
            scenario.title,
            len(scenario.steps),
        )
        return scenario_id

    async def execute_test(self, scenario_id: str) -> TestResult:
        """Run a stored scenario and persist the final result.

        Failed results are retried up to the scenario's ``retry_count``; only
        the last attempt is stored and returned.

        Raises:
            NotFoundError: If the scenario does not exist
            ValidationError: If the scenario is structurally invalid
            NoExecutorError: If no executor supports the scenario's type
            ExecutionError: If the executor faults instead of reporting a result
            PersistenceError: If the repository fails

        """
        scenario = await self.get_test_scenario(scenario_id)
        _ensure_valid(scenario, f"Scenario {scenario_id} is invalid")

        executor = self.executors.select(scenario.type)
        log.info("Executing scenario %s with %s", scenario_id, executor.name)

        result = await self._execute_with_retry(executor, scenario)
        await self._store("save result", self.repository.save_result(result))

        log.info(
            "Test completed: scenario=%s passed=%s attempts=%d duration=%.1fs",
            scenario_id,
            result.passed,
            result.retry_attempts + 1,
            result.duration.total_seconds(),
        )
        return result

    async def _execute_with_retry(
        self, executor: TestExecutor, scenario: TestScenario
    ) -> TestResult:
        retries = 0
        while True:
            try:
                result = await executor.execute_test(scenario)
            except Exception as exc:
                raise ExecutionError(
                    f"Executor {executor.name} failed on scenario {scenario.id}: {exc}"
                ) from exc

            if result.passed or retries >= scenario.retry_count:
                return result.model_copy(update={"retry_attempts": retries})

            retries += 1
            log.warning(
                "Scenario %s failed (%s), retry %d of %d",
                scenario.id,
                result.message,
                retries,
                scenario.retry_count,
            )

    async def execute_tests_parallel(
        self, scenario_ids: Sequence[str], max_concurrency: int | None = None
    ) -> Sequence[TestResult]:
        """Run several scenarios with at most ``max_concurrency`` in flight.

        A scenario that raises does not affect the others; it is reported as
        a failed result whose ``error`` names the exception.

        Args:
            scenario_ids: Scenarios to run
            max_concurrency: Execution limit, defaults to the configured one

        Returns:
            One result per requested id

        """
        if not scenario_ids:
            log.info("No scenarios to execute")
            return []

        limit = (
            self.config.default_max_concurrency
            if max_concurrency is None
            else max_concurrency
        )
        if limit < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {limit}")
        semaphore = asyncio.Semaphore(limit)

        async def run(scenario_id: str) -> TestResult:
            async with semaphore:
                return await self.execute_test(scenario_id)

        log.info(
            "Executing %d scenario(s), at most %d at a time", len(scenario_ids), limit
        )
        results = await asyncio.gather(
            *(run(scenario_id) for scenario_id in scenario_ids), return_exceptions=True
        )
        log.info("Parallel execution completed")

        return self._process_results(scenario_ids, results)

    def _process_results(
        self,
        scenario_ids: Sequence[str],
        results: Sequence[TestResult | BaseException],
    ) -> Sequence[TestResult]:
        """Turn per-scenario exceptions into failed results."""
        final_results: list[TestResult] = []

        for scenario_id, result in zip(scenario_ids, results, strict=True):
            if isinstance(result, TestResult):
                final_results.append(result)
            elif isinstance(result, Exception):
                log.error(
                    "Scenario %s execution failed: %s", scenario_id, result, exc_info=result
                )
                now = utc_now()
                final_results.append(
                    TestResult(
                        scenario_id=scenario_id,
                        started_at=now,
                        completed_at=now,
                        passed=False,
                        message=str(result),
                        error=type(result).__name__,
                    )
                )
            else:
                raise result

        return final_results

    async def get_project_tests(self, project_id: str) -> Sequence[TestScenario]:
        """List the scenarios of a project."""
        return await self._store(
            "load project scenarios",
            self.repository.get_scenarios_by_project(project_id),
        )

    async def search_tests(
        self, criteria: ScenarioSearchCriteria
    ) -> Sequence[TestScenario]:
        """Search scenarios."""
        return await self._store(
            "search scenarios", self.repository.search_scenarios(criteria)
        )

    async def search_results(
        self, criteria: ResultSearchCriteria
    ) -> Sequence[TestResult]:
        """Search execution results."""
        return await self._store(
            "search results", self.repository.search_results(criteria)
        )

    async def get_test_history(self, scenario_id: str) -> Sequence[TestResult]:
        """Results of a scenario, newest first."""
        return await self._store(
            "load results", self.repository.get_results(scenario_id)
        )

    async def get_test_statistics(
        self,
        project_id: str,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
    ) -> TestStatistics:
        """Aggregate statistics; the window defaults to the configured look-back."""
        to_date = utc_now() if to_date is None else as_utc(to_date)
        from_date = (
            to_date - timedelta(days=self.config.statistics_window_days)
            if from_date is None
            else as_utc(from_date)
        )
        return await self._store(
            "compute statistics",
            self.repository.get_test_statistics(project_id, from_date, to_date),
        )

    async def get_executor_health_status(self) -> Mapping[str, HealthCheckResult]:
        """Check the health of all registered executors concurrently.

        At most ``health_check_concurrency`` checks run at once and each is
        bounded by ``health_check_timeout``. A failing or slow executor is
        reported as unhealthy instead of raising.
        """
        semaphore = asyncio.Semaphore(self.config.health_check_concurrency)
        timeout = self.config.health_check_timeout

        async def check(executor: TestExecutor) -> HealthCheckResult:
            async with semaphore:
                async with asyncio.timeout(timeout):
                    return await executor.perform_health_check()

        executors = list(self.executors)
        results = await asyncio.gather(
            *(check(executor) for executor in executors), return_exceptions=True
        )

        status: dict[str, HealthCheckResult] = {}
        for executor, result in zip(executors, results, strict=True):
            if isinstance(result, HealthCheckResult):
                status[executor.name] = result
            elif isinstance(result, TimeoutError):
                log.warning("Health check for %s timed out", executor.name)
                status[executor.name] = HealthCheckResult(
                    is_healthy=False,
                    message=f"Health check timed out after {timeout}s",
                    response_time=timedelta(seconds=timeout),
                )
            elif isinstance(result, Exception):
                log.error(
                    "Health check for %s failed: %s", executor.name, result, exc_info=result
                )
                status[executor.name] = HealthCheckResult(
                    is_healthy=False, message=f"Health check failed: {result}"
                )
            else:
                raise result

        return status

    async def analyze_failure(self, scenario_id: str) -> str:
        """Explain the latest failed execution of a scenario."""
        await self.get_test_scenario(scenario_id)
        results = await self.get_test_history(scenario_id)
        if not results or results[0].passed:
            return NO_FAILURES

        return await self._generate(
            "analyze failure", self.generator.analyze_failure(results[0])
        )

    async def refine_test_scenario(
        self, scenario_id: str, feedback: str
    ) -> TestScenario:
        """Rework a scenario's steps from feedback and store the result."""
        scenario = await self.get_test_scenario(scenario_id)
        steps = await self._generate(
            "refine steps", self.generator.refine_steps(scenario.steps, feedback)
        )

        refined = scenario.model_copy(update={"steps": steps, "updated_at": utc_now()})
        _ensure_valid(refined, "Refined scenario is invalid")
        await self._store("update scenario", self.repository.update_scenario(refined))
        log.info("Refined scenario %s", scenario_id)
        return refined

    async def generate_test_data(
        self, scenario_id: str, requirements: str
    ) -> Mapping[str, Value]:
        """Produce input values for a stored scenario."""
        scenario = await self.get_test_scenario(scenario_id)
        return await self._generate(
            "generate test data",
            self.generator.generate_test_data(scenario, requirements),
        )

    async def validate_test_scenario(self, scenario_id: str) -> ScenarioQualityReport:
        """Assess the quality of a stored scenario."""
        scenario = await self.get_test_scenario(scenario_id)
        return await self._generate(
            "validate scenario", self.generator.validate_scenario(scenario)
        )

    async def suggest_additional_tests(
        self, project_id: str, context: str
    ) -> Sequence[TestScenario]:
        """Suggest draft scenarios for gaps in a project; nothing is stored."""
        existing = await self.get_project_tests(project_id)
        suggestions = await self._generate(
            "suggest tests", self.generator.suggest_additional_tests(existing, context)
        )
        return [
            s.model_copy(update={"project_id": project_id, "status": "draft"})
            for s in suggestions
        ]

    async def optimize_test_scenarios(self, project_id: str) -> Sequence[TestScenario]:
        """Optimize and store all scenarios of a project."""
        scenarios = await self.get_project_tests(project_id)
        optimized = await self._generate(
            "optimize scenarios", self.generator.optimize_scenarios(scenarios)
        )

        stored: list[TestScenario] = []
        for scenario in optimized:
            updated = scenario.model_copy(update={"updated_at": utc_now()})
            if not await self._store(
                "update scenario", self.repository.update_scenario(updated)
            ):
                log.warning(
                    "Skipped optimized scenario %s: no longer stored", scenario.id
                )
                continue
            stored.append(updated)

        log.info("Optimized %d scenario(s) of project %s", len(stored), project_id)
        return stored

    async def delete_test_scenario(self, scenario_id: str) -> bool:
        """Delete a scenario and its results."""
        log.info("Deleting test scenario %s", scenario_id)
        return await self._store(
            "delete scenario", self.repository.delete_scenario(scenario_id)
        )

    async def clone_test_scenario(
        self, scenario_id: str, new_title: str | None = None
    ) -> str:
        """Store a draft copy of a scenario and return its id."""
        original = await self.get_test_scenario(scenario_id)
        clone_id = await self._store(
            "save scenario", self.repository.save_scenario(original.clone(new_title))
        )
        log.info("Cloned test scenario %s to %s", scenario_id, clone_id)
        return clone_id
