"""Abstract base class for scenario and result storage."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from story_automation.models.criteria import (
    ResultSearchCriteria,
    ScenarioSearchCriteria,
)
from story_automation.models.result import TestResult
from story_automation.models.scenario import TestScenario
from story_automation.models.statistics import TestStatistics


class TestRepository(ABC):
    """Storage contract for scenarios and their execution results.

    Implementations must be safe for concurrent callers. Each scenario or
    result is saved as an atomic unit; there is no consistency guarantee
    across a scenario and the results that reference it. All operations are
    coroutines and may be cancelled.
    """

    __test__ = False

    @abstractmethod
    async def save_scenario(self, scenario: TestScenario) -> str:
        """Store a scenario, stamping ``updated_at``.

        Returns:
            The scenario id

        """

    @abstractmethod
    async def get_scenario(self, scenario_id: str) -> TestScenario | None:
        """Return the scenario with ``scenario_id`` or None."""

    @abstractmethod
    async def get_scenarios_by_project(self, project_id: str) -> Sequence[TestScenario]:
        """Return all scenarios of a project, oldest first."""

    @abstractmethod
    async def search_scenarios(
        self, criteria: ScenarioSearchCriteria
    ) -> Sequence[TestScenario]:
        """Return one page of scenarios matching ``criteria``."""

    @abstractmethod
    async def update_scenario(self, scenario: TestScenario) -> bool:
        """Replace an existing scenario as given.

        Returns:
            False when no scenario with that id exists

        """

    @abstractmethod
    async def delete_scenario(self, scenario_id: str) -> bool:
        """Delete a scenario and the results recorded for it."""

    @abstractmethod
    async def save_result(self, result: TestResult) -> str:
        """Append an execution result.

        Returns:
            The result id

        """

    @abstractmethod
    async def get_result(self, result_id: str) -> TestResult | None:
        """Return the result with ``result_id`` or None."""

    @abstractmethod
    async def get_results(self, scenario_id: str) -> Sequence[TestResult]:
        """Return all results of a scenario, newest first."""

    @abstractmethod
    async def search_results(
        self, criteria: ResultSearchCriteria
    ) -> Sequence[TestResult]:
        """Return one page of results matching ``criteria``."""

    @abstractmethod
    async def delete_result(self, result_id: str) -> bool:
        """Delete a single result."""

    @abstractmethod
    async def get_test_statistics(
        self, project_id: str, from_date: datetime, to_date: datetime
    ) -> TestStatistics:
        """Compute statistics for a project over ``[from_date, to_date]``."""

    @abstractmethod
    async def archive_old_results(self, older_than: datetime) -> int:
        """Remove results started strictly before ``older_than``.

        Scenarios are never removed.

        Returns:
            Number of results removed

        """
