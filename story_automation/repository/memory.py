"""In-memory repository backed by copy-on-write tables."""

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from story_automation.models.base import as_utc, utc_now
from story_automation.models.criteria import (
    Page,
    ResultSearchCriteria,
    ScenarioSearchCriteria,
)
from story_automation.models.result import TestResult
from story_automation.models.scenario import PRIORITY_RANK, TestScenario
from story_automation.models.statistics import TestStatistics
from story_automation.repository.base import TestRepository
from story_automation.repository.statistics import compute_statistics

log = logging.getLogger(__name__)

SCENARIO_SORT_KEYS: Mapping[str, Callable[[TestScenario], Any]] = {
    "created_at": lambda s: s.created_at,
    "updated_at": lambda s: s.updated_at,
    "title": lambda s: s.title.lower(),
    "type": lambda s: s.type,
    "status": lambda s: s.status,
    "priority": lambda s: PRIORITY_RANK[s.priority],
    "created_by": lambda s: s.created_by.lower(),
}

RESULT_SORT_KEYS: Mapping[str, Callable[[TestResult], Any]] = {
    "started_at": lambda r: r.started_at,
    "completed_at": lambda r: r.completed_at,
    "duration": lambda r: r.duration,
    "passed": lambda r: r.passed,
    "environment": lambda r: r.environment,
    "executed_by": lambda r: r.executed_by.lower(),
}


def _paginate[T](items: list[T], page: Page) -> list[T]:
    return items[page.offset : page.offset + page.page_size]


def _shares_tag(tags: Sequence[str], wanted: Sequence[str]) -> bool:
    return not wanted or not set(tags).isdisjoint(wanted)


def _contains(haystack: str, needle: str | None) -> bool:
    return needle is None or needle.lower() in haystack.lower()


@dataclass(kw_only=True)
class InMemoryTestRepository(TestRepository):
    """Repository keeping scenarios and results in process memory.

    Stored objects are immutable and every table is replaced rather than
    mutated, so readers take a snapshot under the lock and do all filtering
    and aggregation outside of it.
    """

    _scenarios: dict[str, TestScenario] = field(default_factory=dict, repr=False)
    _results: dict[str, tuple[TestResult, ...]] = field(
        default_factory=dict, repr=False
    )
    _result_index: dict[str, str] = field(default_factory=dict, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _scenario_snapshot(self) -> list[TestScenario]:
        with self._lock:
            return list(self._scenarios.values())

    def _result_snapshot(self) -> list[TestResult]:
        with self._lock:
            tables = list(self._results.values())
        return [result for table in tables for result in table]

    async def save_scenario(self, scenario: TestScenario) -> str:
        """Store a scenario, stamping ``updated_at``."""
        stored = scenario.model_copy(update={"updated_at": utc_now()})
        with self._lock:
            self._scenarios[stored.id] = stored
        return stored.id

    async def get_scenario(self, scenario_id: str) -> TestScenario | None:
        """Return the scenario with ``scenario_id`` or None."""
        return self._scenarios.get(scenario_id)

    async def get_scenarios_by_project(self, project_id: str) -> Sequence[TestScenario]:
        """Return all scenarios of a project, oldest first."""
        return sorted(
            (s for s in self._scenario_snapshot() if s.project_id == project_id),
            key=lambda s: s.created_at,
        )

    async def search_scenarios(
        self, criteria: ScenarioSearchCriteria
    ) -> Sequence[TestScenario]:
        """Return one page of scenarios matching ``criteria``."""

        def matches(s: TestScenario) -> bool:
            return (
                (criteria.project_id is None or s.project_id == criteria.project_id)
                and (criteria.type is None or s.type == criteria.type)
                and (criteria.status is None or s.status == criteria.status)
                and (criteria.priority is None or s.priority == criteria.priority)
                and _shares_tag(s.tags, criteria.tags)
                and _contains(s.created_by, criteria.created_by)
                and (criteria.created_from is None or s.created_at >= criteria.created_from)
                and (criteria.created_to is None or s.created_at <= criteria.created_to)
                and (
                    _contains(s.title, criteria.search_text)
                    or _contains(s.description, criteria.search_text)
                )
            )

        found = sorted(
            filter(matches, self._scenario_snapshot()),
            key=SCENARIO_SORT_KEYS[criteria.sort_by],
            reverse=criteria.sort_descending,
        )
        return _paginate(found, criteria)

    async def update_scenario(self, scenario: TestScenario) -> bool:
        """Replace an existing scenario as given."""
        with self._lock:
            if scenario.id not in self._scenarios:
                return False
            self._scenarios[scenario.id] = scenario
        return True

    async def delete_scenario(self, scenario_id: str) -> bool:
        """Delete a scenario and the results recorded for it."""
        with self._lock:
            if self._scenarios.pop(scenario_id, None) is None:
                return False
            for result in self._results.pop(scenario_id, ()):
                self._result_index.pop(result.id, None)
        log.info("Deleted scenario %s", scenario_id)
        return True

    async def save_result(self, result: TestResult) -> str:
        """Append an execution result to its scenario's table."""
        with self._lock:
            existing = self._results.get(result.scenario_id, ())
            self._results[result.scenario_id] = (*existing, result)
            self._result_index[result.id] = result.scenario_id
        return result.id

    async def get_result(self, result_id: str) -> TestResult | None:
        """Return the result with ``result_id`` or None."""
        with self._lock:
            scenario_id = self._result_index.get(result_id)
            table = self._results.get(scenario_id, ()) if scenario_id else ()
        return next((r for r in table if r.id == result_id), None)

    async def get_results(self, scenario_id: str) -> Sequence[TestResult]:
        """Return all results of a scenario, newest first."""
        table = self._results.get(scenario_id, ())
        return sorted(table, key=lambda r: r.started_at, reverse=True)

    async def search_results(
        self, criteria: ResultSearchCriteria
    ) -> Sequence[TestResult]:
        """Return one page of results matching ``criteria``."""
        project_scenarios: set[str] | None = None
        if criteria.project_id is not None:
            project_scenarios = {
                s.id
                for s in self._scenario_snapshot()
                if s.project_id == criteria.project_id
            }

        def matches(r: TestResult) -> bool:
            return (
                (criteria.scenario_id is None or r.scenario_id == criteria.scenario_id)
                and (project_scenarios is None or r.scenario_id in project_scenarios)
                and (criteria.passed is None or r.passed == criteria.passed)
                and (criteria.environment is None or r.environment == criteria.environment)
                and _contains(r.executed_by, criteria.executed_by)
                and (criteria.executed_from is None or r.started_at >= criteria.executed_from)
                and (criteria.executed_to is None or r.started_at <= criteria.executed_to)
                and (criteria.min_duration is None or r.duration >= criteria.min_duration)
                and (criteria.max_duration is None or r.duration <= criteria.max_duration)
                and _shares_tag(r.execution_tags, criteria.execution_tags)
            )

        found = sorted(
            filter(matches, self._result_snapshot()),
            key=RESULT_SORT_KEYS[criteria.sort_by],
            reverse=criteria.sort_descending,
        )
        return _paginate(found, criteria)

    async def delete_result(self, result_id: str) -> bool:
        """Delete a single result."""
        with self._lock:
            scenario_id = self._result_index.pop(result_id, None)
            if scenario_id is None:
                return False
            remaining = tuple(
                r for r in self._results.get(scenario_id, ()) if r.id != result_id
            )
            if remaining:
                self._results[scenario_id] = remaining
            else:
                self._results.pop(scenario_id, None)
        return True

    async def get_test_statistics(
        self, project_id: str, from_date: datetime, to_date: datetime
    ) -> TestStatistics:
        """Compute statistics for a project over ``[from_date, to_date]``."""
        return compute_statistics(
            project_id,
            self._scenario_snapshot(),
            self._result_snapshot(),
            from_date,
            to_date,
        )

    async def archive_old_results(self, older_than: datetime) -> int:
        """Remove results started strictly before ``older_than``."""
        older_than = as_utc(older_than)
        archived = 0
        with self._lock:
            for scenario_id, table in list(self._results.items()):
                kept = tuple(r for r in table if r.started_at >= older_than)
                if len(kept) == len(table):
                    continue
                archived += len(table) - len(kept)
                for result in table:
                    if result.started_at < older_than:
                        self._result_index.pop(result.id, None)
                if kept:
                    self._results[scenario_id] = kept
                else:
                    del self._results[scenario_id]

        log.info("Archived %d result(s) older than %s", archived, older_than.isoformat())
        return archived
