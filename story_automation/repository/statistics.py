"""Statistics aggregation over scenario and result snapshots."""

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import date, datetime, timedelta

from story_automation.models.base import as_utc
from story_automation.models.result import TestResult
from story_automation.models.scenario import Environment, TestScenario, TestType
from story_automation.models.statistics import (
    DailyStatistics,
    EnvironmentStatistics,
    TestStatistics,
    TypeStatistics,
)


def pass_rate(results: Sequence[TestResult]) -> float:
    """Percentage of passed results, 0 for an empty set."""
    if not results:
        return 0.0
    return sum(1 for r in results if r.passed) / len(results) * 100


def average_duration(results: Sequence[TestResult]) -> timedelta:
    """Arithmetic mean of result durations, zero for an empty set."""
    if not results:
        return timedelta(0)
    return sum((r.duration for r in results), timedelta(0)) / len(results)


def compute_statistics(
    project_id: str,
    scenarios: Iterable[TestScenario],
    results: Iterable[TestResult],
    from_date: datetime,
    to_date: datetime,
) -> TestStatistics:
    """Aggregate statistics for one project.

    Args:
        project_id: Project whose scenarios are counted
        scenarios: Snapshot of all stored scenarios
        results: Snapshot of all stored results
        from_date: Inclusive lower bound on result start time
        to_date: Inclusive upper bound on result start time

    Returns:
        Totals, pass rates, mean durations, per-type and per-environment
        breakdowns and a daily trend ordered by date

    """
    from_date, to_date = as_utc(from_date), as_utc(to_date)
    project_scenarios = [s for s in scenarios if s.project_id == project_id]
    scenario_types = {s.id: s.type for s in project_scenarios}
    project_results = [
        r
        for r in results
        if r.scenario_id in scenario_types and from_date <= r.started_at <= to_date
    ]

    passed = sum(1 for r in project_results if r.passed)

    return TestStatistics(
        total_scenarios=len(project_scenarios),
        total_executions=len(project_results),
        passed_executions=passed,
        failed_executions=len(project_results) - passed,
        pass_rate=pass_rate(project_results),
        average_duration=average_duration(project_results),
        by_type=_by_type(project_scenarios, project_results, scenario_types),
        by_environment=_by_environment(project_results),
        daily_trends=_daily_trends(project_results),
    )


def _by_type(
    scenarios: Sequence[TestScenario],
    results: Sequence[TestResult],
    scenario_types: dict[str, TestType],
) -> dict[TestType, TypeStatistics]:
    scenario_counts: dict[TestType, int] = defaultdict(int)
    for scenario in scenarios:
        scenario_counts[scenario.type] += 1

    results_by_type: dict[TestType, list[TestResult]] = defaultdict(list)
    for result in results:
        results_by_type[scenario_types[result.scenario_id]].append(result)

    return {
        test_type: TypeStatistics(
            scenario_count=count,
            execution_count=len(results_by_type[test_type]),
            pass_rate=pass_rate(results_by_type[test_type]),
            average_duration=average_duration(results_by_type[test_type]),
        )
        for test_type, count in scenario_counts.items()
    }


def _by_environment(
    results: Sequence[TestResult],
) -> dict[Environment, EnvironmentStatistics]:
    groups: dict[Environment, list[TestResult]] = defaultdict(list)
    for result in results:
        groups[result.environment].append(result)

    return {
        environment: EnvironmentStatistics(
            execution_count=len(group),
            pass_rate=pass_rate(group),
            average_duration=average_duration(group),
        )
        for environment, group in groups.items()
    }


def _daily_trends(results: Sequence[TestResult]) -> list[DailyStatistics]:
    groups: dict[date, list[TestResult]] = defaultdict(list)
    for result in results:
        groups[result.started_at.date()].append(result)

    return [
        DailyStatistics(
            day=day,
            execution_count=len(groups[day]),
            pass_rate=pass_rate(groups[day]),
            average_duration=average_duration(groups[day]),
        )
        for day in sorted(groups)
    ]
