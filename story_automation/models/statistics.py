"""Aggregated execution statistics, derived on demand from stored results."""

from collections.abc import Mapping, Sequence
from datetime import date, timedelta

from pydantic import Field

from story_automation.models.base import Model
from story_automation.models.scenario import Environment, TestType


class TypeStatistics(Model):
    """Statistics for the scenarios of one test type."""

    scenario_count: int = 0
    execution_count: int = 0
    pass_rate: float = 0.0
    average_duration: timedelta = timedelta(0)


class EnvironmentStatistics(Model):
    """Statistics for executions in one environment."""

    execution_count: int = 0
    pass_rate: float = 0.0
    average_duration: timedelta = timedelta(0)


class DailyStatistics(Model):
    """Statistics for executions started on one calendar day."""

    day: date
    execution_count: int = 0
    pass_rate: float = 0.0
    average_duration: timedelta = timedelta(0)


class TestStatistics(Model):
    """Project statistics over a date range."""

    __test__ = False

    total_scenarios: int = 0
    total_executions: int = 0
    passed_executions: int = 0
    failed_executions: int = 0
    pass_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    average_duration: timedelta = timedelta(0)
    by_type: Mapping[TestType, TypeStatistics] = Field(default_factory=dict)
    by_environment: Mapping[Environment, EnvironmentStatistics] = Field(
        default_factory=dict
    )
    daily_trends: Sequence[DailyStatistics] = Field(default_factory=list)
