"""Abstract base class for scenario generators."""

from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence

from pydantic import Field

from story_automation.models.base import Model, Value
from story_automation.models.result import TestResult
from story_automation.models.scenario import TestScenario
from story_automation.models.step import TestStep


class ScenarioQualityReport(Model):
    """Quality assessment of a scenario."""

    is_valid: bool
    quality_score: int = Field(..., ge=0, le=100)
    issues: Sequence[str] = Field(default_factory=list)
    suggestions: Sequence[str] = Field(default_factory=list)
    missing_coverage: Sequence[str] = Field(default_factory=list)


class ScenarioGenerator(ABC):
    """Converts natural-language stories into scenarios and reasons about them."""

    @abstractmethod
    async def generate(self, story: str, context: str = "") -> TestScenario:
        """Generate a scenario from a user story.

        Args:
            story: Free-form user story text
            context: Project context the story belongs to

        Returns:
            The generated scenario, without a project id

        """

    @abstractmethod
    async def refine_steps(
        self, steps: Sequence[TestStep], feedback: str
    ) -> list[TestStep]:
        """Adjust steps according to reviewer feedback."""

    @abstractmethod
    async def analyze_failure(self, result: TestResult) -> str:
        """Describe why an execution failed and what to try next."""

    @abstractmethod
    async def generate_test_data(
        self, scenario: TestScenario, requirements: str
    ) -> Mapping[str, Value]:
        """Produce input values for a scenario."""

    @abstractmethod
    async def optimize_scenarios(
        self, scenarios: Sequence[TestScenario]
    ) -> list[TestScenario]:
        """Return leaner equivalents of the given scenarios."""

    @abstractmethod
    async def suggest_additional_tests(
        self, existing: Sequence[TestScenario], context: str
    ) -> list[TestScenario]:
        """Propose scenarios covering gaps in ``existing``."""

    @abstractmethod
    async def validate_scenario(self, scenario: TestScenario) -> ScenarioQualityReport:
        """Assess the structure and coverage of a scenario."""
