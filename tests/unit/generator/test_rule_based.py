"""Tests for the rule-based generator."""

from datetime import timedelta
from typing import Any

import pytest

from story_automation.generator.rule_based import RuleBasedGenerator
from story_automation.models.base import utc_now
from story_automation.models.result import StepResult
from story_automation.models.scenario import TestScenario
from story_automation.testing.factories import (
    TestResultFactory,
    TestScenarioFactory,
    TestStepFactory,
)


@pytest.fixture
def generator() -> RuleBasedGenerator:
    """Create generator."""
    return RuleBasedGenerator()


class TestGenerate:
    """Tests for scenario generation."""

    async def test_login_story(self, generator: RuleBasedGenerator) -> None:
        """Generates a UI login scenario that starts at the story's URL."""
        scenario = await generator.generate(
            "As a user, I want to login to https://app.example.com"
        )

        assert scenario.type == "ui"
        assert scenario.steps[0].action == "navigate"
        assert scenario.steps[0].target == "https://app.example.com"
        assert any(s.action in {"enter_text", "click"} for s in scenario.steps[1:])
        assert scenario.title == "Login Test"
        assert scenario.status == "generated"
        assert list(scenario.tags) == ["login", "generated"]

    @pytest.mark.parametrize(
        ("story", "url"),
        [
            (
                "Get a quote at https://insure.example.com/quote for zip 10001",
                "https://insure.example.com/quote",
            ),
            (
                "Submit a claim on https://claims.example.com/new today",
                "https://claims.example.com/new",
            ),
            (
                "Pay the invoice via https://pay.example.com/checkout.",
                "https://pay.example.com/checkout",
            ),
            (
                "The quote API at https://api.example.com/v1/quotes returns a premium",
                "https://api.example.com/v1/quotes",
            ),
            (
                "Look around https://www.example.com and https://other.example.com",
                "https://www.example.com",
            ),
        ],
    )
    async def test_first_step_targets_first_url(
        self, generator: RuleBasedGenerator, story: str, url: str
    ) -> None:
        """Targets the first URL in the first step."""
        scenario = await generator.generate(story)

        assert scenario.steps[0].target == url

    @pytest.mark.parametrize(
        "story", ["", "   ", "Just some words", "Check https://example.org/home"]
    )
    async def test_unrecognized_story_yields_single_verify(
        self, generator: RuleBasedGenerator, story: str
    ) -> None:
        """Produces exactly one verify step when no keyword matches."""
        scenario = await generator.generate(story)

        assert len(scenario.steps) == 1
        assert scenario.steps[0].action == "verify"
        assert scenario.steps[0].get_parameter("expected") == "page loads"

    async def test_generated_scenarios_are_structurally_valid(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Produces scenarios that validate once a project is set."""
        for story in (
            "login with bob@example.com and password hunter2",
            "quote api for zip 12345",
            "claim service for $300",
            "payment checkout",
            "",
        ):
            scenario = await generator.generate(story)
            stamped = scenario.model_copy(update={"project_id": "p"})

            assert stamped.validation_errors() == []

    async def test_is_deterministic(self, generator: RuleBasedGenerator) -> None:
        """Produces the same content for the same input."""
        story = "Login at https://app.example.com as jo@example.com password: pw1"

        first = await generator.generate(story)
        second = await generator.generate(story)

        def content(scenario: TestScenario) -> dict[str, Any]:
            dump = scenario.model_dump(exclude={"id", "created_at", "updated_at"})
            for step in dump["steps"]:
                del step["id"]
            return dump

        assert content(first) == content(second)

    async def test_login_credentials_are_used(self, generator: RuleBasedGenerator) -> None:
        """Enters extracted credentials and keeps them as test data."""
        scenario = await generator.generate(
            "Sign in to https://app.example.com as jo@example.com with password pw1"
        )

        values = [s.get_parameter("value") for s in scenario.steps if s.action == "enter_text"]
        assert values == ["jo@example.com", "pw1"]
        assert scenario.test_data == {"username": "jo@example.com", "password": "pw1"}

    async def test_api_login_uses_placeholders(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Posts credentials as run-variable placeholders."""
        scenario = await generator.generate("The login API authenticates users")

        assert scenario.type == "api"
        assert scenario.steps[0].action == "api_post"
        assert scenario.steps[0].target == "/api/auth/login"
        assert scenario.steps[0].get_parameter("body") == {
            "username": "{{username}}",
            "password": "{{password}}",
        }
        assert scenario.steps[1].action == "verify_status_code"

    async def test_records_context_in_metadata(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Keeps generator, category and context in the metadata."""
        scenario = await generator.generate("make a payment", "billing portal")

        assert scenario.metadata["generator"] == "rule-based"
        assert scenario.metadata["category"] == "payment"
        assert scenario.metadata["context"] == "billing portal"
        assert scenario.priority == "high"


class TestRefineSteps:
    """Tests for feedback-driven refinement."""

    async def test_applies_feedback_keywords(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Applies screenshot, timeout, optional and disable feedback."""
        steps = [
            TestStepFactory.build(order=5, action="click"),
            TestStepFactory.build(
                order=9,
                action="verify",
                parameters={"expected": "ok"},
                timeout=timedelta(seconds=10),
            ),
            TestStepFactory.build(order=7, action="hover"),
        ]

        refined = await generator.refine_steps(
            steps, "Take a screenshot, it is slow, verification is optional, disable hover"
        )

        assert [s.order for s in refined] == [1, 2, 3]
        assert [s.action for s in refined] == ["click", "hover", "verify"]
        assert all(s.take_screenshot for s in refined)
        assert refined[2].timeout == timedelta(seconds=20)
        assert refined[0].timeout == timedelta(seconds=60)
        assert refined[2].continue_on_failure
        assert not refined[0].continue_on_failure
        assert not refined[1].enabled

    async def test_no_feedback_only_renumbers(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Leaves steps unchanged apart from their order."""
        steps = [TestStepFactory.build(order=10), TestStepFactory.build(order=20)]

        refined = await generator.refine_steps(steps, "")

        assert [s.order for s in refined] == [1, 2]
        assert [s.id for s in refined] == [s.id for s in steps]


class TestAnalyzeFailure:
    """Tests for failure narratives."""

    async def test_describes_failed_steps(self, generator: RuleBasedGenerator) -> None:
        """Lists failed steps with matching recommendations."""
        step = TestStepFactory.build(description="Open login", target="#login")
        failure = StepResult.for_step(
            step, passed=False, message="Step timed out after 5.0s", started_at=utc_now()
        )
        result = TestResultFactory.build(
            passed=False, message="Test failed at step: Open login", step_results=[failure]
        )

        narrative = await generator.analyze_failure(result)

        assert "Execution failed" in narrative
        assert "- Open login (click on #login): Step timed out after 5.0s" in narrative
        assert "Increase the timeout of 'Open login'" in narrative

    async def test_passed_result(self, generator: RuleBasedGenerator) -> None:
        """Says there is nothing to fix for a passed result."""
        narrative = await generator.analyze_failure(TestResultFactory.build(passed=True))

        assert "No step failures were recorded." in narrative


async def test_generate_test_data_keeps_existing_values(
    generator: RuleBasedGenerator,
) -> None:
    """Adds requirement defaults without overriding scenario data."""
    scenario = TestScenarioFactory.build(
        test_data={"email": "fixed@example.com"},
        original_user_story="login with password: pw1",
    )

    data = await generator.generate_test_data(scenario, "email, phone and zip")

    assert data["email"] == "fixed@example.com"
    assert data["password"] == "pw1"
    assert data["phone"] == "555-0100"
    assert data["zip_code"] == "10001"


async def test_optimize_drops_disabled_and_duplicate_steps(
    generator: RuleBasedGenerator,
) -> None:
    """Removes disabled and consecutive duplicate steps and renumbers."""
    scenario = TestScenarioFactory.build(
        steps=[
            TestStepFactory.build(order=1, action="navigate", target="/"),
            TestStepFactory.build(order=2, action="click", target="#a"),
            TestStepFactory.build(order=3, action="click", target="#a"),
            TestStepFactory.build(order=4, action="hover", target="#b", enabled=False),
            TestStepFactory.build(order=5, action="click", target="#c"),
        ]
    )

    [optimized] = await generator.optimize_scenarios([scenario])

    assert [(s.order, s.target) for s in optimized.steps] == [
        (1, "/"),
        (2, "#a"),
        (3, "#c"),
    ]


class TestSuggestAdditionalTests:
    """Tests for coverage suggestions."""

    async def test_suggests_negative_login(self, generator: RuleBasedGenerator) -> None:
        """Suggests an invalid-credentials variant of a login scenario."""
        login = (await generator.generate("login to https://app.example.com")).model_copy(
            update={"project_id": "p"}
        )

        [negative] = await generator.suggest_additional_tests([login], "")

        assert negative.status == "draft"
        assert "negative" in negative.tags
        assert negative.test_data["password"] == "invalid-password"
        assert "invalid-password" in [s.get_parameter("value") for s in negative.steps]
        assert negative.steps[-1].get_parameter("expected") == "error message is displayed"
        assert negative.id != login.id

    async def test_suggests_uncovered_categories(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Suggests scenarios for context categories not yet covered."""
        quote = (await generator.generate("get a quote")).model_copy(
            update={"project_id": "p"}
        )

        suggestions = await generator.suggest_additional_tests(
            [quote], "Customers request quotes, file claims and pay online"
        )

        assert [s.metadata["category"] for s in suggestions] == ["claim", "payment"]
        assert all(s.status == "draft" and s.project_id == "p" for s in suggestions)


class TestValidateScenario:
    """Tests for quality scoring."""

    async def test_generated_login_scores_well(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Scores a complete generated scenario highly."""
        scenario = (await generator.generate("login to https://a.test")).model_copy(
            update={"project_id": "p"}
        )

        report = await generator.validate_scenario(scenario)

        assert report.is_valid
        assert report.quality_score == 100
        assert list(report.missing_coverage) == ["negative path"]

    async def test_penalizes_gaps(self, generator: RuleBasedGenerator) -> None:
        """Deducts for missing steps, verification and unknown actions."""
        scenario = TestScenarioFactory.build(
            steps=[TestStepFactory.build(action="teleport")],
            preconditions=[],
            expected_outcomes=[],
        )

        report = await generator.validate_scenario(scenario)

        assert report.is_valid
        assert report.quality_score == 100 - 25 - 10 - 5 - 5 - 10
        assert "assertions" in report.missing_coverage

    async def test_empty_scenario_is_invalid(
        self, generator: RuleBasedGenerator
    ) -> None:
        """Reports structural errors as issues and deducts for each."""
        scenario = TestScenarioFactory.build(
            steps=[], title="", project_id="", preconditions=[], expected_outcomes=[]
        )

        report = await generator.validate_scenario(scenario)

        assert not report.is_valid
        assert "At least one test step is required" in report.issues
        assert report.quality_score == 100 - 3 * 20 - 25 - 5 - 5
