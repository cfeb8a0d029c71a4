"""Deterministic, offline scenario generator."""

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta

from story_automation.generator.analysis import (
    GENERIC,
    Category,
    StoryAnalysis,
    analyze_story,
)
from story_automation.generator.base import ScenarioGenerator, ScenarioQualityReport
from story_automation.generator.templates import (
    DEFAULT_AMOUNT,
    DEFAULT_PASSWORD,
    DEFAULT_USERNAME,
    DEFAULT_ZIP,
    PROFILES,
    TEST_CARD_NUMBER,
    build_steps,
)
from story_automation.models.base import Value
from story_automation.models.result import TestResult
from story_automation.models.scenario import ScenarioStatus, TestScenario
from story_automation.models.step import KNOWN_ACTIONS, TestStep

log = logging.getLogger(__name__)

DISABLE_PATTERN = re.compile(r"\bdisable\s+(\w+)", re.IGNORECASE)

DESCRIPTION_LIMIT = 100

# Requirement keyword -> values added to generated test data.
REQUIREMENT_DATA: Sequence[tuple[str, Mapping[str, Value]]] = (
    ("email", {"email": "test.user@example.com"}),
    ("password", {"password": "P@ssw0rd123!"}),
    ("name", {"first_name": "Test", "last_name": "User"}),
    ("phone", {"phone": "555-0100"}),
    ("address", {"address": "123 Test Street"}),
    ("zip", {"zip_code": DEFAULT_ZIP}),
    ("postal", {"zip_code": DEFAULT_ZIP}),
    ("amount", {"amount": DEFAULT_AMOUNT}),
    ("price", {"amount": DEFAULT_AMOUNT}),
    ("card", {"card_number": TEST_CARD_NUMBER}),
    ("date", {"date": "2030-01-01"}),
)

FAILURE_HINTS: Sequence[tuple[tuple[str, ...], str]] = (
    (
        ("element not found", "no such element", "not found"),
        "Check the locator for '{target}'; the page structure may have changed.",
    ),
    (
        ("timeout", "timed out"),
        "Increase the timeout of '{name}' or add a wait before it.",
    ),
    (
        ("status code", "returned 4", "returned 5"),
        "Check the endpoint '{target}' and the request payload.",
    ),
    (
        ("no response available",),
        "Add an api_* request before '{name}'.",
    ),
)


def _is_verification(step: TestStep) -> bool:
    action = step.action.lower()
    return action.startswith(("verify", "assert")) or bool(step.validation_rules)


def _renumber(steps: Sequence[TestStep]) -> list[TestStep]:
    ordered = sorted(steps, key=lambda s: s.order)
    return [
        step if step.order == order else step.model_copy(update={"order": order})
        for order, step in enumerate(ordered, start=1)
    ]


def _same_step(a: TestStep, b: TestStep) -> bool:
    return (
        a.action.lower() == b.action.lower()
        and a.target == b.target
        and dict(a.parameters) == dict(b.parameters)
    )


@dataclass(frozen=True, kw_only=True)
class RuleBasedGenerator(ScenarioGenerator):
    """Generator driven by keyword templates instead of a language model.

    Output depends only on the input text, so it doubles as a stand-in for a
    model-backed generator in tests.
    """

    created_by: str = "rule-based-generator"

    async def generate(self, story: str, context: str = "") -> TestScenario:
        """Generate a scenario from a user story."""
        analysis = analyze_story(story)
        log.info(
            "Generating %s %s scenario (categories=%s, urls=%d)",
            analysis.category,
            analysis.test_type,
            analysis.categories,
            len(analysis.urls),
        )
        return self._scenario(analysis, analysis.category, context)

    def _scenario(
        self,
        analysis: StoryAnalysis,
        category: Category,
        context: str,
        status: ScenarioStatus = "generated",
    ) -> TestScenario:
        profile = PROFILES[category]
        description = analysis.text.strip()[:DESCRIPTION_LIMIT] or profile.title

        test_data: dict[str, Value] = dict(analysis.credentials)
        if category == "login":
            test_data.setdefault("username", DEFAULT_USERNAME)
            test_data.setdefault("password", DEFAULT_PASSWORD)
        if analysis.zip_codes:
            test_data["zip_code"] = analysis.zip_codes[0]
        if analysis.amounts:
            test_data["amount"] = analysis.amounts[0]

        return TestScenario.model_validate(
            {
                "title": profile.title,
                "description": description,
                "original_user_story": analysis.text,
                "type": analysis.test_type,
                "status": status,
                "priority": profile.priority,
                "environment": "testing",
                "steps": build_steps(analysis, category),
                "tags": [category, "generated"],
                "preconditions": list(profile.preconditions),
                "expected_outcomes": list(profile.expected_outcomes),
                "created_by": self.created_by,
                "test_data": test_data,
                "metadata": {
                    "generator": "rule-based",
                    "category": category,
                    "categories": list(analysis.categories),
                    "urls": list(analysis.urls),
                    "context": context,
                },
            }
        )

    async def refine_steps(
        self, steps: Sequence[TestStep], feedback: str
    ) -> list[TestStep]:
        """Apply keyword-driven feedback and renumber the steps.

        Recognized feedback: ``screenshot``, ``timeout``/``slow``, ``wait``,
        ``continue``/``optional`` and ``disable <action>``.
        """
        text = feedback.lower()
        disabled = {action.lower() for action in DISABLE_PATTERN.findall(feedback)}

        refined: list[TestStep] = []
        for step in steps:
            update: dict[str, object] = {}
            if "screenshot" in text:
                update["take_screenshot"] = True
            if "timeout" in text or "slow" in text:
                update["timeout"] = (
                    step.timeout * 2 if step.timeout else timedelta(seconds=60)
                )
            if "wait" in text and step.wait_before is None:
                update["wait_before"] = timedelta(seconds=1)
            if ("continue" in text or "optional" in text) and _is_verification(step):
                update["continue_on_failure"] = True
            if step.action.lower() in disabled:
                update["enabled"] = False
            refined.append(step.model_copy(update=update) if update else step)

        return _renumber(refined)

    async def analyze_failure(self, result: TestResult) -> str:
        """Summarize a result and suggest fixes for each failed step."""
        status = "passed" if result.passed else "failed"
        lines = [
            f"Execution {status} after {result.duration.total_seconds():.1f}s.",
            f"Message: {result.message}",
        ]
        if result.error:
            lines.append(f"Execution aborted by {result.error}.")

        failed = [sr for sr in result.step_results if not sr.passed]
        if not failed:
            lines.append("No step failures were recorded.")
            return "\n".join(lines)

        lines.append("Failed steps:")
        recommendations: list[str] = []
        for step_result in failed:
            lines.append(
                f"- {step_result.step_name} ({step_result.action} on "
                f"{step_result.target}): {step_result.message}"
            )
            message = step_result.message.lower()
            for needles, hint in FAILURE_HINTS:
                if any(needle in message for needle in needles):
                    recommendations.append(
                        hint.format(target=step_result.target, name=step_result.step_name)
                    )
                    break
            else:
                recommendations.append(
                    f"Review the expected result of '{step_result.step_name}'."
                )

        lines.append("Recommendations:")
        lines.extend(f"- {line}" for line in dict.fromkeys(recommendations))
        return "\n".join(lines)

    async def generate_test_data(
        self, scenario: TestScenario, requirements: str
    ) -> dict[str, Value]:
        """Merge scenario data, story credentials and requirement defaults.

        Values already present in the scenario take precedence.
        """
        data: dict[str, Value] = dict(scenario.test_data)
        for key, value in analyze_story(scenario.original_user_story).credentials.items():
            data.setdefault(key, value)

        wanted = requirements.lower()
        for keyword, values in REQUIREMENT_DATA:
            if keyword in wanted:
                for key, value in values.items():
                    data.setdefault(key, value)
        return data

    async def optimize_scenarios(
        self, scenarios: Sequence[TestScenario]
    ) -> list[TestScenario]:
        """Drop disabled and consecutive duplicate steps, then renumber."""
        optimized: list[TestScenario] = []
        for scenario in scenarios:
            kept: list[TestStep] = []
            for step in scenario.enabled_steps():
                if kept and _same_step(kept[-1], step):
                    continue
                kept.append(step)

            removed = len(scenario.steps) - len(kept)
            if removed:
                log.info("Removed %d step(s) from scenario %s", removed, scenario.id)
            optimized.append(scenario.model_copy(update={"steps": _renumber(kept)}))
        return optimized

    async def suggest_additional_tests(
        self, existing: Sequence[TestScenario], context: str
    ) -> list[TestScenario]:
        """Suggest a negative login case and scenarios for uncovered categories."""
        covered = {
            str(s.metadata.get("category", GENERIC)) for s in existing
        } | {tag for s in existing for tag in s.tags}
        project_id = existing[0].project_id if existing else ""
        suggestions: list[TestScenario] = []

        login = next((s for s in existing if "login" in s.tags), None)
        has_negative = any("negative" in s.tags for s in existing)
        if login is not None and not has_negative:
            suggestions.append(self._negative_login(login))

        analysis = analyze_story(context)
        for category in analysis.categories:
            if category in covered:
                continue
            scenario = self._scenario(analysis, category, context, status="draft")
            suggestions.append(
                scenario.model_copy(
                    update={
                        "project_id": project_id,
                        "tags": [*scenario.tags, "suggested"],
                    }
                )
            )

        log.info("Suggested %d additional scenario(s)", len(suggestions))
        return suggestions

    def _negative_login(self, login: TestScenario) -> TestScenario:
        password = login.test_data.get("password")

        def invert(step: TestStep) -> TestStep:
            action = step.action.lower()
            if action == "verify":
                update: dict[str, object] = {
                    "parameters": {"expected": "error message is displayed"},
                    "expected_result": "Login is rejected",
                }
            elif action == "enter_text" and step.get_parameter("value") == password:
                update = {"parameters": {"value": "invalid-password"}}
            else:
                update = {}
            return step.model_copy(update=update).clone()

        clone = login.clone(title="Login Test - Invalid Credentials")
        return clone.model_copy(
            update={
                "steps": [invert(step) for step in login.steps],
                "tags": ["login", "negative", "suggested"],
                "test_data": {**login.test_data, "password": "invalid-password"},
                "expected_outcomes": ["Login is rejected with an error message"],
            }
        )

    async def validate_scenario(self, scenario: TestScenario) -> ScenarioQualityReport:
        """Score a scenario from 100 down by structural and coverage gaps."""
        issues = scenario.validation_errors()
        suggestions: list[str] = []
        missing: list[str] = []
        score = 100 - 20 * len(issues)

        if not any(_is_verification(step) for step in scenario.steps):
            score -= 25
            suggestions.append("Add a verification step to assert the outcome")
            missing.append("assertions")

        for step in scenario.steps:
            if step.action.strip() and step.action.lower() not in KNOWN_ACTIONS:
                score -= 10
                suggestions.append(f"Replace unknown action '{step.action}'")

        if not scenario.preconditions:
            score -= 5
            suggestions.append("Document the preconditions")
        if not scenario.expected_outcomes:
            score -= 5
            suggestions.append("Document the expected outcomes")
        if len(scenario.steps) == 1:
            score -= 10
            suggestions.append("Break the scenario into more than one step")

        if "negative" not in scenario.tags:
            missing.append("negative path")

        return ScenarioQualityReport(
            is_valid=not issues,
            quality_score=max(0, min(100, score)),
            issues=issues,
            suggestions=suggestions,
            missing_coverage=missing,
        )
