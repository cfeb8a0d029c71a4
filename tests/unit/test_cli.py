"""Tests for CLI module."""

import json
import logging
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from story_automation.cli import (
    apply_story_fields,
    format_output,
    generate,
    load_stories,
    log_results_summary,
    run,
)
from story_automation.errors import GenerationError
from story_automation.models.result import StepResult, TestResult
from story_automation.models.story import UserStory
from story_automation.testing.executors import ScriptedExecutor
from story_automation.testing.factories import TestScenarioFactory

STARTED = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_result(scenario_id: str, *, passed: bool = True, **overrides: object) -> TestResult:
    """Build a result lasting 1.5 seconds."""
    fields: dict[str, object] = {
        "scenario_id": scenario_id,
        "started_at": STARTED,
        "completed_at": STARTED + timedelta(seconds=1.5),
        "passed": passed,
    }
    fields.update(overrides)
    return TestResult.model_validate(fields)


def test_log_results_summary_success(caplog: pytest.LogCaptureFixture) -> None:
    """Logs passed results with check mark symbol."""
    with caplog.at_level(logging.INFO):
        log_results_summary(logging.getLogger(), [make_result("scenario-1")])

    assert "Test Results Summary:" in caplog.text
    assert "✅ scenario-1: passed (1.50s)" in caplog.text
    assert "Message:" not in caplog.text


def test_log_results_summary_failure(caplog: pytest.LogCaptureFixture) -> None:
    """Logs failed results with their message and retries."""
    result = make_result(
        "scenario-1",
        passed=False,
        message="Test failed at step: Submit",
        retry_attempts=2,
    )

    with caplog.at_level(logging.INFO):
        log_results_summary(logging.getLogger(), [result])

    assert "❌ scenario-1: failed (1.50s)" in caplog.text
    assert "Retries: 2" in caplog.text
    assert "Message: Test failed at step: Submit" in caplog.text


def test_format_output_empty() -> None:
    """Returns empty totals when no results."""
    assert format_output([]) == {
        "total": 0,
        "passed": 0,
        "failed": 0,
        "errors": 0,
        "results": [],
    }


def test_format_output_mixed_results() -> None:
    """Counts passed, failed and errored results."""
    failed_step = StepResult(
        step_id="step-1",
        step_name="Submit",
        action="click",
        passed=False,
        started_at=STARTED,
        completed_at=STARTED,
    )
    results = [
        make_result("s1"),
        make_result("s2", passed=False, step_results=[failed_step]),
        make_result("s3", passed=False, message="boom", error="NotFoundError"),
    ]

    output = format_output(results)

    assert output["total"] == 3
    assert output["passed"] == 1
    assert output["failed"] == 2
    assert output["errors"] == 1
    assert output["results"][0] == {
        "scenario_id": "s1",
        "passed": True,
        "duration": 1.5,
        "message": "",
        "retry_attempts": 0,
        "error": None,
        "failed_step": None,
    }
    assert output["results"][1]["failed_step"] == "Submit"
    assert output["results"][2]["error"] == "NotFoundError"


def test_apply_story_fields() -> None:
    """Carries the story title and tags over to the scenario."""
    scenario = TestScenarioFactory.build(title="Login Test", tags=["login"])

    updated = apply_story_fields(
        scenario, UserStory(story="login", title="Sign-in", tags=["smoke"])
    )

    assert updated.title == "Sign-in"
    assert list(updated.tags) == ["login", "smoke"]
    assert apply_story_fields(scenario, UserStory(story="login")) is scenario


async def test_load_stories(tmp_path: Path) -> None:
    """Loads story files first, then inline stories."""
    story_file = tmp_path / "story.txt"
    story_file.write_text("As a user I want to pay my bill\n")

    stories = await load_stories([story_file], ["Get a quote"])

    assert [s.story for s in stories] == ["As a user I want to pay my bill", "Get a quote"]


async def test_generate_prints_scenarios(capsys: pytest.CaptureFixture[str]) -> None:
    """Prints one generated scenario per story."""
    stories = [
        UserStory(story="login to https://app.example.com", title="Sign-in"),
        UserStory(story="get a quote", project_id="other"),
    ]

    exit_code = await generate(stories, "project-1")

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["total"] == 2
    assert output["scenarios"][0]["title"] == "Sign-in"
    assert output["scenarios"][0]["project_id"] == "project-1"
    assert output["scenarios"][0]["steps"][0]["target"] == "https://app.example.com"
    assert output["scenarios"][1]["project_id"] == "other"


class TestRun:
    """Tests for run function."""

    @pytest.fixture
    def executor(self) -> ScriptedExecutor:
        """Create scripted executor."""
        return ScriptedExecutor()

    @pytest.fixture
    def mock_manifest(self, executor: ScriptedExecutor) -> Mock:
        """Create manifest whose factory yields the scripted executor."""
        cm = AsyncMock()
        cm.__aenter__.return_value = executor
        cm.__aexit__.return_value = None

        manifest = Mock()
        manifest.config_cls = Mock(return_value=Mock())
        manifest.executor_factory = Mock(return_value=cm)
        return manifest

    async def test_returns_zero_without_stories(
        self, mock_manifest: Mock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Returns 0 and prints empty results when no stories are given."""
        with patch(
            "story_automation.cli.load_executor_manifest", return_value=mock_manifest
        ):
            exit_code = await run("http", "{}", [], "project-1")

        assert exit_code == 0
        assert '"total": 0' in capsys.readouterr().out
        mock_manifest.executor_factory.assert_not_called()

    async def test_returns_zero_when_all_tests_pass(
        self,
        mock_manifest: Mock,
        executor: ScriptedExecutor,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """Generates, runs and reports passing scenarios."""
        stories = [UserStory(story="login to https://app.example.com")]

        with patch(
            "story_automation.cli.load_executor_manifest", return_value=mock_manifest
        ) as mock_load:
            exit_code = await run("scripted", '{"base_url": "x"}', stories, "project-1")

        assert exit_code == 0
        mock_load.assert_called_once_with("scripted")
        mock_manifest.config_cls.assert_called_once_with(base_url="x")
        output = json.loads(capsys.readouterr().out)
        assert output["passed"] == 1
        assert executor.calls == 1
        assert executor.cleaned_up

    async def test_returns_one_when_test_fails(
        self, mock_manifest: Mock, executor: ScriptedExecutor
    ) -> None:
        """Returns 1 when any scenario fails."""
        executor.outcomes = [False]

        with patch(
            "story_automation.cli.load_executor_manifest", return_value=mock_manifest
        ):
            exit_code = await run(
                "scripted", "{}", [UserStory(story="make a payment")], "project-1"
            )

        assert exit_code == 1

    async def test_returns_one_when_executor_refuses(
        self, mock_manifest: Mock, executor: ScriptedExecutor
    ) -> None:
        """Returns 1 without running when the executor fails to initialize."""
        executor.initialized = False

        with patch(
            "story_automation.cli.load_executor_manifest", return_value=mock_manifest
        ):
            exit_code = await run(
                "scripted", "{}", [UserStory(story="make a payment")], "project-1"
            )

        assert exit_code == 1
        assert executor.calls == 0

    async def test_returns_one_when_story_is_skipped(self, mock_manifest: Mock) -> None:
        """Returns 1 when a story cannot be turned into a scenario."""
        with (
            patch(
                "story_automation.cli.load_executor_manifest", return_value=mock_manifest
            ),
            patch("story_automation.cli.TestOrchestrator") as mock_orchestrator_cls,
        ):
            mock_orchestrator = Mock()
            mock_orchestrator.create_from_user_story = AsyncMock(
                side_effect=GenerationError("Failed to generate scenario: boom")
            )
            mock_orchestrator.execute_tests_parallel = AsyncMock(return_value=[])
            mock_orchestrator_cls.return_value = mock_orchestrator

            exit_code = await run(
                "scripted", "{}", [UserStory(story="anything")], "project-1"
            )

        assert exit_code == 1
        mock_orchestrator.execute_tests_parallel.assert_called_once_with([], None)
