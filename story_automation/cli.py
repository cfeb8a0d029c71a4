"""CLI entry point for generating and running story-based tests."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from story_automation.errors import AutomationError
from story_automation.executors.loading import (
    available_executors,
    load_executor_manifest,
)
from story_automation.executors.registry import ExecutorRegistry
from story_automation.generator.rule_based import RuleBasedGenerator
from story_automation.models.result import TestResult
from story_automation.models.scenario import TestScenario
from story_automation.models.story import UserStory
from story_automation.orchestrator import TestOrchestrator
from story_automation.repository.memory import InMemoryTestRepository
from story_automation.story_loader import load_user_story

STATUS_SYMBOLS = {
    True: "✅",
    False: "❌",
}


def log_results_summary(log: logging.Logger, results: Sequence[TestResult]) -> None:
    """Log a formatted summary of execution results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in results:
        log.info(
            "%s %s: %s (%.2fs)",
            STATUS_SYMBOLS[result.passed],
            result.scenario_id,
            "passed" if result.passed else "failed",
            result.duration.total_seconds(),
        )
        if result.retry_attempts:
            log.info("  Retries: %d", result.retry_attempts)
        if not result.passed and result.message:
            log.info("  Message: %s", result.message)


def format_output(results: Sequence[TestResult]) -> dict[str, Any]:
    """Format execution results for JSON output."""
    entries: list[dict[str, Any]] = []
    for result in results:
        failure = result.first_failure
        entries.append(
            {
                "scenario_id": result.scenario_id,
                "passed": result.passed,
                "duration": result.duration.total_seconds(),
                "message": result.message,
                "retry_attempts": result.retry_attempts,
                "error": result.error,
                "failed_step": failure.step_name if failure else None,
            }
        )

    return {
        "total": len(entries),
        "passed": sum(1 for e in entries if e["passed"]),
        "failed": sum(1 for e in entries if not e["passed"]),
        "errors": sum(1 for e in entries if e["error"] is not None),
        "results": entries,
    }


def apply_story_fields(scenario: TestScenario, story: UserStory) -> TestScenario:
    """Carry the title and tags of a story document over to its scenario."""
    update: dict[str, Any] = {}
    if story.title:
        update["title"] = story.title
    if story.tags:
        update["tags"] = [*scenario.tags, *story.tags]
    return scenario.model_copy(update=update) if update else scenario


async def load_stories(
    story_files: Sequence[Path], stories: Sequence[str]
) -> Sequence[UserStory]:
    """Collect stories from files and inline arguments."""
    loaded = [await load_user_story(path) for path in story_files]
    loaded.extend(UserStory(story=text) for text in stories)
    return loaded


async def generate(stories: Sequence[UserStory], project_id: str) -> int:
    """Print the scenarios generated for ``stories`` and return exit code."""
    log = logging.getLogger("story_automation")
    generator = RuleBasedGenerator()

    scenarios: list[dict[str, Any]] = []
    for story in stories:
        scenario = await generator.generate(story.story, story.context)
        scenario = apply_story_fields(
            scenario.model_copy(update={"project_id": story.project_id or project_id}),
            story,
        )
        for error in scenario.validation_errors():
            log.warning("Scenario '%s': %s", scenario.title, error)
        scenarios.append(scenario.model_dump(mode="json"))

    print(json.dumps({"total": len(scenarios), "scenarios": scenarios}, indent=2))
    return 0


async def run(
    executor_key: str,
    executor_config_json: str,
    stories: Sequence[UserStory],
    project_id: str,
    max_concurrency: int | None = None,
) -> int:
    """Generate scenarios for ``stories``, execute them and return exit code."""
    log = logging.getLogger("story_automation")

    log.info("Loading executor: %s", executor_key)
    manifest = load_executor_manifest(executor_key)

    config_dict = json.loads(executor_config_json)
    config = manifest.config_cls(**config_dict)

    if not stories:
        log.info("No user stories provided")
        print(json.dumps(format_output([])))
        return 0

    repository = InMemoryTestRepository()

    async with manifest.executor_factory(config) as executor:
        async with ExecutorRegistry() as registry:
            if not await registry.register(executor):
                log.error("Executor %s could not be initialized", executor.name)
                return 1

            orchestrator = TestOrchestrator(
                generator=RuleBasedGenerator(),
                repository=repository,
                executors=registry,
            )

            scenario_ids: list[str] = []
            for story in stories:
                try:
                    scenario_ids.append(
                        await orchestrator.create_from_user_story(
                            story.story, story.project_id or project_id, story.context
                        )
                    )
                except AutomationError as exc:
                    log.error("Skipping story: %s", exc)

            log.info("Running %d scenario(s)...", len(scenario_ids))
            results = await orchestrator.execute_tests_parallel(
                scenario_ids, max_concurrency
            )

    log_results_summary(log, results)
    print(json.dumps(format_output(results), indent=2))

    has_failures = len(scenario_ids) < len(stories) or any(
        not result.passed for result in results
    )
    return 1 if has_failures else 0


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate and run test scenarios from user stories"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--story-file",
        type=Path,
        action="append",
        default=[],
        help="Path to a user story (YAML document or plain text); repeatable",
    )
    common.add_argument(
        "--story",
        action="append",
        default=[],
        help="Inline user story text; repeatable",
    )
    common.add_argument(
        "--project-id",
        required=True,
        help="Project the scenarios belong to",
    )

    subparsers.add_parser(
        "generate", parents=[common], help="Print generated scenarios as JSON"
    )

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Generate and execute scenarios"
    )
    run_parser.add_argument(
        "--executor",
        default="http",
        help=f"Executor key, one of: {', '.join(available_executors())}",
    )
    run_parser.add_argument(
        "--executor-config",
        default="{}",
        help="JSON configuration for the executor",
    )
    run_parser.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Maximum number of scenarios executed at the same time",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    async def _main() -> int:
        stories = await load_stories(args.story_file, args.story)
        if args.command == "generate":
            return await generate(stories, args.project_id)
        return await run(
            executor_key=args.executor,
            executor_config_json=args.executor_config,
            stories=stories,
            project_id=args.project_id,
            max_concurrency=args.max_concurrency,
        )

    exit_code = asyncio.run(_main())
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
