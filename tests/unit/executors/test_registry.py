"""Tests for executor registry."""

import pytest

from story_automation.errors import NoExecutorError
from story_automation.executors.registry import ExecutorRegistry
from story_automation.testing.executors import ScriptedExecutor


async def test_register_keeps_initialized_executors() -> None:
    """Registers executors whose initialization succeeds."""
    registry = ExecutorRegistry()

    assert await registry.register(ScriptedExecutor())
    assert not await registry.register(ScriptedExecutor(initialized=False))

    assert len(registry) == 1


async def test_select_returns_first_capable_executor() -> None:
    """Picks the earliest registered executor supporting the type."""
    ui_only = ScriptedExecutor(name="ui", supported_types=frozenset({"ui"}))
    first_api = ScriptedExecutor(name="api-1", supported_types=frozenset({"api"}))
    second_api = ScriptedExecutor(name="api-2", supported_types=frozenset({"api"}))
    registry = ExecutorRegistry()
    for executor in (ui_only, first_api, second_api):
        await registry.register(executor)

    assert registry.select("api") is first_api
    assert registry.select("ui") is ui_only


async def test_select_raises_without_capable_executor() -> None:
    """Raises NoExecutorError when no executor supports the type."""
    registry = ExecutorRegistry()
    await registry.register(ScriptedExecutor(supported_types=frozenset({"ui"})))

    with pytest.raises(NoExecutorError, match="performance"):
        registry.select("performance")


async def test_context_manager_cleans_up_all_executors() -> None:
    """Tears down every executor even when one cleanup fails."""

    class FailingCleanup(ScriptedExecutor):
        async def cleanup(self) -> None:
            raise RuntimeError("cleanup failed")

    healthy = ScriptedExecutor()
    failing = FailingCleanup()

    async with ExecutorRegistry() as registry:
        await registry.register(healthy)
        await registry.register(failing)

    assert healthy.cleaned_up
    assert len(registry) == 0
