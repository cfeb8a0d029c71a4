"""Ordered registry of executors with first-match dispatch."""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import TracebackType
from typing import Self

from story_automation.errors import NoExecutorError
from story_automation.executors.base import TestExecutor
from story_automation.models.base import Value
from story_automation.models.scenario import TestType

log = logging.getLogger(__name__)


@dataclass(kw_only=True)
class ExecutorRegistry:
    """Executors in registration order.

    Dispatch picks the first executor whose ``can_execute`` accepts the
    scenario type. Registering several executors for the same type is
    allowed; the earliest one wins.
    """

    executors: list[TestExecutor] = field(default_factory=list)

    def __iter__(self) -> Iterator[TestExecutor]:
        return iter(self.executors)

    def __len__(self) -> int:
        return len(self.executors)

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.cleanup()

    async def register(
        self,
        executor: TestExecutor,
        configuration: Mapping[str, Value] | None = None,
    ) -> bool:
        """Initialize an executor and append it to the registry.

        Returns:
            False when initialization was refused; the executor is then not
            registered

        """
        if not await executor.initialize(configuration or {}):
            log.warning("Executor %s failed to initialize, not registered", executor.name)
            return False

        self.executors.append(executor)
        log.info("Registered executor %s for %s", executor.name, sorted(executor.supported_types))
        return True

    def select(self, test_type: TestType) -> TestExecutor:
        """Return the first executor that can run ``test_type``.

        Raises:
            NoExecutorError: If no registered executor supports the type

        """
        for executor in self.executors:
            if executor.can_execute(test_type):
                return executor
        raise NoExecutorError(f"No executor available for test type {test_type}")

    async def cleanup(self) -> None:
        """Tear down all executors in reverse registration order."""
        for executor in reversed(self.executors):
            try:
                await executor.cleanup()
            except Exception as exc:
                log.error("Cleanup of %s failed: %s", executor.name, exc, exc_info=exc)
        self.executors.clear()
