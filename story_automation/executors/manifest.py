"""Executor manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel

from story_automation.executors.base import TestExecutor


@dataclass(frozen=True, kw_only=True)
class ExecutorManifest[ConfigT: BaseModel]:
    """Manifest describing an executor plugin.

    Pairs the executor's configuration class with a factory that opens the
    executor for the duration of an ``async with`` block, so backends are
    loaded lazily by key.
    """

    config_cls: type[ConfigT]
    executor_factory: Callable[[ConfigT], AbstractAsyncContextManager[TestExecutor]]
