"""Discovery of executor plugins through entry points."""

from collections.abc import Sequence
from importlib.metadata import entry_points
from typing import Any

from story_automation.errors import ExecutorNotFoundError
from story_automation.executors.manifest import ExecutorManifest

ENTRY_POINT_GROUP = "story_automation.executors"


def available_executors() -> Sequence[str]:
    """Keys of the installed executor plugins, sorted."""
    return sorted(entry_points(group=ENTRY_POINT_GROUP).names)


def load_executor_manifest(key: str) -> ExecutorManifest[Any]:
    """Load an executor manifest by key.

    Args:
        key: The executor key as registered in pyproject.toml (e.g., "http")

    Raises:
        ExecutorNotFoundError: If the key is not installed, or its entry
            point does not resolve to an ``ExecutorManifest``

    """
    try:
        entry = entry_points(group=ENTRY_POINT_GROUP)[key]
    except KeyError:
        raise ExecutorNotFoundError(
            f"Executor '{key}' not found. Available executors: {available_executors()}"
        ) from None

    manifest = entry.load()
    if not isinstance(manifest, ExecutorManifest):
        raise ExecutorNotFoundError(
            f"Entry point '{key}' does not provide an executor manifest"
        )
    return manifest
