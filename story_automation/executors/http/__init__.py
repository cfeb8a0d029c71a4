"""HTTP API executor module."""

from story_automation.executors.http.config import HttpExecutorConfig
from story_automation.executors.http.executor import HttpExecutor
from story_automation.executors.http.manifest import http_manifest

__all__ = ["HttpExecutor", "HttpExecutorConfig", "http_manifest"]
