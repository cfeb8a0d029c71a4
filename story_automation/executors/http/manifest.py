"""HTTP API executor manifest."""

from story_automation.executors.http.config import HttpExecutorConfig
from story_automation.executors.http.executor import HttpExecutor
from story_automation.executors.manifest import ExecutorManifest

http_manifest = ExecutorManifest(
    config_cls=HttpExecutorConfig,
    executor_factory=HttpExecutor.from_config,
)
