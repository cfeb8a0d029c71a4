"""HTTP API executor implementation."""

import asyncio
import json
import logging
import re
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import aiohttp

from story_automation.executors.base import (
    ExecutionContext,
    ExecutorCapabilities,
    StepOutcome,
    TestExecutor,
)
from story_automation.executors.http.config import HttpExecutorConfig
from story_automation.models.base import Value
from story_automation.models.scenario import TestType
from story_automation.models.step import TestStep

log = logging.getLogger(__name__)

HTTP_METHODS: Mapping[str, str] = {
    "api_get": "GET",
    "api_post": "POST",
    "api_put": "PUT",
    "api_patch": "PATCH",
    "api_delete": "DELETE",
    "api_head": "HEAD",
    "api_options": "OPTIONS",
}

HTTP_ACTIONS = frozenset(
    {
        *HTTP_METHODS,
        "verify_status_code",
        "verify_header",
        "verify_body",
        "verify_json_path",
        "verify_response_time",
        "extract_value",
        "set_variable",
        "wait",
        "verify",
        "assert",
    }
)

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")

RESPONSE_KEY = "response"

NO_RESPONSE = StepOutcome(
    passed=False, message="No response available; run an api_* step first"
)

_MISSING = object()


@dataclass(frozen=True, kw_only=True)
class HttpResponse:
    """Response of the most recent request, read eagerly."""

    method: str
    url: str
    status: int
    headers: Mapping[str, str]
    body: str
    elapsed_ms: float

    def json(self) -> object:
        """Parse the body as JSON."""
        return json.loads(self.body)


def substitute(value: Value, variables: Mapping[str, Value]) -> Value:
    """Replace ``{{name}}`` placeholders with run variables.

    Unknown names are left untouched. Strings nested in lists and dicts are
    substituted as well.
    """
    if isinstance(value, str):
        return PLACEHOLDER.sub(
            lambda m: str(variables[m.group(1)])
            if m.group(1) in variables
            else m.group(0),
            value,
        )
    if isinstance(value, list):
        return [substitute(item, variables) for item in value]
    if isinstance(value, dict):
        return {key: substitute(item, variables) for key, item in value.items()}
    return value


def resolve_json_path(document: object, path: str) -> object:
    """Walk a dotted path (``data.items.0.id``) through parsed JSON.

    Returns:
        The value at ``path``, or a sentinel when any segment is missing

    """
    current = document
    for segment in filter(None, path.strip().lstrip("$").split(".")):
        if isinstance(current, dict) and segment in current:
            current = current[segment]
        elif isinstance(current, list) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(current) <= index < len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def _matches(actual: object, expected: Value) -> bool:
    if actual == expected:
        return True
    return str(actual) == str(expected)


@dataclass(kw_only=True)
class HttpExecutor(TestExecutor):
    """Executes API scenarios with an aiohttp session.

    Each run keeps the last response in its execution context; ``verify_*``
    and ``extract_value`` steps inspect that response.
    """

    name: str = "HTTP API Executor"
    supported_types: frozenset[TestType] = frozenset({"api"})
    config: HttpExecutorConfig
    session: aiohttp.ClientSession = field(repr=False)
    headers: dict[str, str] = field(default_factory=dict, repr=False)
    _limiter: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._limiter = asyncio.Semaphore(self.config.max_concurrent_requests)
        self.headers = {**self.config.default_headers, **self.headers}
        if self.config.auth_token is not None:
            self._set_token(self.config.auth_token.get_secret_value())

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: HttpExecutorConfig
    ) -> AsyncGenerator["HttpExecutor", None]:
        """Create executor with managed session lifecycle."""
        timeout = aiohttp.ClientTimeout(total=config.request_timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            yield cls(config=config, session=session)

    def _set_token(self, token: str) -> None:
        self.headers["Authorization"] = f"Bearer {token}"

    def url_for(self, target: str) -> str:
        """Join a relative target onto the configured base URL."""
        if target.startswith(("http://", "https://")) or not self.config.base_url:
            return target
        return f"{self.config.base_url.rstrip('/')}/{target.lstrip('/')}"

    def get_capabilities(self) -> ExecutorCapabilities:
        """Declare the HTTP actions and the request concurrency limit."""
        return ExecutorCapabilities(
            supported_types=self.supported_types,
            supported_actions=HTTP_ACTIONS,
            max_parallel_executions=self.config.max_concurrent_requests,
            supports_screenshots=False,
            supports_video_recording=False,
            additional={"base_url": self.config.base_url},
        )

    async def initialize(self, configuration: Mapping[str, Value]) -> bool:
        """Apply an ``auth_token`` and extra ``headers`` from the configuration."""
        token = configuration.get("auth_token")
        if token:
            self._set_token(str(token))

        extra = configuration.get("headers")
        if isinstance(extra, dict):
            self.headers.update({key: str(value) for key, value in extra.items()})

        return not self.session.closed

    async def cleanup(self) -> None:
        """Forget credentials; the session closes with ``from_config``."""
        self.headers.clear()

    async def finish_execution(self, context: ExecutionContext) -> None:
        """Drop the last response of the run."""
        context.state.pop(RESPONSE_KEY, None)

    async def check_backend(self) -> tuple[bool, str]:
        """Request the health-check URL, or report the session state."""
        if self.config.health_check_url is None:
            if self.session.closed:
                return False, "HTTP session is closed"
            return True, "HTTP session is open"

        url = self.url_for(self.config.health_check_url)
        async with self.session.get(url, headers=self.headers) as response:
            if response.status >= 400:
                return False, f"Health check returned {response.status}"
            return True, f"Health check returned {response.status}"

    async def execute_step(self, step: TestStep, context: ExecutionContext) -> StepOutcome:
        """Dispatch a step to its action handler."""
        action = step.action.lower()
        if action in HTTP_METHODS:
            return await self._request(HTTP_METHODS[action], step, context)

        handler = self._handlers().get(action)
        if handler is None:
            return StepOutcome(passed=False, message=f"Unsupported action: {step.action}")
        return await handler(step, context)

    def _handlers(
        self,
    ) -> Mapping[str, Callable[[TestStep, ExecutionContext], Awaitable[StepOutcome]]]:
        return {
            "verify_status_code": self._verify_status_code,
            "verify_header": self._verify_header,
            "verify_body": self._verify_body,
            "verify": self._verify_reachable,
            "assert": self._verify_reachable,
            "verify_json_path": self._verify_json_path,
            "verify_response_time": self._verify_response_time,
            "extract_value": self._extract_value,
            "set_variable": self._set_variable,
            "wait": self._wait,
        }

    async def _request(
        self, method: str, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        variables = context.variables
        url = self.url_for(str(substitute(step.target, variables)))

        headers = dict(self.headers)
        step_headers = substitute(step.get_parameter("headers", {}), variables)
        if isinstance(step_headers, dict):
            headers.update({key: str(value) for key, value in step_headers.items()})

        kwargs: dict[str, object] = {"headers": headers}
        query = substitute(step.get_parameter("query"), variables)
        if isinstance(query, dict):
            kwargs["params"] = {key: str(value) for key, value in query.items()}

        body = substitute(step.get_parameter("body"), variables)
        if isinstance(body, dict | list):
            kwargs["json"] = body
        elif body is not None:
            kwargs["data"] = str(body)

        log.info("%s %s (step %d)", method, url, step.order)
        loop = asyncio.get_running_loop()
        async with self._limiter:
            start = loop.time()
            async with self.session.request(method, url, **kwargs) as response:
                text = await response.text()
                snapshot = HttpResponse(
                    method=method,
                    url=url,
                    status=response.status,
                    headers=dict(response.headers),
                    body=text,
                    elapsed_ms=(loop.time() - start) * 1000,
                )
        context.state[RESPONSE_KEY] = snapshot

        expected = step.get_parameter("expected_status")
        passed = expected is None or _matches(snapshot.status, expected)
        message = f"{method} {url} returned {snapshot.status}"
        if not passed:
            message = f"{message}, expected {expected}"

        return StepOutcome(
            passed=passed,
            message=message,
            actual_result=str(snapshot.status),
            data={"status": snapshot.status, "elapsed_ms": snapshot.elapsed_ms},
        )

    async def _verify_reachable(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        outcome = await self._request("GET", step, context)
        response: HttpResponse = context.state[RESPONSE_KEY]
        passed = response.status < 400
        return StepOutcome(
            passed=passed,
            message=f"{step.target} is {'reachable' if passed else 'not reachable'} "
            f"({response.status})",
            actual_result=outcome.actual_result,
            data=outcome.data,
        )

    async def _verify_status_code(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        expected = step.get_parameter("expected", step.target)
        passed = _matches(response.status, expected)
        return StepOutcome(
            passed=passed,
            message=f"Status code {response.status}"
            + ("" if passed else f", expected {expected}"),
            actual_result=str(response.status),
        )

    async def _verify_header(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        wanted = step.target.lower()
        actual = next(
            (value for key, value in response.headers.items() if key.lower() == wanted),
            None,
        )
        if actual is None:
            return StepOutcome(passed=False, message=f"Header {step.target} not present")

        expected = substitute(step.get_parameter("expected"), context.variables)
        passed = expected is None or _matches(actual, expected)
        return StepOutcome(
            passed=passed,
            message=f"Header {step.target} is {actual!r}"
            + ("" if passed else f", expected {expected!r}"),
            actual_result=actual,
        )

    async def _verify_body(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        expected = str(substitute(step.get_parameter("expected", ""), context.variables))
        passed = expected in response.body
        return StepOutcome(
            passed=passed,
            message=f"Response body {'contains' if passed else 'does not contain'} "
            f"{expected!r}",
            actual_result=response.body[:200],
        )

    async def _verify_json_path(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        try:
            document = response.json()
        except json.JSONDecodeError as exc:
            return StepOutcome(passed=False, message=f"Response is not JSON: {exc}")

        actual = resolve_json_path(document, step.target)
        if actual is _MISSING:
            return StepOutcome(passed=False, message=f"Path {step.target} not found")

        expected = substitute(step.get_parameter("expected"), context.variables)
        passed = expected is None or _matches(actual, expected)
        return StepOutcome(
            passed=passed,
            message=f"{step.target} is {actual!r}"
            + ("" if passed else f", expected {expected!r}"),
            actual_result=json.dumps(actual),
        )

    async def _verify_response_time(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        limit = float(str(step.get_parameter("max_ms", step.get_parameter("expected", 0))))
        passed = response.elapsed_ms <= limit
        return StepOutcome(
            passed=passed,
            message=f"Response took {response.elapsed_ms:.0f}ms (limit {limit:.0f}ms)",
            actual_result=f"{response.elapsed_ms:.0f}",
        )

    async def _extract_value(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        response = context.state.get(RESPONSE_KEY)
        if response is None:
            return NO_RESPONSE

        try:
            value = resolve_json_path(response.json(), step.target)
        except json.JSONDecodeError as exc:
            return StepOutcome(passed=False, message=f"Response is not JSON: {exc}")
        if value is _MISSING:
            return StepOutcome(passed=False, message=f"Path {step.target} not found")

        variable = str(step.get_parameter("variable", step.target.split(".")[-1]))
        context.variables[variable] = value  # type: ignore[assignment]
        return StepOutcome(
            passed=True,
            message=f"Extracted {step.target} into {variable}",
            actual_result=json.dumps(value),
        )

    async def _set_variable(
        self, step: TestStep, context: ExecutionContext
    ) -> StepOutcome:
        value = substitute(step.get_parameter("value"), context.variables)
        context.variables[step.target] = value
        return StepOutcome(passed=True, message=f"Set {step.target}")

    async def _wait(self, step: TestStep, context: ExecutionContext) -> StepOutcome:
        seconds = float(str(step.get_parameter("duration", 0)))
        await asyncio.sleep(seconds)
        return StepOutcome(passed=True, message=f"Waited {seconds}s")
