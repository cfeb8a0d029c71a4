"""Models for the individual steps of a test scenario."""

import uuid
from collections.abc import Mapping, Sequence
from datetime import timedelta

from pydantic import Field

from story_automation.models.base import Model, Value

UI_ACTIONS = frozenset(
    {
        "navigate",
        "click",
        "double_click",
        "right_click",
        "hover",
        "enter_text",
        "type",
        "clear_text",
        "select_option",
        "select_checkbox",
        "upload_file",
        "switch_frame",
        "switch_window",
        "scroll",
        "verify_text",
        "verify_element",
        "verify_attribute",
        "verify_authentication",
        "take_screenshot",
        "execute_script",
        "drag_drop",
    }
)

API_ACTIONS = frozenset(
    {
        "api_get",
        "api_post",
        "api_put",
        "api_patch",
        "api_delete",
        "api_head",
        "api_options",
        "verify_status_code",
        "verify_header",
        "verify_body",
        "verify_json_path",
        "verify_response_time",
        "extract_value",
        "set_variable",
    }
)

GENERIC_ACTIONS = frozenset({"wait", "verify", "assert"})

KNOWN_ACTIONS = UI_ACTIONS | API_ACTIONS | GENERIC_ACTIONS

# Parameters an action cannot run without, checked in both parameter maps.
REQUIRED_PARAMETERS: Mapping[str, tuple[str, str]] = {
    "enter_text": ("value", "Text input actions require a 'value' parameter"),
    "type": ("value", "Text input actions require a 'value' parameter"),
    "api_post": ("body", "HTTP POST/PUT/PATCH actions require a 'body' parameter"),
    "api_put": ("body", "HTTP POST/PUT/PATCH actions require a 'body' parameter"),
    "api_patch": ("body", "HTTP POST/PUT/PATCH actions require a 'body' parameter"),
    "wait": ("duration", "Wait actions require a 'duration' parameter"),
    "verify": ("expected", "Verification actions require an 'expected' parameter"),
    "assert": ("expected", "Verification actions require an 'expected' parameter"),
}


class ValidationRule(Model):
    """Assertion attached to a step (equals, contains, regex, ...)."""

    validation_type: str = Field(..., description="Kind of comparison to apply")
    expected_value: Value = Field(default="", description="Expected value or pattern")
    target: str = Field(default="", description="Property or element to validate")
    error_message: str = Field(default="", description="Message reported on mismatch")
    required: bool = Field(default=True, description="Whether the rule gates the step")


class TestStep(Model):
    """One atomic action within a scenario."""

    __test__ = False

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    order: int = Field(default=0, description="Execution order within the scenario")
    action: str = Field(..., description="Action verb, e.g. navigate or api_get")
    target: str = Field(..., description="Locator, URL or endpoint")
    description: str = ""
    expected_result: str = ""
    parameters: Mapping[str, Value] = Field(default_factory=dict)
    step_data: Mapping[str, Value] = Field(default_factory=dict)
    prerequisites: Sequence[str] = Field(default_factory=list)
    timeout: timedelta | None = None
    wait_before: timedelta | None = None
    wait_after: timedelta | None = None
    continue_on_failure: bool = False
    take_screenshot: bool = False
    validation_rules: Sequence[ValidationRule] = Field(default_factory=list)
    enabled: bool = True
    tags: Sequence[str] = Field(default_factory=list)

    def has_parameter(self, key: str) -> bool:
        """Check whether either parameter map defines ``key``."""
        return key in self.parameters or key in self.step_data

    def get_parameter(self, key: str, default: Value = None) -> Value:
        """Resolve a parameter, preferring ``parameters`` over ``step_data``."""
        if key in self.parameters:
            return self.parameters[key]
        if key in self.step_data:
            return self.step_data[key]
        return default

    def validation_errors(self) -> list[str]:
        """Return structural problems with this step, empty when valid."""
        errors: list[str] = []

        if not self.action.strip():
            errors.append("Action is required")
        if not self.target.strip():
            errors.append("Target is required")
        if self.timeout is not None and self.timeout <= timedelta(0):
            errors.append("Timeout must be positive")
        if self.wait_before is not None and self.wait_before < timedelta(0):
            errors.append("WaitBefore cannot be negative")
        if self.wait_after is not None and self.wait_after < timedelta(0):
            errors.append("WaitAfter cannot be negative")

        if requirement := REQUIRED_PARAMETERS.get(self.action.lower()):
            key, message = requirement
            if not self.has_parameter(key):
                errors.append(message)

        return errors

    def clone(self) -> "TestStep":
        """Copy this step under a fresh id."""
        return self.model_copy(update={"id": str(uuid.uuid4())}, deep=True)
