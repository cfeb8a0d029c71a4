"""Canned step templates, one per story category and test type."""

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import timedelta

from story_automation.generator.analysis import GENERIC, Category, StoryAnalysis
from story_automation.models.base import Value
from story_automation.models.scenario import Priority
from story_automation.models.step import TestStep

DEFAULT_USERNAME = "test@example.com"
DEFAULT_PASSWORD = "password123"
DEFAULT_ZIP = "10001"
DEFAULT_AMOUNT = "100.00"
TEST_CARD_NUMBER = "4111111111111111"

SUBMIT_BUTTON = "button[type='submit'], input[type='submit']"


@dataclass(frozen=True, kw_only=True)
class CategoryProfile:
    """Scenario-level defaults for a story category."""

    title: str
    priority: Priority
    ui_path: str
    api_path: str
    preconditions: Sequence[str]
    expected_outcomes: Sequence[str]


PROFILES: Mapping[Category, CategoryProfile] = {
    "quote": CategoryProfile(
        title="Quote Request Test",
        priority="medium",
        ui_path="/quote",
        api_path="/api/quotes",
        preconditions=["Quote form is reachable"],
        expected_outcomes=["A quote is returned for the submitted details"],
    ),
    "login": CategoryProfile(
        title="Login Test",
        priority="high",
        ui_path="/login",
        api_path="/api/auth/login",
        preconditions=["A test account exists"],
        expected_outcomes=["User is authenticated"],
    ),
    "claim": CategoryProfile(
        title="Claim Submission Test",
        priority="medium",
        ui_path="/claims/new",
        api_path="/api/claims",
        preconditions=["User is signed in with an active policy"],
        expected_outcomes=["Claim is accepted and a reference is issued"],
    ),
    "payment": CategoryProfile(
        title="Payment Processing Test",
        priority="high",
        ui_path="/payment",
        api_path="/api/payments",
        preconditions=["An outstanding balance exists"],
        expected_outcomes=["Payment is confirmed"],
    ),
    GENERIC: CategoryProfile(
        title="General Page Verification",
        priority="medium",
        ui_path="/",
        api_path="/",
        preconditions=["Application is accessible"],
        expected_outcomes=["Page loads"],
    ),
}

type StepSpec = tuple[str, str, str, str, Mapping[str, Value]]
type Template = Callable[[StoryAnalysis, str], list[StepSpec]]


def _amount(analysis: StoryAnalysis) -> str:
    if not analysis.amounts:
        return DEFAULT_AMOUNT
    return analysis.amounts[0].lstrip("$€£ ").replace(",", "")


def _zip(analysis: StoryAnalysis) -> str:
    return analysis.zip_codes[0] if analysis.zip_codes else DEFAULT_ZIP


def _navigate(target: str) -> StepSpec:
    return ("navigate", target, "Open the page", "Page loads successfully", {"url": target})


def _ui_quote(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    return [
        _navigate(target),
        (
            "enter_text",
            "input[name='zip_code'], #zip",
            "Enter the zip code",
            "Zip code is accepted",
            {"value": _zip(analysis)},
        ),
        ("click", SUBMIT_BUTTON, "Request the quote", "Quote request is submitted", {}),
        (
            "verify",
            ".quote-result, #quote",
            "Check the quote is shown",
            "Quote is displayed",
            {"expected": "quote is displayed"},
        ),
    ]


def _ui_login(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    return [
        _navigate(target),
        (
            "enter_text",
            "input[type='email'], input[name='username'], #username",
            "Enter the username",
            "Username is entered",
            {"value": analysis.credentials.get("username", DEFAULT_USERNAME)},
        ),
        (
            "enter_text",
            "input[type='password'], #password",
            "Enter the password",
            "Password is entered",
            {"value": analysis.credentials.get("password", DEFAULT_PASSWORD)},
        ),
        ("click", SUBMIT_BUTTON, "Submit the login form", "Login form is submitted", {}),
        (
            "verify",
            "page",
            "Check the user is signed in",
            "User is logged in",
            {"expected": "user is logged in"},
        ),
    ]


def _ui_claim(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    description = analysis.quoted[0] if analysis.quoted else "Automated test claim"
    return [
        _navigate(target),
        (
            "enter_text",
            "textarea[name='description'], #claim-description",
            "Describe the claim",
            "Description is entered",
            {"value": description},
        ),
        (
            "enter_text",
            "input[name='amount'], #claim-amount",
            "Enter the claimed amount",
            "Amount is entered",
            {"value": _amount(analysis)},
        ),
        ("click", SUBMIT_BUTTON, "Submit the claim", "Claim is submitted", {}),
        (
            "verify",
            ".claim-reference, #claim-number",
            "Check a claim reference is issued",
            "Claim reference is displayed",
            {"expected": "claim reference is displayed"},
        ),
    ]


def _ui_payment(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    return [
        _navigate(target),
        (
            "enter_text",
            "input[name='card_number'], #card-number",
            "Enter the card number",
            "Card number is entered",
            {"value": TEST_CARD_NUMBER},
        ),
        (
            "enter_text",
            "input[name='amount'], #amount",
            "Enter the amount",
            "Amount is entered",
            {"value": _amount(analysis)},
        ),
        ("click", SUBMIT_BUTTON, "Submit the payment", "Payment is submitted", {}),
        (
            "verify",
            ".payment-confirmation, #confirmation",
            "Check the payment is confirmed",
            "Payment confirmation is displayed",
            {"expected": "payment confirmation is displayed"},
        ),
    ]


def _api_call(
    target: str, body: Mapping[str, Value], expected_status: int
) -> list[StepSpec]:
    return [
        ("api_post", target, "Call the endpoint", "Request is accepted", {"body": body}),
        (
            "verify_status_code",
            target,
            "Check the status code",
            f"Status code is {expected_status}",
            {"expected": expected_status},
        ),
        (
            "verify_response_time",
            target,
            "Check the response time",
            "Response arrives within 2 seconds",
            {"max_ms": 2000},
        ),
    ]


def _api_quote(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    return _api_call(target, {"zip_code": _zip(analysis)}, 200)


def _api_login(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    body = {"username": "{{username}}", "password": "{{password}}"}
    return _api_call(target, body, 200)


def _api_claim(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    description = analysis.quoted[0] if analysis.quoted else "Automated test claim"
    return _api_call(
        target, {"description": description, "amount": _amount(analysis)}, 201
    )


def _api_payment(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    body = {"amount": _amount(analysis), "card_number": TEST_CARD_NUMBER}
    return _api_call(target, body, 200)


def _generic(analysis: StoryAnalysis, target: str) -> list[StepSpec]:
    return [
        (
            "verify",
            target,
            "Verify the page loads",
            "Page loads",
            {"expected": "page loads"},
        )
    ]


TEMPLATES: Mapping[tuple[Category, str], Template] = {
    ("quote", "ui"): _ui_quote,
    ("login", "ui"): _ui_login,
    ("claim", "ui"): _ui_claim,
    ("payment", "ui"): _ui_payment,
    ("quote", "api"): _api_quote,
    ("login", "api"): _api_login,
    ("claim", "api"): _api_claim,
    ("payment", "api"): _api_payment,
    (GENERIC, "ui"): _generic,
    (GENERIC, "api"): _generic,
}

STEP_TIMEOUT = timedelta(seconds=30)


def build_steps(analysis: StoryAnalysis, category: Category) -> list[TestStep]:
    """Instantiate the template for ``category`` against ``analysis``.

    The first step targets the story's first URL, or the category's default
    path when the story has none.
    """
    profile = PROFILES[category]
    default = profile.api_path if analysis.test_type == "api" else profile.ui_path
    target = analysis.primary_url or default
    template = TEMPLATES[(category, analysis.test_type)]

    return [
        TestStep(
            order=order,
            action=action,
            target=step_target,
            description=description,
            expected_result=expected,
            parameters=parameters,
            timeout=STEP_TIMEOUT,
        )
        for order, (action, step_target, description, expected, parameters) in enumerate(
            template(analysis, target), start=1
        )
    ]
