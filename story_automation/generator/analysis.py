"""Keyword and pattern analysis of user stories."""

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from story_automation.models.scenario import TestType

type Category = str

URL_PATTERN = re.compile(r"https?://[^\s]+")
URL_TRAILING = ".,;:!?)]}\"'"
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PASSWORD_PATTERNS = (
    re.compile(r"\bpassword[:\s]+(?:is\s+)?([^\s,]+)", re.IGNORECASE),
    re.compile(r"\bpwd[:\s]+(?:is\s+)?([^\s,]+)", re.IGNORECASE),
    re.compile(r"\bpass[:\s]+(?:is\s+)?([^\s,]+)", re.IGNORECASE),
)
USERNAME_PATTERN = re.compile(r"\busername[:\s]+(?:is\s+)?([^\s,]+)", re.IGNORECASE)
CREDENTIALS_PAIR = re.compile(
    r"\bcredentials?\s*[:=]?\s*([^\s/,]+)\s*/\s*([^\s,]+)", re.IGNORECASE
)
QUOTED_PATTERN = re.compile(r"\"([^\"]+)\"")
AMOUNT_PATTERN = re.compile(r"[$€£]\s?\d[\d,]*(?:\.\d{1,2})?")
ZIP_PATTERN = re.compile(r"\b\d{5}(?:-\d{4})?\b")
API_PATTERN = re.compile(r"\b(?:api|apis|service|services|endpoint|endpoints)\b", re.IGNORECASE)

# Checked in this order; the first category that matches selects the template.
CATEGORY_PATTERNS: Sequence[tuple[Category, re.Pattern[str]]] = (
    ("quote", re.compile(r"\b(?:quotes?|estimates?|premiums?)\b", re.IGNORECASE)),
    ("login", re.compile(r"\b(?:log\s?in|sign\s?in|authenticat)", re.IGNORECASE)),
    ("claim", re.compile(r"\bclaims?\b", re.IGNORECASE)),
    (
        "payment",
        re.compile(r"\b(?:pay|payments?|paying|checkout|billing)\b", re.IGNORECASE),
    ),
)

GENERIC = "generic"

_VALUE_TRAILING = ".,;:!?)\"'"


@dataclass(frozen=True, kw_only=True)
class StoryAnalysis:
    """What the rule-based generator extracted from a story."""

    text: str
    urls: Sequence[str] = ()
    credentials: Mapping[str, str] = field(default_factory=dict)
    quoted: Sequence[str] = ()
    amounts: Sequence[str] = ()
    zip_codes: Sequence[str] = ()
    category: Category = GENERIC
    categories: Sequence[Category] = ()
    test_type: TestType = "ui"

    @property
    def primary_url(self) -> str | None:
        """First URL mentioned in the story."""
        return self.urls[0] if self.urls else None


def extract_urls(text: str) -> list[str]:
    """Return URLs in order of appearance, without trailing punctuation."""
    urls: list[str] = []
    for match in URL_PATTERN.finditer(text):
        url = match.group(0).rstrip(URL_TRAILING)
        if url and url not in urls:
            urls.append(url)
    return urls


def extract_credentials(text: str) -> dict[str, str]:
    """Pick out a username and password, if the story mentions them.

    The first email address becomes the username. An explicit
    ``credentials user / secret`` pair takes precedence over both.
    """
    credentials: dict[str, str] = {}

    if email := EMAIL_PATTERN.search(text):
        credentials["username"] = email.group(0)
    elif username := USERNAME_PATTERN.search(text):
        credentials["username"] = username.group(1).rstrip(_VALUE_TRAILING)

    for pattern in PASSWORD_PATTERNS:
        if match := pattern.search(text):
            credentials["password"] = match.group(1).rstrip(_VALUE_TRAILING)
            break

    if pair := CREDENTIALS_PAIR.search(text):
        credentials["username"] = pair.group(1).rstrip(_VALUE_TRAILING)
        credentials["password"] = pair.group(2).rstrip(_VALUE_TRAILING)

    return {key: value for key, value in credentials.items() if value}


def match_categories(text: str) -> list[Category]:
    """Return every matching category in priority order."""
    return [name for name, pattern in CATEGORY_PATTERNS if pattern.search(text)]


def analyze_story(text: str) -> StoryAnalysis:
    """Analyze a user story.

    Never raises: empty or unrecognizable text yields a generic UI analysis.
    """
    categories = match_categories(text)
    return StoryAnalysis(
        text=text,
        urls=extract_urls(text),
        credentials=extract_credentials(text),
        quoted=[q.strip() for q in QUOTED_PATTERN.findall(text) if q.strip()],
        amounts=AMOUNT_PATTERN.findall(text),
        zip_codes=ZIP_PATTERN.findall(text),
        category=categories[0] if categories else GENERIC,
        categories=categories,
        test_type="api" if API_PATTERN.search(text) else "ui",
    )
