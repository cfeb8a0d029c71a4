"""Fixtures for integration tests."""

from collections.abc import Iterator

import pytest
from aioresponses import aioresponses as aioresponses_cls


@pytest.fixture
def aioresponses() -> Iterator[aioresponses_cls]:
    """Intercept aiohttp requests for the duration of a test."""
    with aioresponses_cls() as mocked:
        yield mocked
