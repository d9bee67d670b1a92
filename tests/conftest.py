"""
Pytest fixtures and configuration for SEO Multi-Pass Optimizer tests.
"""

import json
from typing import Any, Optional

import pytest

from seo_multipass_optimizer.config import ErrorHandlerConfig
from seo_multipass_optimizer.error_handler import ErrorHandler
from seo_multipass_optimizer.exceptions import ProviderError
from seo_multipass_optimizer.models import Content


KEYWORD = "seo guide"

PERFECT_TITLE = "The Complete SEO Guide for Beginners"

PERFECT_META = (
    "Read our seo guide to learn how search engines rank pages, how to fix common "
    "problems, and how to write pages that readers love."
)

PERFECT_BODY = (
    "<h2>Why rankings matter</h2>"
    "<p>This seo guide explains how search engines rank pages. "
    "First, you learn how crawlers read your site. "
    "Then you fix the problems they find.</p>"
    '<img src="guide.png" alt="Diagram from the seo guide">'
    "<h2>Writing better pages</h2>"
    "<p>Good pages answer real questions. "
    "For example, a recipe page lists ingredients near the top. "
    "Additionally, clear headings help readers scan quickly. "
    "Short sentences keep readers engaged. "
    "Finally, review your pages every month.</p>"
    "<ul><li>Check titles</li><li>Check links</li></ul>"
)

SHORT_META = "A short seo guide summary."


class FakeProvider:
    """
    Scripted generation provider.

    Each call consumes the next scripted item; the last item repeats once
    the script runs out. Items may be strings (returned), exceptions
    (raised) or callables taking the instruction.
    """

    def __init__(self, responses: Optional[list[Any]] = None, name: str = "fake"):
        self.name = name
        self.responses = list(responses or [])
        self.calls: list[str] = []

    def generate(self, instruction: str, options: Optional[dict] = None) -> str:
        self.calls.append(instruction)
        if not self.responses:
            raise ProviderError("No scripted response", provider=self.name)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(instruction)
        return item


def json_response(**fields: str) -> str:
    """Provider response carrying the given corrected fields."""
    return json.dumps(fields)


@pytest.fixture
def perfect_content() -> Content:
    """Content that passes every rule check for KEYWORD."""
    return Content(
        title=PERFECT_TITLE,
        content=PERFECT_BODY,
        meta_description=PERFECT_META,
        focus_keyword=KEYWORD,
        slug="seo-guide",
        tags=["seo"],
    )


@pytest.fixture
def fixable_content(perfect_content: Content) -> Content:
    """Content whose only issue is a short meta description."""
    return perfect_content.with_updates(meta_description=SHORT_META)


@pytest.fixture
def fixed_meta_provider() -> FakeProvider:
    """Provider that always returns a compliant meta description."""
    return FakeProvider([json_response(meta_description=PERFECT_META)])


@pytest.fixture
def sleep_calls() -> list:
    """Delays passed to the error handler's sleep function."""
    return []


@pytest.fixture
def error_handler(sleep_calls: list) -> ErrorHandler:
    """Error handler that records backoff delays instead of sleeping."""
    return ErrorHandler(ErrorHandlerConfig(sleep=sleep_calls.append))
