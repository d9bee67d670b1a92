"""
Generation provider boundary.

A provider turns an instruction into raw text:
    generate(instruction, options) -> str   (raises ProviderError)

This module ships the Anthropic Claude provider used in production and a
thin adapter for plain callables (handy for alternative backends).
"""

import logging
import os
from typing import Any, Callable, Optional, Protocol, runtime_checkable

try:
    import anthropic
except ImportError:
    anthropic = None  # type: ignore

from .config import default_model
from .exceptions import ProviderError, ProviderNotConfiguredError

logger = logging.getLogger(__name__)


# System prompt for correction requests
CORRECTION_SYSTEM_PROMPT = """You are an expert SEO editor correcting content so it passes SEO checks.

CRITICAL RULES - MUST FOLLOW:
1. Apply ONLY the requested corrections - keep everything else as it is
2. Never delete headings, images, lists or list items from the HTML content
3. Preserve all HTML tags and attributes exactly unless a correction requires otherwise
4. Maintain the original tone and style
5. Do not invent facts or make claims not supported by the original content
6. Use the focus keyword as a COMPLETE PHRASE - never split it up
7. Keep sentences natural and readable - avoid keyword stuffing

OUTPUT FORMAT:
- Return ONLY a JSON object with the keys "title", "meta_description" and "content"
- Omit keys you did not change
- Do NOT include any explanation or commentary"""


@runtime_checkable
class GenerationProvider(Protocol):
    """Anything that can turn an instruction into raw text."""

    name: str

    def generate(self, instruction: str, options: Optional[dict[str, Any]] = None) -> str:
        ...


class AnthropicProvider:
    """
    Generation provider backed by the Anthropic Claude API.

    Example:
        provider = AnthropicProvider()
        text = provider.generate("Shorten this title: ...", {"max_tokens": 512})
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        name: Optional[str] = None,
    ):
        """
        Initialize the provider.

        Args:
            api_key: API key. If None, reads from ANTHROPIC_API_KEY env var.
            model: Model identifier. Defaults to SEO_MULTIPASS_MODEL or the
                built-in default.
            name: Provider name used in stats and logs.
        """
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or default_model()
        self.name = name or f"anthropic:{self.model}"

        if not self.api_key:
            raise ProviderNotConfiguredError(
                "No API key provided. Set ANTHROPIC_API_KEY environment variable "
                "or pass api_key parameter.",
                provider=self.name,
            )

        if anthropic is None:
            raise ProviderNotConfiguredError(
                "anthropic package not installed. Run: pip install anthropic",
                provider=self.name,
            )

        import httpx
        http_client = httpx.Client(
            timeout=httpx.Timeout(60.0, connect=30.0),
            follow_redirects=True,
        )
        self.client = anthropic.Anthropic(
            api_key=self.api_key,
            http_client=http_client,
        )

    def generate(self, instruction: str, options: Optional[dict[str, Any]] = None) -> str:
        """
        Send an instruction to Claude and return the raw text response.

        Args:
            instruction: Full user prompt.
            options: Optional ``system``, ``max_tokens``, ``temperature`` and
                ``timeout`` (seconds).

        Returns:
            Text of the first content block.

        Raises:
            ProviderError: On any API failure. ``retryable`` is False for
                authentication and bad-request errors.
        """
        options = options or {}
        try:
            response = self.client.messages.create(
                model=self.model,
                max_tokens=int(options.get("max_tokens", 4096)),
                temperature=float(options.get("temperature", 0.3)),
                system=options.get("system", CORRECTION_SYSTEM_PROMPT),
                messages=[{"role": "user", "content": instruction}],
                timeout=float(options.get("timeout", 30.0)),
            )
        except anthropic.APITimeoutError as e:
            raise ProviderError(f"Request timeout: {e}", provider=self.name) from e
        except anthropic.RateLimitError as e:
            raise ProviderError(f"Rate limit exceeded: {e}", provider=self.name) from e
        except anthropic.APIConnectionError as e:
            raise ProviderError(f"Network connection error: {e}", provider=self.name) from e
        except (anthropic.AuthenticationError, anthropic.PermissionDeniedError) as e:
            raise ProviderError(
                f"Authentication failed: {e}", provider=self.name, retryable=False
            ) from e
        except anthropic.BadRequestError as e:
            raise ProviderError(
                f"Invalid request: {e}", provider=self.name, retryable=False
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"LLM API call failed: {e}", provider=self.name) from e

        if not response.content:
            raise ProviderError("Empty response from provider", provider=self.name)
        return response.content[0].text


class CallableProvider:
    """Adapts a plain ``fn(instruction, options) -> str`` into a provider."""

    def __init__(self, fn: Callable[[str, dict], str], name: str = "callable"):
        self.fn = fn
        self.name = name

    def generate(self, instruction: str, options: Optional[dict[str, Any]] = None) -> str:
        try:
            result = self.fn(instruction, options or {})
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"{self.name} failed: {e}", provider=self.name) from e
        if not isinstance(result, str):
            raise ProviderError(
                f"{self.name} returned {type(result).__name__}, expected str",
                provider=self.name,
            )
        return result


def create_provider(
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> AnthropicProvider:
    """
    Factory function to create the default generation provider.

    Args:
        api_key: Optional API key. If None, uses environment variable.
        model: Model to use.

    Returns:
        Configured AnthropicProvider instance.
    """
    return AnthropicProvider(api_key=api_key, model=model)
