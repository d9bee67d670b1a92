# -*- coding: utf-8 -*-
"""
Centralized configuration for the SEO multi-pass optimizer.

Each component receives its own configuration dataclass. Threshold defaults
follow common SEO plugin conventions (Yoast/RankMath) and are policy, not
correctness requirements, so every value can be overridden.
"""

import os
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from .models import IntegrationMode


DEFAULT_MODEL = "claude-sonnet-4-20250514"

# Issue groups used to order corrections of equal priority
DEFAULT_PRIORITY_ORDER = [
    "meta_description",
    "keyword_density",
    "readability",
    "title",
    "images",
]


def default_model() -> str:
    """Model name, overridable via SEO_MULTIPASS_MODEL."""
    return os.environ.get("SEO_MULTIPASS_MODEL", DEFAULT_MODEL)


@dataclass
class DetectorConfig:
    """
    Rule thresholds for the issue detector.

    Attributes:
        min_keyword_density / max_keyword_density: Accepted density band in
            percent of words.
        min_meta_description_length / max_meta_description_length: Accepted
            meta description length in characters.
        max_passive_voice: Maximum percentage of passive sentences.
        max_long_sentences: Maximum percentage of sentences longer than
            ``long_sentence_words`` words.
        min_transition_words: Minimum percentage of sentences containing a
            transition word.
        max_title_length: Maximum title length in characters.
        max_subheading_keyword_usage: Maximum percentage of H2-H6 subheadings
            that may contain the focus keyword.
        require_images: Emit an issue when the content has no images.
        require_keyword_in_alt_text: Emit an issue when no image alt text
            carries the focus keyword.
        title_similarity_threshold: Similarity at or above which a title is
            considered a duplicate of an existing one.
        existing_titles: Corpus the title uniqueness check compares against.
    """

    min_keyword_density: float = 0.5
    max_keyword_density: float = 2.5
    min_meta_description_length: int = 120
    max_meta_description_length: int = 156
    max_passive_voice: float = 10.0
    max_long_sentences: float = 25.0
    long_sentence_words: int = 20
    min_transition_words: float = 30.0
    max_title_length: int = 66
    max_subheading_keyword_usage: float = 75.0
    require_images: bool = True
    require_keyword_in_alt_text: bool = True
    title_similarity_threshold: float = 0.85
    existing_titles: list[str] = field(default_factory=list)

    def __post_init__(self):
        """Validate configuration values."""
        if self.min_keyword_density < 0:
            raise ValueError(
                f"min_keyword_density must be >= 0, got {self.min_keyword_density}"
            )
        if self.min_keyword_density >= self.max_keyword_density:
            raise ValueError(
                f"min_keyword_density ({self.min_keyword_density}) must be < "
                f"max_keyword_density ({self.max_keyword_density})"
            )
        if self.min_meta_description_length >= self.max_meta_description_length:
            raise ValueError(
                f"min_meta_description_length ({self.min_meta_description_length}) must be < "
                f"max_meta_description_length ({self.max_meta_description_length})"
            )
        if self.max_title_length < 1:
            raise ValueError(f"max_title_length must be >= 1, got {self.max_title_length}")
        if self.long_sentence_words < 1:
            raise ValueError(
                f"long_sentence_words must be >= 1, got {self.long_sentence_words}"
            )
        if not 0.0 < self.title_similarity_threshold <= 1.0:
            raise ValueError(
                f"title_similarity_threshold must be in (0, 1], "
                f"got {self.title_similarity_threshold}"
            )

    @classmethod
    def strict(cls, **overrides) -> "DetectorConfig":
        """Create config with search-engine-safe title length (60 chars)."""
        defaults = {
            "max_title_length": 60,
            "max_keyword_density": 2.0,
        }
        defaults.update(overrides)
        return cls(**defaults)

    @classmethod
    def lenient(cls, **overrides) -> "DetectorConfig":
        """Create config that only enforces meta, density and title rules.

        Readability and image checks are relaxed so content that is
        structurally sound but stylistically loose still scores well.
        """
        defaults = {
            "max_passive_voice": 100.0,
            "max_long_sentences": 100.0,
            "min_transition_words": 0.0,
            "require_images": False,
            "require_keyword_in_alt_text": False,
        }
        defaults.update(overrides)
        return cls(**defaults)


@dataclass
class CorrectorConfig:
    """
    Configuration for the content corrector.

    Attributes:
        max_retry_attempts: Attempts per provider before failing over.
        enable_provider_failover: Try backup providers when the primary fails.
        enable_correction_validation: Reject corrections that do not change
            (or worsen) the target field.
        timeout: Provider request timeout in seconds.
        temperature: Sampling temperature sent to the provider.
        max_tokens: Maximum tokens requested from the provider.
        retry_delay: Seconds to wait between attempts on the same provider.
    """

    max_retry_attempts: int = 3
    enable_provider_failover: bool = True
    enable_correction_validation: bool = True
    timeout: float = 30.0
    temperature: float = 0.3
    max_tokens: int = 4096
    retry_delay: float = 0.0

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_retry_attempts < 1:
            raise ValueError(
                f"max_retry_attempts must be >= 1, got {self.max_retry_attempts}"
            )
        if self.timeout <= 0:
            raise ValueError(f"timeout must be > 0, got {self.timeout}")
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError(f"temperature must be in [0, 1], got {self.temperature}")
        if self.max_tokens < 1:
            raise ValueError(f"max_tokens must be >= 1, got {self.max_tokens}")
        if self.retry_delay < 0:
            raise ValueError(f"retry_delay must be >= 0, got {self.retry_delay}")

    def provider_options(self) -> dict:
        """Options forwarded to GenerationProvider.generate."""
        return {
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
        }


@dataclass
class OptimizerConfig:
    """
    Configuration for the multi-pass optimization loop.

    Attributes:
        max_iterations: Maximum correction passes per session.
        target_compliance_score: Score (0-100) at which the loop stops.
        stagnation_threshold: Consecutive passes without net improvement
            that end the session early.
        keep_best_content: Return the best-scoring content seen rather than
            the content of the last pass.
        enable_rollback: Run structure preservation after every correction.
        priority_order: Issue groups in the order they are corrected when
            prompt priorities tie.
    """

    max_iterations: int = 5
    target_compliance_score: float = 100.0
    stagnation_threshold: int = 2
    keep_best_content: bool = True
    enable_rollback: bool = True
    priority_order: list[str] = field(default_factory=lambda: list(DEFAULT_PRIORITY_ORDER))

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")
        if not 0.0 <= self.target_compliance_score <= 100.0:
            raise ValueError(
                f"target_compliance_score must be in [0, 100], "
                f"got {self.target_compliance_score}"
            )
        if self.stagnation_threshold < 1:
            raise ValueError(
                f"stagnation_threshold must be >= 1, got {self.stagnation_threshold}"
            )
        unknown = set(self.priority_order) - set(DEFAULT_PRIORITY_ORDER)
        if unknown:
            raise ValueError(f"Unknown priority_order entries: {sorted(unknown)}")

    @classmethod
    def fast(cls, **overrides) -> "OptimizerConfig":
        """Create config for quick, good-enough optimization.

        Fast mode:
        - At most 3 passes
        - Stops once the score reaches 95
        - Gives up after a single stagnant pass
        """
        defaults = {
            "max_iterations": 3,
            "target_compliance_score": 95.0,
            "stagnation_threshold": 1,
        }
        defaults.update(overrides)
        return cls(**defaults)

    @classmethod
    def thorough(cls, **overrides) -> "OptimizerConfig":
        """Create config that keeps trying longer before giving up."""
        defaults = {
            "max_iterations": 10,
            "target_compliance_score": 100.0,
            "stagnation_threshold": 3,
        }
        defaults.update(overrides)
        return cls(**defaults)


@dataclass
class ErrorHandlerConfig:
    """
    Configuration for the error handler.

    Attributes:
        base_delay: Backoff delay in seconds for the first retry.
        max_delay: Upper bound on any single backoff delay.
        max_log_size: Number of handled errors retained in the log.
        sleep: Function used to wait between attempts.
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    max_log_size: int = 500
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self):
        """Validate configuration values."""
        if self.base_delay < 0:
            raise ValueError(f"base_delay must be >= 0, got {self.base_delay}")
        if self.max_delay < self.base_delay:
            raise ValueError(
                f"max_delay ({self.max_delay}) must be >= base_delay ({self.base_delay})"
            )
        if self.max_log_size < 1:
            raise ValueError(f"max_log_size must be >= 1, got {self.max_log_size}")


@dataclass
class TrackerConfig:
    """Configuration for the progress tracker."""

    max_history: int = 10
    target_score: float = 100.0

    def __post_init__(self):
        """Validate configuration values."""
        if self.max_history < 1:
            raise ValueError(f"max_history must be >= 1, got {self.max_history}")


@dataclass
class IntegrationConfig:
    """
    Configuration for the integration entry point.

    Attributes:
        mode: SEAMLESS runs the loop, MANUAL only detects and proposes
            prompts, BYPASS returns the original content untouched.
        max_iterations: Passes allowed in seamless mode.
        target_compliance_score: Target score in seamless mode.
        fallback_to_original: Return the original content (status "failed")
            instead of raising when optimization blows up.
        model: Optional model override for the default provider.
    """

    mode: IntegrationMode = IntegrationMode.SEAMLESS
    max_iterations: int = 3
    target_compliance_score: float = 95.0
    fallback_to_original: bool = True
    model: Optional[str] = None

    def __post_init__(self):
        """Validate configuration values."""
        if isinstance(self.mode, str):
            try:
                self.mode = IntegrationMode(self.mode)
            except ValueError:
                raise ValueError(
                    f"mode must be 'seamless', 'manual', or 'bypass', got '{self.mode}'"
                )

    def optimizer_config(self) -> OptimizerConfig:
        """Optimizer configuration derived from the integration settings."""
        return OptimizerConfig(
            max_iterations=self.max_iterations,
            target_compliance_score=self.target_compliance_score,
        )
