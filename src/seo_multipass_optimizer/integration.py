"""
Integration entry point for generated content.

Wraps the optimizer behind a single ``process_content`` call whose behaviour
depends on the integration mode:
- SEAMLESS: run the multi-pass loop and return the optimized content
- MANUAL: detect issues and propose correction prompts for review, without
  calling any generation provider
- BYPASS: return the original content untouched

Every result carries a metadata block (mode, status, score, passes,
termination reason, timestamp). Results can be read from and written back to
any key/value ``ContentStore``.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Iterable, Optional, Protocol, Union, runtime_checkable

from .config import IntegrationConfig
from .error_handler import ErrorHandler
from .exceptions import OptimizationError
from .issue_detector import IssueDetector
from .models import (
    Content,
    CorrectionPrompt,
    DetectionResult,
    IntegrationMode,
    OptimizationResult,
    TerminationReason,
)
from .optimizer import MultiPassOptimizer, create_optimizer
from .prompt_generator import CorrectionPromptGenerator

logger = logging.getLogger(__name__)


METADATA_KEY = "optimization"


@runtime_checkable
class ContentStore(Protocol):
    """Opaque key/value persistence for content records."""

    def get(self, key: str) -> Optional[dict[str, Any]]:
        ...

    def set(self, key: str, value: dict[str, Any]) -> None:
        ...


class InMemoryContentStore:
    """Dict-backed ContentStore. Values are copied on the way in and out."""

    def __init__(self, initial: Optional[dict[str, dict[str, Any]]] = None):
        self._data: dict[str, dict[str, Any]] = {}
        for key, value in (initial or {}).items():
            self.set(key, value)

    def get(self, key: str) -> Optional[dict[str, Any]]:
        value = self._data.get(key)
        return dict(value) if value is not None else None

    def set(self, key: str, value: dict[str, Any]) -> None:
        self._data[key] = dict(value)

    def keys(self) -> list[str]:
        return list(self._data)

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class IntegrationResult:
    """Content returned by the integration layer plus what happened to it."""
    content: Content
    mode: IntegrationMode
    status: str  # optimized, manual_review, bypassed or failed
    reason: str = ""
    optimization: Optional[OptimizationResult] = None
    detection: Optional[DetectionResult] = None
    prompts: list[CorrectionPrompt] = field(default_factory=list)
    error: Optional[str] = None
    error_report: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def score(self) -> Optional[float]:
        if self.optimization is not None:
            return self.optimization.compliance_score
        if self.detection is not None:
            return self.detection.compliance_score
        return None

    @property
    def metadata(self) -> dict[str, Any]:
        termination = self.optimization.termination_reason.value if self.optimization else None
        return {
            "mode": self.mode.value,
            "status": self.status,
            "reason": self.reason,
            "score": self.score,
            "passes": self.optimization.passes if self.optimization else 0,
            "termination_reason": termination,
            "compliance_achieved": termination in (
                TerminationReason.COMPLIANCE_ACHIEVED.value,
                TerminationReason.ALREADY_COMPLIANT.value,
            ),
            "error": self.error,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_dict(self) -> dict[str, Any]:
        data = {
            "content": self.content.to_dict(),
            "metadata": self.metadata,
            "issues": [issue.to_dict() for issue in self.detection.issues] if self.detection else [],
            "prompts": [prompt.to_dict() for prompt in self.prompts],
            "error_report": dict(self.error_report),
        }
        if self.optimization is not None:
            data["optimization"] = self.optimization.to_dict()
        return data


class OptimizationIntegration:
    """
    Mode-aware entry point used by the CLI, the HTTP API and callers that
    post-process generated content.

    The optimizer is only built when SEAMLESS mode first needs it, so the
    MANUAL and BYPASS modes work without any provider credentials.

    Args:
        config: Integration settings (mode, iteration budget, fallback).
        optimizer: Pre-built optimizer. If None, ``optimizer_factory`` is
            called lazily, defaulting to create_optimizer.
        store: Optional ContentStore used by process_stored.
    """

    def __init__(
        self,
        config: Optional[IntegrationConfig] = None,
        optimizer: Optional[MultiPassOptimizer] = None,
        optimizer_factory: Optional[Callable[[IntegrationConfig], MultiPassOptimizer]] = None,
        detector: Optional[IssueDetector] = None,
        prompt_generator: Optional[CorrectionPromptGenerator] = None,
        store: Optional[ContentStore] = None,
    ):
        self.config = config or IntegrationConfig()
        self._optimizer = optimizer
        self._optimizer_factory = optimizer_factory or self._default_factory
        self.detector = detector or (optimizer.detector if optimizer else IssueDetector())
        self.prompt_generator = prompt_generator or (
            optimizer.prompt_generator if optimizer else CorrectionPromptGenerator()
        )
        self.store = store
        self.error_handler = optimizer.error_handler if optimizer else ErrorHandler()

    @staticmethod
    def _default_factory(config: IntegrationConfig) -> MultiPassOptimizer:
        return create_optimizer(config=config.optimizer_config(), model=config.model)

    @property
    def optimizer(self) -> MultiPassOptimizer:
        if self._optimizer is None:
            self._optimizer = self._optimizer_factory(self.config)
            self.error_handler = self._optimizer.error_handler
        return self._optimizer

    # -------------------------------------------------------------------------
    # Mode handling
    # -------------------------------------------------------------------------

    def set_mode(self, mode: Union[IntegrationMode, str]) -> None:
        """Switch integration mode. Raises ValueError for unknown modes."""
        self.config = replace(self.config, mode=mode)
        logger.info("Integration mode set to %s", self.config.mode.value)

    def get_status(self) -> dict[str, Any]:
        return {
            "mode": self.config.mode.value,
            "optimizer_enabled": self.config.mode != IntegrationMode.BYPASS,
            "optimizer_ready": self._optimizer is not None,
            "max_iterations": self.config.max_iterations,
            "target_compliance_score": self.config.target_compliance_score,
            "fallback_to_original": self.config.fallback_to_original,
        }

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    def process_content(
        self,
        content: Union[Content, dict[str, Any]],
        focus_keyword: Optional[str] = None,
        secondary_keywords: Optional[Iterable[str]] = None,
    ) -> IntegrationResult:
        """
        Process content according to the current mode.

        Args:
            content: Content record or loosely-typed mapping.
            focus_keyword: Focus keyword. Falls back to content.focus_keyword.
            secondary_keywords: Replaces content.secondary_keywords if given.

        Returns:
            IntegrationResult. With ``fallback_to_original`` any failure
            yields the original content with status "failed".

        Raises:
            OptimizationError: On failure when fallback_to_original is off.
        """
        if not isinstance(content, Content):
            content = Content.from_dict(content)
        if secondary_keywords is not None:
            content = replace(content.copy(), secondary_keywords=list(secondary_keywords))
        keyword = focus_keyword or content.focus_keyword or ""
        mode = self.config.mode

        if mode == IntegrationMode.BYPASS:
            logger.info("Bypass mode: returning original content")
            return IntegrationResult(
                content=content.copy(),
                mode=mode,
                status="bypassed",
                reason="Optimizer in bypass mode",
            )

        try:
            self._validate(content)
            if mode == IntegrationMode.MANUAL:
                return self._propose(content, keyword)
            return self._optimize(content, keyword)
        except Exception as e:
            if not self.config.fallback_to_original:
                if isinstance(e, OptimizationError):
                    raise
                raise OptimizationError(f"Optimization failed: {e}") from e

            self.error_handler.record_error(e, component="integration", error_type="optimization_failure")
            logger.error("Content processing failed, returning original: %s", e)
            return IntegrationResult(
                content=content.copy(),
                mode=mode,
                status="failed",
                reason="Optimization failed, using original content",
                error=str(e),
                error_report=self.error_handler.generate_user_friendly_report([
                    {"message": str(e), "component": "integration"}
                ]),
            )

    def process_stored(
        self,
        key: str,
        focus_keyword: Optional[str] = None,
        secondary_keywords: Optional[Iterable[str]] = None,
    ) -> IntegrationResult:
        """
        Load content from the store, process it and write it back.

        The stored record is replaced by the resulting content with the
        result metadata under the ``optimization`` key.

        Raises:
            OptimizationError: If no store is configured.
            KeyError: If the key is not in the store.
        """
        if self.store is None:
            raise OptimizationError("No content store configured")
        record = self.store.get(key)
        if record is None:
            raise KeyError(key)

        result = self.process_content(record, focus_keyword, secondary_keywords)
        updated = dict(record)
        updated.update(result.content.to_dict())
        updated[METADATA_KEY] = result.metadata
        self.store.set(key, updated)
        logger.debug("Stored %s result for %s", result.status, key)
        return result

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate(content: Content) -> None:
        missing = [name for name in ("title", "content") if not content.get_field(name).strip()]
        if missing:
            raise ValueError(f"Invalid content structure: missing {', '.join(missing)}")

    def _propose(self, content: Content, keyword: str) -> IntegrationResult:
        detection = self.detector.detect_all_issues(content, keyword)
        prompts = self.prompt_generator.generate_prompts_for_issues(detection.issues, keyword, content)
        logger.info("Manual mode: %d issues, %d proposed corrections", detection.total_issues, len(prompts))
        return IntegrationResult(
            content=content.copy(),
            mode=IntegrationMode.MANUAL,
            status="manual_review",
            reason="Optimization available but not automatic",
            detection=detection,
            prompts=prompts,
        )

    def _optimize(self, content: Content, keyword: str) -> IntegrationResult:
        result = self.optimizer.optimize_content(content, keyword)
        if result.termination_reason == TerminationReason.CRITICAL_ERROR:
            if not self.config.fallback_to_original:
                raise OptimizationError(
                    f"Optimization ended with a critical error: {result.error_report.get('summary')}"
                )
            logger.warning("Critical error during optimization, returning original content")
            return IntegrationResult(
                content=content.copy(),
                mode=IntegrationMode.SEAMLESS,
                status="failed",
                reason="Optimization failed, using original content",
                optimization=result,
                error=result.error_report.get("summary"),
                error_report=result.error_report,
            )

        return IntegrationResult(
            content=result.final_content,
            mode=IntegrationMode.SEAMLESS,
            status="optimized",
            optimization=result,
            error_report=result.error_report,
        )
