"""
Multi-pass optimization orchestration.

Each pass runs:
    detect -> generate prompts -> correct -> preserve structure -> re-detect -> record

The loop stops when the target score is reached, the iteration budget is
spent, or passes stop improving the score. Component failures are routed
through the error handler: non-critical ones turn the pass into a no-op,
critical ones end the session with ``critical_error``. Either way the caller
gets an OptimizationResult with a termination reason and an error report,
never a bare exception.
"""

import logging
import time
from datetime import datetime
from typing import Optional, Sequence

from .config import CorrectorConfig, OptimizerConfig, TrackerConfig
from .content_corrector import ContentCorrector
from .error_handler import ErrorHandler
from .exceptions import OptimizationError
from .issue_detector import IssueDetector
from .llm_client import GenerationProvider, create_provider
from .models import (
    Content,
    CorrectionPrompt,
    DetectionResult,
    ErrorCategory,
    OptimizationResult,
    TerminationReason,
)
from .progress_tracker import ProgressTracker
from .prompt_generator import CorrectionPromptGenerator
from .structure_preservation import StructurePreserver

logger = logging.getLogger(__name__)


NO_OP_STRATEGY = "no_op"


def strategy_name(prompts: Sequence[CorrectionPrompt]) -> str:
    """Name a pass's strategy after the issue groups its prompts target."""
    groups = sorted({p.context.get("group") or p.field for p in prompts})
    return "+".join(groups) if groups else NO_OP_STRATEGY


class MultiPassOptimizer:
    """
    Runs detect/correct/validate passes until a termination condition holds.

    All collaborators are injected. Only the corrector is required, since it
    needs at least one generation provider; the rest default to fresh
    instances configured from ``config``.

    Example:
        optimizer = MultiPassOptimizer(ContentCorrector([provider]))
        result = optimizer.optimize_content(content, "seo guide")
        print(result.termination_reason, result.compliance_score)
    """

    def __init__(
        self,
        corrector: ContentCorrector,
        detector: Optional[IssueDetector] = None,
        prompt_generator: Optional[CorrectionPromptGenerator] = None,
        preserver: Optional[StructurePreserver] = None,
        error_handler: Optional[ErrorHandler] = None,
        tracker: Optional[ProgressTracker] = None,
        config: Optional[OptimizerConfig] = None,
    ):
        self.config = config or OptimizerConfig()
        self.corrector = corrector
        self.detector = detector or IssueDetector()
        self.prompt_generator = prompt_generator or CorrectionPromptGenerator(self.config.priority_order)
        self.preserver = preserver or StructurePreserver()
        self.error_handler = error_handler or corrector.error_handler or ErrorHandler()
        self.tracker = tracker or ProgressTracker(
            TrackerConfig(target_score=self.config.target_compliance_score)
        )
        if self.corrector.error_handler is None:
            self.corrector.error_handler = self.error_handler
        self.session_id: Optional[str] = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def optimize_content(self, content: Content, focus_keyword: Optional[str] = None) -> OptimizationResult:
        """
        Optimize content over multiple passes.

        Args:
            content: Content record to optimize. Never mutated.
            focus_keyword: Focus keyword. Falls back to content.focus_keyword.

        Returns:
            OptimizationResult with the final content, pass count, scores,
            termination reason, progress report and error report.
        """
        keyword = focus_keyword or content.focus_keyword or ""
        target = self.config.target_compliance_score
        started = datetime.now()

        detection = self.detector.detect_all_issues(content, keyword)
        initial_score = detection.compliance_score
        self.session_id = self.tracker.start_session(content, initial_score, target_score=target)
        logger.info(
            "Optimizing '%s' for '%s': initial score %.2f, %d issues",
            content.title[:60], keyword, initial_score, detection.total_issues,
        )

        current = content.copy()
        best_content, best_detection = current, detection
        passes = 0
        stagnant_passes = 0

        if not detection.issues or detection.compliance_score >= target:
            reason = TerminationReason.ALREADY_COMPLIANT
        else:
            reason = TerminationReason.MAX_ITERATIONS_REACHED
            for pass_number in range(1, self.config.max_iterations + 1):
                outcome = self._run_pass(pass_number, current, detection, keyword)
                passes = pass_number
                if outcome is None:
                    reason = TerminationReason.CRITICAL_ERROR
                    break

                current, detection = outcome
                if detection.compliance_score > best_detection.compliance_score:
                    best_content, best_detection = current, detection
                    stagnant_passes = 0
                else:
                    stagnant_passes += 1

                if detection.compliance_score >= target or not detection.issues:
                    reason = TerminationReason.COMPLIANCE_ACHIEVED
                    break
                if pass_number >= self.config.max_iterations:
                    reason = TerminationReason.MAX_ITERATIONS_REACHED
                    break
                if stagnant_passes >= self.config.stagnation_threshold:
                    reason = TerminationReason.STAGNATION
                    break

        if self.config.keep_best_content and best_detection.compliance_score > detection.compliance_score:
            logger.info(
                "Returning best content (%.2f) instead of last pass (%.2f)",
                best_detection.compliance_score, detection.compliance_score,
            )
            current, detection = best_content, best_detection

        self.tracker.end_session(self.session_id, reason.value, final_score=detection.compliance_score)
        report = self.tracker.generate_comprehensive_report(self.session_id)
        session_errors = [r for r in self.error_handler.get_error_log() if r.timestamp >= started]

        logger.info(
            "Optimization finished after %d passes: %s (score %.2f -> %.2f)",
            passes, reason.value, initial_score, detection.compliance_score,
        )
        return OptimizationResult(
            final_content=current.copy(),
            passes=passes,
            initial_score=initial_score,
            compliance_score=detection.compliance_score,
            termination_reason=reason,
            remaining_issues=list(detection.issues),
            pass_summaries=report["pass_records"],
            progress_report=report,
            error_report=self.error_handler.generate_user_friendly_report(session_errors),
            session_id=self.session_id,
        )

    def rollback_to_pass(self, pass_number: int) -> Optional[Content]:
        """
        Content recorded for a pass of the most recent session.

        Returns None when the pass is unknown or already evicted.

        Raises:
            OptimizationError: If no session has been run yet.
        """
        if self.session_id is None:
            raise OptimizationError("No optimization session has been run")
        return self.tracker.rollback_to_pass(self.session_id, pass_number)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _run_pass(
        self,
        pass_number: int,
        current: Content,
        before: DetectionResult,
        keyword: str,
    ) -> Optional[tuple[Content, DetectionResult]]:
        """
        Run one correction pass.

        Returns:
            (content, detection) after the pass, or None if a critical error
            ended the session.
        """
        logger.info("Pass %d: score %.2f, %d issues", pass_number, before.compliance_score, before.total_issues)
        start = time.perf_counter()
        strategy = NO_OP_STRATEGY
        applied: list[str] = []

        try:
            prompts = self.prompt_generator.generate_prompts_for_issues(before.issues, keyword, current)
            strategy = strategy_name(prompts)
            correction = self.corrector.apply_corrections(current, prompts, keyword)
            candidate = correction.corrected_content
            applied = correction.applied_types

            if correction.errors:
                self.error_handler.apply_graceful_degradation(
                    "ai_correction", correction.corrections_applied, correction.errors
                )

            if self.config.enable_rollback and applied:
                preservation = self.preserver.preserve_content(current, candidate)
                candidate = preservation.content
                if preservation.rolled_back:
                    logger.warning("Pass %d: corrections rolled back to keep structure", pass_number)
                    applied = []

            after = self.detector.detect_all_issues(candidate, keyword)
        except Exception as e:
            record = self.error_handler.record_error(
                e,
                component="optimization_loop",
                error_type="correction_failure",
                context={"pass_number": pass_number},
            )
            if record.category == ErrorCategory.CRITICAL:
                logger.error("Pass %d: critical error, ending session: %s", pass_number, e)
                self._record(pass_number, current, before, before, [], NO_OP_STRATEGY, start)
                return None
            logger.warning("Pass %d failed, keeping pre-pass content: %s", pass_number, e)
            candidate, after, applied, strategy = current, before, [], NO_OP_STRATEGY

        self._record(pass_number, candidate, before, after, applied, strategy, start)
        return candidate, after

    def _record(
        self,
        pass_number: int,
        content: Content,
        before: DetectionResult,
        after: DetectionResult,
        applied: list[str],
        strategy: str,
        start: float,
    ) -> None:
        self.tracker.record_pass(
            self.session_id,
            content=content,
            before_score=before.compliance_score,
            after_score=after.compliance_score,
            issues_before=before.issue_types,
            issues_after=after.issue_types,
            corrections_applied=applied,
            strategy=strategy,
            duration_ms=(time.perf_counter() - start) * 1000,
            pass_number=pass_number,
        )


def create_optimizer(
    providers: Optional[Sequence[GenerationProvider]] = None,
    config: Optional[OptimizerConfig] = None,
    corrector_config: Optional[CorrectorConfig] = None,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
) -> MultiPassOptimizer:
    """
    Factory function to create an optimizer with default collaborators.

    Args:
        providers: Generation providers, primary first. If None, a single
            Anthropic provider is created from api_key / environment.
        config: Optimizer configuration.
        corrector_config: Corrector retry/failover configuration.
        api_key: Optional API key for the default provider.
        model: Optional model for the default provider.

    Returns:
        Configured MultiPassOptimizer instance.
    """
    if not providers:
        providers = [create_provider(api_key=api_key, model=model)]
    error_handler = ErrorHandler()
    corrector = ContentCorrector(providers, corrector_config, error_handler=error_handler)
    return MultiPassOptimizer(corrector, error_handler=error_handler, config=config)
