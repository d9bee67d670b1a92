"""
Provider-backed content correction.

For each correction prompt the corrector:
1. Builds a request containing the instruction and the current field values
2. Calls the primary provider, retrying up to max_retry_attempts
3. Fails over to backup providers when enabled
4. Parses the JSON response and merges the target field
5. Validates the change moved the metric in the right direction

A single failed or rejected correction is logged and skipped; it never
aborts the batch.
"""

import json
import logging
import re
import time
from dataclasses import asdict, replace
from datetime import datetime
from typing import Any, Optional, Sequence

from .config import CorrectorConfig
from .error_handler import ErrorHandler, infer_error_type
from .exceptions import CorrectionParseError, CriticalOptimizationError, ProviderError
from .llm_client import GenerationProvider
from .models import (
    Content,
    CorrectionPrompt,
    CorrectionRecord,
    CorrectionResult,
    ErrorCategory,
    IssueType,
)

logger = logging.getLogger(__name__)


CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)
CONTROL_CHARS_PATTERN = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def parse_correction_response(response: str) -> dict[str, str]:
    """
    Extract the corrected fields from a provider response.

    Accepts bare JSON, JSON inside a ```json fence, or JSON embedded in
    surrounding prose.

    Raises:
        CorrectionParseError: If no JSON object can be recovered.
    """
    text = response or ""
    fenced = CODE_FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1)
    text = CONTROL_CHARS_PATTERN.sub("", text).strip()

    candidates = [text]
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            decoded = json.loads(candidate, strict=False)
        except json.JSONDecodeError:
            continue
        if isinstance(decoded, dict):
            return {
                key: value for key, value in decoded.items()
                if key in Content.EDITABLE_FIELDS and isinstance(value, str)
            }

    raise CorrectionParseError("Failed to parse correction response as JSON")


class ContentCorrector:
    """
    Applies correction prompts through one or more generation providers.

    Args:
        providers: Primary provider first, then backups in failover order.
        config: Retry, failover and validation settings.
        error_handler: Optional handler that classifies and logs provider
            errors. A provider error classified critical aborts the batch
            with CriticalOptimizationError.
    """

    def __init__(
        self,
        providers: Sequence[GenerationProvider],
        config: Optional[CorrectorConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        if not providers:
            raise ValueError("At least one generation provider is required")
        self.providers = list(providers)
        self.config = config or CorrectorConfig()
        self.error_handler = error_handler
        self.correction_history: list[CorrectionRecord] = []
        self._error_log: list[dict[str, Any]] = []
        self._stats = {"total": 0, "successful": 0, "failed": 0}
        self._provider_usage: dict[str, int] = {}

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def apply_corrections(
        self,
        content: Content,
        prompts: Sequence[CorrectionPrompt],
        focus_keyword: str = "",
    ) -> CorrectionResult:
        """
        Apply prompts in priority order.

        Args:
            content: Content to correct. Never mutated.
            prompts: Correction prompts, usually from the prompt generator.
            focus_keyword: Keyword to mention in provider requests.

        Returns:
            CorrectionResult. ``success`` is True when at least one
            correction was applied, or when there was nothing to do.

        Raises:
            CriticalOptimizationError: If a provider error is classified
                critical by the error handler.
        """
        if not prompts:
            return CorrectionResult(success=True, corrected_content=content.copy())

        logger.info("Applying %d corrections", len(prompts))
        current = content.copy()
        applied: list[CorrectionRecord] = []
        errors: list[str] = []

        for prompt in sorted(prompts, key=lambda p: -p.priority):
            self._stats["total"] += 1
            record, error = self._apply_single(current, prompt, focus_keyword)
            if record is None:
                self._stats["failed"] += 1
                errors.append(f"{prompt.issue_type.value}: {error}")
                continue

            current = current.with_updates(**{record.field: record.after})
            applied.append(record)
            self.correction_history.append(record)
            self._stats["successful"] += 1
            self._provider_usage[record.provider] = self._provider_usage.get(record.provider, 0) + 1

        return CorrectionResult(
            success=bool(applied),
            corrected_content=current,
            corrections_applied=applied,
            errors=errors,
        )

    def validate_correction(
        self,
        prompt: CorrectionPrompt,
        before: str,
        after: str,
    ) -> Optional[str]:
        """
        Check a candidate value for the prompt's field.

        Returns:
            None if the correction is acceptable, otherwise the reason it was
            rejected.
        """
        if not after.strip():
            return "corrected field is empty"
        if after == before:
            return "field unchanged"

        issue_type = prompt.issue_type
        if issue_type in (IssueType.META_DESCRIPTION_SHORT, IssueType.META_DESCRIPTION_LONG):
            target = prompt.context.get("target_value")
            if target is None:
                target = 140
            if abs(len(after) - target) >= abs(len(before) - target):
                return f"length did not move toward {target} characters"
        elif issue_type == IssueType.TITLE_TOO_LONG:
            if len(after) >= len(before):
                return "title was not shortened"
        return None

    def get_error_log(self) -> list[dict[str, Any]]:
        return list(self._error_log)

    def get_correction_history(self) -> list[CorrectionRecord]:
        return list(self.correction_history)

    def get_correction_stats(self) -> dict[str, Any]:
        total = self._stats["total"]
        return {
            "total": total,
            "successful": self._stats["successful"],
            "failed": self._stats["failed"],
            "success_rate": round(self._stats["successful"] / total * 100, 2) if total else 0.0,
            "provider_usage": dict(self._provider_usage),
        }

    def reset_stats(self) -> None:
        """Clear history, error log and counters."""
        self.correction_history.clear()
        self._error_log.clear()
        self._stats = {"total": 0, "successful": 0, "failed": 0}
        self._provider_usage.clear()

    def get_config(self) -> dict[str, Any]:
        return asdict(self.config)

    def update_config(self, **changes: Any) -> CorrectorConfig:
        """Replace config values; applies to subsequent calls only."""
        self.config = replace(self.config, **changes)
        logger.debug("Corrector config updated: %s", changes)
        return self.config

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def build_request(self, content: Content, prompt: CorrectionPrompt, focus_keyword: str) -> str:
        """Build the provider request for one prompt."""
        lines = [
            "You are an expert SEO content editor. Make a SPECIFIC correction to the following content.",
            "",
            "CORRECTION REQUIRED:",
            prompt.instruction,
            "",
            "CURRENT CONTENT:",
            f"Title: {content.title}",
            f"Meta Description: {content.meta_description}",
            "Content:",
            content.content,
            "",
        ]
        if focus_keyword:
            lines.extend([f"Focus Keyword: {focus_keyword}", ""])
        lines.extend([
            "INSTRUCTIONS:",
            f"1. Change ONLY the {prompt.field} field as described above",
            "2. Preserve all other content exactly as is",
            "3. Keep the same HTML structure: do not remove headings, images or list items",
            f'4. Return JSON with the key "{prompt.field}" holding the corrected value',
            "",
            "Return ONLY valid JSON with no additional text or explanation.",
        ])
        return "\n".join(lines)

    def _active_providers(self) -> list[GenerationProvider]:
        if self.config.enable_provider_failover:
            return self.providers
        return self.providers[:1]

    def _apply_single(
        self,
        content: Content,
        prompt: CorrectionPrompt,
        focus_keyword: str,
    ) -> tuple[Optional[CorrectionRecord], Optional[str]]:
        request = self.build_request(content, prompt, focus_keyword)
        options = self.config.provider_options()
        before = content.get_field(prompt.field)
        last_error = "no provider attempted"

        for provider in self._active_providers():
            for attempt in range(1, self.config.max_retry_attempts + 1):
                error: Optional[ProviderError] = None
                try:
                    response = provider.generate(request, options)
                except ProviderError as e:
                    error = e
                except Exception as e:
                    error = ProviderError(f"{provider.name} failed: {e}", provider=provider.name)
                    error.__cause__ = e

                if error is not None:
                    last_error = str(error)
                    self._log_error(prompt, provider.name, last_error, attempt)
                    self._check_critical(error, provider.name)
                    if not error.retryable:
                        break
                    if attempt < self.config.max_retry_attempts and self.config.retry_delay:
                        time.sleep(self.config.retry_delay)
                    continue

                try:
                    fields = parse_correction_response(response)
                except CorrectionParseError as e:
                    self._log_error(prompt, provider.name, str(e), attempt, level="warning")
                    return None, str(e)

                after = fields.get(prompt.field)
                if after is None:
                    reason = f"response did not include '{prompt.field}'"
                    self._log_error(prompt, provider.name, reason, attempt, level="warning")
                    return None, reason

                if self.config.enable_correction_validation:
                    rejection = self.validate_correction(prompt, before, after)
                    if rejection:
                        reason = f"Correction rejected: {rejection}"
                        self._log_error(prompt, provider.name, reason, attempt, level="warning")
                        return None, reason

                logger.info("Applied %s correction with %s on attempt %d",
                            prompt.issue_type.value, provider.name, attempt)
                return CorrectionRecord(
                    issue_type=prompt.issue_type,
                    field=prompt.field,
                    before=before,
                    after=after,
                    provider=provider.name,
                ), None

            if self.config.enable_provider_failover:
                logger.info("Provider %s exhausted for %s, failing over",
                            provider.name, prompt.issue_type.value)

        return None, last_error

    def _check_critical(self, error: ProviderError, provider_name: str) -> None:
        if self.error_handler is None:
            return
        record = self.error_handler.record_error(
            error,
            component="ai_correction",
            error_type=infer_error_type(str(error)),
            context={"provider": provider_name},
        )
        if record.category == ErrorCategory.CRITICAL:
            raise CriticalOptimizationError(f"Provider {provider_name} failed critically: {error}") from error

    def _log_error(
        self,
        prompt: CorrectionPrompt,
        provider_name: str,
        message: str,
        attempt: int,
        level: str = "error",
    ) -> None:
        self._error_log.append({
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "issue_type": prompt.issue_type.value,
            "field": prompt.field,
            "provider": provider_name,
            "attempt": attempt,
            "message": message,
        })
        log = logger.warning if level == "warning" else logger.error
        log("Correction %s via %s (attempt %d): %s",
            prompt.issue_type.value, provider_name, attempt, message)
