"""
Error classification and recovery for the optimization loop.

Every handled error goes through the same small state machine:
classify -> select strategy -> execute (retry with backoff) -> success or
exhausted (fallback applied). Handled errors are kept in an inspectable log
and folded into a user-facing report at the end of a session.
"""

import logging
import re
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Union

from .config import ErrorHandlerConfig
from .exceptions import CriticalOptimizationError
from .models import ErrorCategory

logger = logging.getLogger(__name__)


# Checked in order, so critical patterns outrank the rest
CATEGORY_PATTERNS: list[tuple[ErrorCategory, list[str]]] = [
    (ErrorCategory.CRITICAL, ["fatal", "exception", "crash", "cannot continue"]),
    (ErrorCategory.RECOVERABLE, ["timeout", "rate limit", "temporary", "retry"]),
    (ErrorCategory.DEGRADED, ["partial", "incomplete", "degraded"]),
    (ErrorCategory.INFORMATIONAL, ["warning", "notice", "info"]),
]


@dataclass(frozen=True)
class RecoveryStrategy:
    """How a known error type is retried."""
    name: str
    steps: tuple[str, ...]
    max_attempts: int
    backoff_multiplier: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": self.name,
            "steps": list(self.steps),
            "max_attempts": self.max_attempts,
            "backoff_multiplier": self.backoff_multiplier,
        }


RECOVERY_STRATEGIES: dict[str, RecoveryStrategy] = {
    "ai_provider_failure": RecoveryStrategy(
        "provider_failover",
        ("switch_provider", "retry_request", "use_cached_result"),
        max_attempts=3, backoff_multiplier=2,
    ),
    "validation_timeout": RecoveryStrategy(
        "simplified_validation",
        ("reduce_validation_scope", "use_cached_validation", "skip_non_critical"),
        max_attempts=2, backoff_multiplier=1.5,
    ),
    "correction_failure": RecoveryStrategy(
        "alternative_correction",
        ("simplify_prompt", "use_template", "manual_fallback"),
        max_attempts=3, backoff_multiplier=1,
    ),
    "rate_limit_exceeded": RecoveryStrategy(
        "exponential_backoff",
        ("wait_and_retry", "switch_provider", "queue_for_later"),
        max_attempts=5, backoff_multiplier=2,
    ),
    "network_error": RecoveryStrategy(
        "retry_with_backoff",
        ("retry_immediately", "retry_with_delay", "use_cached_result"),
        max_attempts=3, backoff_multiplier=2,
    ),
}

GENERIC_STRATEGY = RecoveryStrategy(
    "generic_retry",
    ("retry_request",),
    max_attempts=3, backoff_multiplier=2,
)

FALLBACK_STRATEGIES: dict[str, dict[str, Any]] = {
    "ai_correction": {
        "primary": "use_ai_provider",
        "fallback_1": "use_alternative_provider",
        "fallback_2": "use_template_based_correction",
        "fallback_3": "return_original_content",
        "graceful_degradation": True,
    },
    "validation": {
        "primary": "full_validation",
        "fallback_1": "critical_validation_only",
        "fallback_2": "cached_validation",
        "fallback_3": "skip_validation",
        "graceful_degradation": True,
    },
    "optimization_loop": {
        "primary": "continue_optimization",
        "fallback_1": "reduce_iteration_count",
        "fallback_2": "return_best_result",
        "fallback_3": "return_original_content",
        "graceful_degradation": True,
    },
}

DEFAULT_FALLBACK_STRATEGY: dict[str, Any] = {
    "primary": "default_operation",
    "fallback_1": "return_original",
    "fallback_2": "skip_operation",
    "fallback_3": "log_and_continue",
    "graceful_degradation": False,
}

MESSAGE_SIMPLIFICATIONS = [
    (re.compile(r"timeout|timed out", re.I), "The operation took too long to complete"),
    (re.compile(r"rate limit", re.I), "Too many requests - please wait a moment"),
    (re.compile(r"connection|network", re.I), "Unable to connect to the service"),
    (re.compile(r"authentication|api key", re.I), "Authentication failed - please check your API keys"),
    (re.compile(r"quota|credit", re.I), "The provider quota has been exhausted"),
    (re.compile(r"not found", re.I), "The requested resource was not found"),
    (re.compile(r"permission", re.I), "You do not have permission to perform this action"),
    (re.compile(r"invalid", re.I), "The provided data is invalid"),
    (re.compile(r"exception", re.I), "An unexpected error occurred"),
]


def infer_error_type(message: str) -> str:
    """Map a provider error message onto a known recovery error type."""
    lowered = message.lower()
    if "rate limit" in lowered:
        return "rate_limit_exceeded"
    if "timeout" in lowered or "connection" in lowered or "network" in lowered:
        return "network_error"
    return "ai_provider_failure"


@dataclass
class ErrorRecord:
    """A handled error kept in the error log."""
    message: str
    component: str
    category: ErrorCategory
    error_type: Optional[str] = None
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "component": self.component,
            "category": self.category.value,
            "error_type": self.error_type,
            "context": dict(self.context),
            "timestamp": self.timestamp.isoformat(),
        }


class ErrorHandler:
    """
    Classifies failures and drives bounded recovery.

    Example:
        handler = ErrorHandler()
        outcome = handler.execute_with_recovery(call_provider, "network_error", "ai_correction")
        if outcome["fallback_applied"]:
            ...
    """

    def __init__(self, config: Optional[ErrorHandlerConfig] = None):
        self.config = config or ErrorHandlerConfig()
        self._log: deque[ErrorRecord] = deque(maxlen=self.config.max_log_size)

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify_error(self, error: Union[str, BaseException], component: str = "unknown") -> ErrorCategory:
        """
        Classify an error by message patterns.

        Args:
            error: Error message or exception.
            component: Component the error originated in.

        Returns:
            ErrorCategory. Unmatched messages default to RECOVERABLE.
        """
        if isinstance(error, CriticalOptimizationError):
            return ErrorCategory.CRITICAL

        lowered = str(error).lower()
        for category, patterns in CATEGORY_PATTERNS:
            if any(pattern in lowered for pattern in patterns):
                return category
        return ErrorCategory.RECOVERABLE

    def record_error(
        self,
        error: Union[str, BaseException],
        component: str,
        error_type: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> ErrorRecord:
        """Classify an error and append it to the error log."""
        record = ErrorRecord(
            message=str(error) or type(error).__name__,
            component=component,
            category=self.classify_error(error, component),
            error_type=error_type,
            context=dict(context or {}),
        )
        self._log.append(record)

        level = logging.ERROR if record.category == ErrorCategory.CRITICAL else logging.WARNING
        if record.category == ErrorCategory.INFORMATIONAL:
            level = logging.INFO
        logger.log(level, "[%s] %s error in %s: %s",
                   record.category.value, error_type or "unclassified", component, record.message)
        return record

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    def get_recovery_strategies(self) -> dict[str, dict[str, Any]]:
        """All known error types and how each is recovered."""
        return {name: strategy.to_dict() for name, strategy in RECOVERY_STRATEGIES.items()}

    def get_recovery_strategy(self, error_type: str) -> RecoveryStrategy:
        """Strategy for an error type, or the generic retry strategy."""
        return RECOVERY_STRATEGIES.get(error_type, GENERIC_STRATEGY)

    def get_fallback_strategy(self, component: str) -> dict[str, Any]:
        """Fallback chain for a component (primary, fallback_1..3, graceful_degradation)."""
        return dict(FALLBACK_STRATEGIES.get(component, DEFAULT_FALLBACK_STRATEGY))

    def calculate_backoff(self, attempt: int, multiplier: float) -> float:
        """base_delay * multiplier^(attempt-1), capped at max_delay."""
        delay = self.config.base_delay * (multiplier ** max(0, attempt - 1))
        return min(delay, self.config.max_delay)

    def handle_error_with_recovery(
        self,
        error_type: str,
        component: str,
        error: Union[str, BaseException],
        context: Optional[dict[str, Any]] = None,
        attempt: int = 1,
    ) -> dict[str, Any]:
        """
        Record an error and decide the next recovery action.

        Args:
            error_type: Known error type (e.g. "network_error").
            component: Component that failed.
            error: Error message or exception.
            context: Extra details stored with the log entry.
            attempt: 1-based number of the attempt that just failed.

        Returns:
            Dict with ``strategy``, ``action`` ("retry", "fallback" or
            "abort"), ``category`` and, when retrying, ``backoff_delay`` and
            ``next_step``.
        """
        record = self.record_error(error, component, error_type, {**(context or {}), "attempt": attempt})
        strategy = self.get_recovery_strategy(error_type)

        decision: dict[str, Any] = {
            "strategy": strategy.name,
            "category": record.category.value,
            "attempt": attempt,
            "max_attempts": strategy.max_attempts,
        }

        if record.category == ErrorCategory.CRITICAL:
            decision.update({
                "action": "abort",
                "fallback": self.get_fallback_strategy(component),
                "message": f"Critical error in {component}, recovery not attempted",
            })
            return decision

        if attempt >= strategy.max_attempts:
            decision.update({
                "action": "fallback",
                "fallback": self.get_fallback_strategy(component),
                "message": (
                    f"Maximum recovery attempts ({strategy.max_attempts}) reached for {error_type}"
                ),
            })
            return decision

        step = strategy.steps[min(attempt - 1, len(strategy.steps) - 1)]
        decision.update({
            "action": "retry",
            "next_step": step,
            "backoff_delay": self.calculate_backoff(attempt, strategy.backoff_multiplier),
            "message": f"Applying recovery strategy: {strategy.name}, step: {step}",
        })
        return decision

    def execute_with_recovery(
        self,
        operation: Callable[[int, dict[str, Any]], Any],
        error_type: str,
        component: str,
        context: Optional[dict[str, Any]] = None,
        fallback: Optional[Callable[[], Any]] = None,
    ) -> dict[str, Any]:
        """
        Run an operation with bounded retries and exponential backoff.

        The operation is called as ``operation(attempt, context)``. It fails
        by raising, or by returning a dict whose ``success`` key is falsy.
        When attempts are exhausted the component's fallback strategy is
        applied (and ``fallback()`` called, if given) instead of raising.

        Returns:
            Dict with ``success``, ``result``, ``attempts`` and
            ``fallback_applied``; on exhaustion also ``fallback_strategy``,
            ``fallback_result`` and ``error``.
        """
        context = dict(context or {})
        strategy = self.get_recovery_strategy(error_type)
        last_error: Any = None

        for attempt in range(1, strategy.max_attempts + 1):
            try:
                result = operation(attempt, context)
            except Exception as e:
                last_error = e
            else:
                if not (isinstance(result, dict) and "success" in result and not result["success"]):
                    if attempt > 1:
                        logger.info("%s succeeded after %d attempts", component, attempt)
                    return {
                        "success": True,
                        "result": result,
                        "attempts": attempt,
                        "fallback_applied": False,
                    }
                last_error = result.get("error") or "Operation failed"

            decision = self.handle_error_with_recovery(error_type, component, last_error, context, attempt)
            if decision["action"] != "retry":
                return self._apply_fallback(component, last_error, attempt, fallback)

            delay = decision["backoff_delay"]
            if delay > 0:
                self.config.sleep(delay)

        return self._apply_fallback(component, last_error, strategy.max_attempts, fallback)

    def _apply_fallback(
        self,
        component: str,
        error: Any,
        attempts: int,
        fallback: Optional[Callable[[], Any]],
    ) -> dict[str, Any]:
        strategy = self.get_fallback_strategy(component)
        logger.warning("Recovery exhausted for %s after %d attempts, applying %s",
                       component, attempts, strategy["fallback_1"])
        return {
            "success": False,
            "result": None,
            "attempts": attempts,
            "error": str(error),
            "fallback_applied": True,
            "fallback_strategy": strategy,
            "fallback_result": fallback() if fallback is not None else None,
        }

    # -------------------------------------------------------------------------
    # Degradation
    # -------------------------------------------------------------------------

    def apply_graceful_degradation(
        self,
        component: str,
        partial_results: list,
        failures: list,
    ) -> dict[str, Any]:
        """
        Decide whether partial success is acceptable.

        success_rate = passed / (passed + failed) * 100. The outcome is
        degraded whenever failures coexist with at least one success.
        """
        passed, failed = len(partial_results), len(failures)
        total = passed + failed
        success_rate = round(passed / total * 100, 2) if total else 100.0
        degraded = failed > 0 and passed > 0

        result: dict[str, Any] = {
            "success": passed > 0 or total == 0,
            "degraded": degraded,
            "success_rate": success_rate,
            "results": list(partial_results),
            "failures": list(failures),
        }
        if degraded:
            if success_rate >= 70:
                level = "minor"
            elif success_rate >= 40:
                level = "moderate"
            else:
                level = "severe"
            result["degradation_level"] = level
            result["status"] = "partial"
            result["graceful_degradation"] = self.get_fallback_strategy(component)["graceful_degradation"]
            self.record_error(
                f"Operating in degraded mode ({level}) with {success_rate}% success rate",
                component,
                "degraded_operation",
                {"passed": passed, "failed": failed},
            )
        return result

    # -------------------------------------------------------------------------
    # Log and reporting
    # -------------------------------------------------------------------------

    def get_error_log(self) -> list[ErrorRecord]:
        return list(self._log)

    def clear_error_log(self) -> None:
        self._log.clear()

    def get_error_statistics(self) -> dict[str, Any]:
        """Counts of logged errors by category, component and error type."""
        records = list(self._log)
        return {
            "total": len(records),
            "by_category": dict(Counter(r.category.value for r in records)),
            "by_component": dict(Counter(r.component for r in records)),
            "by_error_type": dict(Counter(r.error_type or "unclassified" for r in records)),
        }

    @staticmethod
    def simplify_error_message(message: str) -> str:
        for pattern, friendly in MESSAGE_SIMPLIFICATIONS:
            if pattern.search(message):
                return friendly
        return message

    def generate_user_friendly_report(
        self,
        errors: Optional[list[Union[ErrorRecord, dict, str]]] = None,
    ) -> dict[str, Any]:
        """
        Summarize errors for end users.

        Args:
            errors: Errors to report. Defaults to the handler's error log.

        Returns:
            Dict with ``summary``, ``details`` (per category),
            ``recommendations`` and ``severity`` (critical, warning or info).
        """
        if errors is None:
            errors = self.get_error_log()

        report: dict[str, Any] = {
            "summary": "No errors detected",
            "details": {},
            "recommendations": [],
            "severity": "info",
        }
        if not errors:
            return report

        classified: dict[str, list[dict[str, Any]]] = {}
        for error in errors:
            entry = self._normalize_error(error)
            classified.setdefault(entry["category"], []).append(entry)

        if classified.get("critical"):
            report["severity"] = "critical"
            report["summary"] = f"{len(classified['critical'])} critical error(s) detected"
        elif classified.get("recoverable"):
            report["severity"] = "warning"
            report["summary"] = f"{len(classified['recoverable'])} recoverable error(s) detected"
        elif classified.get("degraded"):
            report["severity"] = "warning"
            report["summary"] = "System operating in degraded mode"
        else:
            report["summary"] = "Minor issues detected"

        for category, entries in classified.items():
            report["details"][category] = {
                "count": len(entries),
                "errors": [
                    {
                        "component": e["component"],
                        "message": self.simplify_error_message(e["message"]),
                        "timestamp": e["timestamp"],
                    }
                    for e in entries
                ],
            }

        report["recommendations"] = self._recommendations(classified)
        return report

    def _normalize_error(self, error: Union[ErrorRecord, dict, str]) -> dict[str, Any]:
        if isinstance(error, ErrorRecord):
            return {
                "category": error.category.value,
                "component": error.component,
                "message": error.message,
                "timestamp": error.timestamp.isoformat(),
            }
        if isinstance(error, dict):
            message = str(error.get("message", ""))
            component = error.get("component", "unknown")
            category = error.get("category") or self.classify_error(message, component).value
            return {
                "category": category.value if isinstance(category, ErrorCategory) else str(category),
                "component": component,
                "message": message,
                "timestamp": error.get("timestamp") or datetime.now().isoformat(),
            }
        return {
            "category": self.classify_error(str(error)).value,
            "component": "unknown",
            "message": str(error),
            "timestamp": datetime.now().isoformat(),
        }

    @staticmethod
    def _recommendations(classified: dict[str, list]) -> list[str]:
        recommendations = []
        if classified.get("critical"):
            recommendations.extend([
                "Critical errors detected - immediate action required",
                "Check the logs for detailed error information",
                "Verify API keys and service connectivity",
            ])
        if classified.get("recoverable"):
            recommendations.extend([
                "Some operations failed but can be retried",
                "Consider increasing timeout values if errors persist",
            ])
        if classified.get("degraded"):
            recommendations.extend([
                "The optimizer is operating with reduced functionality",
                "Some corrections may not have been applied",
            ])
        return recommendations
