"""
Exception hierarchy for the SEO multi-pass optimizer.

Components raise these; the optimizer is the only place that catches them
broadly and routes them through the error handler.
"""

from typing import Optional


class OptimizationError(Exception):
    """Base class for optimizer errors."""
    pass


class ProviderError(OptimizationError):
    """Raised when a generation provider call fails."""

    def __init__(self, message: str, provider: Optional[str] = None, retryable: bool = True):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable


class ProviderNotConfiguredError(ProviderError):
    """Raised when a provider is missing credentials or its SDK."""

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message, provider=provider, retryable=False)


class CorrectionParseError(OptimizationError):
    """Raised when provider output cannot be turned into a correction."""
    pass


class StructureViolationError(OptimizationError):
    """Raised when a caller requires structure to be preserved and it was not."""

    def __init__(self, message: str, violations: Optional[list] = None):
        super().__init__(message)
        self.violations = violations or []


class CriticalOptimizationError(OptimizationError):
    """An error that always terminates the optimization session."""
    pass


class SessionNotFoundError(OptimizationError, KeyError):
    """Raised when a progress tracker session id is unknown."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Session not found"
