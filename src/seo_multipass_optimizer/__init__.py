"""
SEO Multi-Pass Optimizer

Iteratively brings generated content into SEO compliance:
- Detects rule violations and scores content 0-100
- Turns issues into targeted correction prompts
- Applies corrections through generation providers with retry and failover
- Rolls back corrections that break document structure
- Tracks every pass and stops on compliance, budget or stagnation
"""

__version__ = "1.0.0"
__author__ = "SEO Multi-Pass Optimizer Team"

from .config import (
    CorrectorConfig,
    DetectorConfig,
    ErrorHandlerConfig,
    IntegrationConfig,
    OptimizerConfig,
    TrackerConfig,
)

from .models import (
    Content,
    ImagePrompt,
    Issue,
    IssueType,
    Severity,
    DetectionResult,
    CorrectionPrompt,
    CorrectionResult,
    PassRecord,
    StrategyMetric,
    Snapshot,
    IntegrityResult,
    PreservationResult,
    OptimizationResult,
    ErrorCategory,
    IntegrationMode,
    TerminationReason,
)

from .exceptions import (
    OptimizationError,
    ProviderError,
    ProviderNotConfiguredError,
    CorrectionParseError,
    StructureViolationError,
    CriticalOptimizationError,
    SessionNotFoundError,
)

# Components
from .issue_detector import IssueDetector, calculate_compliance_score
from .prompt_generator import CorrectionPromptGenerator
from .llm_client import (
    AnthropicProvider,
    CallableProvider,
    GenerationProvider,
    create_provider,
)
from .content_corrector import ContentCorrector
from .structure_preservation import StructurePolicy, StructurePreserver
from .error_handler import ErrorHandler
from .progress_tracker import ProgressTracker

# Orchestration
from .optimizer import MultiPassOptimizer, create_optimizer
from .integration import (
    ContentStore,
    InMemoryContentStore,
    IntegrationResult,
    OptimizationIntegration,
)

__all__ = [
    # Configuration
    "CorrectorConfig",
    "DetectorConfig",
    "ErrorHandlerConfig",
    "IntegrationConfig",
    "OptimizerConfig",
    "TrackerConfig",
    # Models
    "Content",
    "ImagePrompt",
    "Issue",
    "IssueType",
    "Severity",
    "DetectionResult",
    "CorrectionPrompt",
    "CorrectionResult",
    "PassRecord",
    "StrategyMetric",
    "Snapshot",
    "IntegrityResult",
    "PreservationResult",
    "OptimizationResult",
    "ErrorCategory",
    "IntegrationMode",
    "TerminationReason",
    # Exceptions
    "OptimizationError",
    "ProviderError",
    "ProviderNotConfiguredError",
    "CorrectionParseError",
    "StructureViolationError",
    "CriticalOptimizationError",
    "SessionNotFoundError",
    # Components
    "IssueDetector",
    "calculate_compliance_score",
    "CorrectionPromptGenerator",
    "AnthropicProvider",
    "CallableProvider",
    "GenerationProvider",
    "create_provider",
    "ContentCorrector",
    "StructurePolicy",
    "StructurePreserver",
    "ErrorHandler",
    "ProgressTracker",
    # Orchestration
    "MultiPassOptimizer",
    "create_optimizer",
    "ContentStore",
    "InMemoryContentStore",
    "IntegrationResult",
    "OptimizationIntegration",
]
