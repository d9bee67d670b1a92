"""
Data models for the SEO multi-pass optimizer.

This module defines the core records that flow through one optimization
session:
- Content: the editable article record (title, body, meta description, ...)
- Issue / DetectionResult: output of a detection pass
- CorrectionPrompt / CorrectionRecord / CorrectionResult: correction flow
- Snapshot / StructureDescriptor / IntegrityResult: structure preservation
- PassRecord / StrategyMetric / Session: progress tracking
- OptimizationResult: what the orchestrator hands back to callers
"""

import copy
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional


class Severity(Enum):
    """Issue severity levels."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"

    @property
    def weight(self) -> float:
        """Scoring multiplier applied to issues of this severity."""
        return {"critical": 3.0, "major": 2.0, "minor": 1.0}[self.value]


class IssueType(Enum):
    """Rule checks that can fail during detection."""
    KEYWORD_DENSITY_LOW = "keyword_density_low"
    KEYWORD_DENSITY_HIGH = "keyword_density_high"
    META_DESCRIPTION_SHORT = "meta_description_short"
    META_DESCRIPTION_LONG = "meta_description_long"
    META_DESCRIPTION_NO_KEYWORD = "meta_description_no_keyword"
    PASSIVE_VOICE_HIGH = "passive_voice_high"
    SENTENCE_LENGTH_HIGH = "sentence_length_high"
    TRANSITION_WORDS_LOW = "transition_words_low"
    TITLE_TOO_LONG = "title_too_long"
    TITLE_NO_KEYWORD = "title_no_keyword"
    TITLE_NOT_UNIQUE = "title_not_unique"
    SUBHEADING_KEYWORD_OVERUSE = "subheading_keyword_overuse"
    NO_IMAGES = "no_images"
    ALT_TEXT_NO_KEYWORD = "alt_text_no_keyword"


class ErrorCategory(Enum):
    """Error classification used by the error handler."""
    CRITICAL = "critical"
    RECOVERABLE = "recoverable"
    DEGRADED = "degraded"
    INFORMATIONAL = "informational"


class TerminationReason(Enum):
    """Why an optimization session stopped."""
    COMPLIANCE_ACHIEVED = "compliance_achieved"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    ALREADY_COMPLIANT = "already_compliant"
    STAGNATION = "stagnation"
    CRITICAL_ERROR = "critical_error"


class IntegrationMode(Enum):
    """How the integration entry point treats incoming content."""
    SEAMLESS = "seamless"  # Run the optimization loop automatically
    MANUAL = "manual"  # Detect and propose prompts, never call the provider
    BYPASS = "bypass"  # Skip optimization and return the original


# =============================================================================
# Content
# =============================================================================


@dataclass
class ImagePrompt:
    """A planned image with its generation prompt and alt text."""
    prompt: str
    alt: str = ""


@dataclass
class Content:
    """
    An editable content record.

    Only ``title``, ``meta_description`` and ``content`` are rewritten by the
    corrector. The remaining fields are carried through unchanged.
    """
    title: str = ""
    content: str = ""
    meta_description: str = ""
    focus_keyword: str = ""
    secondary_keywords: list[str] = field(default_factory=list)
    excerpt: str = ""
    slug: str = ""
    tags: list[str] = field(default_factory=list)
    image_prompts: list[ImagePrompt] = field(default_factory=list)
    internal_links: list[str] = field(default_factory=list)

    EDITABLE_FIELDS: ClassVar[tuple[str, ...]] = ("title", "meta_description", "content")

    def copy(self) -> "Content":
        """Return an independent deep copy."""
        return copy.deepcopy(self)

    def get_field(self, name: str) -> str:
        """Get an editable text field, treating None as empty."""
        return getattr(self, name, "") or ""

    def with_updates(self, **changes: str) -> "Content":
        """Return a copy with the given editable fields replaced."""
        updated = self.copy()
        for name, value in changes.items():
            if name not in self.EDITABLE_FIELDS:
                raise ValueError(f"Field '{name}' is not editable")
            setattr(updated, name, value)
        return updated

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "meta_description": self.meta_description,
            "focus_keyword": self.focus_keyword,
            "secondary_keywords": list(self.secondary_keywords),
            "excerpt": self.excerpt,
            "slug": self.slug,
            "tags": list(self.tags),
            "image_prompts": [
                {"prompt": p.prompt, "alt": p.alt} for p in self.image_prompts
            ],
            "internal_links": list(self.internal_links),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Content":
        """
        Build a Content record from loosely-typed data.

        Missing or None values fall back to the field defaults so that
        detection can report them as failing rules instead of crashing.
        """
        image_prompts = []
        for item in data.get("image_prompts") or []:
            if isinstance(item, ImagePrompt):
                image_prompts.append(item)
            elif isinstance(item, dict):
                image_prompts.append(
                    ImagePrompt(prompt=item.get("prompt") or "", alt=item.get("alt") or "")
                )
            else:
                image_prompts.append(ImagePrompt(prompt=str(item)))

        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            meta_description=data.get("meta_description") or "",
            focus_keyword=data.get("focus_keyword") or "",
            secondary_keywords=list(data.get("secondary_keywords") or []),
            excerpt=data.get("excerpt") or "",
            slug=data.get("slug") or "",
            tags=list(data.get("tags") or []),
            image_prompts=image_prompts,
            internal_links=list(data.get("internal_links") or []),
        )


# =============================================================================
# Detection
# =============================================================================


@dataclass(frozen=True)
class Issue:
    """A single failing rule check. Immutable once created."""
    type: IssueType
    severity: Severity
    field: str
    message: str
    current_value: float
    target_value: float
    priority: int = 5
    weight: float = 1.0
    locations: tuple = ()

    @property
    def penalty(self) -> float:
        """Score deduction before the global dampening factor."""
        return self.weight * self.severity.weight * 10

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "field": self.field,
            "message": self.message,
            "current_value": self.current_value,
            "target_value": self.target_value,
            "priority": self.priority,
            "weight": self.weight,
            "locations": [dict(loc) for loc in self.locations],
        }


@dataclass
class DetectionResult:
    """Issues found in one detection pass plus the aggregate score."""
    issues: list[Issue]
    compliance_score: float
    metrics: dict[str, Any] = field(default_factory=dict)

    def count(self, severity: Severity) -> int:
        return sum(1 for issue in self.issues if issue.severity == severity)

    @property
    def total_issues(self) -> int:
        return len(self.issues)

    @property
    def is_compliant(self) -> bool:
        return self.compliance_score >= 100.0

    @property
    def issue_types(self) -> list[str]:
        return [issue.type.value for issue in self.issues]

    def to_dict(self) -> dict[str, Any]:
        return {
            "issues": [issue.to_dict() for issue in self.issues],
            "total_issues": self.total_issues,
            "critical_issues": self.count(Severity.CRITICAL),
            "major_issues": self.count(Severity.MAJOR),
            "minor_issues": self.count(Severity.MINOR),
            "compliance_score": self.compliance_score,
            "is_compliant": self.is_compliant,
            "metrics": dict(self.metrics),
        }


# =============================================================================
# Correction
# =============================================================================


@dataclass
class CorrectionPrompt:
    """
    A rewrite instruction for one content field.

    Composite prompts (several issues on the same field) keep every merged
    issue type in ``issue_types``; ``issue_type`` is the highest priority one.
    """
    issue_type: IssueType
    field: str
    instruction: str
    expected_improvement: float
    priority: int = 5
    severity: Severity = Severity.MINOR
    estimated_changes: int = 1
    issue_types: list[IssueType] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    @property
    def is_composite(self) -> bool:
        return len(self.issue_types) > 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_type": self.issue_type.value,
            "issue_types": [t.value for t in self.issue_types],
            "field": self.field,
            "instruction": self.instruction,
            "expected_improvement": self.expected_improvement,
            "priority": self.priority,
            "severity": self.severity.value,
            "estimated_changes": self.estimated_changes,
        }


@dataclass
class CorrectionRecord:
    """An applied correction with the before/after field values."""
    issue_type: IssueType
    field: str
    before: str
    after: str
    provider: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_type": self.issue_type.value,
            "field": self.field,
            "before": self.before,
            "after": self.after,
            "provider": self.provider,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CorrectionResult:
    """Outcome of applying a batch of correction prompts."""
    success: bool
    corrected_content: Content
    corrections_applied: list[CorrectionRecord] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def applied_types(self) -> list[str]:
        return [record.issue_type.value for record in self.corrections_applied]


# =============================================================================
# Structure preservation
# =============================================================================


@dataclass
class StructureDescriptor:
    """Structural fingerprint of a content body."""
    tag_counts: dict[str, int] = field(default_factory=dict)
    headings: dict[str, int] = field(default_factory=dict)
    images: list[dict[str, str]] = field(default_factory=list)
    paragraphs: int = 0
    lists: int = 0
    list_items: int = 0
    links: int = 0
    formatting: int = 0
    text_length: int = 0

    @property
    def heading_count(self) -> int:
        return sum(self.headings.values())

    @property
    def image_count(self) -> int:
        return len(self.images)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tag_counts": dict(self.tag_counts),
            "headings": dict(self.headings),
            "images": [dict(img) for img in self.images],
            "paragraphs": self.paragraphs,
            "lists": self.lists,
            "list_items": self.list_items,
            "links": self.links,
            "formatting": self.formatting,
            "text_length": self.text_length,
        }


@dataclass(frozen=True)
class Snapshot:
    """An immutable saved copy of content used for rollback."""
    id: str
    content: Content
    checksum: str
    structural_fingerprint: StructureDescriptor
    label: str
    created_at: datetime


@dataclass
class StructureViolation:
    """A structural difference between original and candidate content."""
    kind: str
    severity: str  # "major" or "minor"
    message: str
    expected: Any = None
    actual: Any = None

    @property
    def is_major(self) -> bool:
        return self.severity == "major"

    @property
    def is_formatting(self) -> bool:
        return self.kind.startswith("formatting_")


@dataclass
class IntegrityResult:
    """Result of comparing a candidate against its original."""
    structure_preserved: bool
    formatting_preserved: bool
    violations: list[StructureViolation] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def major_violations(self) -> list[StructureViolation]:
        return [v for v in self.violations if v.is_major]

    def to_dict(self) -> dict[str, Any]:
        return {
            "structure_preserved": self.structure_preserved,
            "formatting_preserved": self.formatting_preserved,
            "violations": [
                {"kind": v.kind, "severity": v.severity, "message": v.message}
                for v in self.violations
            ],
            "warnings": list(self.warnings),
        }


@dataclass
class PreservationResult:
    """Outcome of preserve_content: accepted content and what happened."""
    success: bool
    validation: IntegrityResult
    rolled_back: bool
    content: Content
    snapshot_id: Optional[str] = None


# =============================================================================
# Progress tracking
# =============================================================================


@dataclass
class PassRecord:
    """Metrics for a single optimization pass. Append-only within a session."""
    pass_number: int
    before_score: float
    after_score: float
    issues_before: int = 0
    issues_after: int = 0
    issues_resolved: list[str] = field(default_factory=list)
    corrections_applied: list[str] = field(default_factory=list)
    strategy_used: str = "default"
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def score_improvement(self) -> float:
        return round(self.after_score - self.before_score, 2)

    @property
    def issues_resolved_count(self) -> int:
        return max(0, self.issues_before - self.issues_after)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pass_number": self.pass_number,
            "before_score": self.before_score,
            "after_score": self.after_score,
            "score_improvement": self.score_improvement,
            "issues_before": self.issues_before,
            "issues_after": self.issues_after,
            "issues_resolved": list(self.issues_resolved),
            "issues_resolved_count": self.issues_resolved_count,
            "corrections_applied": list(self.corrections_applied),
            "strategy_used": self.strategy_used,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class StrategyMetric:
    """Aggregated effectiveness of a named correction strategy."""
    strategy_name: str
    times_used: int = 0
    total_score_improvement: float = 0.0
    total_issues_resolved: int = 0
    success_count: int = 0

    @property
    def average_improvement(self) -> float:
        if self.times_used == 0:
            return 0.0
        return round(self.total_score_improvement / self.times_used, 2)

    @property
    def success_rate(self) -> float:
        if self.times_used == 0:
            return 0.0
        return round(self.success_count / self.times_used, 4)

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_name": self.strategy_name,
            "times_used": self.times_used,
            "total_score_improvement": round(self.total_score_improvement, 2),
            "total_issues_resolved": self.total_issues_resolved,
            "success_count": self.success_count,
            "average_improvement": self.average_improvement,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One content version kept in the session's bounded history."""
    pass_number: int
    content: Content
    content_hash: str
    score: float
    timestamp: datetime


@dataclass
class Session:
    """State of one optimization session."""
    session_id: str
    started_at: datetime
    initial_content: Optional[Content] = None
    initial_score: float = 0.0
    target_score: float = 100.0
    ended_at: Optional[datetime] = None
    status: str = "active"
    termination_reason: Optional[str] = None
    selected_score: Optional[float] = None
    passes: list[PassRecord] = field(default_factory=list)
    strategy_stats: dict[str, StrategyMetric] = field(default_factory=dict)
    content_history: deque = field(default_factory=lambda: deque(maxlen=10))

    @property
    def is_active(self) -> bool:
        return self.ended_at is None

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at or datetime.now()
        return round((end - self.started_at).total_seconds(), 3)

    @property
    def final_score(self) -> float:
        if self.selected_score is not None:
            return self.selected_score
        if not self.passes:
            return self.initial_score
        return self.passes[-1].after_score


# =============================================================================
# Orchestration
# =============================================================================


@dataclass
class OptimizationResult:
    """Final outcome of an optimization session."""
    final_content: Content
    passes: int
    initial_score: float
    compliance_score: float
    termination_reason: TerminationReason
    remaining_issues: list[Issue] = field(default_factory=list)
    pass_summaries: list[dict[str, Any]] = field(default_factory=list)
    progress_report: dict[str, Any] = field(default_factory=dict)
    error_report: dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None

    @property
    def score_improvement(self) -> float:
        return round(self.compliance_score - self.initial_score, 2)

    @property
    def is_compliant(self) -> bool:
        return not self.remaining_issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "final_content": self.final_content.to_dict(),
            "passes": self.passes,
            "initial_score": self.initial_score,
            "compliance_score": self.compliance_score,
            "score_improvement": self.score_improvement,
            "termination_reason": self.termination_reason.value,
            "is_compliant": self.is_compliant,
            "remaining_issues": [issue.to_dict() for issue in self.remaining_issues],
            "pass_summaries": list(self.pass_summaries),
            "progress_report": self.progress_report,
            "error_report": self.error_report,
            "session_id": self.session_id,
        }
