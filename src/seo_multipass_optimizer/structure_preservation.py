"""
Structure preservation for corrected content.

Corrections are rewritten by an external provider, which can silently drop
headings, images or list items. This module:
- Fingerprints the structure of a content body (headings, images, lists,
  paragraphs, links, inline formatting)
- Compares candidates with their originals and classifies violations:
  major (structure-breaking) or minor (paragraph drift, formatting-only)
- Keeps a bounded store of immutable snapshots with strict checksums
- Rolls back to the pre-correction snapshot when a candidate breaks structure
"""

import difflib
import hashlib
import json
import logging
import uuid
from collections import Counter, OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from bs4 import BeautifulSoup

from .exceptions import StructureViolationError
from .models import (
    Content,
    IntegrityResult,
    PreservationResult,
    Snapshot,
    StructureDescriptor,
    StructureViolation,
)
from .text_analysis import strip_html

logger = logging.getLogger(__name__)


BLOCK_TAGS = [
    "h1", "h2", "h3", "h4", "h5", "h6", "p", "ul", "ol", "li",
    "blockquote", "pre", "table", "figure", "img", "div", "section",
]
FORMATTING_TAGS = ["strong", "b", "em", "i", "u", "mark"]


@dataclass
class StructurePolicy:
    """Thresholds used when comparing a candidate with its original."""
    paragraph_drift_threshold: float = 0.20  # Relative paragraph count change
    length_change_threshold: float = 0.30  # Relative visible text length change
    title_similarity_threshold: float = 0.70
    max_snapshots: int = 10

    def __post_init__(self):
        if self.max_snapshots < 1:
            raise ValueError(f"max_snapshots must be >= 1, got {self.max_snapshots}")


class StructurePreserver:
    """
    Validates and protects the structure of content across corrections.

    Example:
        preserver = StructurePreserver()
        outcome = preserver.preserve_content(original, candidate)
        content = outcome.content  # candidate, or original if rolled back
    """

    def __init__(self, policy: Optional[StructurePolicy] = None):
        self.policy = policy or StructurePolicy()
        self._snapshots: "OrderedDict[str, Snapshot]" = OrderedDict()

    # -------------------------------------------------------------------------
    # Fingerprinting
    # -------------------------------------------------------------------------

    def analyze_structure(self, content: Union[Content, str]) -> StructureDescriptor:
        """
        Extract the structural fingerprint of a content body.

        Args:
            content: Content record or raw HTML body.

        Returns:
            StructureDescriptor with tag, heading, image, list, paragraph,
            link and formatting counts.
        """
        html = content.content if isinstance(content, Content) else (content or "")
        soup = BeautifulSoup(html, "html.parser")

        tag_counts = Counter(tag.name for tag in soup.find_all(BLOCK_TAGS))
        headings = {f"h{level}": tag_counts.get(f"h{level}", 0) for level in range(1, 7)}
        images = [
            {"src": img.get("src") or "", "alt": img.get("alt") or ""}
            for img in soup.find_all("img")
        ]

        paragraphs = tag_counts.get("p", 0)
        if paragraphs == 0:
            # Plain text bodies: count blank-line separated blocks
            text_blocks = [block for block in html.split("\n\n") if block.strip()]
            paragraphs = len(text_blocks) if not soup.find() else 0

        return StructureDescriptor(
            tag_counts=dict(tag_counts),
            headings=headings,
            images=images,
            paragraphs=paragraphs,
            lists=tag_counts.get("ul", 0) + tag_counts.get("ol", 0),
            list_items=tag_counts.get("li", 0),
            links=len(soup.find_all("a")),
            formatting=len(soup.find_all(FORMATTING_TAGS)),
            text_length=len(strip_html(html)),
        )

    @staticmethod
    def generate_checksum(content: Content) -> str:
        """Strict sha256 over every field of the content record."""
        payload = json.dumps(content.to_dict(), sort_keys=True, ensure_ascii=False)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def detect_corruption(self, content: Content, checksum: str) -> dict:
        """Compare content against a previously generated checksum."""
        actual = self.generate_checksum(content)
        corrupted = actual != checksum
        if corrupted:
            logger.warning("Content checksum mismatch (expected %s, got %s)", checksum[:12], actual[:12])
        return {
            "is_corrupted": corrupted,
            "expected_checksum": checksum,
            "actual_checksum": actual,
        }

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    def create_snapshot(self, content: Content, label: str = "") -> str:
        """
        Store an immutable copy of the content.

        The store keeps at most ``policy.max_snapshots`` snapshots; the
        oldest is evicted first.

        Returns:
            Snapshot id.
        """
        snapshot_id = f"snap_{uuid.uuid4().hex[:12]}"
        stored = content.copy()
        self._snapshots[snapshot_id] = Snapshot(
            id=snapshot_id,
            content=stored,
            checksum=self.generate_checksum(stored),
            structural_fingerprint=self.analyze_structure(stored),
            label=label,
            created_at=datetime.now(),
        )
        while len(self._snapshots) > self.policy.max_snapshots:
            evicted, _ = self._snapshots.popitem(last=False)
            logger.debug("Evicted snapshot %s", evicted)
        logger.debug("Created snapshot %s (%s)", snapshot_id, label)
        return snapshot_id

    def get_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        return self._snapshots.get(snapshot_id)

    def list_snapshots(self) -> list[dict]:
        return [
            {"id": s.id, "label": s.label, "checksum": s.checksum, "created_at": s.created_at.isoformat()}
            for s in self._snapshots.values()
        ]

    def rollback(self, snapshot_id: str) -> Optional[Snapshot]:
        """
        Return the snapshot with a fresh copy of its content, or None.

        Never raises, even for unknown ids.
        """
        snapshot = self._snapshots.get(snapshot_id)
        if snapshot is None:
            logger.warning("Rollback requested for unknown snapshot %s", snapshot_id)
            return None
        logger.info("Rolling back to snapshot %s (%s)", snapshot_id, snapshot.label)
        return Snapshot(
            id=snapshot.id,
            content=snapshot.content.copy(),
            checksum=snapshot.checksum,
            structural_fingerprint=snapshot.structural_fingerprint,
            label=snapshot.label,
            created_at=snapshot.created_at,
        )

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_integrity(self, original: Content, candidate: Content) -> IntegrityResult:
        """
        Compare a candidate with its original.

        Major violations: the number of headings, images or list items
        differs from the original.
        Minor violations: paragraph count drift beyond the threshold, heading
        level reshuffles and inline formatting changes.
        Warnings: large visible-length changes and title rewrites that
        may alter intent.
        """
        before = self.analyze_structure(original)
        after = self.analyze_structure(candidate)
        violations: list[StructureViolation] = []
        warnings: list[str] = []

        for kind, label, expected, actual in (
            ("heading_count", "Heading count", before.heading_count, after.heading_count),
            ("image_count", "Image count", before.image_count, after.image_count),
            ("list_item_count", "List item count", before.list_items, after.list_items),
        ):
            if actual != expected:
                change = "dropped" if actual < expected else "increased"
                violations.append(StructureViolation(
                    kind=kind,
                    severity="major",
                    message=f"{label} {change}: {expected} -> {actual}",
                    expected=expected,
                    actual=actual,
                ))

        if before.heading_count == after.heading_count and before.headings != after.headings:
            violations.append(StructureViolation(
                kind="formatting_heading_levels",
                severity="minor",
                message="Heading levels changed",
                expected=before.headings,
                actual=after.headings,
            ))

        drift = self._relative_change(before.paragraphs, after.paragraphs)
        if drift > self.policy.paragraph_drift_threshold:
            violations.append(StructureViolation(
                kind="formatting_paragraphs",
                severity="minor",
                message=f"Paragraph count changed: {before.paragraphs} -> {after.paragraphs}",
                expected=before.paragraphs,
                actual=after.paragraphs,
            ))

        if before.formatting != after.formatting:
            violations.append(StructureViolation(
                kind="formatting_inline",
                severity="minor",
                message=f"Inline formatting changed: {before.formatting} -> {after.formatting}",
                expected=before.formatting,
                actual=after.formatting,
            ))

        length_change = self._relative_change(before.text_length, after.text_length)
        if length_change > self.policy.length_change_threshold:
            warnings.append(f"Content length changed by {length_change * 100:.0f}%")

        title_similarity = self._text_similarity(original.title, candidate.title)
        if title_similarity < self.policy.title_similarity_threshold:
            warnings.append(f"Title changed significantly ({title_similarity * 100:.0f}% similar)")

        has_major = any(v.is_major for v in violations)
        has_formatting = any(v.is_formatting for v in violations)
        for violation in violations:
            logger.debug("Structure violation (%s): %s", violation.severity, violation.message)

        return IntegrityResult(
            structure_preserved=not has_major,
            formatting_preserved=not has_major and not has_formatting,
            violations=violations,
            warnings=warnings,
        )

    def preserve_content(
        self,
        original: Content,
        candidate: Content,
        strict: bool = False,
    ) -> PreservationResult:
        """
        Accept the candidate, or roll back to the original on major violations.

        An implicit snapshot of the original is taken before validation.

        Raises:
            StructureViolationError: In strict mode, instead of returning a
                rolled-back result.
        """
        snapshot_id = self.create_snapshot(original, "pre_correction")
        validation = self.validate_integrity(original, candidate)

        if not validation.structure_preserved:
            if strict:
                raise StructureViolationError(
                    "Candidate breaks document structure",
                    violations=validation.major_violations,
                )
            snapshot = self.rollback(snapshot_id)
            logger.warning(
                "Structure broken (%s), rolled back",
                "; ".join(v.message for v in validation.major_violations),
            )
            return PreservationResult(
                success=False,
                validation=validation,
                rolled_back=True,
                content=snapshot.content,
                snapshot_id=snapshot_id,
            )

        return PreservationResult(
            success=True,
            validation=validation,
            rolled_back=False,
            content=candidate.copy(),
            snapshot_id=snapshot_id,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _relative_change(before: int, after: int) -> float:
        if before == 0:
            return 0.0 if after == 0 else 1.0
        return abs(after - before) / before

    @staticmethod
    def _text_similarity(text1: str, text2: str) -> float:
        """Character-level similarity ratio (0-1)."""
        if not text1 and not text2:
            return 1.0
        return difflib.SequenceMatcher(None, text1 or "", text2 or "").ratio()
