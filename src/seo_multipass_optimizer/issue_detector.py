"""
Issue detection for SEO content.

Runs independent rule checks against a Content record and emits typed
issues plus a 0-100 compliance score:
- Keyword density band and subheading keyword overuse
- Meta description length and keyword presence
- Readability: passive voice, long sentences, transition words
- Title length, keyword presence and uniqueness
- Images and keyword-bearing alt text

Detection is a pure function of its inputs. Missing fields are treated as
failing rules, never as exceptions.
"""

import logging
from collections import Counter
from typing import Iterable, Optional

from .config import DetectorConfig
from .models import Content, DetectionResult, Issue, IssueType, Severity
from . import text_analysis as ta

logger = logging.getLogger(__name__)


# Score dampening so that a handful of issues does not zero the score
PENALTY_FACTOR = 0.8

# (severity, priority, weight, field) per issue type
ISSUE_DEFINITIONS: dict[IssueType, tuple[Severity, int, float, str]] = {
    IssueType.KEYWORD_DENSITY_LOW: (Severity.MAJOR, 8, 2.0, "content"),
    IssueType.KEYWORD_DENSITY_HIGH: (Severity.CRITICAL, 9, 3.0, "content"),
    IssueType.META_DESCRIPTION_SHORT: (Severity.CRITICAL, 10, 3.0, "meta_description"),
    IssueType.META_DESCRIPTION_LONG: (Severity.MAJOR, 7, 2.0, "meta_description"),
    IssueType.META_DESCRIPTION_NO_KEYWORD: (Severity.MAJOR, 6, 2.0, "meta_description"),
    IssueType.PASSIVE_VOICE_HIGH: (Severity.MAJOR, 5, 2.0, "content"),
    IssueType.SENTENCE_LENGTH_HIGH: (Severity.MINOR, 3, 1.0, "content"),
    IssueType.TRANSITION_WORDS_LOW: (Severity.MINOR, 2, 1.0, "content"),
    IssueType.TITLE_TOO_LONG: (Severity.MAJOR, 7, 2.0, "title"),
    IssueType.TITLE_NO_KEYWORD: (Severity.CRITICAL, 9, 3.0, "title"),
    IssueType.TITLE_NOT_UNIQUE: (Severity.MAJOR, 6, 2.0, "title"),
    IssueType.SUBHEADING_KEYWORD_OVERUSE: (Severity.MINOR, 4, 1.0, "content"),
    IssueType.NO_IMAGES: (Severity.MAJOR, 6, 2.0, "content"),
    IssueType.ALT_TEXT_NO_KEYWORD: (Severity.MINOR, 3, 1.0, "content"),
}


def make_issue(
    issue_type: IssueType,
    current_value: float,
    target_value: float,
    message: str,
    locations: Iterable[dict] = (),
) -> Issue:
    """Build an Issue using the severity/priority/weight table."""
    severity, priority, weight, field_name = ISSUE_DEFINITIONS[issue_type]
    return Issue(
        type=issue_type,
        severity=severity,
        field=field_name,
        message=message,
        current_value=current_value,
        target_value=target_value,
        priority=priority,
        weight=weight,
        locations=tuple(locations),
    )


def calculate_compliance_score(issues: Iterable[Issue]) -> float:
    """100 minus the dampened sum of severity-weighted penalties, clamped."""
    issues = list(issues)
    if not issues:
        return 100.0
    total_penalty = sum(issue.penalty for issue in issues)
    score = 100.0 - total_penalty * PENALTY_FACTOR
    return round(max(0.0, min(100.0, score)), 2)


class IssueDetector:
    """
    Scans content against the configured SEO rule set.

    Example:
        detector = IssueDetector()
        result = detector.detect_all_issues(content, "seo guide")
        print(result.compliance_score, result.issue_types)
    """

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()

    def detect_all_issues(
        self,
        content: Content,
        focus_keyword: Optional[str] = None,
        secondary_keywords: Optional[Iterable[str]] = None,
    ) -> DetectionResult:
        """
        Run every rule check against the content.

        Args:
            content: Content record to check.
            focus_keyword: Focus keyword. Falls back to content.focus_keyword.
            secondary_keywords: Extra keywords counted towards density. Falls
                back to content.secondary_keywords.

        Returns:
            DetectionResult with the issues, compliance score and metrics.
        """
        keyword = (focus_keyword if focus_keyword is not None else content.focus_keyword) or ""
        secondary = list(
            secondary_keywords if secondary_keywords is not None else content.secondary_keywords
        )
        body_html = content.get_field("content")
        body_text = ta.strip_html(body_html)
        metrics: dict = {}

        issues: list[Issue] = []
        issues.extend(self._detect_keyword_density(body_text, keyword, secondary, metrics))
        issues.extend(self._detect_meta_description(content.get_field("meta_description"), keyword, metrics))
        issues.extend(self._detect_passive_voice(body_text, metrics))
        issues.extend(self._detect_sentence_length(body_text, metrics))
        issues.extend(self._detect_transition_words(body_text, metrics))
        issues.extend(self._detect_title(content.get_field("title"), keyword, metrics))
        issues.extend(self._detect_subheading_overuse(body_html, keyword, metrics))
        issues.extend(self._detect_images(content, keyword, metrics))

        score = calculate_compliance_score(issues)
        logger.debug(
            "Detected %d issues (score %.2f): %s",
            len(issues), score, [i.type.value for i in issues],
        )
        return DetectionResult(issues=issues, compliance_score=score, metrics=metrics)

    # -------------------------------------------------------------------------
    # Individual rules
    # -------------------------------------------------------------------------

    def _detect_keyword_density(
        self, text: str, keyword: str, secondary: list[str], metrics: dict
    ) -> list[Issue]:
        density = ta.keyword_density(text, keyword, secondary)
        metrics["keyword_density"] = density.overall_density
        metrics["keyword_count"] = density.keyword_count
        metrics["word_count"] = density.total_words

        cfg = self.config
        if density.overall_density < cfg.min_keyword_density:
            locations = self._keyword_locations(text, keyword) or [
                {"position": 0, "length": 0, "context": text[:100], "note": "Keyword not found in content"}
            ]
            return [make_issue(
                IssueType.KEYWORD_DENSITY_LOW,
                density.overall_density,
                cfg.min_keyword_density,
                f"Keyword density too low ({density.overall_density:.2f}%, "
                f"minimum {cfg.min_keyword_density:.2f}%)",
                locations,
            )]
        if density.overall_density > cfg.max_keyword_density:
            return [make_issue(
                IssueType.KEYWORD_DENSITY_HIGH,
                density.overall_density,
                cfg.max_keyword_density,
                f"Keyword density too high ({density.overall_density:.2f}%, "
                f"maximum {cfg.max_keyword_density:.2f}%)",
                self._keyword_locations(text, keyword),
            )]
        return []

    def _detect_meta_description(self, meta: str, keyword: str, metrics: dict) -> list[Issue]:
        cfg = self.config
        length = len(meta)
        metrics["meta_description_length"] = length
        issues = []

        if length < cfg.min_meta_description_length:
            issues.append(make_issue(
                IssueType.META_DESCRIPTION_SHORT,
                length,
                cfg.min_meta_description_length,
                f"Meta description too short ({length} chars, minimum "
                f"{cfg.min_meta_description_length})",
                [{"position": 0, "length": length, "text": meta}],
            ))
        elif length > cfg.max_meta_description_length:
            issues.append(make_issue(
                IssueType.META_DESCRIPTION_LONG,
                length,
                cfg.max_meta_description_length,
                f"Meta description too long ({length} chars, maximum "
                f"{cfg.max_meta_description_length})",
                [{
                    "position": cfg.max_meta_description_length,
                    "length": length - cfg.max_meta_description_length,
                    "text": meta[cfg.max_meta_description_length:],
                }],
            ))

        if not ta.contains_phrase(meta, keyword):
            issues.append(make_issue(
                IssueType.META_DESCRIPTION_NO_KEYWORD,
                0,
                1,
                f"Meta description missing focus keyword: {keyword}",
                [{"position": 0, "length": length, "text": meta}],
            ))
        return issues

    def _detect_passive_voice(self, text: str, metrics: dict) -> list[Issue]:
        analysis = ta.analyze_passive_voice(text)
        metrics["passive_voice_percentage"] = analysis.percentage
        metrics["sentence_count"] = analysis.total_sentences

        if analysis.percentage > self.config.max_passive_voice:
            return [make_issue(
                IssueType.PASSIVE_VOICE_HIGH,
                analysis.percentage,
                self.config.max_passive_voice,
                f"Too much passive voice ({analysis.percentage:.1f}%, "
                f"maximum {self.config.max_passive_voice:.1f}%)",
                analysis.details,
            )]
        return []

    def _detect_sentence_length(self, text: str, metrics: dict) -> list[Issue]:
        analysis = ta.analyze_sentence_length(text, self.config.long_sentence_words)
        metrics["long_sentence_percentage"] = analysis.percentage

        if analysis.percentage > self.config.max_long_sentences:
            return [make_issue(
                IssueType.SENTENCE_LENGTH_HIGH,
                analysis.percentage,
                self.config.max_long_sentences,
                f"Too many long sentences ({analysis.percentage:.1f}%, "
                f"maximum {self.config.max_long_sentences:.1f}%)",
                analysis.details,
            )]
        return []

    def _detect_transition_words(self, text: str, metrics: dict) -> list[Issue]:
        analysis = ta.analyze_transition_words(text)
        metrics["transition_word_percentage"] = analysis.percentage

        if analysis.percentage < self.config.min_transition_words:
            return [make_issue(
                IssueType.TRANSITION_WORDS_LOW,
                analysis.percentage,
                self.config.min_transition_words,
                f"Not enough transition words ({analysis.percentage:.1f}%, "
                f"minimum {self.config.min_transition_words:.1f}%)",
            )]
        return []

    def _detect_title(self, title: str, keyword: str, metrics: dict) -> list[Issue]:
        cfg = self.config
        length = len(title)
        metrics["title_length"] = length
        issues = []

        if length > cfg.max_title_length:
            issues.append(make_issue(
                IssueType.TITLE_TOO_LONG,
                length,
                cfg.max_title_length,
                f"Title too long ({length} chars, maximum {cfg.max_title_length})",
                [{
                    "position": cfg.max_title_length,
                    "length": length - cfg.max_title_length,
                    "text": title[cfg.max_title_length:],
                }],
            ))

        if not ta.contains_phrase(title, keyword):
            issues.append(make_issue(
                IssueType.TITLE_NO_KEYWORD,
                0,
                1,
                f"Title missing focus keyword: {keyword}",
                [{"position": 0, "length": length, "text": title}],
            ))

        if title.strip() and cfg.existing_titles:
            similar = ta.find_similar_titles(title, cfg.existing_titles, cfg.title_similarity_threshold)
            metrics["similar_titles"] = len(similar)
            if similar:
                issues.append(make_issue(
                    IssueType.TITLE_NOT_UNIQUE,
                    similar[0]["similarity"],
                    cfg.title_similarity_threshold,
                    f"Title is too similar to an existing title: {similar[0]['title']}",
                    similar,
                ))
        return issues

    def _detect_subheading_overuse(self, html: str, keyword: str, metrics: dict) -> list[Issue]:
        usage = ta.subheading_keyword_usage(html, keyword)
        metrics["subheading_keyword_usage"] = usage

        if usage > self.config.max_subheading_keyword_usage:
            locations = [
                {"level": level, "text": text}
                for level, text in ta.extract_headings(html, levels=range(2, 7))
                if ta.contains_phrase(text, keyword)
            ]
            return [make_issue(
                IssueType.SUBHEADING_KEYWORD_OVERUSE,
                usage,
                self.config.max_subheading_keyword_usage,
                f"Too many subheadings contain keyword ({usage:.1f}%, "
                f"maximum {self.config.max_subheading_keyword_usage:.1f}%)",
                locations,
            )]
        return []

    def _detect_images(self, content: Content, keyword: str, metrics: dict) -> list[Issue]:
        images = ta.extract_images(content.get_field("content"))
        images.extend({"src": p.prompt, "alt": p.alt or ""} for p in content.image_prompts)
        proper = [img for img in images if self._has_proper_alt(img["alt"], keyword)]
        metrics["image_count"] = len(images)
        metrics["proper_alt_count"] = len(proper)

        issues = []
        if self.config.require_images and not images:
            issues.append(make_issue(
                IssueType.NO_IMAGES,
                0,
                1,
                "Content should include at least one image",
            ))
        if self.config.require_keyword_in_alt_text and images and not proper:
            issues.append(make_issue(
                IssueType.ALT_TEXT_NO_KEYWORD,
                len(proper),
                len(images),
                "Image alt text should include focus keyword",
                [img for img in images if not self._has_proper_alt(img["alt"], keyword)],
            ))
        return issues

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _has_proper_alt(alt: str, keyword: str) -> bool:
        return len(alt) > 10 and ta.contains_phrase(alt, keyword)

    @staticmethod
    def _keyword_locations(text: str, keyword: str) -> list[dict]:
        if not keyword:
            return []
        locations = []
        lower_text = text.lower()
        lower_keyword = keyword.lower()
        start = lower_text.find(lower_keyword)
        while start != -1:
            locations.append({
                "position": start,
                "length": len(keyword),
                "context": text[max(0, start - 50):start + 50],
            })
            start = lower_text.find(lower_keyword, start + 1)
        return locations


def get_issue_summary(issues: Iterable[Issue]) -> dict:
    """Group issues by type and severity for reporting."""
    issues = list(issues)
    by_severity = Counter(issue.severity.value for issue in issues)
    return {
        "total": len(issues),
        "by_type": dict(Counter(issue.type.value for issue in issues)),
        "by_severity": {s.value: by_severity.get(s.value, 0) for s in Severity},
        "by_field": dict(Counter(issue.field for issue in issues)),
        "highest_priority": max((issue.priority for issue in issues), default=0),
    }
