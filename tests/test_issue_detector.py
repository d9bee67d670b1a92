"""Tests for the issue detector."""

import pytest

from conftest import KEYWORD, PERFECT_META, PERFECT_TITLE

from seo_multipass_optimizer.config import DetectorConfig
from seo_multipass_optimizer.issue_detector import (
    IssueDetector,
    calculate_compliance_score,
    get_issue_summary,
    make_issue,
)
from seo_multipass_optimizer.models import Content, ImagePrompt, IssueType, Severity


class TestComplianceScore:
    """Tests for the compliance score formula."""

    def test_no_issues_scores_100(self):
        """Test that content without issues is fully compliant."""
        assert calculate_compliance_score([]) == 100.0

    def test_critical_issue_penalty(self):
        """Test weight x severity x 10, dampened by 0.8."""
        issue = make_issue(IssueType.META_DESCRIPTION_SHORT, 26, 120, "short")

        assert issue.penalty == 90.0
        assert calculate_compliance_score([issue]) == 28.0

    def test_minor_issues(self):
        """Test that two minor issues cost 16 points."""
        issues = [
            make_issue(IssueType.TRANSITION_WORDS_LOW, 10, 30, "transitions"),
            make_issue(IssueType.SENTENCE_LENGTH_HIGH, 40, 25, "long"),
        ]

        assert calculate_compliance_score(issues) == 84.0

    def test_score_is_clamped_at_zero(self):
        """Test that many issues never push the score below zero."""
        issues = [make_issue(IssueType.TITLE_NO_KEYWORD, 0, 1, "title")] * 5

        assert calculate_compliance_score(issues) == 0.0


class TestDetectAllIssues:
    """Tests for IssueDetector.detect_all_issues."""

    def test_perfect_content_has_no_issues(self, perfect_content):
        """Test that well-formed content passes every rule."""
        result = IssueDetector().detect_all_issues(perfect_content, KEYWORD)

        assert result.issues == []
        assert result.compliance_score == 100.0
        assert result.is_compliant

    def test_short_meta_description(self, fixable_content):
        """Test that a short meta description is the only issue."""
        result = IssueDetector().detect_all_issues(fixable_content, KEYWORD)

        assert result.issue_types == ["meta_description_short"]
        assert result.compliance_score == 28.0
        issue = result.issues[0]
        assert issue.severity == Severity.CRITICAL
        assert issue.field == "meta_description"
        assert issue.current_value == len(fixable_content.meta_description)
        assert issue.target_value == 120

    def test_thin_content_with_short_meta(self):
        """Test a short article with a five-character meta description."""
        content = Content(
            title="SEO Guide",
            content="<p>This article is short.</p>",
            meta_description="Short",
        )

        result = IssueDetector().detect_all_issues(content, "SEO")

        assert len(result.issues) >= 2
        assert "meta_description_short" in result.issue_types
        assert "keyword_density_low" in result.issue_types
        assert result.compliance_score < 100.0
        assert not result.is_compliant

    def test_empty_content_reports_issues_without_raising(self):
        """Test that missing fields are failing rules rather than errors."""
        result = IssueDetector().detect_all_issues(Content(), KEYWORD)

        for expected in (
            "keyword_density_low",
            "meta_description_short",
            "meta_description_no_keyword",
            "title_no_keyword",
            "no_images",
        ):
            assert expected in result.issue_types
        assert result.compliance_score == 0.0

    def test_keyword_falls_back_to_content_field(self, perfect_content):
        """Test that the content's own focus keyword is used when none is passed."""
        result = IssueDetector().detect_all_issues(perfect_content)

        assert result.issues == []

    def test_explicit_keyword_overrides_content(self, perfect_content):
        """Test that the focus_keyword argument wins over the content field."""
        result = IssueDetector().detect_all_issues(perfect_content, "gardening")

        assert "title_no_keyword" in result.issue_types
        assert "meta_description_no_keyword" in result.issue_types

    def test_long_meta_description(self, perfect_content):
        """Test that a meta description over the maximum is flagged."""
        meta = PERFECT_META + " Extra words push this one over the limit."
        content = perfect_content.with_updates(meta_description=meta)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert result.issue_types == ["meta_description_long"]
        assert result.issues[0].locations[0]["position"] == 156

    def test_title_too_long(self, perfect_content):
        """Test that a title over the maximum length is flagged."""
        title = PERFECT_TITLE + " and Everyone Else Who Wants Better Rankings"
        content = perfect_content.with_updates(title=title)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert result.issue_types == ["title_too_long"]

    def test_title_not_unique(self, perfect_content):
        """Test that a title matching an existing one is flagged."""
        detector = IssueDetector(DetectorConfig(existing_titles=["Complete SEO Guide for Beginners"]))

        result = detector.detect_all_issues(perfect_content, KEYWORD)

        assert result.issue_types == ["title_not_unique"]
        assert result.metrics["similar_titles"] == 1

    def test_keyword_density_high(self, perfect_content):
        """Test that keyword stuffing is flagged as critical."""
        body = perfect_content.content.replace(
            "Good pages answer real questions.",
            "Good seo guide pages answer seo guide questions with seo guide tips.",
        )
        content = perfect_content.with_updates(content=body)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert "keyword_density_high" in result.issue_types
        assert result.metrics["keyword_density"] > 2.5

    def test_keyword_density_low_reports_missing_keyword(self, perfect_content):
        """Test that low density carries a location note when the keyword is absent."""
        body = perfect_content.content.replace("This seo guide explains", "This article explains")
        content = perfect_content.with_updates(content=body)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        issue = next(i for i in result.issues if i.type == IssueType.KEYWORD_DENSITY_LOW)
        assert issue.locations[0]["note"] == "Keyword not found in content"

    def test_secondary_keywords_raise_density(self, perfect_content):
        """Test that secondary keywords count towards density."""
        result = IssueDetector().detect_all_issues(perfect_content, KEYWORD, ["pages"])

        assert result.metrics["keyword_density"] > 2.5
        assert "keyword_density_high" in result.issue_types

    def test_subheading_keyword_overuse(self, perfect_content):
        """Test that subheadings stuffed with the keyword are flagged."""
        body = (
            perfect_content.content
            .replace("Why rankings matter", "Why this seo guide matters")
            .replace("Writing better pages", "Using the seo guide")
        )
        content = perfect_content.with_updates(content=body)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert "subheading_keyword_overuse" in result.issue_types
        issue = next(i for i in result.issues if i.type == IssueType.SUBHEADING_KEYWORD_OVERUSE)
        assert len(issue.locations) == 2

    def test_no_images(self, perfect_content):
        """Test that content without images is flagged."""
        body = perfect_content.content.replace(
            '<img src="guide.png" alt="Diagram from the seo guide">', ""
        )
        content = perfect_content.with_updates(content=body)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert result.issue_types == ["no_images"]

    def test_image_prompts_count_as_images(self, perfect_content):
        """Test that planned images satisfy the image rules."""
        body = perfect_content.content.replace(
            '<img src="guide.png" alt="Diagram from the seo guide">', ""
        )
        content = perfect_content.with_updates(content=body)
        content.image_prompts = [ImagePrompt(prompt="A chart", alt="Chart from the seo guide")]

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert result.issues == []
        assert result.metrics["image_count"] == 1

    def test_alt_text_without_keyword(self, perfect_content):
        """Test that images whose alt text lacks the keyword are flagged."""
        body = perfect_content.content.replace("Diagram from the seo guide", "A diagram")
        content = perfect_content.with_updates(content=body)

        result = IssueDetector().detect_all_issues(content, KEYWORD)

        assert result.issue_types == ["alt_text_no_keyword"]
        assert result.issues[0].locations[0]["src"] == "guide.png"

    def test_lenient_config_skips_image_rules(self, perfect_content):
        """Test that the lenient preset does not require images."""
        body = perfect_content.content.replace(
            '<img src="guide.png" alt="Diagram from the seo guide">', ""
        )
        content = perfect_content.with_updates(content=body)

        result = IssueDetector(DetectorConfig.lenient()).detect_all_issues(content, KEYWORD)

        assert result.issues == []

    def test_detection_is_deterministic(self, fixable_content):
        """Test that repeated detection yields identical results."""
        detector = IssueDetector()

        first = detector.detect_all_issues(fixable_content, KEYWORD)
        second = detector.detect_all_issues(fixable_content, KEYWORD)

        assert first.to_dict() == second.to_dict()


class TestDetectorConfig:
    """Tests for detector configuration validation."""

    def test_density_band_must_be_ordered(self):
        """Test that min density must be below max density."""
        with pytest.raises(ValueError, match="min_keyword_density"):
            DetectorConfig(min_keyword_density=3.0, max_keyword_density=2.0)

    def test_meta_band_must_be_ordered(self):
        """Test that min meta length must be below max meta length."""
        with pytest.raises(ValueError, match="min_meta_description_length"):
            DetectorConfig(min_meta_description_length=200)

    def test_strict_preset_accepts_overrides(self):
        """Test that preset values can be overridden."""
        config = DetectorConfig.strict(max_title_length=50)

        assert config.max_title_length == 50
        assert config.max_keyword_density == 2.0


class TestIssueSummary:
    """Tests for get_issue_summary."""

    def test_summary_groups_issues(self):
        """Test counts by type, severity and field."""
        issues = [
            make_issue(IssueType.META_DESCRIPTION_SHORT, 26, 120, "short"),
            make_issue(IssueType.TRANSITION_WORDS_LOW, 10, 30, "transitions"),
        ]

        summary = get_issue_summary(issues)

        assert summary["total"] == 2
        assert summary["by_severity"] == {"critical": 1, "major": 0, "minor": 1}
        assert summary["by_field"] == {"meta_description": 1, "content": 1}
        assert summary["highest_priority"] == 10
