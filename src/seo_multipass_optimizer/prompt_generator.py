"""
Correction prompt generation.

Turns detected issues into targeted rewrite instructions. Each issue type
has a template with a base priority; instructions carry quantitative
targets (current vs. target value, how many edits are needed) so the
provider knows how far to move the metric.

Issues that target the same field are merged into one composite prompt so
a single pass never asks for conflicting edits to the same field.
Generation is deterministic: identical issues always yield identical prompts.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import DEFAULT_PRIORITY_ORDER
from .models import Content, CorrectionPrompt, Issue, IssueType, Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptTemplate:
    """Instruction template for one issue type."""
    text: str
    priority: int
    quantitative: bool = True
    group: str = "readability"


PROMPT_TEMPLATES: dict[IssueType, PromptTemplate] = {
    IssueType.KEYWORD_DENSITY_HIGH: PromptTemplate(
        "Reduce keyword '{keyword}' density from {current}% to {target}% by replacing "
        "{count} instances with synonyms or related terms. Focus on locations: {locations}",
        9, group="keyword_density",
    ),
    IssueType.KEYWORD_DENSITY_LOW: PromptTemplate(
        "Increase keyword '{keyword}' density from {current}% to at least {target}% by "
        "naturally incorporating {count} more instances. Suggested locations: {locations}",
        8, group="keyword_density",
    ),
    IssueType.META_DESCRIPTION_SHORT: PromptTemplate(
        "Expand meta description from {current} to {target} characters (add {diff} "
        "characters). Include keyword '{keyword}' and a compelling call-to-action. "
        "Current: '{text}'",
        10, group="meta_description",
    ),
    IssueType.META_DESCRIPTION_LONG: PromptTemplate(
        "Shorten meta description from {current} to {target} characters (remove {diff} "
        "characters). Keep keyword '{keyword}' and the main message. Current: '{text}'",
        7, group="meta_description",
    ),
    IssueType.META_DESCRIPTION_NO_KEYWORD: PromptTemplate(
        "Add focus keyword '{keyword}' to the meta description naturally. Current: '{text}'",
        6, quantitative=False, group="meta_description",
    ),
    IssueType.PASSIVE_VOICE_HIGH: PromptTemplate(
        "Convert {count} passive voice sentences to active voice (reduce from {current}% "
        "to {target}%). Target sentences: {sentences}",
        5,
    ),
    IssueType.SENTENCE_LENGTH_HIGH: PromptTemplate(
        "Split {count} long sentences to reduce the long sentence percentage from "
        "{current}% to {target}%. Target sentences: {sentences}",
        3,
    ),
    IssueType.TRANSITION_WORDS_LOW: PromptTemplate(
        "Add transition words to increase sentences with transitions from {current}% to "
        "{target}%. Add approximately {count} transition words like 'however', "
        "'therefore', 'additionally', 'furthermore'.",
        2,
    ),
    IssueType.TITLE_TOO_LONG: PromptTemplate(
        "Shorten title from {current} to {target} characters (remove {diff} characters). "
        "Keep keyword '{keyword}' and the main message. Current: '{text}'",
        7, group="title",
    ),
    IssueType.TITLE_NO_KEYWORD: PromptTemplate(
        "Add focus keyword '{keyword}' to the title naturally. Keep it under the length "
        "limit. Current: '{text}'",
        9, quantitative=False, group="title",
    ),
    IssueType.TITLE_NOT_UNIQUE: PromptTemplate(
        "Rewrite the title so it is clearly distinct from existing titles ({titles}) "
        "while keeping keyword '{keyword}'. Current: '{text}'",
        6, quantitative=False, group="title",
    ),
    IssueType.SUBHEADING_KEYWORD_OVERUSE: PromptTemplate(
        "Reduce keyword '{keyword}' usage in subheadings from {current}% to {target}%. "
        "Modify {count} headings: {headings}",
        4, group="keyword_density",
    ),
    IssueType.NO_IMAGES: PromptTemplate(
        "Add at least one relevant image with descriptive alt text containing keyword "
        "'{keyword}'.",
        6, quantitative=False, group="images",
    ),
    IssueType.ALT_TEXT_NO_KEYWORD: PromptTemplate(
        "Update {count} image alt texts to include keyword '{keyword}'. Images: {images}",
        3, group="images",
    ),
}

SEVERITY_PRIORITY_BOOST = {
    Severity.CRITICAL: 2,
    Severity.MAJOR: 1,
    Severity.MINOR: 0,
}

SEVERITY_RANK = {Severity.CRITICAL: 0, Severity.MAJOR: 1, Severity.MINOR: 2}


def estimate_change_count(issue: Issue) -> int:
    """Rough number of edits needed to move the metric to its target."""
    difference = abs(issue.target_value - issue.current_value)
    if issue.type in (IssueType.KEYWORD_DENSITY_HIGH, IssueType.KEYWORD_DENSITY_LOW):
        # Assumes a typical 500 word article
        return max(1, round(difference / 100 * 500 / 2))
    if issue.type == IssueType.TRANSITION_WORDS_LOW:
        # Assumes roughly 30 sentences
        return max(1, round(difference / 100 * 30))
    if issue.type in (
        IssueType.PASSIVE_VOICE_HIGH,
        IssueType.SENTENCE_LENGTH_HIGH,
        IssueType.SUBHEADING_KEYWORD_OVERUSE,
        IssueType.ALT_TEXT_NO_KEYWORD,
    ):
        return max(1, len(issue.locations))
    return 1


def _format_number(value: float) -> str:
    return f"{value:.1f}"


def _quote_list(values: list[str], limit: int = 3, width: int = 60, empty: str = "") -> str:
    if not values:
        return empty
    quoted = [f'"{value[:width]}..."' if len(value) > width else f'"{value}"' for value in values[:limit]]
    result = ", ".join(quoted)
    if len(values) > limit:
        result += f" and {len(values) - limit} more"
    return result


class CorrectionPromptGenerator:
    """
    Builds correction prompts from detected issues.

    Args:
        priority_order: Issue groups used to break priority ties, e.g.
            ["meta_description", "keyword_density", "readability", "title", "images"].
        merge_same_field: Merge prompts targeting the same field into one
            composite instruction.
    """

    def __init__(
        self,
        priority_order: Optional[list[str]] = None,
        merge_same_field: bool = True,
    ):
        self.priority_order = list(priority_order or DEFAULT_PRIORITY_ORDER)
        self.merge_same_field = merge_same_field

    def generate_prompts_for_issues(
        self,
        issues: Iterable[Issue],
        focus_keyword: str,
        content: Optional[Content] = None,
    ) -> list[CorrectionPrompt]:
        """
        Generate prompts for issues, highest priority first.

        Args:
            issues: Issues from the detector.
            focus_keyword: Keyword the instructions should preserve or add.
            content: Current content, used to quote the current field values.

        Returns:
            List of CorrectionPrompt, at most one per field when merging.
        """
        prompts = []
        for issue in issues:
            prompt = self.generate_prompt_for_issue(issue, focus_keyword, content)
            if prompt is not None:
                prompts.append(prompt)

        prompts = self._sort(prompts)
        if self.merge_same_field:
            prompts = self._merge_by_field(prompts)
        logger.debug("Generated %d correction prompts", len(prompts))
        return prompts

    def generate_prompt_for_issue(
        self,
        issue: Issue,
        focus_keyword: str,
        content: Optional[Content] = None,
    ) -> Optional[CorrectionPrompt]:
        """Generate a single prompt, or None if the issue type has no template."""
        template = PROMPT_TEMPLATES.get(issue.type)
        if template is None:
            logger.warning("No correction template for issue type %s", issue.type.value)
            return None

        count = estimate_change_count(issue)
        instruction = self._fill_template(template, issue, focus_keyword, content, count)
        priority = min(10, template.priority + SEVERITY_PRIORITY_BOOST[issue.severity])

        return CorrectionPrompt(
            issue_type=issue.type,
            field=issue.field,
            instruction=instruction,
            expected_improvement=round(abs(issue.target_value - issue.current_value), 2),
            priority=priority,
            severity=issue.severity,
            estimated_changes=count,
            issue_types=[issue.type],
            context={
                "group": template.group,
                "current_value": issue.current_value,
                "target_value": issue.target_value,
                "action": "reduce" if issue.current_value > issue.target_value else "increase",
            },
        )

    def generate_comprehensive_prompt(
        self,
        prompts: Iterable[CorrectionPrompt],
        content: Content,
        focus_keyword: str,
    ) -> str:
        """Render every prompt into a single numbered provider request."""
        prompts = list(prompts)
        lines = [
            f"Optimize the following content for the focus keyword '{focus_keyword}'.",
            "",
            "REQUIRED CORRECTIONS (highest priority first):",
        ]
        for index, prompt in enumerate(prompts, start=1):
            lines.append(f"{index}. [{prompt.field}] {prompt.instruction}")
        lines.extend([
            "",
            "CURRENT CONTENT:",
            f"Title: {content.title}",
            f"Meta description: {content.meta_description}",
            "Content:",
            content.content,
        ])
        return "\n".join(lines)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _group_rank(self, prompt: CorrectionPrompt) -> int:
        group = prompt.context.get("group", "")
        if group in self.priority_order:
            return self.priority_order.index(group)
        return len(self.priority_order)

    def _sort(self, prompts: list[CorrectionPrompt]) -> list[CorrectionPrompt]:
        # sorted() is stable, so detection order breaks remaining ties
        return sorted(prompts, key=lambda p: (-p.priority, self._group_rank(p)))

    def _merge_by_field(self, prompts: list[CorrectionPrompt]) -> list[CorrectionPrompt]:
        by_field: dict[str, list[CorrectionPrompt]] = {}
        for prompt in prompts:
            by_field.setdefault(prompt.field, []).append(prompt)

        merged = []
        for field_name, group in by_field.items():
            if len(group) == 1:
                merged.append(group[0])
                continue
            lead = group[0]
            steps = "\n".join(f"{i}. {p.instruction}" for i, p in enumerate(group, start=1))
            merged.append(CorrectionPrompt(
                issue_type=lead.issue_type,
                field=field_name,
                instruction=(
                    f"Apply all of the following changes to the {field_name.replace('_', ' ')} "
                    f"in a single rewrite:\n{steps}"
                ),
                expected_improvement=round(sum(p.expected_improvement for p in group), 2),
                priority=max(p.priority for p in group),
                severity=min((p.severity for p in group), key=SEVERITY_RANK.get),
                estimated_changes=sum(p.estimated_changes for p in group),
                issue_types=[t for p in group for t in p.issue_types],
                context={
                    "group": lead.context.get("group"),
                    "merged": len(group),
                    "current_value": lead.context.get("current_value"),
                    "target_value": lead.context.get("target_value"),
                },
            ))
        return self._sort(merged)

    def _fill_template(
        self,
        template: PromptTemplate,
        issue: Issue,
        focus_keyword: str,
        content: Optional[Content],
        count: int,
    ) -> str:
        locations = list(issue.locations)
        replacements = {
            "keyword": focus_keyword or "",
            "current": _format_number(issue.current_value),
            "target": _format_number(issue.target_value),
            "diff": str(int(abs(issue.target_value - issue.current_value))),
            "count": str(count if template.quantitative else 0),
            "text": content.get_field(issue.field) if content and issue.field != "content" else "",
            "locations": _quote_list(
                [loc.get("context", "") for loc in locations if loc.get("context")],
                width=50, empty="throughout content",
            ),
            "sentences": _quote_list(
                [loc.get("sentence", "") for loc in locations if loc.get("sentence")],
                empty="identified sentences",
            ),
            "headings": _quote_list(
                [loc.get("text", "") for loc in locations if loc.get("text")],
                empty="identified headings",
            ),
            "images": _quote_list(
                [loc.get("src") or loc.get("alt") or "image" for loc in locations],
                empty="all images",
            ),
            "titles": _quote_list(
                [loc.get("title", "") for loc in locations if loc.get("title")],
                empty="existing titles",
            ),
        }
        instruction = template.text
        for key, value in replacements.items():
            instruction = instruction.replace("{" + key + "}", value)
        return instruction
