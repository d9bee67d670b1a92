"""Tests for the provider-backed content corrector."""

import pytest

from conftest import KEYWORD, PERFECT_META, SHORT_META, FakeProvider, json_response

from seo_multipass_optimizer.config import CorrectorConfig
from seo_multipass_optimizer.content_corrector import ContentCorrector, parse_correction_response
from seo_multipass_optimizer.exceptions import (
    CorrectionParseError,
    CriticalOptimizationError,
    ProviderError,
    ProviderNotConfiguredError,
)
from seo_multipass_optimizer.models import CorrectionPrompt, IssueType, Severity


def meta_prompt() -> CorrectionPrompt:
    return CorrectionPrompt(
        issue_type=IssueType.META_DESCRIPTION_SHORT,
        field="meta_description",
        instruction="Expand meta description from 26.0 to 120.0 characters",
        expected_improvement=94.0,
        priority=10,
        severity=Severity.CRITICAL,
        issue_types=[IssueType.META_DESCRIPTION_SHORT],
        context={"group": "meta_description", "current_value": 26, "target_value": 120},
    )


def transitions_prompt() -> CorrectionPrompt:
    return CorrectionPrompt(
        issue_type=IssueType.TRANSITION_WORDS_LOW,
        field="content",
        instruction="Add transition words",
        expected_improvement=20.0,
        priority=2,
        issue_types=[IssueType.TRANSITION_WORDS_LOW],
        context={"group": "readability"},
    )


class TestParseCorrectionResponse:
    """Tests for parse_correction_response."""

    def test_bare_json(self):
        """Test that a plain JSON object is parsed."""
        assert parse_correction_response('{"title": "New title"}') == {"title": "New title"}

    def test_fenced_json(self):
        """Test that JSON inside a markdown fence is parsed."""
        response = 'Here you go:\n```json\n{"meta_description": "Better"}\n```'

        assert parse_correction_response(response) == {"meta_description": "Better"}

    def test_json_embedded_in_prose(self):
        """Test that JSON surrounded by prose is recovered."""
        response = 'Sure! {"content": "<p>Body</p>"} Let me know if you need more.'

        assert parse_correction_response(response) == {"content": "<p>Body</p>"}

    def test_non_editable_and_non_string_fields_are_dropped(self):
        """Test that only editable string fields survive."""
        response = '{"title": "T", "slug": "s", "content": 5}'

        assert parse_correction_response(response) == {"title": "T"}

    def test_control_characters_are_removed(self):
        """Test that stray control characters do not break parsing."""
        assert parse_correction_response('{"title": "A\x07B"}') == {"title": "AB"}

    @pytest.mark.parametrize("response", ["", "not json at all", "[1, 2, 3]"])
    def test_unparseable_responses_raise(self, response):
        """Test that responses without a JSON object raise CorrectionParseError."""
        with pytest.raises(CorrectionParseError):
            parse_correction_response(response)


class TestApplyCorrections:
    """Tests for ContentCorrector.apply_corrections."""

    def test_applies_target_field(self, fixable_content, fixed_meta_provider):
        """Test that the corrected field replaces the original value."""
        corrector = ContentCorrector([fixed_meta_provider])

        result = corrector.apply_corrections(fixable_content, [meta_prompt()], KEYWORD)

        assert result.success
        assert result.errors == []
        assert result.corrected_content.meta_description == PERFECT_META
        assert result.corrected_content.content == fixable_content.content
        record = result.corrections_applied[0]
        assert record.before == SHORT_META
        assert record.after == PERFECT_META
        assert record.provider == "fake"

    def test_input_is_not_mutated(self, fixable_content, fixed_meta_provider):
        """Test that the caller's content record is left untouched."""
        ContentCorrector([fixed_meta_provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert fixable_content.meta_description == SHORT_META

    def test_only_target_field_is_merged(self, fixable_content):
        """Test that extra fields in the response are ignored."""
        provider = FakeProvider([json_response(meta_description=PERFECT_META, title="Hijacked")])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert result.corrected_content.title == fixable_content.title

    def test_request_contains_instruction_and_keyword(self, fixable_content, fixed_meta_provider):
        """Test the provider request layout."""
        ContentCorrector([fixed_meta_provider]).apply_corrections(
            fixable_content, [meta_prompt()], KEYWORD
        )

        request = fixed_meta_provider.calls[0]
        assert "Expand meta description from 26.0 to 120.0 characters" in request
        assert f"Focus Keyword: {KEYWORD}" in request
        assert 'Return JSON with the key "meta_description"' in request

    def test_later_prompts_see_earlier_corrections(self, fixable_content):
        """Test that corrections are chained in priority order."""
        new_body = fixable_content.content.replace("Good pages", "However, good pages")
        provider = FakeProvider([
            json_response(meta_description=PERFECT_META),
            json_response(content=new_body),
        ])

        result = ContentCorrector([provider]).apply_corrections(
            fixable_content, [transitions_prompt(), meta_prompt()]
        )

        assert result.applied_types == ["meta_description_short", "transition_words_low"]
        assert f"Meta Description: {PERFECT_META}" in provider.calls[1]
        assert result.corrected_content.content == new_body

    def test_empty_prompts(self, fixable_content):
        """Test that no prompts means success with an unchanged copy."""
        provider = FakeProvider()

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [])

        assert result.success
        assert result.corrected_content == fixable_content
        assert result.corrected_content is not fixable_content
        assert provider.calls == []

    def test_requires_a_provider(self):
        """Test that a corrector without providers cannot be built."""
        with pytest.raises(ValueError, match="At least one generation provider"):
            ContentCorrector([])


class TestRetryAndFailover:
    """Tests for retries and provider failover."""

    def test_retries_transient_errors(self, fixable_content):
        """Test that a provider error is retried on the same provider."""
        provider = FakeProvider([
            ProviderError("temporary glitch"),
            json_response(meta_description=PERFECT_META),
        ])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert result.success
        assert len(provider.calls) == 2

    def test_unexpected_exception_is_retried(self, fixable_content):
        """Test that non-provider exceptions are retried and later prompts still run."""
        provider = FakeProvider([
            RuntimeError("socket closed"),
            json_response(meta_description=PERFECT_META),
            json_response(content="<p>However, the body was rewritten.</p>"),
        ])

        result = ContentCorrector([provider]).apply_corrections(
            fixable_content, [meta_prompt(), transitions_prompt()]
        )

        assert len(provider.calls) == 3
        assert [c.field for c in result.corrections_applied] == ["meta_description", "content"]
        assert result.corrected_content.meta_description == PERFECT_META
        assert result.errors == []

    def test_persistent_unexpected_exception_is_not_fatal(self, fixable_content):
        """Test that a provider that always blows up only fails its own corrections."""
        provider = FakeProvider([RuntimeError("socket closed")])

        result = ContentCorrector([provider]).apply_corrections(
            fixable_content, [meta_prompt(), transitions_prompt()]
        )

        assert not result.success
        assert len(provider.calls) == 6
        assert result.errors == [
            "meta_description_short: fake failed: socket closed",
            "transition_words_low: fake failed: socket closed",
        ]
        assert result.corrected_content == fixable_content

    def test_fails_over_after_retries(self, fixable_content):
        """Test that the backup provider is used once the primary is exhausted."""
        primary = FakeProvider([ProviderError("service unavailable")], name="primary")
        backup = FakeProvider([json_response(meta_description=PERFECT_META)], name="backup")

        result = ContentCorrector([primary, backup]).apply_corrections(
            fixable_content, [meta_prompt()]
        )

        assert result.success
        assert len(primary.calls) == 3
        assert len(backup.calls) == 1
        assert result.corrections_applied[0].provider == "backup"

    def test_failover_disabled(self, fixable_content):
        """Test that only the primary is tried when failover is off."""
        primary = FakeProvider([ProviderError("service unavailable")], name="primary")
        backup = FakeProvider([json_response(meta_description=PERFECT_META)], name="backup")
        corrector = ContentCorrector(
            [primary, backup], CorrectorConfig(enable_provider_failover=False)
        )

        result = corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert not result.success
        assert backup.calls == []
        assert result.errors == ["meta_description_short: service unavailable"]
        assert result.corrected_content.meta_description == SHORT_META

    def test_non_retryable_error_skips_to_next_provider(self, fixable_content):
        """Test that non-retryable errors are not retried on the same provider."""
        primary = FakeProvider([ProviderNotConfiguredError("missing api key")], name="primary")
        backup = FakeProvider([json_response(meta_description=PERFECT_META)], name="backup")

        result = ContentCorrector([primary, backup]).apply_corrections(
            fixable_content, [meta_prompt()]
        )

        assert result.success
        assert len(primary.calls) == 1

    def test_max_retry_attempts(self, fixable_content):
        """Test that the retry budget is configurable."""
        provider = FakeProvider([ProviderError("service unavailable")])
        corrector = ContentCorrector([provider], CorrectorConfig(max_retry_attempts=5))

        corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert len(provider.calls) == 5

    def test_critical_error_aborts_with_handler(self, fixable_content, error_handler):
        """Test that a critical provider error raises when a handler is wired in."""
        provider = FakeProvider([ProviderError("fatal crash in provider")])
        corrector = ContentCorrector([provider], error_handler=error_handler)

        with pytest.raises(CriticalOptimizationError):
            corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert len(provider.calls) == 1
        assert error_handler.get_error_log()[0].component == "ai_correction"

    def test_critical_message_without_handler_is_a_normal_failure(self, fixable_content):
        """Test that without a handler provider errors never abort the batch."""
        provider = FakeProvider([ProviderError("fatal crash in provider")])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert not result.success
        assert len(provider.calls) == 3

    def test_handler_records_error_type(self, fixable_content, error_handler):
        """Test that recoverable provider errors are classified by message."""
        provider = FakeProvider([
            ProviderError("Request timeout"),
            json_response(meta_description=PERFECT_META),
        ])
        corrector = ContentCorrector([provider], error_handler=error_handler)

        result = corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert result.success
        record = error_handler.get_error_log()[0]
        assert record.error_type == "network_error"
        assert record.context == {"provider": "fake"}


class TestValidationAndParsing:
    """Tests for rejected and unparseable corrections."""

    def test_unchanged_field_is_rejected(self, fixable_content):
        """Test that a correction that changes nothing is rejected."""
        provider = FakeProvider([json_response(meta_description=SHORT_META)])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert not result.success
        assert result.errors == ["meta_description_short: Correction rejected: field unchanged"]

    def test_wrong_direction_is_rejected(self, fixable_content):
        """Test that a meta description moving away from the target is rejected."""
        provider = FakeProvider([json_response(meta_description="Tiny seo guide.")])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert "length did not move toward 120 characters" in result.errors[0]

    def test_validation_can_be_disabled(self, fixable_content):
        """Test that disabling validation accepts any non-parse failure."""
        provider = FakeProvider([json_response(meta_description="Tiny seo guide.")])
        corrector = ContentCorrector([provider], CorrectorConfig(enable_correction_validation=False))

        result = corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert result.success
        assert result.corrected_content.meta_description == "Tiny seo guide."

    def test_parse_error_is_not_retried(self, fixable_content):
        """Test that unparseable output fails the correction immediately."""
        provider = FakeProvider(["I cannot help with that", json_response(meta_description=PERFECT_META)])
        corrector = ContentCorrector([provider])

        result = corrector.apply_corrections(fixable_content, [meta_prompt()])

        assert not result.success
        assert len(provider.calls) == 1
        assert corrector.get_error_log()[0]["level"] == "warning"

    def test_missing_field_in_response(self, fixable_content):
        """Test that a response without the target field is rejected."""
        provider = FakeProvider([json_response(title="Only a title")])

        result = ContentCorrector([provider]).apply_corrections(fixable_content, [meta_prompt()])

        assert result.errors == [
            "meta_description_short: response did not include 'meta_description'"
        ]

    def test_title_must_get_shorter(self):
        """Test that a title-too-long correction must shorten the title."""
        prompt = CorrectionPrompt(
            issue_type=IssueType.TITLE_TOO_LONG,
            field="title",
            instruction="Shorten title",
            expected_improvement=10,
        )
        corrector = ContentCorrector([FakeProvider()])

        assert corrector.validate_correction(prompt, "Short title", "A much longer title") == (
            "title was not shortened"
        )
        assert corrector.validate_correction(prompt, "A much longer title", "Short title") is None

    def test_empty_correction_is_rejected(self):
        """Test that blank values are never accepted."""
        corrector = ContentCorrector([FakeProvider()])

        assert corrector.validate_correction(meta_prompt(), SHORT_META, "   ") == (
            "corrected field is empty"
        )


class TestStatsAndConfig:
    """Tests for correction statistics and runtime configuration."""

    def test_stats_and_history(self, fixable_content):
        """Test counters, provider usage and history after a mixed batch."""
        provider = FakeProvider([
            json_response(meta_description=PERFECT_META),
            json_response(content=fixable_content.content),
        ])
        corrector = ContentCorrector([provider])

        corrector.apply_corrections(fixable_content, [meta_prompt(), transitions_prompt()])

        assert corrector.get_correction_stats() == {
            "total": 2,
            "successful": 1,
            "failed": 1,
            "success_rate": 50.0,
            "provider_usage": {"fake": 1},
        }
        assert len(corrector.get_correction_history()) == 1

    def test_reset_stats(self, fixable_content, fixed_meta_provider):
        """Test that reset clears counters, history and the error log."""
        corrector = ContentCorrector([fixed_meta_provider])
        corrector.apply_corrections(fixable_content, [meta_prompt()])

        corrector.reset_stats()

        assert corrector.get_correction_stats()["total"] == 0
        assert corrector.get_correction_history() == []
        assert corrector.get_error_log() == []

    def test_update_config(self):
        """Test that config updates replace values and keep the rest."""
        corrector = ContentCorrector([FakeProvider()])

        config = corrector.update_config(max_retry_attempts=1)

        assert config.max_retry_attempts == 1
        assert corrector.get_config()["enable_provider_failover"] is True

    def test_update_config_validates(self):
        """Test that invalid updates are rejected."""
        corrector = ContentCorrector([FakeProvider()])

        with pytest.raises(ValueError, match="max_retry_attempts"):
            corrector.update_config(max_retry_attempts=0)
