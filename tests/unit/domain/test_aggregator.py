"""Unit tests for ResponseAggregator and payload formatting.

Every path must yield exactly one readable AggregatedResult, never a raw
trace or an exception.
"""

import pytest

from agentdispatch.domain.aggregator import ResponseAggregator
from agentdispatch.domain.domain_type import Domain, OutcomeKind, ResultKind
from agentdispatch.domain.domain_value import DirectAnswer, ExecutionOutcome, QueryId
from agentdispatch.domain.formatter import (
    clean_markdown,
    format_payload,
    format_text,
    format_value,
    mcp_content_text,
)

PM = Domain.PROJECT_MANAGEMENT


@pytest.fixture
def aggregator():
    return ResponseAggregator()


# =============================================================================
# Normalize
# =============================================================================


class TestNormalize:
    """Test mapping of answers and outcomes."""

    def test_direct_answer(self, aggregator):
        query_id = QueryId()

        result = aggregator.normalize(DirectAnswer(text="**Paris**"), PM, query_id)

        assert result.kind is ResultKind.ANSWERED
        assert result.success is True
        assert result.tool is None
        assert result.display_text == "Paris"
        assert result.query_id == query_id

    def test_tool_success_with_mcp_content(self, aggregator):
        outcome = ExecutionOutcome(
            kind=OutcomeKind.SUCCEEDED,
            tool="createIssue",
            payload={"content": [{"type": "text", "text": "Created ENG-42"}]},
        )

        result = aggregator.normalize(outcome, PM)

        assert result.kind is ResultKind.TOOL_SUCCEEDED
        assert result.success is True
        assert result.tool == "createIssue"
        assert result.display_text == "Created ENG-42"
        assert result.outcome is outcome

    def test_structured_payload_flattened(self, aggregator):
        outcome = ExecutionOutcome(kind=OutcomeKind.SUCCEEDED, tool="getIssue", payload={"id": 7, "state": "open"})

        result = aggregator.normalize(outcome, PM)

        assert result.display_text == 'id: 7\n  state: "open"'

    def test_unreadable_payload_is_not_success(self, aggregator):
        """A tool that 'succeeds' with nothing readable is reported as failed."""
        outcome = ExecutionOutcome(kind=OutcomeKind.SUCCEEDED, tool="listIssues", payload=None)

        result = aggregator.normalize(outcome, PM)

        assert result.kind is ResultKind.TOOL_FAILED
        assert result.success is False
        assert "could not be read" in result.display_text

    def test_summary_used_when_payload_empty(self, aggregator):
        outcome = ExecutionOutcome(kind=OutcomeKind.SUCCEEDED, tool="archive", payload="", summary="Archived")

        result = aggregator.normalize(outcome, PM)

        assert result.success is True
        assert result.display_text == "Archived"

    def test_transient_failure_text(self, aggregator):
        outcome = ExecutionOutcome(kind=OutcomeKind.FAILED_TRANSIENT, tool="listIssues", summary="timed out")

        result = aggregator.normalize(outcome, PM)

        assert result.kind is ResultKind.TOOL_FAILED
        assert result.display_text == "listIssues is not responding right now (timed out). Please try again."

    def test_permanent_failure_text(self, aggregator):
        outcome = ExecutionOutcome(kind=OutcomeKind.FAILED_PERMANENT, tool="createIssue", summary="title required")

        result = aggregator.normalize(outcome, PM)

        assert result.display_text == "createIssue could not complete the request: title required"

    def test_short_circuited_chain_is_domain_unavailable(self, aggregator):
        outcome = ExecutionOutcome(
            kind=OutcomeKind.FAILED_PERMANENT,
            tool="createIssue",
            summary="project-management is temporarily unavailable",
            short_circuited=True,
        )

        result = aggregator.normalize(outcome, PM)

        assert result.kind is ResultKind.DOMAIN_UNAVAILABLE
        assert result.success is False
        assert result.outcome is outcome
        assert "temporarily unavailable" in result.display_text


# =============================================================================
# Early Exits
# =============================================================================


class TestEarlyExits:
    """Test results produced before execution."""

    def test_ambiguous_has_no_domain(self, aggregator):
        result = aggregator.ambiguous()

        assert result.kind is ResultKind.AMBIGUOUS
        assert result.domain is None
        assert result.success is False

    def test_discovery_failed_names_domain(self, aggregator):
        result = aggregator.discovery_failed(PM)

        assert result.kind is ResultKind.DISCOVERY_FAILED
        assert "project-management service is unavailable" in result.display_text

    def test_no_qualifying_tool_lists_tools(self, aggregator):
        result = aggregator.no_qualifying_tool(PM, ("listIssues", "createIssue"))

        assert result.kind is ResultKind.NO_QUALIFYING_TOOL
        assert result.display_text.endswith("listIssues, createIssue")

    def test_no_qualifying_tool_prefers_fallback_answer(self, aggregator):
        result = aggregator.no_qualifying_tool(PM, ("listIssues",), fallback_answer="Try asking about issues.")

        assert result.kind is ResultKind.ANSWERED
        assert result.success is True
        assert result.display_text == "Try asking about issues."

    def test_interpretation_failed_keeps_reason(self, aggregator):
        result = aggregator.interpretation_failed(PM, "Model did not answer within 60s")

        assert result.kind is ResultKind.INTERPRETATION_FAILED
        assert "60s" in result.display_text
        assert result.outcome.summary == "Model did not answer within 60s"

    def test_canceled(self, aggregator):
        result = aggregator.canceled(PM)

        assert result.kind is ResultKind.CANCELED
        assert result.success is False


# =============================================================================
# Formatting
# =============================================================================


class TestFormatter:
    """Test display helpers."""

    def test_clean_markdown(self):
        assert clean_markdown("## Title\n**bold** and `code`") == "Title\nbold and code"

    def test_format_value_inlines_short_arrays(self):
        assert format_value({"id": 7, "labels": ["bug", "p1"]}) == 'id: 7\n  labels: ["bug", "p1"]'

    def test_format_value_truncates_long_strings(self):
        assert format_value("x" * 60) == '"' + "x" * 47 + '..."'

    def test_format_text_flattens_embedded_json(self):
        assert format_text('Result: {"id": 1}') == "Result: id: 1"

    def test_mcp_content_text_joins_text_parts(self):
        payload = {
            "content": [
                {"type": "text", "text": "a"},
                {"type": "image", "data": "..."},
                {"type": "text", "text": "b"},
            ]
        }

        assert mcp_content_text(payload) == "a\nb"
        assert mcp_content_text({"rows": []}) is None

    @pytest.mark.parametrize("payload", [None, "   ", object()])
    def test_format_payload_rejects_unreadable(self, payload):
        with pytest.raises(ValueError):
            format_payload(payload)
