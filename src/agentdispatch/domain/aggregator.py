"""Response Aggregator - Uniform Terminal Results.

Turns whatever the pipeline ended with (a direct answer, an execution outcome,
or one of the early exits) into a single AggregatedResult with readable display
text. Every method here is total: none of them raises.
"""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict

from .domain_type import Domain, OutcomeKind, ResultKind
from .domain_value import AggregatedResult, DirectAnswer, ExecutionOutcome, QueryId
from .formatter import format_payload, format_text

logger = structlog.get_logger()

AMBIGUOUS_TEXT = (
    "I couldn't tell which service this request is for. "
    "Mention issues or projects, repositories or pull requests, or tables and records."
)
DISCOVERY_FAILED_TEXT = "The {domain} service is unavailable right now. Please try again later."
DOMAIN_UNAVAILABLE_TEXT = "The {domain} service is temporarily unavailable after repeated failures."
NO_QUALIFYING_TOOL_TEXT = "I don't have a tool for that request. Available tools are: {tools}"
INTERPRETATION_FAILED_TEXT = "I couldn't interpret that request right now: {reason}"
CANCELED_TEXT = "The request was canceled."
UNREADABLE_PAYLOAD_TEXT = "{tool} returned a response that could not be read."
TRANSIENT_FAILURE_TEXT = "{tool} is not responding right now ({reason}). Please try again."
PERMANENT_FAILURE_TEXT = "{tool} could not complete the request: {reason}"


class ResponseAggregator(BaseModel):
    """Stateless normaliser shared by all queries."""

    model_config = ConfigDict(frozen=True)

    def normalize(
        self,
        result: ExecutionOutcome | DirectAnswer,
        domain: Domain | None,
        query_id: QueryId | None = None,
    ) -> AggregatedResult:
        """Map a direct answer or an execution outcome to the terminal record."""
        if isinstance(result, DirectAnswer):
            return AggregatedResult(
                query_id=query_id,
                kind=ResultKind.ANSWERED,
                domain=domain,
                tool=None,
                success=True,
                display_text=self._safe_text(result.text, fallback="(empty answer)"),
            )

        if result.succeeded:
            text = self._payload_text(result)
            if text is None:
                return AggregatedResult(
                    query_id=query_id,
                    kind=ResultKind.TOOL_FAILED,
                    domain=domain,
                    tool=result.tool,
                    success=False,
                    display_text=UNREADABLE_PAYLOAD_TEXT.format(tool=result.tool or "The tool"),
                    outcome=result,
                )
            return AggregatedResult(
                query_id=query_id,
                kind=ResultKind.TOOL_SUCCEEDED,
                domain=domain,
                tool=result.tool,
                success=True,
                display_text=text,
                outcome=result,
            )

        if result.short_circuited:
            return self._failure(
                ResultKind.DOMAIN_UNAVAILABLE,
                domain,
                DOMAIN_UNAVAILABLE_TEXT.format(domain=domain or "requested"),
                query_id,
                outcome=result,
            )

        tool = result.tool or "The tool"
        reason = result.summary or "unknown error"
        template = TRANSIENT_FAILURE_TEXT if result.kind is OutcomeKind.FAILED_TRANSIENT else PERMANENT_FAILURE_TEXT
        return AggregatedResult(
            query_id=query_id,
            kind=ResultKind.TOOL_FAILED,
            domain=domain,
            tool=result.tool,
            success=False,
            display_text=template.format(tool=tool, reason=reason),
            outcome=result,
        )

    # ------------------------------------------------------------------
    # Early exits
    # ------------------------------------------------------------------

    def ambiguous(self, query_id: QueryId | None = None) -> AggregatedResult:
        return self._failure(ResultKind.AMBIGUOUS, None, AMBIGUOUS_TEXT, query_id)

    def discovery_failed(self, domain: Domain, query_id: QueryId | None = None) -> AggregatedResult:
        return self._failure(ResultKind.DISCOVERY_FAILED, domain, DISCOVERY_FAILED_TEXT.format(domain=domain), query_id)

    def domain_unavailable(self, domain: Domain, query_id: QueryId | None = None) -> AggregatedResult:
        return self._failure(
            ResultKind.DOMAIN_UNAVAILABLE, domain, DOMAIN_UNAVAILABLE_TEXT.format(domain=domain), query_id
        )

    def interpretation_failed(self, domain: Domain, reason: str, query_id: QueryId | None = None) -> AggregatedResult:
        return self._failure(
            ResultKind.INTERPRETATION_FAILED,
            domain,
            INTERPRETATION_FAILED_TEXT.format(reason=reason),
            query_id,
            outcome=ExecutionOutcome(kind=OutcomeKind.FAILED_PERMANENT, summary=reason),
        )

    def no_qualifying_tool(
        self,
        domain: Domain,
        tools: tuple[str, ...],
        fallback_answer: str | None = None,
        query_id: QueryId | None = None,
    ) -> AggregatedResult:
        """No tool cleared the threshold; prefer the model's own answer if it gave one."""
        if fallback_answer and fallback_answer.strip():
            return self.normalize(DirectAnswer(text=fallback_answer), domain, query_id)
        listing = ", ".join(tools) if tools else "none"
        return self._failure(
            ResultKind.NO_QUALIFYING_TOOL, domain, NO_QUALIFYING_TOOL_TEXT.format(tools=listing), query_id
        )

    def canceled(self, domain: Domain | None, query_id: QueryId | None = None) -> AggregatedResult:
        return self._failure(ResultKind.CANCELED, domain, CANCELED_TEXT, query_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _failure(
        self,
        kind: ResultKind,
        domain: Domain | None,
        text: str,
        query_id: QueryId | None,
        outcome: ExecutionOutcome | None = None,
    ) -> AggregatedResult:
        return AggregatedResult(
            query_id=query_id,
            kind=kind,
            domain=domain,
            success=False,
            display_text=text,
            outcome=outcome,
        )

    def _payload_text(self, outcome: ExecutionOutcome) -> str | None:
        """Display text for a successful payload, None when it is unreadable."""
        try:
            text = format_payload(outcome.payload)
        except ValueError:
            return outcome.summary
        except Exception:
            logger.exception("aggregator.format_failed", tool=outcome.tool)
            return outcome.summary
        return text or outcome.summary

    def _safe_text(self, text: str, fallback: str) -> str:
        try:
            cleaned = format_text(text)
        except Exception:
            logger.exception("aggregator.format_failed", tool=None)
            return text or fallback
        return cleaned or fallback


__all__ = ["ResponseAggregator"]
