"""Relevance Scorer - Weighted-Feature Ranking of Catalog Tools.

Given a query and a catalog snapshot, produces every tool as a ScoredCandidate
sorted by descending score, ties broken by ascending tool name.

Score Formula:
    score = w_lexical * lexical + w_parameters * parameters + w_prior * prior

    lexical:    overlap between canonical query tokens and the tool's name
                (full credit) or description (half credit), over query tokens
    parameters: mean support for the tool's required parameters (1.0 when
                nothing is required); a plausible value from the agent, the
                profile or a specific cue in the query counts 1.0, a value that
                only echoes the query prose counts PROSE_CREDIT
    prior:      1.0 when the tool is a primary operation of its domain

    Every feature lies in [0, 1] and the weights sum to 1, so scores do too.
    Scores are rounded to 6 decimals before sorting so float noise can never
    break the alphabetical tie-break.

Restriction:
    When the agent names candidate tools, every other tool scores 0 and is
    flagged `excluded`; ranking among the named tools is unchanged.

Qualification:
    `qualifying()` keeps the above-threshold candidates of a ranking that are
    relevant to the query: some lexical overlap, or named by the agent.
    Parameters and prior alone never qualify a tool. When nothing qualifies
    the pipeline falls back to a direct answer (or reports that no tool
    qualified).
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .domain_value import (
    CatalogSnapshot,
    ParamSpec,
    Query,
    ScoredCandidate,
    ScoreRationale,
    ScoringWeights,
    ToolDescriptor,
)
from .router import singular

_CHUNK = re.compile(r"[A-Za-z0-9]+")
_CAMEL = re.compile(r"[A-Z]+(?=[A-Z][a-z])|[A-Z]?[a-z]+|[A-Z]+|\d+")
_QUOTED = re.compile(r"[\"“]([^\"”]{2,})[\"”]")
_NUMBER = re.compile(r"(?<![\w.])(\d+)(?![\w.])")

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "in", "on", "of", "for", "to", "and", "or", "my", "me",
        "i", "we", "our", "us", "you", "your", "please", "can", "could", "would",
        "with", "from", "into", "at", "by", "is", "are", "be", "it", "this",
        "that", "all", "some", "any", "what", "which", "who", "how", "do", "need",
        "want", "let", "about", "up",
    }
)

SYNONYMS: dict[str, str] = {
    "show": "list",
    "get": "list",
    "fetch": "list",
    "display": "list",
    "select": "list",
    "new": "create",
    "add": "create",
    "make": "create",
    "insert": "create",
    "modify": "update",
    "change": "update",
    "edit": "update",
    "remove": "delete",
    "destroy": "delete",
    "drop": "delete",
    "ticket": "issue",
    "task": "issue",
    "bug": "issue",
    "reply": "comment",
    "note": "comment",
    "allocate": "assign",
    "repo": "repository",
    "pr": "pull",
    "row": "record",
}

OPERATIONS = frozenset({"list", "create", "update", "delete", "comment", "assign", "search"})

TITLE_PARAMS = frozenset({"title", "name", "summary", "subject"})
TEXT_PARAMS = frozenset({"description", "body", "content", "text", "message", "comment"})
SEARCH_PARAMS = frozenset({"query", "search", "q", "term", "keyword", "filter"})

TITLE_LENGTH = 50
PROSE_CREDIT = 0.5


def canonical(word: str) -> str:
    w = singular(word.lower())
    return SYNONYMS.get(w, w)


def split_identifier(text: str) -> list[str]:
    """Split camelCase, snake_case, SCREAMING_CASE and prose into lower words."""
    parts: list[str] = []
    for chunk in _CHUNK.findall(text):
        parts.extend(piece.lower() for piece in _CAMEL.findall(chunk))
    return parts


def tokens(text: str) -> tuple[str, ...]:
    """Canonical content tokens: split, stop-words dropped, synonyms folded."""
    return tuple(canonical(w) for w in split_identifier(text) if w.lower() not in STOP_WORDS)


def operation_of(tool: ToolDescriptor) -> str | None:
    """First canonical operation verb in the tool's name, if any."""
    for token in tokens(tool.name):
        if token in OPERATIONS:
            return token
    return None


class ScoringProfile(BaseModel):
    """Domain knowledge the scorer borrows from the bound agent.

    Attributes:
        primary_verbs: Canonical operations considered common in the domain
        primary_nouns: Canonical objects those operations act on
        default_arguments: Operation → arguments applied when a tool declares them
    """

    primary_verbs: frozenset[str] = frozenset()
    primary_nouns: frozenset[str] = frozenset()
    default_arguments: dict[str, dict[str, Any]] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def is_primary(self, tool: ToolDescriptor) -> bool:
        if tool.primary:
            return True
        name_tokens = set(tokens(tool.name))
        return bool(name_tokens & self.primary_verbs) and bool(name_tokens & self.primary_nouns)

    def defaults_for(self, tool: ToolDescriptor) -> dict[str, Any]:
        op = operation_of(tool)
        if op is None:
            return {}
        defaults = self.default_arguments.get(op, {})
        return {k: v for k, v in defaults.items() if k in tool.parameters}


def is_plausible(value: Any, spec: ParamSpec) -> bool:
    """Does `value` look like something this parameter would accept?"""
    if value is None:
        return False
    match spec.type:
        case "integer":
            if isinstance(value, bool):
                return False
            return isinstance(value, int) or (isinstance(value, str) and value.strip().isdigit())
        case "number":
            return isinstance(value, int | float) and not isinstance(value, bool)
        case "boolean":
            return isinstance(value, bool)
        case "array":
            return isinstance(value, list | tuple) and len(value) > 0
        case "object":
            return isinstance(value, dict)
        case "string":
            return isinstance(value, str) and bool(value.strip())
        case _:
            return True


def _title_from(text: str) -> str:
    lowered = text.lower()
    if "bug" in lowered:
        return "Bug Report"
    if "feature" in lowered:
        return "Feature Request"
    return text.strip()[:TITLE_LENGTH]


def _prose_value(text: str, name: str) -> str | None:
    """What inference falls back to for `name` when the query has no specific cue."""
    key = name.lower()
    if key in TITLE_PARAMS:
        return text.strip()[:TITLE_LENGTH]
    if key in TEXT_PARAMS or key in SEARCH_PARAMS:
        return text.strip()
    return None


def argument_support(value: Any, text: str, name: str, spec: ParamSpec) -> float:
    """How strongly `value` backs a required parameter of a tool for query `text`."""
    if not is_plausible(value, spec):
        return 0.0
    if isinstance(value, str) and value == _prose_value(text, name):
        return PROSE_CREDIT
    return 1.0


def _after_keyword(text: str, keyword: str) -> str | None:
    """Value following `keyword` in "<keyword> value" or "<keyword>: value" form."""
    pattern = re.compile(rf"\b{re.escape(keyword)}s?\s*[:=]?\s+([\w./\-]+)", re.IGNORECASE)
    match = pattern.search(text)
    if match is None:
        return None
    value = match.group(1)
    if value.lower() in STOP_WORDS:
        return None
    return value


def infer_argument(text: str, name: str, spec: ParamSpec) -> Any:
    """Best-effort value for one parameter taken from the raw query text."""
    key = name.lower()
    quoted = _QUOTED.search(text)
    if spec.type in ("integer", "number"):
        number = _NUMBER.search(text)
        return int(number.group(1)) if number else None
    if spec.type == "boolean":
        return True if any(w in split_identifier(text) for w in split_identifier(name)) else None
    if spec.type != "string":
        return None
    if key in TITLE_PARAMS:
        return quoted.group(1) if quoted else _title_from(text)
    if key in TEXT_PARAMS or key in SEARCH_PARAMS:
        return quoted.group(1) if quoted else text.strip()
    words = split_identifier(name)
    return _after_keyword(text, words[0]) if words else None


def infer_arguments(
    text: str,
    tool: ToolDescriptor,
    extracted: Mapping[str, Any] | None = None,
    profile: ScoringProfile | None = None,
) -> dict[str, Any]:
    """Arguments for `tool`: profile defaults < query-inferred < agent-extracted."""
    extracted = extracted or {}
    arguments: dict[str, Any] = dict(profile.defaults_for(tool)) if profile else {}
    for name, spec in tool.parameters.items():
        if name in extracted:
            continue
        if name in arguments:
            continue
        value = infer_argument(text, name, spec)
        if value is not None:
            arguments[name] = value
    arguments.update({k: v for k, v in extracted.items() if k in tool.parameters or not tool.parameters})
    return arguments


class RelevanceScorer(BaseModel):
    """Ranks a catalog snapshot against a query. Stateless; safe to share."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    threshold: float = Field(default=0.4, ge=0.0, le=1.0)

    model_config = ConfigDict(frozen=True)

    def rank(
        self,
        query: Query,
        snapshot: CatalogSnapshot,
        restriction: Collection[str] | None = None,
        arguments: Mapping[str, Any] | None = None,
        profile: ScoringProfile | None = None,
    ) -> tuple[ScoredCandidate, ...]:
        """Score every tool in the snapshot and return them ranked.

        Args:
            query: The query being served
            snapshot: Catalog view to rank
            restriction: Tool names the agent narrowed to (None/empty = all)
            arguments: Arguments the agent extracted from the query
            profile: Domain prior and default arguments

        Returns:
            Tuple sorted by (score desc, name asc) with ranks 1..n
        """
        query_tokens = set(tokens(query.text))
        allowed = set(restriction) if restriction else None

        scored: list[tuple[float, ToolDescriptor, ScoreRationale, dict[str, Any]]] = []
        for tool in snapshot.tools:
            tool_args = infer_arguments(query.text, tool, arguments, profile)
            if allowed is not None and tool.name not in allowed:
                rationale = ScoreRationale(lexical=0.0, parameters=0.0, prior=0.0, excluded=True)
                scored.append((0.0, tool, rationale, tool_args))
                continue
            rationale = self._features(query.text, query_tokens, tool, tool_args, profile)
            if allowed is not None:
                rationale = rationale.model_copy(update={"selected": True})
            score = round(
                self.weights.lexical * rationale.lexical
                + self.weights.parameters * rationale.parameters
                + self.weights.prior * rationale.prior,
                6,
            )
            scored.append((min(max(score, 0.0), 1.0), tool, rationale, tool_args))

        scored.sort(key=lambda item: (-item[0], item[1].name))
        return tuple(
            ScoredCandidate(tool=tool, score=score, rationale=rationale, rank=rank, arguments=tool_args)
            for rank, (score, tool, rationale, tool_args) in enumerate(scored, start=1)
        )

    def qualifying(self, ranked: tuple[ScoredCandidate, ...]) -> tuple[ScoredCandidate, ...]:
        """Relevant above-threshold candidates of a ranking, in rank order."""
        if not ranked or ranked[0].score < self.threshold:
            return ()
        return tuple(
            c
            for c in ranked
            if c.score >= self.threshold and not c.rationale.excluded and c.rationale.relevant
        )

    def _features(
        self,
        text: str,
        query_tokens: set[str],
        tool: ToolDescriptor,
        tool_args: Mapping[str, Any],
        profile: ScoringProfile | None,
    ) -> ScoreRationale:
        name_tokens = set(tokens(tool.name))
        description_tokens = set(tokens(tool.description))

        matched = sorted(query_tokens & (name_tokens | description_tokens))
        if query_tokens:
            credit = sum(1.0 if t in name_tokens else 0.5 for t in matched)
            lexical = credit / len(query_tokens)
        else:
            lexical = 0.0

        required = tool.required_params
        if required:
            supplied = sum(argument_support(tool_args.get(p), text, p, tool.parameters[p]) for p in required)
            parameters = supplied / len(required)
        else:
            parameters = 1.0

        prior = 1.0 if tool.primary or (profile is not None and profile.is_primary(tool)) else 0.0

        fired = tuple(
            name
            for name, value in (("lexical", lexical), ("parameters", parameters), ("prior", prior))
            if value > 0
        )
        return ScoreRationale(
            lexical=round(min(lexical, 1.0), 6),
            parameters=round(parameters, 6),
            prior=prior,
            fired=fired,
            matched_terms=tuple(matched),
        )


__all__ = [
    "OPERATIONS",
    "PROSE_CREDIT",
    "RelevanceScorer",
    "STOP_WORDS",
    "SYNONYMS",
    "ScoringProfile",
    "argument_support",
    "canonical",
    "infer_argument",
    "infer_arguments",
    "is_plausible",
    "operation_of",
    "split_identifier",
    "tokens",
]
