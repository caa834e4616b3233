"""Query Router - Lexicon-Based Domain Classification.

Binds each incoming query to exactly one Domain, or reports that it cannot.

Decision Order:
    1. Explicit domain hint on the query: trusted as-is
    2. Per-domain lexicon score: sum of matched trigger-term weights
    3. Top score zero, or top two within `margin`: Ambiguous

Ambiguous is a routing outcome, not an error. The caller decides what to do
with it (ask the user, or fall back to a configured default domain).

Routing is a pure function of (query text, hint, lexicons, margin), which
keeps routing tests reproducible.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain_type import Domain
from .domain_value import Query

_WORD = re.compile(r"[a-z0-9]+")

DEFAULT_LEXICONS: dict[Domain, tuple[str, ...]] = {
    Domain.PROJECT_MANAGEMENT: (
        "issue",
        "project",
        "task",
        "assignment",
        "assign",
        "ticket",
        "sprint",
        "cycle",
        "backlog",
        "milestone",
        "linear",
        "project management",
    ),
    Domain.CODE_HOSTING: (
        "repository",
        "repo",
        "pull request",
        "code",
        "commit",
        "branch",
        "merge",
        "fork",
        "github",
        "release",
    ),
    Domain.DATA_STORE: (
        "database",
        "table",
        "record",
        "row",
        "query",
        "sql",
        "schema",
        "column",
        "supabase",
        "data storage",
    ),
}


def singular(word: str) -> str:
    """Cheap English singularisation, applied identically to queries and terms."""
    if len(word) > 4 and word.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word


def words(text: str) -> tuple[str, ...]:
    """Lower-cased, singularised word tokens in order."""
    return tuple(singular(w) for w in _WORD.findall(text.lower()))


class RouteDecision(BaseModel):
    """Router's decision for one query.

    Attributes:
        domain: Selected domain, None when ambiguous
        scores: Lexicon score per domain (empty when the hint decided)
        reason: "hint", "lexicon", "tie" or "no_match"
    """

    domain: Domain | None
    scores: dict[Domain, float] = Field(default_factory=dict)
    reason: str

    model_config = ConfigDict(frozen=True)

    @property
    def ambiguous(self) -> bool:
        return self.domain is None


class QueryRouter(BaseModel):
    """Deterministic keyword/phrase router.

    Each domain owns a static lexicon of trigger terms. A term may be a phrase;
    it matches only as a contiguous run of words and is worth one point per
    word, so "pull request" outweighs a stray "request".
    """

    lexicons: dict[Domain, tuple[str, ...]] = Field(default_factory=lambda: dict(DEFAULT_LEXICONS))
    margin: float = Field(default=0.0, ge=0.0)

    model_config = ConfigDict(frozen=True)

    @field_validator("lexicons")
    @classmethod
    def require_lexicon(cls, v: dict[Domain, tuple[str, ...]]) -> dict[Domain, tuple[str, ...]]:
        """Router needs at least one domain with at least one term."""
        if not any(v.values()):
            raise ValueError("Router requires at least one lexicon term")
        return v

    def with_terms(self, domain: Domain, terms: Iterable[str]) -> QueryRouter:
        """Return a router whose lexicon for `domain` also contains `terms`."""
        existing = self.lexicons.get(domain, ())
        merged = existing + tuple(t for t in terms if t not in existing)
        return self.model_copy(update={"lexicons": {**self.lexicons, domain: merged}})

    def score(self, text: str) -> dict[Domain, float]:
        """Lexicon match score per domain, in lexicon order."""
        tokens = words(text)
        return {domain: _lexicon_score(tokens, terms) for domain, terms in self.lexicons.items()}

    def route(self, query: Query) -> RouteDecision:
        if query.domain_hint is not None:
            return RouteDecision(domain=query.domain_hint, reason="hint")

        scores = self.score(query.text)
        # Stable ordering: score descending, then domain value ascending.
        ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0].value))
        top_domain, top_score = ranked[0]
        runner_up = ranked[1][1] if len(ranked) > 1 else 0.0

        if top_score <= 0:
            return RouteDecision(domain=None, scores=scores, reason="no_match")
        if top_score - runner_up <= self.margin and len(ranked) > 1:
            return RouteDecision(domain=None, scores=scores, reason="tie")
        return RouteDecision(domain=top_domain, scores=scores, reason="lexicon")


def _lexicon_score(tokens: tuple[str, ...], terms: Iterable[str]) -> float:
    total = 0.0
    for term in terms:
        term_words = words(term)
        if not term_words:
            continue
        if _contains_run(tokens, term_words):
            total += len(term_words)
    return total


def _contains_run(tokens: tuple[str, ...], run: tuple[str, ...]) -> bool:
    n = len(run)
    return any(tokens[i : i + n] == run for i in range(len(tokens) - n + 1))


def lexicons_from_mapping(extra: Mapping[Domain, Iterable[str]]) -> dict[Domain, tuple[str, ...]]:
    """Default lexicons extended with configured extra terms."""
    merged = dict(DEFAULT_LEXICONS)
    for domain, terms in extra.items():
        existing = merged.get(domain, ())
        merged[domain] = existing + tuple(t for t in terms if t not in existing)
    return merged


__all__ = [
    "DEFAULT_LEXICONS",
    "QueryRouter",
    "RouteDecision",
    "lexicons_from_mapping",
    "singular",
    "words",
]
