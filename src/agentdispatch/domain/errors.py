"""Failure taxonomy for the dispatch pipeline.

These exceptions travel between collaborators and the pipeline stages. None of
them cross the public boundary: every one is resolved into an AggregatedResult
before the caller sees anything.
"""

from __future__ import annotations

from .domain_type import Domain, FailureKind


class DispatchError(Exception):
    """Base class for pipeline failures."""


class DiscoveryFailed(DispatchError):
    """Tool discovery failed and no prior snapshot exists for the domain."""

    def __init__(self, domain: Domain, reason: str):
        super().__init__(f"Tool discovery failed for {domain}: {reason}")
        self.domain = domain
        self.reason = reason


class ToolInvocationError(DispatchError):
    """A tool provider rejected or failed an invocation.

    Providers raise this with an explicit FailureKind; anything else they raise
    is passed through the provider's classify_error().
    """

    def __init__(self, message: str, kind: FailureKind = FailureKind.PERMANENT):
        super().__init__(message)
        self.kind = kind

    @classmethod
    def transient(cls, message: str) -> ToolInvocationError:
        return cls(message, FailureKind.TRANSIENT)

    @classmethod
    def permanent(cls, message: str) -> ToolInvocationError:
        return cls(message, FailureKind.PERMANENT)


class InterpretationFailed(DispatchError):
    """The language model capability failed or timed out."""


class QueryCanceled(DispatchError):
    """Raised at a cancellation checkpoint once the caller has canceled."""


__all__ = [
    "DiscoveryFailed",
    "DispatchError",
    "InterpretationFailed",
    "QueryCanceled",
    "ToolInvocationError",
]
