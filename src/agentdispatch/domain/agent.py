"""Domain Agents - Tagged Union of Domain-Bound Interpreters.

An agent is bound to exactly one Domain. Its job is to *narrow the field*: it
asks the language model whether the query can be answered directly or needs a
tool, and if so which tools look suitable and which arguments the query
supplies. It never picks the final tool; that is the scorer's job.

Agent Variants:
    - ProjectManagementAgent: issues, projects, cycles, assignments
    - CodeHostingAgent: repositories, pull requests, branches, commits
    - DataStoreAgent: tables, records, SQL queries

The variants form a closed pydantic discriminated union (`DomainAgent`) keyed
on `domain`; `build_agent()` is the only constructor the pipeline uses.

Failure Contract:
    Any interpreter failure, including the model timeout, is raised as
    InterpretationFailed. There is no retry loop around the model call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import Annotated, Literal, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .domain_type import Domain
from .domain_value import CatalogSnapshot, DirectAnswer, Interpretation, Query, ToolDescriptor
from .errors import InterpretationFailed
from .scorer import ScoringProfile

logger = structlog.get_logger()


@runtime_checkable
class Interpreter(Protocol):
    """Language-model capability used by every agent."""

    async def interpret(
        self,
        query_text: str,
        descriptors: Sequence[ToolDescriptor],
        *,
        instructions: str = "",
    ) -> Interpretation: ...


# Agent instructions
_TOOL_RULES = """
When a user asks you something:
1. Look at the list of tools above
2. Decide whether the request needs a tool at all
3. If it does, name the exact tools that could serve it, most suitable first
4. Extract any argument values the request states explicitly

If the request is a general question you can answer yourself, answer it and
name no tools. If no tool matches, say so and list the available tools.

Remember: ONLY name tools from the list above. Never invent tool names.
""".strip()

PROJECT_MANAGEMENT_INSTRUCTIONS = """
You are a project-management agent. You work with issues, projects, cycles,
teams and assignments.

Examples:
- "show my issues" -> a tool that lists issues
- "create a bug report for the login page" -> a tool that creates an issue
""".strip()

CODE_HOSTING_INSTRUCTIONS = """
You are a code-hosting agent. You work with repositories, pull requests,
branches, commits and releases.

Examples:
- "list open pull requests" -> a tool that lists pull requests
- "create a repository called demo" -> a tool that creates a repository
""".strip()

DATA_STORE_INSTRUCTIONS = """
You are a data-store agent. You work with databases, tables, records and SQL
queries.

Examples:
- "show records in the users table" -> a tool that selects records
- "add a row to orders" -> a tool that inserts a record
""".strip()


def _project_management_profile() -> ScoringProfile:
    return ScoringProfile(
        primary_verbs=frozenset({"list", "create"}),
        primary_nouns=frozenset({"issue"}),
        default_arguments={"list": {"first": 10, "orderBy": "updatedAt"}},
    )


def _code_hosting_profile() -> ScoringProfile:
    return ScoringProfile(
        primary_verbs=frozenset({"list", "create"}),
        primary_nouns=frozenset({"issue", "pull", "repository"}),
        default_arguments={"list": {"per_page": 10}},
    )


def _data_store_profile() -> ScoringProfile:
    return ScoringProfile(
        primary_verbs=frozenset({"list", "create", "search"}),
        primary_nouns=frozenset({"record", "table"}),
        default_arguments={"list": {"limit": 10}},
    )


class _BaseAgent(BaseModel):
    """Shared behaviour of every domain agent."""

    domain: Domain
    instructions: str
    profile: ScoringProfile

    model_config = ConfigDict(frozen=True)

    def prompt(self, snapshot: CatalogSnapshot) -> str:
        """Domain instructions followed by the tools currently on offer."""
        listing = "\n".join(f"- {tool.name}: {tool.description}" for tool in snapshot.tools)
        return f"{self.instructions}\n\nYou can ONLY use these tools:\n\n{listing}\n\n{_TOOL_RULES}"

    async def interpret(
        self,
        query: Query,
        snapshot: CatalogSnapshot,
        interpreter: Interpreter,
        timeout: float,
    ) -> Interpretation:
        """Ask the model for a DirectAnswer or a ToolIntent, then narrow it.

        Raises:
            InterpretationFailed: Model call failed or exceeded `timeout`
        """
        try:
            raw = await asyncio.wait_for(
                interpreter.interpret(query.text, snapshot.tools, instructions=self.prompt(snapshot)),
                timeout=timeout,
            )
        except TimeoutError as exc:
            raise InterpretationFailed(f"Model did not answer within {timeout:g}s") from exc
        except InterpretationFailed:
            raise
        except Exception as exc:
            raise InterpretationFailed(f"Model call failed: {exc}") from exc

        interpretation = self.narrow(raw, snapshot)
        logger.debug(
            "agent.interpreted",
            domain=str(self.domain),
            query_id=str(query.id),
            direct=isinstance(interpretation, DirectAnswer),
        )
        return interpretation

    def narrow(self, interpretation: Interpretation, snapshot: CatalogSnapshot) -> Interpretation:
        """Drop tool names the snapshot does not contain (order kept, duplicates removed)."""
        if isinstance(interpretation, DirectAnswer):
            return interpretation
        known = set(snapshot.names)
        kept = tuple(dict.fromkeys(n for n in interpretation.candidate_names if n in known))
        if kept == interpretation.candidate_names:
            return interpretation
        dropped = [n for n in interpretation.candidate_names if n not in known]
        if dropped:
            logger.info("agent.unknown_tools_dropped", tools=dropped)
        return interpretation.model_copy(update={"candidate_names": kept})


class ProjectManagementAgent(_BaseAgent):
    domain: Literal[Domain.PROJECT_MANAGEMENT] = Domain.PROJECT_MANAGEMENT
    instructions: str = PROJECT_MANAGEMENT_INSTRUCTIONS
    profile: ScoringProfile = Field(default_factory=_project_management_profile)


class CodeHostingAgent(_BaseAgent):
    domain: Literal[Domain.CODE_HOSTING] = Domain.CODE_HOSTING
    instructions: str = CODE_HOSTING_INSTRUCTIONS
    profile: ScoringProfile = Field(default_factory=_code_hosting_profile)


class DataStoreAgent(_BaseAgent):
    domain: Literal[Domain.DATA_STORE] = Domain.DATA_STORE
    instructions: str = DATA_STORE_INSTRUCTIONS
    profile: ScoringProfile = Field(default_factory=_data_store_profile)


DomainAgent = Annotated[
    ProjectManagementAgent | CodeHostingAgent | DataStoreAgent,
    Field(discriminator="domain"),
]


def build_agent(domain: Domain) -> DomainAgent:
    """Construct the agent bound to `domain`."""
    match domain:
        case Domain.PROJECT_MANAGEMENT:
            return ProjectManagementAgent()
        case Domain.CODE_HOSTING:
            return CodeHostingAgent()
        case Domain.DATA_STORE:
            return DataStoreAgent()


__all__ = [
    "CodeHostingAgent",
    "DataStoreAgent",
    "DomainAgent",
    "Interpreter",
    "ProjectManagementAgent",
    "build_agent",
]
