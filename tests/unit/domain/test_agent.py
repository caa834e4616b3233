"""Unit tests for the domain agents.

The language model is replaced by ScriptedInterpreter; these tests cover the
agent's own contract: narrowing to known tools and turning every model
failure into InterpretationFailed.
"""

import pytest
from pydantic import TypeAdapter

from agentdispatch.domain.agent import (
    CodeHostingAgent,
    DataStoreAgent,
    DomainAgent,
    ProjectManagementAgent,
    build_agent,
)
from agentdispatch.domain.domain_type import Domain
from agentdispatch.domain.domain_value import DirectAnswer, Query, ToolIntent
from agentdispatch.domain.errors import InterpretationFailed
from tests.fakes import ScriptedInterpreter

PM = Domain.PROJECT_MANAGEMENT


class TestBuildAgent:
    """Test the closed set of agent variants."""

    @pytest.mark.parametrize(
        ("domain", "agent_type"),
        [
            (Domain.PROJECT_MANAGEMENT, ProjectManagementAgent),
            (Domain.CODE_HOSTING, CodeHostingAgent),
            (Domain.DATA_STORE, DataStoreAgent),
        ],
    )
    def test_one_agent_per_domain(self, domain, agent_type):
        agent = build_agent(domain)

        assert isinstance(agent, agent_type)
        assert agent.domain is domain

    def test_union_discriminates_on_domain(self):
        agent = TypeAdapter(DomainAgent).validate_python({"domain": Domain.CODE_HOSTING})

        assert isinstance(agent, CodeHostingAgent)


class TestNarrow:
    """Test dropping of tool names the catalog does not have."""

    def test_unknown_and_duplicate_names_dropped(self, pm_snapshot):
        intent = ToolIntent(candidate_names=("ghost", "createIssue", "createIssue", "listIssues"))

        narrowed = build_agent(PM).narrow(intent, pm_snapshot)

        assert narrowed.candidate_names == ("createIssue", "listIssues")

    def test_all_unknown_leaves_no_restriction(self, pm_snapshot):
        intent = ToolIntent(candidate_names=("ghost",), arguments={"title": "x"})

        narrowed = build_agent(PM).narrow(intent, pm_snapshot)

        assert narrowed.candidate_names == ()
        assert narrowed.arguments == {"title": "x"}

    def test_direct_answer_untouched(self, pm_snapshot):
        answer = DirectAnswer(text="42")

        assert build_agent(PM).narrow(answer, pm_snapshot) is answer


class TestInterpret:
    """Test the model call wrapper."""

    @pytest.mark.asyncio
    async def test_prompt_lists_snapshot_tools(self, pm_snapshot):
        interpreter = ScriptedInterpreter(ToolIntent(candidate_names=("createIssue",)))

        result = await build_agent(PM).interpret(Query(text="new issue"), pm_snapshot, interpreter, timeout=1.0)

        assert result.candidate_names == ("createIssue",)
        _, offered, instructions = interpreter.calls[0]
        assert offered == ("listIssues", "createIssue", "listProjects")
        assert "project-management agent" in instructions
        assert "- createIssue: Create a new issue" in instructions

    @pytest.mark.asyncio
    async def test_timeout_becomes_interpretation_failed(self, pm_snapshot):
        interpreter = ScriptedInterpreter(DirectAnswer(text="late"), delay=1.0)

        with pytest.raises(InterpretationFailed, match="did not answer"):
            await build_agent(PM).interpret(Query(text="hello"), pm_snapshot, interpreter, timeout=0.01)

    @pytest.mark.asyncio
    async def test_model_error_becomes_interpretation_failed(self, pm_snapshot):
        interpreter = ScriptedInterpreter(RuntimeError("rate limited"))

        with pytest.raises(InterpretationFailed, match="rate limited"):
            await build_agent(PM).interpret(Query(text="hello"), pm_snapshot, interpreter, timeout=1.0)
