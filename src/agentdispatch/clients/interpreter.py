"""Pydantic AI Interpreter - Structured Tool-Need Classification.

Wraps a single `pydantic_ai.Agent` whose structured output says whether the
query needs a tool and, if so, which of the offered tools look suitable and
which argument values the query states. The per-domain instructions arrive as
run dependencies and are injected through a dynamic system prompt, so one
Agent instance serves every domain.

Reference: https://ai.pydantic.dev/output/
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from ..domain.domain_value import DirectAnswer, Interpretation, ToolDescriptor, ToolIntent

if TYPE_CHECKING:
    from pydantic_ai import Agent

INTERPRETER_SYSTEM_PROMPT = """
Decide whether the user's request needs one of the listed tools.

Rules:
- Set needs_tool to false only when you can fully answer from general knowledge
- tool_names must be copied exactly from the tool list, most suitable first
- arguments holds only values the user actually stated
- answer is your direct answer, or a short fallback reply when a tool is needed
""".strip()


class InterpreterDecision(BaseModel):
    """Structured output of the interpreter agent."""

    needs_tool: bool
    tool_names: list[str] = []
    arguments: dict[str, Any] = {}
    answer: str | None = None

    model_config = ConfigDict(frozen=True)

    def to_interpretation(self) -> Interpretation:
        if not self.needs_tool and not self.tool_names and self.answer:
            return DirectAnswer(text=self.answer)
        return ToolIntent(
            candidate_names=tuple(self.tool_names),
            arguments=dict(self.arguments),
            fallback_answer=self.answer,
        )


class PydanticAIInterpreter(BaseModel):
    """Interpreter backed by a pydantic-ai Agent.

    Attributes:
        model: pydantic-ai model name ('openai:gpt-4o-mini') or Model instance
        retries: Output validation retries granted to the agent
    """

    model: Any = Field(default="openai:gpt-4o-mini")
    retries: int = Field(default=1, ge=0)
    _client_cache: Agent[str, InterpreterDecision] | None = PrivateAttr(default=None)

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    @property
    def client(self) -> Agent[str, InterpreterDecision]:
        """Lazy-initialized interpreter client (cached)."""
        if self._client_cache is None:
            from pydantic_ai import Agent, RunContext

            agent: Agent[str, InterpreterDecision] = Agent(
                self.model,
                deps_type=str,
                output_type=InterpreterDecision,
                system_prompt=INTERPRETER_SYSTEM_PROMPT,
                retries=self.retries,
            )

            @agent.system_prompt
            def domain_instructions(ctx: RunContext[str]) -> str:
                return ctx.deps

            object.__setattr__(self, "_client_cache", agent)
            return agent
        return self._client_cache

    async def interpret(
        self,
        query_text: str,
        descriptors: Sequence[ToolDescriptor],
        *,
        instructions: str = "",
    ) -> Interpretation:
        """Classify `query_text` against the offered tools.

        Args:
            query_text: User's request
            descriptors: Tools currently offered by the domain
            instructions: Domain agent prompt (already lists the tools)

        Returns:
            DirectAnswer or ToolIntent; unknown names are left for the agent to drop
        """
        if not instructions:
            instructions = "Available tools:\n" + "\n".join(f"- {d.name}: {d.description}" for d in descriptors)
        result = await self.client.run(user_prompt=query_text, deps=instructions)
        decision: InterpreterDecision = result.output
        return decision.to_interpretation()


__all__ = ["InterpreterDecision", "PydanticAIInterpreter"]
