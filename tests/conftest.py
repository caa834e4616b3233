"""
Shared test fixtures and configuration.

Environment strategy:
- All tests use .env.test (isolated, no registries or model providers needed)
- Collaborators are replaced by the in-memory fakes in tests/fakes.py
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

ENV_FILE = Path(__file__).parent.parent / ".env.test"

load_dotenv(ENV_FILE, override=True)

from agentdispatch.domain.breaker import CircuitBreaker  # noqa: E402
from agentdispatch.domain.catalog import ToolCatalog  # noqa: E402
from agentdispatch.domain.domain_type import Domain  # noqa: E402
from agentdispatch.domain.domain_value import CatalogSnapshot, PipelineConfig  # noqa: E402

from .fakes import FakeClock, FakeMonotonic, FakeToolProvider, make_tool  # noqa: E402


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def pm_tools():
    """Project-management catalog used across scenarios."""
    return [
        make_tool("listIssues", "List issues in the workspace", optional={"first": "integer", "orderBy": "string"}),
        make_tool("createIssue", "Create a new issue", required=["title"], optional={"description": "string"}),
        make_tool("listProjects", "List projects"),
    ]


@pytest.fixture
def pm_provider(pm_tools) -> FakeToolProvider:
    return FakeToolProvider(Domain.PROJECT_MANAGEMENT, pm_tools)


@pytest.fixture
def catalog(clock: FakeClock, pm_provider: FakeToolProvider) -> ToolCatalog:
    catalog = ToolCatalog(ttl=300, clock=clock)
    catalog.register(pm_provider)
    return catalog


@pytest.fixture
def pm_snapshot(pm_tools, clock: FakeClock) -> CatalogSnapshot:
    return CatalogSnapshot(domain=Domain.PROJECT_MANAGEMENT, tools=tuple(pm_tools), fetched_at=clock())


@pytest.fixture
def breaker(monotonic: FakeMonotonic) -> CircuitBreaker:
    return CircuitBreaker(threshold=5, cooldown=60, clock=monotonic)


@pytest.fixture
def config() -> PipelineConfig:
    """Fast pipeline settings: no retry backoff, short timeouts."""
    return PipelineConfig(retry_backoff=0.0, execution_timeout=1.0, model_timeout=1.0)
