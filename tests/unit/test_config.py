"""Unit tests for Settings projection onto the domain layer."""

import pytest
from pydantic import ValidationError

from agentdispatch.config import Settings
from agentdispatch.domain.domain_type import Domain


def test_pipeline_config_from_environment():
    """Values come from .env.test (loaded in conftest)."""
    config = Settings().pipeline_config()

    assert config.retry_backoff == 0.0
    assert config.execution_timeout == 5.0
    assert config.max_concurrent_queries == 4
    assert config.default_domain is None
    assert config.weights.lexical == 0.5


def test_default_domain_parsed(monkeypatch):
    monkeypatch.setenv("DEFAULT_DOMAIN", "code-hosting")

    assert Settings().pipeline_config().default_domain is Domain.CODE_HOSTING


def test_bad_weights_rejected(monkeypatch):
    monkeypatch.setenv("SCORE_WEIGHT_PRIOR", "0.9")

    with pytest.raises(ValidationError, match="sum to 1.0"):
        Settings().pipeline_config()


def test_mcp_endpoints_skip_unconfigured(monkeypatch):
    monkeypatch.setenv("MCP_DATA_STORE_URL", "http://supabase.test/mcp")

    assert Settings().mcp_endpoints() == {Domain.DATA_STORE: "http://supabase.test/mcp"}


def test_extra_lexicon_terms_split_and_trimmed(monkeypatch):
    monkeypatch.setenv("LEXICON_CODE_HOSTING", " gitlab , ,bitbucket")

    terms = Settings().extra_lexicon_terms()

    assert terms[Domain.CODE_HOSTING] == ["gitlab", "bitbucket"]
    assert terms[Domain.PROJECT_MANAGEMENT] == []
