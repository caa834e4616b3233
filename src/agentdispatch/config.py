"""Application Configuration

Type-safe configuration using Pydantic Settings for environment variable handling.

Patterns:
- Type-safe environment variable parsing with validation
- Sensible defaults for pipeline tuning, required values for the app identity
- Settings are projected onto the frozen PipelineConfig so the domain layer
  never reads the environment
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings

from .domain.domain_type import Domain
from .domain.domain_value import PipelineConfig, ScoringWeights


class Settings(BaseSettings):
    """Application settings from environment variables"""

    # =============================================================================
    # APPLICATION
    # =============================================================================

    app_name: str = Field(..., alias="APP_NAME")
    app_version: str = Field(..., alias="APP_VERSION")
    app_description: str = Field(..., alias="APP_DESCRIPTION")
    environment: str = Field(..., alias="ENVIRONMENT")

    # =============================================================================
    # API CONFIGURATION
    # =============================================================================

    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, alias="API_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # CORS Settings
    cors_origins: str = Field(default="", alias="CORS_ORIGINS")
    cors_credentials: bool = Field(default=False, alias="CORS_CREDENTIALS")
    cors_methods: str = Field(default="GET,POST", alias="CORS_METHODS")
    cors_headers: str = Field(default="*", alias="CORS_HEADERS")

    # =============================================================================
    # LLM CONFIGURATION
    # =============================================================================

    # pydantic-ai model name; provider keys are read from the environment by pydantic-ai
    interpreter_model: str = Field(default="openai:gpt-4o-mini", alias="INTERPRETER_MODEL")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, alias="ANTHROPIC_API_KEY")

    # =============================================================================
    # TOOL REGISTRIES (MCP)
    # =============================================================================

    mcp_project_management_url: str | None = Field(default=None, alias="MCP_PROJECT_MANAGEMENT_URL")
    mcp_code_hosting_url: str | None = Field(default=None, alias="MCP_CODE_HOSTING_URL")
    mcp_data_store_url: str | None = Field(default=None, alias="MCP_DATA_STORE_URL")
    mcp_api_key: str | None = Field(default=None, alias="MCP_API_KEY")

    # Extra router trigger terms, comma separated
    lexicon_project_management: str = Field(default="", alias="LEXICON_PROJECT_MANAGEMENT")
    lexicon_code_hosting: str = Field(default="", alias="LEXICON_CODE_HOSTING")
    lexicon_data_store: str = Field(default="", alias="LEXICON_DATA_STORE")

    # =============================================================================
    # PIPELINE TUNING
    # =============================================================================

    catalog_ttl: float = Field(default=300.0, alias="CATALOG_TTL")
    catalog_retry_after: float = Field(default=30.0, alias="CATALOG_RETRY_AFTER")
    score_threshold: float = Field(default=0.4, alias="SCORE_THRESHOLD")
    retry_backoff: float = Field(default=0.5, alias="RETRY_BACKOFF")
    execution_timeout: float = Field(default=30.0, alias="EXECUTION_TIMEOUT")
    model_timeout: float = Field(default=60.0, alias="MODEL_TIMEOUT")
    circuit_breaker_threshold: int = Field(default=5, alias="CIRCUIT_BREAKER_THRESHOLD")
    circuit_breaker_cooldown: float = Field(default=60.0, alias="CIRCUIT_BREAKER_COOLDOWN")
    routing_margin: float = Field(default=0.0, alias="ROUTING_MARGIN")
    default_domain: Domain | None = Field(default=None, alias="DEFAULT_DOMAIN")
    max_concurrent_queries: int = Field(default=8, alias="MAX_CONCURRENT_QUERIES")

    # Scoring weights (must sum to 1)
    score_weight_lexical: float = Field(default=0.5, alias="SCORE_WEIGHT_LEXICAL")
    score_weight_parameters: float = Field(default=0.3, alias="SCORE_WEIGHT_PARAMETERS")
    score_weight_prior: float = Field(default=0.2, alias="SCORE_WEIGHT_PRIOR")

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}

    def pipeline_config(self) -> PipelineConfig:
        return PipelineConfig(
            catalog_ttl=self.catalog_ttl,
            catalog_retry_after=self.catalog_retry_after,
            score_threshold=self.score_threshold,
            retry_backoff=self.retry_backoff,
            execution_timeout=self.execution_timeout,
            model_timeout=self.model_timeout,
            circuit_breaker_threshold=self.circuit_breaker_threshold,
            circuit_breaker_cooldown=self.circuit_breaker_cooldown,
            routing_margin=self.routing_margin,
            default_domain=self.default_domain,
            max_concurrent_queries=self.max_concurrent_queries,
            weights=ScoringWeights(
                lexical=self.score_weight_lexical,
                parameters=self.score_weight_parameters,
                prior=self.score_weight_prior,
            ),
        )

    def mcp_endpoints(self) -> dict[Domain, str]:
        """Configured MCP endpoint per domain (unconfigured domains omitted)."""
        urls = {
            Domain.PROJECT_MANAGEMENT: self.mcp_project_management_url,
            Domain.CODE_HOSTING: self.mcp_code_hosting_url,
            Domain.DATA_STORE: self.mcp_data_store_url,
        }
        return {domain: url for domain, url in urls.items() if url}

    def extra_lexicon_terms(self) -> dict[Domain, list[str]]:
        raw = {
            Domain.PROJECT_MANAGEMENT: self.lexicon_project_management,
            Domain.CODE_HOSTING: self.lexicon_code_hosting,
            Domain.DATA_STORE: self.lexicon_data_store,
        }
        return {domain: [t.strip() for t in terms.split(",") if t.strip()] for domain, terms in raw.items()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.model_validate({})


settings = get_settings()
