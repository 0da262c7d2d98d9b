"""Config module initialization."""
from .settings import (
    # System
    BASE_DIR,
    VERBOSE,
    LOG_LEVEL,
    # LLM configuration
    PLANNER_TEMPERATURE,
    MAX_LLM_TOKENS,
    STEP_MODELS,
    LLM_MIN_DELAY_MS,
    LLM_RATE_LIMIT_DELAY_MS,
    LLM_DELAY_JITTER,
    RATE_LIMIT_COOLDOWN_SECONDS,
    MAX_RATE_LIMIT_COOLDOWN_SECONDS,
    # Schema resolution
    SCHEMA_CACHE_TTL_SECONDS,
    SCHEMA_RESOLVE_CONCURRENCY,
    SCHEMA_DOCS_URL,
    SCHEMA_DOCS_TIMEOUT_SECONDS,
    PREWARM_ENTITIES,
    # Plan / failure cache
    EMBEDDING_MODEL,
    SIMILARITY_HIGH,
    SIMILARITY_MODERATE,
    EXAMPLE_LIMIT,
    EXAMPLE_MIN_SIMILARITY,
    DOC_SNIPPET_LIMIT,
    DOC_SNIPPET_MAX_CHARS,
    CACHE_RETENTION_DAYS,
    REDIS_URL,
    # Planning & execution
    DEFAULT_FALLBACK_ENTITY,
    DEFAULT_PAGE_SIZE,
    PAGINATION_KEYS,
    VALID_OPERATIONS,
    # Codebase context
    CODEBASE_ROOT,
    MODELS_DIR,
    LINKS_DIR,
    ROUTES_DIR,
    SUBSCRIBERS_DIR,
    WORKFLOWS_DIR,
    # Data access
    API_BASE_URL,
    API_TIMEOUT_SECONDS,
    API_TOKEN,
    # Validation
    ConfigurationError,
    validate_configuration,
)

__all__ = [
    "BASE_DIR",
    "VERBOSE",
    "LOG_LEVEL",
    "PLANNER_TEMPERATURE",
    "MAX_LLM_TOKENS",
    "STEP_MODELS",
    "LLM_MIN_DELAY_MS",
    "LLM_RATE_LIMIT_DELAY_MS",
    "LLM_DELAY_JITTER",
    "RATE_LIMIT_COOLDOWN_SECONDS",
    "MAX_RATE_LIMIT_COOLDOWN_SECONDS",
    "SCHEMA_CACHE_TTL_SECONDS",
    "SCHEMA_RESOLVE_CONCURRENCY",
    "SCHEMA_DOCS_URL",
    "SCHEMA_DOCS_TIMEOUT_SECONDS",
    "PREWARM_ENTITIES",
    "EMBEDDING_MODEL",
    "SIMILARITY_HIGH",
    "SIMILARITY_MODERATE",
    "EXAMPLE_LIMIT",
    "EXAMPLE_MIN_SIMILARITY",
    "DOC_SNIPPET_LIMIT",
    "DOC_SNIPPET_MAX_CHARS",
    "CACHE_RETENTION_DAYS",
    "REDIS_URL",
    "DEFAULT_FALLBACK_ENTITY",
    "DEFAULT_PAGE_SIZE",
    "PAGINATION_KEYS",
    "VALID_OPERATIONS",
    "CODEBASE_ROOT",
    "MODELS_DIR",
    "LINKS_DIR",
    "ROUTES_DIR",
    "SUBSCRIBERS_DIR",
    "WORKFLOWS_DIR",
    "API_BASE_URL",
    "API_TIMEOUT_SECONDS",
    "API_TOKEN",
    "ConfigurationError",
    "validate_configuration",
]
