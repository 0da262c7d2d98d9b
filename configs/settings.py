"""
Configuration management for the Query Planning & Execution Engine.

This module handles all configuration loading and validation.
Values come from the environment (or a .env file); every key has a
working default so the engine can start with no configuration at all
and degrade to the heuristic planner when no model is reachable.
"""
import os
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

# Load environment variables from .env file
# interpolate=False prevents $VAR expansion in values ($1 back-references in examples)
load_dotenv(interpolate=False)


# =============================================================================
# CONFIGURATION VALIDATION
# =============================================================================

class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


def _get_bool(key: str, default: str = "false") -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


def _get_list(key: str, default: str) -> List[str]:
    raw = os.getenv(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


# =============================================================================
# BASE PATHS
# =============================================================================

BASE_DIR = Path(__file__).parent.parent

# =============================================================================
# SYSTEM SETTINGS
# =============================================================================

VERBOSE = _get_bool("VERBOSE")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# =============================================================================
# LLM CONFIGURATION
# =============================================================================

PLANNER_TEMPERATURE = float(os.getenv("PLANNER_TEMPERATURE", "0.1"))
MAX_LLM_TOKENS = int(os.getenv("MAX_LLM_TOKENS", "2048"))

# Ordered candidates per step kind (litellm model ids, first = preferred)
STEP_MODELS: Dict[str, List[str]] = {
    "query_planning": _get_list(
        "QUERY_PLANNING_MODELS",
        "openrouter/google/gemma-3-27b-it:free,"
        "openrouter/meta-llama/llama-3.3-70b-instruct:free,"
        "openrouter/mistralai/mistral-small-3.1-24b-instruct:free,"
        "openrouter/google/gemini-2.0-flash-exp:free",
    ),
    "intent_classification": _get_list(
        "INTENT_CLASSIFICATION_MODELS",
        "openrouter/google/gemma-3-12b-it:free,"
        "openrouter/mistralai/mistral-7b-instruct:free",
    ),
    "step_evaluation": _get_list(
        "STEP_EVALUATION_MODELS",
        "openrouter/mistralai/mistral-7b-instruct:free,"
        "openrouter/google/gemma-3-4b-it:free",
    ),
    "response_generation": _get_list(
        "RESPONSE_GENERATION_MODELS",
        "openrouter/meta-llama/llama-3.3-70b-instruct:free,"
        "openrouter/google/gemini-2.0-flash-exp:free,"
        "openrouter/google/gemma-3-27b-it:free",
    ),
}

# Rate-limit pacing (milliseconds unless noted)
LLM_MIN_DELAY_MS = int(os.getenv("LLM_MIN_DELAY_MS", "1500"))
LLM_RATE_LIMIT_DELAY_MS = int(os.getenv("LLM_RATE_LIMIT_DELAY_MS", "5000"))
LLM_DELAY_JITTER = _get_bool("LLM_DELAY_JITTER", "true")
RATE_LIMIT_COOLDOWN_SECONDS = int(os.getenv("RATE_LIMIT_COOLDOWN_SECONDS", "60"))
MAX_RATE_LIMIT_COOLDOWN_SECONDS = int(os.getenv("MAX_RATE_LIMIT_COOLDOWN_SECONDS", "300"))

# =============================================================================
# SCHEMA RESOLUTION
# =============================================================================

SCHEMA_CACHE_TTL_SECONDS = int(os.getenv("SCHEMA_CACHE_TTL_SECONDS", str(30 * 60)))
SCHEMA_RESOLVE_CONCURRENCY = int(os.getenv("SCHEMA_RESOLVE_CONCURRENCY", "5"))
SCHEMA_DOCS_URL = os.getenv("SCHEMA_DOCS_URL", "").strip()
SCHEMA_DOCS_TIMEOUT_SECONDS = float(os.getenv("SCHEMA_DOCS_TIMEOUT_SECONDS", "5"))
PREWARM_ENTITIES = _get_list("PREWARM_ENTITIES", "order,customer,product,store,region")

# =============================================================================
# PLAN / FAILURE CACHE
# =============================================================================

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")

# Similarity bands, tuned for MiniLM (scores run lower than hosted embeddings)
SIMILARITY_HIGH = float(os.getenv("SIMILARITY_HIGH", "0.5"))
SIMILARITY_MODERATE = float(os.getenv("SIMILARITY_MODERATE", "0.35"))

EXAMPLE_LIMIT = int(os.getenv("EXAMPLE_LIMIT", "3"))
EXAMPLE_MIN_SIMILARITY = float(os.getenv("EXAMPLE_MIN_SIMILARITY", "0.5"))
DOC_SNIPPET_LIMIT = int(os.getenv("DOC_SNIPPET_LIMIT", "2"))
DOC_SNIPPET_MAX_CHARS = int(os.getenv("DOC_SNIPPET_MAX_CHARS", "2000"))
CACHE_RETENTION_DAYS = int(os.getenv("CACHE_RETENTION_DAYS", "30"))

# Durable storage for the plan and failure caches (in-memory when unset)
REDIS_URL = os.getenv("REDIS_URL", "").strip()

# =============================================================================
# PLANNING & EXECUTION
# =============================================================================

DEFAULT_FALLBACK_ENTITY = os.getenv("DEFAULT_FALLBACK_ENTITY", "order")
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "10"))

# Pagination is execution configuration, never a filter predicate
PAGINATION_KEYS = ["limit", "take", "offset", "skip", "page", "pageSize"]
VALID_OPERATIONS = ["list", "retrieve", "listAndCount"]

# =============================================================================
# CODEBASE CONTEXT (miners)
# =============================================================================

CODEBASE_ROOT = Path(os.getenv("CODEBASE_ROOT", str(BASE_DIR)))
MODELS_DIR = os.getenv("MODELS_DIR", "src/modules")
LINKS_DIR = os.getenv("LINKS_DIR", "src/links")
ROUTES_DIR = os.getenv("ROUTES_DIR", "src/api/admin")
SUBSCRIBERS_DIR = os.getenv("SUBSCRIBERS_DIR", "src/subscribers")
WORKFLOWS_DIR = os.getenv("WORKFLOWS_DIR", "src/workflows")

# =============================================================================
# DATA ACCESS
# =============================================================================

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:9000").rstrip("/")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "30"))
API_TOKEN = os.getenv("API_TOKEN", "").strip()


def validate_configuration() -> dict:
    """
    Validate all configuration and return validated config dict.

    Returns:
        Dictionary with the effective configuration values

    Raises:
        ConfigurationError: If any value is out of range
    """
    errors = []
    config = {
        "step_models": STEP_MODELS,
        "similarity_high": SIMILARITY_HIGH,
        "similarity_moderate": SIMILARITY_MODERATE,
        "schema_cache_ttl_seconds": SCHEMA_CACHE_TTL_SECONDS,
        "redis_url": REDIS_URL or None,
        "schema_docs_url": SCHEMA_DOCS_URL or None,
        "codebase_root": str(CODEBASE_ROOT),
    }

    if not STEP_MODELS["query_planning"]:
        errors.append("QUERY_PLANNING_MODELS is empty; at least one model id is required")

    if not 0.0 <= SIMILARITY_MODERATE <= SIMILARITY_HIGH <= 1.0:
        errors.append(
            f"Similarity bands must satisfy 0 <= moderate <= high <= 1, "
            f"got moderate={SIMILARITY_MODERATE}, high={SIMILARITY_HIGH}"
        )

    if SCHEMA_RESOLVE_CONCURRENCY < 1:
        errors.append(f"SCHEMA_RESOLVE_CONCURRENCY must be >= 1, got {SCHEMA_RESOLVE_CONCURRENCY}")

    if LLM_MIN_DELAY_MS < 0 or LLM_RATE_LIMIT_DELAY_MS < 0:
        errors.append("LLM delays must not be negative")

    if RATE_LIMIT_COOLDOWN_SECONDS > MAX_RATE_LIMIT_COOLDOWN_SECONDS:
        errors.append("RATE_LIMIT_COOLDOWN_SECONDS must not exceed MAX_RATE_LIMIT_COOLDOWN_SECONDS")

    if errors:
        error_msg = "\n\nConfiguration Errors:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigurationError(error_msg)

    return config
