"""
Shared dependencies for the query engine.

Provides:
- Structured logging
- Singleton engine (built once from configuration, reused per request)
"""

import logging
from typing import Optional

from configs import (
    API_BASE_URL,
    API_TIMEOUT_SECONDS,
    API_TOKEN,
    DEFAULT_PAGE_SIZE,
    EMBEDDING_MODEL,
    LOG_LEVEL,
    REDIS_URL,
    SCHEMA_DOCS_TIMEOUT_SECONDS,
    SCHEMA_DOCS_URL,
)
from .adapters import create_default_adapters
from .classifier import EntityClassifier
from .engine import QueryEngine
from .miners import CodebaseContext
from .orchestrator import LiteLLMCompletionClient, ModelRotator, PlanExecutor, QueryPlanner
from .schema import DocumentationClient, DynamicSchemaResolver, EntityRegistry
from .stores import (
    FailureStore,
    InMemoryVectorStore,
    PlanStore,
    RedisVectorStore,
    SentenceTransformerEmbedder,
)


# =============================================================================
# STRUCTURED LOGGING
# =============================================================================

def setup_logging() -> logging.Logger:
    """Configure structured logging for the engine."""
    logger = logging.getLogger("query_engine")

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return logger


logger = setup_logging()


# =============================================================================
# WIRING
# =============================================================================

def _vector_store(namespace: str):
    if REDIS_URL:
        return RedisVectorStore(REDIS_URL, namespace=namespace)
    return InMemoryVectorStore()


def build_engine(registry: Optional[EntityRegistry] = None) -> QueryEngine:
    """Assemble an engine from configuration."""
    registry = registry or EntityRegistry.default()
    context = CodebaseContext()
    resolver = DynamicSchemaResolver(
        registry,
        docs_client=DocumentationClient(SCHEMA_DOCS_URL, timeout=SCHEMA_DOCS_TIMEOUT_SECONDS),
        context=context,
    )
    classifier = EntityClassifier(registry, link_miner=context.links)

    embedder = SentenceTransformerEmbedder(EMBEDDING_MODEL)
    plan_store = PlanStore(
        embedder,
        vectors=_vector_store("query_engine:plans"),
        documents=_vector_store("query_engine:docs"),
    )
    failure_store = FailureStore(embedder, vectors=_vector_store("query_engine:failures"))

    rotator = ModelRotator()
    planner = QueryPlanner(
        registry,
        classifier,
        rotator,
        LiteLLMCompletionClient(),
        resolver=resolver,
        context=context,
        plan_store=plan_store,
    )
    executor = PlanExecutor(
        create_default_adapters(
            API_BASE_URL,
            token=API_TOKEN,
            timeout=API_TIMEOUT_SECONDS,
            api_paths=registry.api_paths(),
        ),
        page_size=DEFAULT_PAGE_SIZE,
    )
    return QueryEngine(
        registry,
        planner,
        executor,
        plan_store=plan_store,
        failure_store=failure_store,
        resolver=resolver,
        context=context,
        rotator=rotator,
    )


# =============================================================================
# SINGLETON ENGINE
# =============================================================================

_engine: Optional[QueryEngine] = None


def get_engine() -> QueryEngine:
    """
    Get or create the singleton engine instance.

    Miners, caches and model cooldowns live on the engine, so it is built
    once and shared across requests.
    """
    global _engine
    if _engine is None:
        logger.info("Creating singleton QueryEngine")
        _engine = build_engine()
    return _engine


def reset_engine() -> None:
    """Reset the engine (useful for testing)."""
    global _engine
    _engine = None
