"""Plan and failure caches over pluggable embedding and similarity backends."""
from .embeddings import Embedder, SentenceTransformerEmbedder, cosine_similarity
from .similarity import (
    SimilarityBands,
    SimilarityStore,
    InMemoryVectorStore,
    RedisVectorStore,
    VectorMatch,
    VectorRecord,
)
from .plan_store import PlanStore, plan_id_for, normalize_query
from .failure_store import FailureStore, suggestion_for

__all__ = [
    "Embedder",
    "SentenceTransformerEmbedder",
    "cosine_similarity",
    "SimilarityBands",
    "SimilarityStore",
    "InMemoryVectorStore",
    "RedisVectorStore",
    "VectorMatch",
    "VectorRecord",
    "PlanStore",
    "plan_id_for",
    "normalize_query",
    "FailureStore",
    "suggestion_for",
]
