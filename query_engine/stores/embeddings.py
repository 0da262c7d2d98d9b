import logging
from abc import ABC, abstractmethod
from typing import List

import numpy as np

from configs import EMBEDDING_MODEL

logger = logging.getLogger("query_engine.stores.embeddings")


class Embedder(ABC):
    """Turns text into a fixed-size vector."""

    @abstractmethod
    def embed(self, text: str) -> np.ndarray:
        ...

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        return [self.embed(t) for t in texts]


class SentenceTransformerEmbedder(Embedder):
    """
    Local embeddings with sentence-transformers.
    The model is loaded lazily on first use (not at import time), which keeps
    PyTorch out of processes that never touch the caches.
    """

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        self.model_name = model_name
        self._model = None

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer
            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
            logger.info("Embedding model loaded successfully.")
        return self._model

    def embed(self, text: str) -> np.ndarray:
        vector = self._get_model().encode(text, normalize_embeddings=True)
        return np.asarray(vector, dtype=np.float32)

    def embed_many(self, texts: List[str]) -> List[np.ndarray]:
        if not texts:
            return []
        vectors = self._get_model().encode(texts, normalize_embeddings=True)
        return [np.asarray(v, dtype=np.float32) for v in vectors]


def cosine_similarity(a, b) -> float:
    """Calculate cosine similarity between two vectors."""
    a = np.asarray(a, dtype=np.float32)
    b = np.asarray(b, dtype=np.float32)
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))
