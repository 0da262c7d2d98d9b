"""
Similarity stores: vectors plus JSON metadata, ranked by cosine similarity.

`InMemoryVectorStore` keeps everything in process. `RedisVectorStore` keeps
the same in-memory index but writes every change through to a Redis hash
and reloads that hash on `initialize()`, so cached plans and failures
survive restarts.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np
import redis.asyncio as redis
from redis.exceptions import RedisError

from configs import SIMILARITY_HIGH, SIMILARITY_MODERATE
from models import MatchBand
from .embeddings import cosine_similarity

logger = logging.getLogger("query_engine.stores.similarity")


@dataclass
class SimilarityBands:
    """Score thresholds; tuned for MiniLM, whose scores run lower than hosted embeddings."""
    high: float = SIMILARITY_HIGH
    moderate: float = SIMILARITY_MODERATE

    def classify(self, score: float) -> MatchBand:
        if score >= self.high:
            return MatchBand.HIGH
        if score >= self.moderate:
            return MatchBand.MODERATE
        return MatchBand.LOW


@dataclass
class VectorRecord:
    id: str
    vector: np.ndarray
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    id: str
    score: float
    metadata: Dict[str, Any]


def _matches_filter(metadata: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(metadata.get(k) == v for k, v in where.items())


class SimilarityStore(ABC):
    """Vector index with metadata, queried by cosine similarity."""

    async def initialize(self) -> None:
        return None

    @abstractmethod
    async def upsert(self, id: str, vector, metadata: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def query(self, vector, top_k: int = 5, where: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        ...

    @abstractmethod
    async def get(self, id: str) -> Optional[VectorRecord]:
        ...

    @abstractmethod
    async def delete(self, id: str) -> bool:
        ...

    @abstractmethod
    async def all(self) -> List[VectorRecord]:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...


class InMemoryVectorStore(SimilarityStore):

    def __init__(self):
        self._records: Dict[str, VectorRecord] = {}

    async def upsert(self, id: str, vector, metadata: Dict[str, Any]) -> None:
        self._records[id] = VectorRecord(id=id, vector=np.asarray(vector, dtype=np.float32), metadata=metadata)

    async def query(self, vector, top_k: int = 5, where: Optional[Dict[str, Any]] = None) -> List[VectorMatch]:
        scored = [
            VectorMatch(id=r.id, score=cosine_similarity(vector, r.vector), metadata=r.metadata)
            for r in self._records.values()
            if _matches_filter(r.metadata, where)
        ]
        scored.sort(key=lambda m: m.score, reverse=True)
        return scored[:top_k]

    async def get(self, id: str) -> Optional[VectorRecord]:
        return self._records.get(id)

    async def delete(self, id: str) -> bool:
        return self._records.pop(id, None) is not None

    async def all(self) -> List[VectorRecord]:
        return list(self._records.values())

    async def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)


class RedisVectorStore(InMemoryVectorStore):
    """In-memory index with write-through persistence to one Redis hash."""

    def __init__(self, redis_url: str = "", namespace: str = "query_engine:vectors", client=None):
        super().__init__()
        self.redis_url = redis_url
        self.namespace = namespace
        self._client = client
        self._initialized = False

    async def initialize(self) -> None:
        """Connect and load every persisted record into memory."""
        if self._initialized:
            return
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)

        try:
            await self._client.ping()
            raw = await self._client.hgetall(self.namespace)
        except (RedisError, OSError) as e:
            logger.warning(f"Redis unavailable for {self.namespace}, continuing in memory: {e}")
            self._client = None
            self._initialized = True
            return

        for id, payload in raw.items():
            try:
                data = json.loads(payload)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping corrupt record {id} in {self.namespace}: {e}")
                continue
            await super().upsert(id, data["vector"], data.get("metadata", {}))

        self._initialized = True
        logger.info(f"Loaded {len(raw)} records from Redis hash {self.namespace}")

    async def upsert(self, id: str, vector, metadata: Dict[str, Any]) -> None:
        await super().upsert(id, vector, metadata)
        if self._client is None:
            return
        payload = json.dumps({"vector": np.asarray(vector, dtype=float).tolist(), "metadata": metadata}, default=str)
        try:
            await self._client.hset(self.namespace, id, payload)
        except (RedisError, OSError) as e:
            logger.warning(f"Redis write failed for {id}: {e}")

    async def delete(self, id: str) -> bool:
        removed = await super().delete(id)
        if self._client is not None:
            try:
                await self._client.hdel(self.namespace, id)
            except (RedisError, OSError) as e:
                logger.warning(f"Redis delete failed for {id}: {e}")
        return removed

    async def clear(self) -> None:
        await super().clear()
        if self._client is not None:
            try:
                await self._client.delete(self.namespace)
            except (RedisError, OSError) as e:
                logger.warning(f"Redis clear failed for {self.namespace}: {e}")

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
