"""
Plan Cache.

Successful query -> plan pairs, retrievable by semantic similarity of the
query text. A `high` match is reused verbatim; `moderate` matches become
worked examples in the planner prompt. Also keeps a small index of
documentation snippets for prompt context.
"""

import json
import hashlib
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from configs import EXAMPLE_LIMIT, EXAMPLE_MIN_SIMILARITY, DOC_SNIPPET_LIMIT
from models import MatchBand, PlanMatch, QueryPlan, StoredPlan, utcnow
from .embeddings import Embedder
from .similarity import InMemoryVectorStore, SimilarityBands, SimilarityStore

logger = logging.getLogger("query_engine.stores.plans")


def normalize_query(query: str) -> str:
    return " ".join(query.lower().split())


def plan_id_for(query: str) -> str:
    return "plan_" + hashlib.sha1(normalize_query(query).encode()).hexdigest()[:16]


class PlanStore:
    """Semantic cache of successful plans."""

    def __init__(
        self,
        embedder: Embedder,
        vectors: Optional[SimilarityStore] = None,
        documents: Optional[SimilarityStore] = None,
        bands: Optional[SimilarityBands] = None,
    ):
        self.embedder = embedder
        self.vectors = vectors if vectors is not None else InMemoryVectorStore()
        self.documents = documents if documents is not None else InMemoryVectorStore()
        self.bands = bands or SimilarityBands()

    async def initialize(self) -> None:
        await self.vectors.initialize()
        await self.documents.initialize()

    # ============================================================
    # Plans
    # ============================================================

    async def store(self, query: str, plan: QueryPlan) -> StoredPlan:
        """Store a plan; storing the same query again updates its record."""
        plan_id = plan_id_for(query)
        now = utcnow()
        existing = await self.get(plan_id)
        if existing is not None:
            record = existing.model_copy(update={"plan": plan, "last_used": now})
        else:
            record = StoredPlan(id=plan_id, query=query, plan=plan, created_at=now, last_used=now)

        vector = self.embedder.embed(query)
        await self.vectors.upsert(plan_id, vector, {"record": record.model_dump(mode="json")})
        logger.info(f"Stored plan {plan_id} for query: {query[:60]}")
        return record

    async def store_many(self, items: List[Tuple[str, QueryPlan]]) -> List[StoredPlan]:
        """Bulk store (query, plan) pairs, e.g. seed examples."""
        if not items:
            return []
        vectors = self.embedder.embed_many([q for q, _ in items])
        now = utcnow()
        records = []
        for (query, plan), vector in zip(items, vectors):
            record = StoredPlan(id=plan_id_for(query), query=query, plan=plan, created_at=now, last_used=now)
            await self.vectors.upsert(record.id, vector, {"record": record.model_dump(mode="json")})
            records.append(record)
        logger.info(f"Stored {len(records)} plans")
        return records

    async def get(self, plan_id: str) -> Optional[StoredPlan]:
        item = await self.vectors.get(plan_id)
        if item is None:
            return None
        return StoredPlan.model_validate(item.metadata["record"])

    async def delete(self, plan_id: str) -> bool:
        return await self.vectors.delete(plan_id)

    async def search(self, query: str, top_k: int = 5, min_similarity: float = 0.0) -> List[PlanMatch]:
        vector = self.embedder.embed(query)
        matches = await self.vectors.query(vector, top_k=top_k)
        results = []
        for match in matches:
            if match.score < min_similarity:
                continue
            results.append(PlanMatch(
                record=StoredPlan.model_validate(match.metadata["record"]),
                similarity=match.score,
                band=self.bands.classify(match.score),
            ))
        return results

    async def find_best(self, query: str) -> Optional[PlanMatch]:
        """Top match, only when it is at least a moderate one."""
        matches = await self.search(query, top_k=1)
        if not matches or matches[0].band == MatchBand.LOW:
            return None
        best = matches[0]
        logger.info(f"Plan cache {best.band.value} match ({best.similarity:.2f}): {best.record.query[:60]}")
        return best

    async def record_success(self, plan_id: str) -> Optional[StoredPlan]:
        item = await self.vectors.get(plan_id)
        if item is None:
            logger.warning(f"record_success: no plan {plan_id}")
            return None
        record = StoredPlan.model_validate(item.metadata["record"])
        record.success_count += 1
        record.last_used = utcnow()
        await self.vectors.upsert(plan_id, item.vector, {"record": record.model_dump(mode="json")})
        return record

    async def similar_examples(
        self,
        query: str,
        limit: int = EXAMPLE_LIMIT,
        min_similarity: float = EXAMPLE_MIN_SIMILARITY,
    ) -> str:
        """Prompt section with past successful plans for similar queries."""
        matches = await self.search(query, top_k=limit, min_similarity=min_similarity)
        if not matches:
            return ""

        lines = ["## Learned Examples (from successful past queries)", ""]
        for match in matches:
            record = match.record
            lines.append(f'### Example: "{record.query}" (executed successfully {record.success_count} times)')
            lines.append("```json")
            lines.append(json.dumps(record.plan.to_prompt_dict(), indent=2))
            lines.append("```")
            lines.append("")
        return "\n".join(lines)

    # ============================================================
    # Documentation snippets
    # ============================================================

    async def store_document(self, name: str, content: str) -> None:
        vector = self.embedder.embed(f"{name}\n{content}")
        await self.documents.upsert(f"doc_{name}", vector, {"name": name, "content": content})

    async def search_documents(self, query: str, limit: int = DOC_SNIPPET_LIMIT) -> List[Dict[str, Any]]:
        if len(await self.documents.all()) == 0:
            return []
        vector = self.embedder.embed(query)
        matches = await self.documents.query(vector, top_k=limit)
        return [
            {"name": m.metadata["name"], "content": m.metadata["content"], "similarity": m.score}
            for m in matches
            if self.bands.classify(m.score) != MatchBand.LOW
        ]

    # ============================================================
    # Maintenance
    # ============================================================

    async def purge_older_than(self, days: int) -> int:
        """Drop plans not used in `days` days."""
        cutoff = utcnow() - timedelta(days=days)
        purged = 0
        for item in await self.vectors.all():
            record = StoredPlan.model_validate(item.metadata["record"])
            if record.last_used < cutoff:
                await self.vectors.delete(item.id)
                purged += 1
        if purged:
            logger.info(f"Purged {purged} plans unused for {days} days")
        return purged

    async def stats(self) -> Dict[str, Any]:
        records = [StoredPlan.model_validate(i.metadata["record"]) for i in await self.vectors.all()]
        return {
            "plans": len(records),
            "total_successes": sum(r.success_count for r in records),
            "documents": len(await self.documents.all()),
        }

    async def clear(self) -> None:
        await self.vectors.clear()
        await self.documents.clear()
