"""
Failure Cache.

Remembers queries that failed, with their error code and a canned
suggestion, so later similar queries can be warned about, and so a plan
that later succeeds can be linked back as the resolution.
"""

import uuid
import logging
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, List, Optional

from models import (
    ErrorCode,
    FailedQueryRecord,
    FailureAnalysis,
    FailureMatch,
    MatchBand,
    QueryPlan,
    utcnow,
)
from .embeddings import Embedder
from .similarity import InMemoryVectorStore, SimilarityBands, SimilarityStore

logger = logging.getLogger("query_engine.stores.failures")


SUGGESTIONS: Dict[ErrorCode, str] = {
    ErrorCode.NO_RESULTS: "The query returned no data. Try broadening your search criteria or checking if the entity exists.",
    ErrorCode.ENTITY_NOT_FOUND: "Entity not recognized: {entities}. Verify the entity name matches available modules.",
    ErrorCode.API_ERROR: "API request failed. Check endpoint availability and request parameters.",
    ErrorCode.EXTRACTION_FAILED: "Failed to extract information from the response. The data format may have changed.",
    ErrorCode.PLAN_GENERATION_FAILED: "Could not generate a query plan. Try rephrasing the question with more specific terms.",
    ErrorCode.PERMISSION_DENIED: "Access denied. Check authentication and authorization settings.",
    ErrorCode.TIMEOUT: "Request timed out. Try a more specific query or reduce the data scope.",
    ErrorCode.VALIDATION_ERROR: "Validation failed: {message}. Check the input parameters.",
}
DEFAULT_SUGGESTION = "An unexpected error occurred. Please try rephrasing your question."


def suggestion_for(code: ErrorCode, context: Optional[Dict[str, Any]] = None) -> str:
    context = context or {}
    template = SUGGESTIONS.get(ErrorCode(code), DEFAULT_SUGGESTION)
    entities = context.get("entities") or []
    return template.format(
        entities=", ".join(entities) if entities else "unknown",
        message=context.get("message", "invalid input"),
    )


class FailureStore:
    """Semantic index of failed queries."""

    def __init__(
        self,
        embedder: Embedder,
        vectors: Optional[SimilarityStore] = None,
        bands: Optional[SimilarityBands] = None,
    ):
        self.embedder = embedder
        self.vectors = vectors if vectors is not None else InMemoryVectorStore()
        self.bands = bands or SimilarityBands()

    async def initialize(self) -> None:
        await self.vectors.initialize()

    async def _save(self, record: FailedQueryRecord, vector=None) -> None:
        if vector is None:
            vector = self.embedder.embed(record.query)
        await self.vectors.upsert(record.id, vector, {
            "record": record.model_dump(mode="json"),
            "error_code": record.error_code.value,
            "resolved": record.is_resolved,
        })

    async def record(
        self,
        query: str,
        error_code: ErrorCode,
        error_message: str,
        plan: Optional[QueryPlan] = None,
        failure_step: int = -1,
        context: Optional[Dict[str, Any]] = None,
    ) -> FailedQueryRecord:
        context = dict(context or {})
        context.setdefault("message", error_message)
        record = FailedQueryRecord(
            id=f"fail_{uuid.uuid4().hex[:16]}",
            query=query,
            plan=plan,
            failure_step=failure_step,
            error_code=error_code,
            error_message=error_message,
            context=context,
            suggested_fix=suggestion_for(error_code, context),
        )
        await self._save(record)
        logger.info(f"Recorded failure {record.id} ({error_code.value}) for query: {query[:60]}")
        return record

    async def get(self, failure_id: str) -> Optional[FailedQueryRecord]:
        item = await self.vectors.get(failure_id)
        if item is None:
            return None
        return FailedQueryRecord.model_validate(item.metadata["record"])

    async def search_similar(
        self,
        query: str,
        top_k: int = 5,
        error_code: Optional[ErrorCode] = None,
    ) -> List[FailureMatch]:
        """Similar past failures in the moderate band or better."""
        where = {"error_code": ErrorCode(error_code).value} if error_code else None
        matches = await self.vectors.query(self.embedder.embed(query), top_k=top_k, where=where)
        results = []
        for match in matches:
            band = self.bands.classify(match.score)
            if band == MatchBand.LOW:
                continue
            results.append(FailureMatch(
                record=FailedQueryRecord.model_validate(match.metadata["record"]),
                similarity=match.score,
                band=band,
            ))
        return results

    async def find_resolution(self, query: str) -> Optional[FailedQueryRecord]:
        """A similar failure that a later successful plan resolved."""
        for match in await self.search_similar(query):
            if match.record.is_resolved:
                return match.record
        return None

    async def mark_resolved(self, failure_id: str, resolving_plan_id: str) -> bool:
        item = await self.vectors.get(failure_id)
        if item is None:
            return False
        record = FailedQueryRecord.model_validate(item.metadata["record"])
        record.resolved_by = resolving_plan_id
        await self._save(record, vector=item.vector)
        logger.info(f"Failure {failure_id} resolved by {resolving_plan_id}")
        return True

    async def analyze(
        self,
        query: str,
        error_code: ErrorCode,
        context: Optional[Dict[str, Any]] = None,
    ) -> FailureAnalysis:
        similar = await self.search_similar(query)
        resolved = [m for m in similar if m.record.is_resolved]
        suggestion = suggestion_for(error_code, context)
        if resolved:
            suggestion += f' A similar query ("{resolved[0].record.query}") was resolved by plan {resolved[0].record.resolved_by}.'
        return FailureAnalysis(
            suggestion=suggestion,
            similar_failures=similar,
            resolution_found=bool(resolved),
        )

    async def purge_older_than(self, days: int) -> int:
        """Drop unresolved failures older than `days` days; resolved ones are kept."""
        cutoff = utcnow() - timedelta(days=days)
        purged = 0
        for item in await self.vectors.all():
            record = FailedQueryRecord.model_validate(item.metadata["record"])
            if not record.is_resolved and record.created_at < cutoff:
                await self.vectors.delete(item.id)
                purged += 1
        if purged:
            logger.info(f"Purged {purged} unresolved failures older than {days} days")
        return purged

    async def stats(self) -> Dict[str, Any]:
        records = [FailedQueryRecord.model_validate(i.metadata["record"]) for i in await self.vectors.all()]
        resolved = sum(1 for r in records if r.is_resolved)
        return {
            "failures": len(records),
            "resolved": resolved,
            "unresolved": len(records) - resolved,
            "by_code": dict(Counter(r.error_code.value for r in records)),
        }

    async def clear(self) -> None:
        await self.vectors.clear()
