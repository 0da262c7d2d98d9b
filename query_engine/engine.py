"""
Query Engine facade.

Ties the pieces together for callers:

    engine = get_engine()
    answer = await engine.answer("show orders for customer John Smith")

`plan` / `execute` / `record_outcome` are exposed separately for callers
that want to inspect or alter a plan before running it.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from models import (
    ErrorCode,
    ExecutionResult,
    MatchBand,
    PlanMatch,
    PlanSource,
    QueryAnswer,
    QueryPlan,
    StepError,
)
from .orchestrator import PlanExecutor, QueryPlanner, format_for_llm
from .orchestrator.query_planner import FALLBACK_EXPLANATION
from .stores import FailureStore, PlanStore, plan_id_for

logger = logging.getLogger("query_engine.engine")


class QueryEngine:
    """Plans, executes and learns from natural-language data questions."""

    def __init__(
        self,
        registry,
        planner: QueryPlanner,
        executor: PlanExecutor,
        plan_store: Optional[PlanStore] = None,
        failure_store: Optional[FailureStore] = None,
        resolver=None,
        context=None,
        rotator=None,
    ):
        self.registry = registry
        self.planner = planner
        self.executor = executor
        self.plan_store = plan_store
        self.failure_store = failure_store
        self.resolver = resolver
        self.context = context
        self.rotator = rotator
        self._initialized = False

    async def initialize(self) -> None:
        """Load persisted caches. Safe to call more than once."""
        if self._initialized:
            return
        if self.plan_store is not None:
            await self.plan_store.initialize()
        if self.failure_store is not None:
            await self.failure_store.initialize()
        self._initialized = True

    def detect_entities(self, query: str) -> List[str]:
        return self.registry.detect_entities(query)

    # ============================================================
    # Upward interface
    # ============================================================

    async def plan(self, query: str, hinted_entities: Optional[List[str]] = None) -> QueryPlan:
        entities = list(hinted_entities) if hinted_entities else self.detect_entities(query)
        return await self.planner.generate_plan(query, entities)

    async def execute(self, plan: QueryPlan) -> ExecutionResult:
        return await self.executor.execute(self.planner.enrich_plan(plan))

    async def record_outcome(
        self,
        query: str,
        plan: QueryPlan,
        success: bool,
        error_info: Optional[Union[StepError, Dict[str, Any]]] = None,
        cached_plan_id: Optional[str] = None,
    ) -> None:
        """
        Feed an execution outcome back into the plan and failure caches.

        `cached_plan_id` names the stored plan that was reused for this query;
        a success is credited to that record instead of storing a new one.
        """
        await self.initialize()
        if success:
            await self._record_success(query, plan, cached_plan_id)
        else:
            await self._record_failure(query, plan, error_info)

    async def _record_success(self, query: str, plan: QueryPlan, cached_plan_id: Optional[str] = None) -> None:
        if self.plan_store is None:
            return
        plan_id = cached_plan_id or plan_id_for(query)
        if await self.plan_store.get(plan_id) is not None:
            await self.plan_store.record_success(plan_id)
        else:
            plan_id = (await self.plan_store.store(query, plan)).id

        if self.failure_store is None:
            return
        # Only failures of an equivalent query count as resolved
        for match in await self.failure_store.search_similar(query):
            if match.band == MatchBand.HIGH and not match.record.is_resolved:
                await self.failure_store.mark_resolved(match.record.id, plan_id)

    async def _record_failure(self, query: str, plan: QueryPlan, error_info) -> None:
        if self.failure_store is None:
            return
        if isinstance(error_info, StepError):
            error_info = {"code": error_info.code, "message": error_info.message}
        error_info = dict(error_info or {})
        await self.failure_store.record(
            query=query,
            error_code=ErrorCode(error_info.get("code", ErrorCode.UNKNOWN)),
            error_message=error_info.get("message", ""),
            plan=plan,
            failure_step=error_info.get("step", -1),
            context={"entities": plan.entities(), **(error_info.get("context") or {})},
        )

    async def _cached_match(self, query: str) -> Optional[PlanMatch]:
        if self.plan_store is None:
            return None
        try:
            return await self.plan_store.find_best(query)
        except Exception as e:
            logger.warning(f"Plan cache lookup failed, planning from scratch: {e}")
            return None

    async def answer(self, query: str, hinted_entities: Optional[List[str]] = None) -> QueryAnswer:
        """Detect entities, reuse or generate a plan, execute it and learn from the result."""
        await self.initialize()
        entities = list(hinted_entities) if hinted_entities else self.detect_entities(query)
        logger.info(f"Answering: {query[:80]} (entities: {entities or '-'})")

        plan: Optional[QueryPlan] = None
        cached_plan_id: Optional[str] = None
        source = PlanSource.PLANNER
        match = await self._cached_match(query)
        if match is not None and match.can_reuse:
            plan = self.planner.sanitize(match.record.plan)
            cached_plan_id = match.record.id
            source = PlanSource.CACHE
            logger.info(f"Reusing cached plan {match.record.id} ({match.similarity:.2f})")

        if plan is None:
            plan = await self.planner.generate_plan(query, entities)
            if plan.explanation == FALLBACK_EXPLANATION:
                source = PlanSource.FALLBACK

        result = await self.execute(plan)
        error_info = None
        if not result.success and result.error is not None:
            error_info = {"code": result.error.code, "message": result.error.message, "step": result.failed_step}
        analysis = None
        try:
            await self.record_outcome(query, plan, result.success, error_info, cached_plan_id=cached_plan_id)
            if not result.success and self.failure_store is not None and result.error is not None:
                analysis = await self.failure_store.analyze(
                    query, result.error.code, {"entities": entities, "message": result.error.message}
                )
        except Exception as e:
            logger.warning(f"Could not record outcome for '{query[:60]}': {e}")

        return QueryAnswer(
            query=query,
            entities=entities,
            plan=plan,
            plan_source=source,
            result=result,
            summary=format_for_llm(result, plan.explanation),
            failure_analysis=analysis,
        )

    # ============================================================
    # Introspection
    # ============================================================

    async def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {}
        if self.plan_store is not None:
            stats["plans"] = await self.plan_store.stats()
        if self.failure_store is not None:
            stats["failures"] = await self.failure_store.stats()
        if self.resolver is not None:
            stats["schema_cache"] = self.resolver.cache_stats()
        if self.context is not None:
            stats["codebase"] = self.context.stats()
        if self.rotator is not None:
            stats["models"] = self.rotator.status()
        return stats

    async def purge(self, days: int) -> Dict[str, int]:
        """Drop plans unused for `days` days and unresolved failures older than that."""
        removed = {"plans": 0, "failures": 0}
        if self.plan_store is not None:
            removed["plans"] = await self.plan_store.purge_older_than(days)
        if self.failure_store is not None:
            removed["failures"] = await self.failure_store.purge_older_than(days)
        logger.info(f"Purged {removed['plans']} plans and {removed['failures']} failures older than {days} days")
        return removed

    async def close(self) -> None:
        await self.executor.adapters.close()
        if self.resolver is not None and self.resolver.docs_client is not None:
            await self.resolver.docs_client.close()
        for store in (self.plan_store, self.failure_store):
            if store is None:
                continue
            for vectors in (getattr(store, "vectors", None), getattr(store, "documents", None)):
                close = getattr(vectors, "close", None)
                if close is not None:
                    await close()
