"""
Query Planner.

PURPOSE:
========
Turns a natural-language question into a QueryPlan: an ordered list of
retrieval steps where later steps may consume values extracted by earlier
ones. "Orders for customer John Smith" becomes:

    1. list customer, q="John Smith", extract id
    2. list order, customer_id="$1"

PIPELINE:
=========
1. Gather context concurrently (schemas, mined codebase docs, learned
   examples, documentation snippets); each piece is optional
2. Build the prompt
3. Ask models in rotation until one returns a valid plan
4. Sanitize the plan (relations, operations, pagination)
5. If every model fails, fall back to a single-step search plan

The planner never raises; the worst case is the fallback plan.
"""

import re
import asyncio
import logging
from typing import Any, Dict, List, Optional

from configs import (
    DEFAULT_FALLBACK_ENTITY,
    DOC_SNIPPET_MAX_CHARS,
    PAGINATION_KEYS,
    VALID_OPERATIONS,
)
from models import (
    EnrichedPlan,
    EnrichedStep,
    EntityCategory,
    LiteralValue,
    Operation,
    PlanStep,
    QueryPlan,
    StepValidation,
)
from .json_utils import parse_plan_response
from .llm_client import AllModelsFailedError, CompletionClient
from .model_rotator import ModelRotator

logger = logging.getLogger("query_engine.planner")

STEP_KIND = "query_planning"
FALLBACK_EXPLANATION = "Fallback: Direct query with search term"
FALLBACK_RELATION_LIMIT = 3
SEARCH_TERM_PATTERNS = [
    re.compile(r"for\s+(?:customer|partner|person|design)?\s*([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)", re.IGNORECASE),
    re.compile(r"[\"']([^\"']+)[\"']"),
]


# ============================================================
# PROMPT
# ============================================================

PLANNER_PROMPT_TEMPLATE = """You are a query planner for a commerce and production-management backend.
Turn the user's question into a structured, step-by-step retrieval plan.

## RULES

1. **Operations**: use only "list", "retrieve" or "listAndCount"
   - There is no "count" operation; use "listAndCount" when a total is needed

2. **Relations**: use only relations listed for the entity below
   - Never invent relation names; when unsure, use an empty list []

3. **References**: a later step can use values from an earlier one
   - "$1" is the value step 1 extracted (its "extract" field)
   - "$1.id" is the id of step 1's first result

4. **No pagination in filters**: never put limit, take, skip, offset or page
   in "filters". Paging is applied by the executor.

5. **Filters** are entity field values only
   - "q" for free-text search
   - exact fields such as "status", "id", "name", "email"
   - foreign keys from earlier steps, e.g. "customer_id": "$1"

## Available Entities

{entity_schema}

{learned_examples}

## Patterns

### Pattern 1: Simple list
Query: "Show me all designs"
```json
{{"steps": [{{"step": 1, "entity": "design", "operation": "list", "filters": {{}}, "relations": ["specifications", "colors"]}}], "finalEntity": "design", "explanation": "List designs with valid relations"}}
```

### Pattern 2: Search by name
Query: "Find person named Jane Doe"
```json
{{"steps": [{{"step": 1, "entity": "person", "operation": "list", "filters": {{"q": "Jane Doe"}}, "relations": []}}], "finalEntity": "person", "explanation": "Free-text search on persons"}}
```

### Pattern 3: Two-step resolution
Query: "Orders for customer Jane Doe"
```json
{{"steps": [{{"step": 1, "entity": "customer", "operation": "list", "filters": {{"q": "Jane Doe"}}, "extract": "id"}}, {{"step": 2, "entity": "order", "operation": "list", "filters": {{"customer_id": "$1"}}, "relations": ["items"]}}], "finalEntity": "order", "explanation": "1. Find the customer. 2. List their orders by customer_id"}}
```

### Pattern 4: Filter by status, not by limit
Query: "List 5 active partners"
```json
{{"steps": [{{"step": 1, "entity": "partner", "operation": "list", "filters": {{"status": "active"}}, "relations": []}}], "finalEntity": "partner", "explanation": "Status filter; paging is automatic"}}
```

### Pattern 5: Linked module data
Query: "List raw materials with their inventory items"
```json
{{"steps": [{{"step": 1, "entity": "raw_material", "operation": "list", "filters": {{}}, "relations": [], "linkedFields": ["inventory_item.*"]}}], "finalEntity": "raw_material", "explanation": "Fetch with linked inventory data via graph traversal"}}
```

{additional_context}

## Output Format

Reply with ONLY a JSON object:
{{"steps": [...], "finalEntity": "entity_name", "explanation": "Brief explanation"}}

Now generate a query plan for:
{query}"""


class QueryPlanner:
    """LLM-backed query planner with model rotation and a deterministic fallback."""

    def __init__(
        self,
        registry,
        classifier,
        rotator: ModelRotator,
        client: CompletionClient,
        resolver=None,
        context=None,
        plan_store=None,
    ):
        self.registry = registry
        self.classifier = classifier
        self.rotator = rotator
        self.client = client
        self.resolver = resolver
        self.context = context
        self.plan_store = plan_store

    # ============================================================
    # Context gathering
    # ============================================================

    @staticmethod
    async def _optional(label: str, coro, default):
        try:
            return await coro
        except Exception as e:
            logger.warning(f"Skipping {label}: {e}")
            return default

    @staticmethod
    async def _nothing(default):
        return default

    async def gather_context(self, query: str, entities: List[str]) -> Dict[str, Any]:
        """Schemas, mined docs, learned examples and doc snippets, fetched concurrently."""
        schemas, mined, examples, documents = await asyncio.gather(
            self._optional("schema resolution", self.resolver.resolve_many(entities), {})
            if self.resolver and entities else self._nothing({}),
            self._optional("codebase context", self.context.build_context(entities), "")
            if self.context and entities else self._nothing(""),
            self._optional("learned examples", self.plan_store.similar_examples(query), "")
            if self.plan_store else self._nothing(""),
            self._optional("documentation snippets", self.plan_store.search_documents(query), [])
            if self.plan_store else self._nothing([]),
        )
        return {"schemas": schemas, "mined": mined, "examples": examples, "documents": documents}

    def build_prompt(self, query: str, gathered: Dict[str, Any]) -> str:
        entity_schema = self.registry.describe_for_llm()
        if gathered.get("schemas") and self.resolver is not None:
            dynamic = self.resolver.describe_for_llm(gathered["schemas"])
            if dynamic:
                entity_schema += "\n\n" + dynamic

        extra: List[str] = []
        if gathered.get("mined"):
            extra.append(gathered["mined"])
        for doc in gathered.get("documents") or []:
            extra.append(f"## Documentation: {doc['name']}\n{doc['content'][:DOC_SNIPPET_MAX_CHARS]}")
        additional = ""
        if extra:
            additional = "## Additional Context\n\n" + "\n\n".join(extra)

        return PLANNER_PROMPT_TEMPLATE.format(
            entity_schema=entity_schema,
            learned_examples=gathered.get("examples") or "",
            additional_context=additional,
            query=query,
        )

    # ============================================================
    # Generation
    # ============================================================

    async def generate_plan(
        self,
        query: str,
        detected_entities: Optional[List[str]] = None,
        request_id: Optional[str] = None,
    ) -> QueryPlan:
        """Plan for a question; falls back to a single-step search when every model fails."""
        entities = list(detected_entities or [])
        try:
            gathered = await self.gather_context(query, entities)
            if gathered["schemas"]:
                self.classifier.remember(gathered["schemas"])
            prompt = self.build_prompt(query, gathered)

            async def _attempt(model_id: str) -> QueryPlan:
                reply = await self.client.complete(model_id, prompt)
                return self.sanitize(parse_plan_response(reply))

            plan, model = await self.rotator.run(STEP_KIND, request_id or self.rotator.new_request_id(), _attempt)
            logger.info(f"Generated {len(plan.steps)}-step plan with {model}: {plan.explanation[:80]}")
            return plan
        except AllModelsFailedError as e:
            logger.warning(f"{e}; using fallback plan")
        except Exception as e:
            logger.exception(f"Plan generation failed unexpectedly, using fallback plan: {e}")
        return self.fallback_plan(query, entities)

    def sanitize(self, plan: QueryPlan) -> QueryPlan:
        """Enforce relation validity, the operation set and pagination-free filters."""
        steps = []
        for step in plan.steps:
            relations = self.classifier.validate_relations(step.entity, step.relations).valid
            operation = step.operation
            if operation not in VALID_OPERATIONS:
                logger.warning(f"Step {step.step}: unsupported operation '{operation}', using list")
                operation = Operation.LIST.value
            filters = {k: v for k, v in step.filters.items() if k not in PAGINATION_KEYS}
            if len(filters) != len(step.filters):
                logger.warning(f"Step {step.step}: removed pagination keys from filters")
            steps.append(step.model_copy(update={"relations": relations, "operation": operation, "filters": filters}))
        return plan.model_copy(update={"steps": steps})

    def fallback_plan(self, query: str, detected_entities: Optional[List[str]] = None) -> QueryPlan:
        """Single-step search on the first hinted entity."""
        entity = (detected_entities or [None])[0] or DEFAULT_FALLBACK_ENTITY

        search_term = None
        for pattern in SEARCH_TERM_PATTERNS:
            match = pattern.search(query)
            if match:
                search_term = match.group(1).strip()
                break

        filters = {"q": LiteralValue(value=search_term)} if search_term else {}
        relations = self.registry.relations_for(entity)[:FALLBACK_RELATION_LIMIT]
        return QueryPlan(
            steps=[PlanStep(step=1, entity=entity, operation=Operation.LIST.value, filters=filters, relations=relations)],
            final_entity=entity,
            explanation=FALLBACK_EXPLANATION,
        )

    # ============================================================
    # Enrichment
    # ============================================================

    def enrich_plan(self, plan: QueryPlan) -> EnrichedPlan:
        """Attach classification, response shape and validation criteria to every step."""
        steps: List[EnrichedStep] = []
        core, custom = [], []
        for step in plan.steps:
            linked = [f.split(".")[0] for f in step.linked_fields]
            classification = self.classifier.classify(step.entity, step.relations + linked)
            relations = self.classifier.validate_relations(step.entity, step.relations).valid
            data = step.model_dump()
            data["relations"] = relations
            steps.append(EnrichedStep(
                **data,
                classification=classification,
                response_expectation=self.classifier.response_expectation(
                    step.entity, classification.is_core, step.operation
                ),
                validation=StepValidation(
                    require_non_empty=bool(step.extract),
                    require_fields=["id"],
                    extract_field=step.extract,
                ),
                description=self.classifier.describe_step(step, classification),
                depends_on=self.classifier.find_dependencies(step.raw_filters()),
            ))
            logger.debug(f"Step {step.step}: {self.classifier.summary(classification)}")

            if classification.category == EntityCategory.UNKNOWN:
                continue
            bucket = core if classification.is_core else custom
            if step.entity not in bucket:
                bucket.append(step.entity)

        return EnrichedPlan(
            steps=steps,
            final_entity=plan.final_entity,
            explanation=plan.explanation,
            action=plan.action,
            core_entities=core,
            custom_entities=custom,
            source=plan,
        )


def plan_requires_resolution(plan: QueryPlan) -> bool:
    return len(plan.steps) > 1


def plan_entities(plan: QueryPlan) -> List[str]:
    return plan.entities()
