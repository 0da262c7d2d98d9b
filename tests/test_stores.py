"""Tests for the plan cache, the failure cache and the similarity backends."""

import json

import numpy as np
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from models import ErrorCode, MatchBand, PlanStep, QueryPlan, StepReference
from query_engine.stores import (
    FailureStore,
    InMemoryVectorStore,
    PlanStore,
    RedisVectorStore,
    SimilarityBands,
    cosine_similarity,
    normalize_query,
    plan_id_for,
    suggestion_for,
)

BANDS = SimilarityBands(high=0.9, moderate=0.5)


def _customer_orders_plan(name="John"):
    return QueryPlan(
        steps=[
            PlanStep(step=1, entity="customer", filters={"q": name}, extract="id"),
            PlanStep(step=2, entity="order", filters={"customer_id": "$1.id"}, relations=["items"]),
        ],
        final_entity="order",
        explanation="Find the customer, then their orders",
    )


class FakeRedis:
    """Just the hash commands the vector store uses."""

    def __init__(self, fail_ping=False):
        self.hashes = {}
        self.fail_ping = fail_ping
        self.closed = False

    async def ping(self):
        if self.fail_ping:
            raise RedisConnectionError("connection refused")
        return True

    async def hgetall(self, name):
        return dict(self.hashes.get(name, {}))

    async def hset(self, name, key, value):
        self.hashes.setdefault(name, {})[key] = value
        return 1

    async def hdel(self, name, key):
        return 1 if self.hashes.get(name, {}).pop(key, None) is not None else 0

    async def delete(self, name):
        return 1 if self.hashes.pop(name, None) is not None else 0

    async def aclose(self):
        self.closed = True


# ============================================================
# Similarity helpers
# ============================================================

def test_similarity_bands():
    assert BANDS.classify(0.95) == MatchBand.HIGH
    assert BANDS.classify(0.9) == MatchBand.HIGH
    assert BANDS.classify(0.6) == MatchBand.MODERATE
    assert BANDS.classify(0.2) == MatchBand.LOW


def test_cosine_similarity_handles_zero_vectors():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0


def test_plan_ids_ignore_case_and_spacing():
    assert normalize_query("  Orders  for John ") == "orders for john"
    assert plan_id_for("Orders for John") == plan_id_for("orders   for john")
    assert plan_id_for("orders for john").startswith("plan_")


@pytest.mark.asyncio
async def test_in_memory_store_filters_and_ranks():
    store = InMemoryVectorStore()
    await store.upsert("a", [1.0, 0.0], {"kind": "x"})
    await store.upsert("b", [0.7, 0.7], {"kind": "y"})

    matches = await store.query([1.0, 0.0], top_k=2)
    assert [m.id for m in matches] == ["a", "b"]
    assert [m.id for m in await store.query([1.0, 0.0], where={"kind": "y"})] == ["b"]

    assert await store.delete("a") is True
    assert await store.delete("a") is False
    assert len(store) == 1


# ============================================================
# Plan store
# ============================================================

@pytest.mark.asyncio
async def test_plan_store_exact_match_is_reusable(embedder):
    store = PlanStore(embedder, bands=BANDS)
    await store.store("orders for customer John Smith", _customer_orders_plan())

    best = await store.find_best("Orders for customer John Smith")
    assert best is not None
    assert best.band == MatchBand.HIGH
    assert best.can_reuse
    # References survive the JSON round trip
    assert best.record.plan.steps[1].filters["customer_id"] == StepReference(step_index=1, field="id")


@pytest.mark.asyncio
async def test_plan_store_similar_and_unrelated_queries(embedder):
    store = PlanStore(embedder, bands=BANDS)
    await store.store("orders for customer john smith", _customer_orders_plan())

    moderate = await store.find_best("orders for customer jane doe")
    assert moderate is not None
    assert moderate.band == MatchBand.MODERATE
    assert moderate.needs_adaptation

    assert await store.find_best("list all fabrics") is None


@pytest.mark.asyncio
async def test_plan_store_upserts_by_query(embedder):
    store = PlanStore(embedder, bands=BANDS)
    first = await store.store("orders for John", _customer_orders_plan())
    second = await store.store("ORDERS for  john", _customer_orders_plan("Johnny"))

    assert first.id == second.id
    assert second.created_at == first.created_at
    assert (await store.get(first.id)).plan.steps[0].filters["q"].value == "Johnny"
    assert (await store.stats())["plans"] == 1


@pytest.mark.asyncio
async def test_record_success_counts_reuse(embedder):
    store = PlanStore(embedder, bands=BANDS)
    record = await store.store("orders for John", _customer_orders_plan())

    updated = await store.record_success(record.id)
    assert updated.success_count == 2
    assert updated.last_used >= record.last_used
    assert await store.record_success("plan_missing") is None

    stats = await store.stats()
    assert stats["total_successes"] == 2


@pytest.mark.asyncio
async def test_similar_examples_section(embedder):
    store = PlanStore(embedder, bands=BANDS)
    await store.store_many([
        ("orders for customer john", _customer_orders_plan()),
        ("list all fabrics", QueryPlan(steps=[PlanStep(step=1, entity="raw_material")], final_entity="raw_material")),
    ])

    text = await store.similar_examples("orders for customer john")
    assert text.startswith("## Learned Examples (from successful past queries)")
    assert '### Example: "orders for customer john" (executed successfully 1 times)' in text
    assert '"finalEntity": "order"' in text
    assert '"customer_id": "$1.id"' in text
    assert "fabrics" not in text

    assert await store.similar_examples("warehouse capacity") == ""


@pytest.mark.asyncio
async def test_document_snippets(embedder):
    store = PlanStore(embedder, bands=BANDS)
    assert await store.search_documents("orders") == []

    await store.store_document("orders", "orders list endpoint supports status filters")
    hits = await store.search_documents("orders list endpoint status filters")
    assert [h["name"] for h in hits] == ["orders"]


@pytest.mark.asyncio
async def test_plan_store_purge(embedder):
    store = PlanStore(embedder, bands=BANDS)
    stale = await store.store("orders for John", _customer_orders_plan())
    await store.store("list all fabrics", _customer_orders_plan())

    item = await store.vectors.get(stale.id)
    item.metadata["record"]["last_used"] = "2020-01-01T00:00:00Z"

    assert await store.purge_older_than(30) == 1
    assert await store.get(stale.id) is None
    assert (await store.stats())["plans"] == 1


# ============================================================
# Failure store
# ============================================================

def test_suggestion_templates():
    assert suggestion_for(ErrorCode.ENTITY_NOT_FOUND, {"entities": ["spaceship"]}) == (
        "Entity not recognized: spaceship. Verify the entity name matches available modules."
    )
    assert suggestion_for(ErrorCode.VALIDATION_ERROR, {"message": "bad limit"}).startswith("Validation failed: bad limit.")
    assert suggestion_for(ErrorCode.UNKNOWN) == "An unexpected error occurred. Please try rephrasing your question."


@pytest.mark.asyncio
async def test_failure_record_and_search(embedder):
    store = FailureStore(embedder, bands=BANDS)
    record = await store.record(
        "orders for customer nobody",
        ErrorCode.NO_RESULTS,
        "Step 1 returned no customer",
        plan=_customer_orders_plan("nobody"),
        failure_step=1,
    )
    await store.record("show spaceship fleet", ErrorCode.ENTITY_NOT_FOUND, "unknown entity",
                       context={"entities": ["spaceship"]})

    assert record.id.startswith("fail_")
    assert record.suggested_fix.startswith("The query returned no data.")
    assert record.context["message"] == "Step 1 returned no customer"

    similar = await store.search_similar("orders for customer nobody")
    assert [m.record.id for m in similar] == [record.id]
    assert similar[0].record.plan.final_entity == "order"

    assert await store.search_similar("orders for customer nobody", error_code=ErrorCode.API_ERROR) == []


@pytest.mark.asyncio
async def test_failure_resolution_flow(embedder):
    store = FailureStore(embedder, bands=BANDS)
    failure = await store.record("orders for customer john smith", ErrorCode.NO_RESULTS, "nothing")

    assert await store.find_resolution("orders for customer john smith") is None
    assert await store.mark_resolved(failure.id, "plan_abc") is True
    assert await store.mark_resolved("fail_missing", "plan_abc") is False

    resolved = await store.find_resolution("orders for customer john smith")
    assert resolved.resolved_by == "plan_abc"

    analysis = await store.analyze("orders for customer john smith", ErrorCode.NO_RESULTS)
    assert analysis.resolution_found is True
    assert "was resolved by plan plan_abc" in analysis.suggestion

    stats = await store.stats()
    assert stats == {"failures": 1, "resolved": 1, "unresolved": 0, "by_code": {"NO_RESULTS": 1}}


@pytest.mark.asyncio
async def test_failure_purge_keeps_resolved(embedder):
    store = FailureStore(embedder, bands=BANDS)
    old = await store.record("orders for nobody", ErrorCode.NO_RESULTS, "nothing")
    kept = await store.record("fabrics for nobody", ErrorCode.NO_RESULTS, "nothing")
    await store.mark_resolved(kept.id, "plan_x")

    for failure_id in (old.id, kept.id):
        item = await store.vectors.get(failure_id)
        item.metadata["record"]["created_at"] = "2020-01-01T00:00:00Z"

    assert await store.purge_older_than(30) == 1
    assert await store.get(old.id) is None
    assert (await store.get(kept.id)).is_resolved


# ============================================================
# Redis persistence
# ============================================================

@pytest.mark.asyncio
async def test_redis_store_writes_through_and_reloads():
    client = FakeRedis()
    store = RedisVectorStore(namespace="test:plans", client=client)
    await store.initialize()
    await store.upsert("a", np.array([1.0, 0.0]), {"record": {"query": "orders"}})
    await store.upsert("b", np.array([0.0, 1.0]), {"record": {"query": "fabrics"}})
    await store.delete("b")

    assert set(client.hashes["test:plans"]) == {"a"}
    assert json.loads(client.hashes["test:plans"]["a"])["vector"] == [1.0, 0.0]

    reloaded = RedisVectorStore(namespace="test:plans", client=client)
    await reloaded.initialize()
    item = await reloaded.get("a")
    assert item.metadata == {"record": {"query": "orders"}}
    assert (await reloaded.query([1.0, 0.0]))[0].id == "a"

    await reloaded.clear()
    assert "test:plans" not in client.hashes
    await reloaded.close()
    assert client.closed


@pytest.mark.asyncio
async def test_redis_store_skips_corrupt_records():
    client = FakeRedis()
    client.hashes["test:plans"] = {
        "good": json.dumps({"vector": [1.0, 0.0], "metadata": {}}),
        "bad": "{not json",
    }
    store = RedisVectorStore(namespace="test:plans", client=client)
    await store.initialize()
    assert [r.id for r in await store.all()] == ["good"]


@pytest.mark.asyncio
async def test_redis_unavailable_falls_back_to_memory():
    store = RedisVectorStore(namespace="test:plans", client=FakeRedis(fail_ping=True))
    await store.initialize()

    await store.upsert("a", [1.0, 0.0], {})
    assert await store.get("a") is not None
    assert await store.delete("a") is True
    await store.close()
