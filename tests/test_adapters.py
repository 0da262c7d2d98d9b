"""Test data adapters: Admin HTTP API, in-process services, graph traversal and the factory."""
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from models import AccessMethod, ErrorCode
from query_engine.adapters import (
    AdapterError,
    AdapterNotFoundError,
    AdapterRegistry,
    AdapterTimeoutError,
    GraphTraversalAdapter,
    HttpApiAdapter,
    InProcessServiceAdapter,
    Pagination,
    PermissionDeniedError,
    create_adapter,
    create_default_adapters,
    find_service_method,
)


def _http_adapter(handler, **kwargs):
    client = httpx.AsyncClient(base_url="http://api.test", transport=httpx.MockTransport(handler))
    return HttpApiAdapter("http://api.test", client=client, **kwargs)


# ============================================================
# HTTP API
# ============================================================

@pytest.mark.asyncio
async def test_http_list_sends_filters_relations_and_paging():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={"orders": [{"id": "ord_1"}], "count": 3})

    adapter = _http_adapter(handler, api_paths={"order": "/admin/orders"})
    result = await adapter.fetch("list", "order", {"status": "pending", "region_id": None}, ["items", "customer"], Pagination(take=5, skip=10))

    assert seen["path"] == "/admin/orders"
    assert seen["params"] == {"status": "pending", "limit": "5", "offset": "10", "fields": "*items,*customer"}
    assert result.data["orders"][0]["id"] == "ord_1"
    assert result.count == 3


@pytest.mark.asyncio
async def test_http_retrieve_uses_id_path():
    def handler(request):
        assert request.url.path == "/admin/orders/ord_1"
        assert "limit" not in request.url.params
        return httpx.Response(200, json={"order": {"id": "ord_1"}})

    adapter = _http_adapter(handler, api_paths={"order": "/admin/orders"})
    result = await adapter.fetch("retrieve", "order", {"id": "ord_1"}, [], Pagination())
    assert result.data == {"order": {"id": "ord_1"}}

    with pytest.raises(AdapterError, match="ID required"):
        await adapter.fetch("retrieve", "order", {}, [], Pagination())


@pytest.mark.asyncio
async def test_http_error_statuses():
    def forbidden(request):
        return httpx.Response(403)

    def server_error(request):
        return httpx.Response(500, json={"message": "Database unavailable"})

    def slow(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(PermissionDeniedError) as exc_info:
        await _http_adapter(forbidden).list("order", {}, [], Pagination())
    assert exc_info.value.code == ErrorCode.PERMISSION_DENIED

    with pytest.raises(AdapterError, match="Database unavailable") as exc_info:
        await _http_adapter(server_error).list("order", {}, [], Pagination())
    assert exc_info.value.status == 500
    assert exc_info.value.code == ErrorCode.API_ERROR

    with pytest.raises(AdapterTimeoutError) as exc_info:
        await _http_adapter(slow).list("order", {}, [], Pagination())
    assert exc_info.value.code == ErrorCode.TIMEOUT


def test_http_path_for():
    adapter = _http_adapter(lambda request: httpx.Response(200), api_paths={"category": "/admin/product-categories"})
    assert adapter.path_for("category") == "/admin/product-categories"
    assert adapter.path_for("widget") == "/admin/widgets"


# ============================================================
# In-process services
# ============================================================

class DesignService:
    def __init__(self):
        self.calls = []

    def list_designs(self, filters, config):
        self.calls.append(("list", filters, config))
        return [{"id": "des_1", "name": "Aurora"}]

    async def retrieve_design(self, id, config):
        self.calls.append(("retrieve", id, config))
        return {"id": id}

    async def list_and_count_designs(self, filters, config):
        return [{"id": "des_1"}], 12


class ProductionService:
    async def listProductionRuns(self, filters, config):
        return [{"id": "run_1"}]

    def list_and_count_production_runs(self, filters, config):
        raise RuntimeError("database locked")


def test_find_service_method_conventions():
    assert find_service_method(DesignService(), "list", "design") == "list_designs"
    assert find_service_method(DesignService(), "retrieve", "design") == "retrieve_design"
    assert find_service_method(DesignService(), "listAndCount", "design") == "list_and_count_designs"
    assert find_service_method(ProductionService(), "list", "production_run") == "listProductionRuns"
    assert find_service_method(ProductionService(), "retrieve", "production_run") is None


@pytest.mark.asyncio
async def test_service_adapter_calls_services():
    design = DesignService()
    adapter = InProcessServiceAdapter({"design": design})

    listed = await adapter.fetch("list", "design", {"q": "Aurora"}, ["colors"], Pagination(take=5))
    assert listed.data == [{"id": "des_1", "name": "Aurora"}]
    assert design.calls[0] == ("list", {"q": "Aurora"}, {"relations": ["colors"], "take": 5, "skip": 0})

    retrieved = await adapter.fetch("retrieve", "design", {"id": "des_9"}, [], Pagination())
    assert retrieved.data == {"id": "des_9"}

    counted = await adapter.fetch("listAndCount", "design", {}, [], Pagination())
    assert counted.count == 12


@pytest.mark.asyncio
async def test_service_adapter_errors():
    adapter = InProcessServiceAdapter({"production_run": ProductionService()})

    with pytest.raises(AdapterError, match="Service not found for entity: design"):
        await adapter.list("design", {}, [], Pagination())
    with pytest.raises(AdapterError, match="No retrieve method"):
        await adapter.retrieve("production_run", {"id": "run_1"}, [], Pagination())
    with pytest.raises(AdapterError, match="database locked"):
        await adapter.list_and_count("production_run", {}, [], Pagination())


@pytest.mark.asyncio
async def test_services_can_be_registered_later():
    adapter = InProcessServiceAdapter()
    assert not adapter.has_service("design")

    adapter.register_service("design", DesignService())
    assert adapter.has_service("design")
    result = await adapter.list("design", {}, [], Pagination())
    assert result.data[0]["name"] == "Aurora"


# ============================================================
# Graph traversal
# ============================================================

class FakeGraphQuery:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def graph(self, **request):
        self.requests.append(request)
        return self.response


@pytest.mark.asyncio
async def test_graph_adapter_requests_linked_fields():
    query = FakeGraphQuery({"data": [{"id": "rm_1", "inventory_item": {"id": "inv_1"}}], "metadata": {"count": 7}})
    adapter = GraphTraversalAdapter(query)

    result = await adapter.fetch("listAndCount", "raw_material", {"status": "active"}, ["inventory_item"], Pagination(take=5))
    assert query.requests[0] == {
        "entity": "raw_materials",
        "fields": ["*", "inventory_item.*"],
        "filters": {"status": "active"},
        "pagination": {"skip": 0, "take": 5},
    }
    assert result.count == 7

    single = await adapter.fetch("retrieve", "raw_material", {"id": "rm_1"}, [], Pagination())
    assert single.data["id"] == "rm_1"
    assert query.requests[1]["filters"] == {"id": "rm_1"}


@pytest.mark.asyncio
async def test_graph_adapter_without_query_interface():
    with pytest.raises(AdapterError, match="No graph query interface"):
        await GraphTraversalAdapter().list("raw_material", {}, [], Pagination())


# ============================================================
# Factory
# ============================================================

def test_create_adapter_validates_options():
    with pytest.raises(ValueError, match="base_url is required"):
        create_adapter(AccessMethod.HTTP_API)
    assert isinstance(create_adapter("in-process-service"), InProcessServiceAdapter)
    assert isinstance(create_adapter(AccessMethod.GRAPH_TRAVERSAL), GraphTraversalAdapter)


@pytest.mark.asyncio
async def test_adapter_registry():
    registry = create_default_adapters("http://localhost:9000", api_paths={"order": "/admin/orders"})
    assert registry.list_adapters() == ["http-api", "in-process-service", "graph-traversal"]
    assert registry.get(AccessMethod.HTTP_API).path_for("order") == "/admin/orders"
    await registry.close()

    with pytest.raises(AdapterNotFoundError):
        AdapterRegistry().get(AccessMethod.HTTP_API)
