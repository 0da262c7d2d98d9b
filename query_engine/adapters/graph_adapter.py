"""
Graph traversal adapter.

Used when a step asks for relations that cross module boundaries (declared
with defineLink). Such data is only reachable through the graph query
interface: `await query.graph(entity=..., fields=[...], filters=..., pagination=...)`
returning `{"data": [...], "metadata": {"count": n}}`.
"""

import logging
from typing import Any, Dict, Optional

from models import AccessMethod
from .data_adapter import DataAdapter, AdapterResult, AdapterError, Pagination

logger = logging.getLogger("query_engine.adapters.graph")


class GraphTraversalAdapter(DataAdapter):
    """Reads entities together with their linked records."""

    access_method = AccessMethod.GRAPH_TRAVERSAL

    def __init__(self, query: Any = None):
        self._query = query

    @staticmethod
    def graph_entity(entity: str) -> str:
        # Graph aliases are the snake_case name plus "s"
        return entity + "s"

    @staticmethod
    def build_fields(relations) -> list:
        fields = ["*"]
        for rel in relations:
            field = f"{rel}.*"
            if field not in fields:
                fields.append(field)
        return fields

    async def _graph(
        self,
        entity: str,
        relations,
        filters: Optional[Dict[str, Any]],
        pagination: Optional[Pagination],
    ) -> Dict[str, Any]:
        if self._query is None:
            raise AdapterError("No graph query interface configured")

        request: Dict[str, Any] = {
            "entity": self.graph_entity(entity),
            "fields": self.build_fields(relations),
        }
        if filters:
            request["filters"] = filters
        if pagination is not None:
            request["pagination"] = {"skip": pagination.skip, "take": pagination.take}

        logger.debug(f"query.graph() call: {request}")
        try:
            result = await self._query.graph(**request)
        except Exception as e:
            raise AdapterError(f"Graph query for {entity} failed: {e}") from e
        if not isinstance(result, dict):
            raise AdapterError(f"Unexpected graph response for {entity}")
        return result

    async def list(self, entity, filters, relations, pagination) -> AdapterResult:
        result = await self._graph(entity, relations, filters, pagination)
        return AdapterResult(data=result.get("data") or [])

    async def retrieve(self, entity, filters, relations, pagination) -> AdapterResult:
        result = await self._graph(entity, relations, {"id": filters.get("id")}, None)
        data = result.get("data")
        if isinstance(data, list):
            data = data[0] if data else None
        return AdapterResult(data=data)

    async def list_and_count(self, entity, filters, relations, pagination) -> AdapterResult:
        result = await self._graph(entity, relations, filters, pagination)
        data = result.get("data") or []
        metadata = result.get("metadata") or {}
        return AdapterResult(data=data, count=metadata.get("count", len(data)))
