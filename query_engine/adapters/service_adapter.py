"""
In-process module service adapter.

Custom-module entities (designs, partners, production runs, ...) are read by
calling their module service directly. Services follow the naming convention
`list_<plural>(filters, config)`, `retrieve_<singular>(id, config)` and
`list_and_count_<plural>(filters, config)`; methods may be sync or async.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from models import AccessMethod
from .data_adapter import (
    DataAdapter,
    AdapterResult,
    AdapterError,
    Pagination,
    require_id,
)
from ..utils.text import pluralize

logger = logging.getLogger("query_engine.adapters.service")

_OPERATION_PREFIX = {
    "list": "list",
    "retrieve": "retrieve",
    "listAndCount": "list_and_count",
}


def find_service_method(service: Any, operation: str, entity: str) -> Optional[str]:
    """
    Find a service method by trying the naming conventions in order:
    built name, then any callable starting with the operation prefix
    that mentions the entity.
    """
    prefix = _OPERATION_PREFIX[operation]
    target = entity if operation == "retrieve" else pluralize(entity)
    built = f"{prefix}_{target}"
    if callable(getattr(service, built, None)):
        return built

    candidates = [
        name for name in dir(service)
        if not name.startswith("_") and callable(getattr(service, name, None))
    ]
    stem = entity.replace("_", "").lower()
    for name in candidates:
        lowered = name.lower()
        if not lowered.startswith(prefix):
            continue
        rest = lowered[len(prefix):].replace("_", "")
        if operation == "list" and rest.startswith("andcount"):
            continue
        if rest.startswith(stem[:4]):
            logger.debug(f"Found method via partial match: {name} ({operation} {entity})")
            return name
    return None


class InProcessServiceAdapter(DataAdapter):
    """Reads custom-module entities by calling their services in process."""

    access_method = AccessMethod.IN_PROCESS_SERVICE

    def __init__(self, services: Optional[Dict[str, Any]] = None):
        self._services: Dict[str, Any] = dict(services or {})

    def register_service(self, entity: str, service: Any) -> None:
        self._services[entity] = service

    def has_service(self, entity: str) -> bool:
        return entity in self._services

    def _method(self, entity: str, operation: str) -> Callable:
        service = self._services.get(entity)
        if service is None:
            raise AdapterError(f"Service not found for entity: {entity}")
        name = find_service_method(service, operation, entity)
        if name is None:
            available = ", ".join(
                n for n in dir(service) if not n.startswith("_") and callable(getattr(service, n))
            )
            raise AdapterError(
                f"No {operation} method for {entity} on service. Available methods: {available}"
            )
        return getattr(service, name)

    @staticmethod
    async def _call(method: Callable, *args) -> Any:
        try:
            result = method(*args)
            if inspect.isawaitable(result):
                result = await result
        except AdapterError:
            raise
        except Exception as e:
            raise AdapterError(f"{getattr(method, '__name__', 'service call')} failed: {e}") from e
        return result

    @staticmethod
    def _config(relations: List[str], pagination: Optional[Pagination]) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        if relations:
            config["relations"] = list(relations)
        if pagination is not None:
            config["take"] = pagination.take
            config["skip"] = pagination.skip
        return config

    async def list(self, entity, filters, relations, pagination) -> AdapterResult:
        method = self._method(entity, "list")
        data = await self._call(method, dict(filters), self._config(relations, pagination))
        return AdapterResult(data=data if data is not None else [])

    async def retrieve(self, entity, filters, relations, pagination) -> AdapterResult:
        record_id = require_id(entity, filters)
        method = self._method(entity, "retrieve")
        data = await self._call(method, record_id, self._config(relations, None))
        return AdapterResult(data=data)

    async def list_and_count(self, entity, filters, relations, pagination) -> AdapterResult:
        method = self._method(entity, "listAndCount")
        result = await self._call(method, dict(filters), self._config(relations, pagination))
        if not isinstance(result, (list, tuple)) or len(result) != 2:
            raise AdapterError(f"listAndCount for {entity} must return (items, count)")
        items, count = result
        return AdapterResult(data=list(items or []), count=int(count))
