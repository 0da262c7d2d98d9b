"""
Data Adapter Factory.

Creates the appropriate data adapter for an access method and keeps the
set of adapters the executor dispatches through.
"""

from typing import Any, Dict, List, Optional

from models import AccessMethod
from .data_adapter import DataAdapter, AdapterNotFoundError
from .http_adapter import HttpApiAdapter
from .service_adapter import InProcessServiceAdapter
from .graph_adapter import GraphTraversalAdapter


def create_adapter(access_method: AccessMethod, **kwargs) -> DataAdapter:
    """
    Create a data adapter of the specified access method.

    Args:
        access_method: http-api, in-process-service or graph-traversal
        **kwargs: Adapter-specific options
            http-api: base_url (required), token, timeout, api_paths, client
            in-process-service: services
            graph-traversal: query

    Raises:
        ValueError: If required params are missing

    Examples:
        adapter = create_adapter(AccessMethod.HTTP_API, base_url="http://localhost:9000")
        adapter = create_adapter(AccessMethod.IN_PROCESS_SERVICE, services={"design": svc})
    """
    access_method = AccessMethod(access_method)

    if access_method == AccessMethod.HTTP_API:
        if not kwargs.get("base_url"):
            raise ValueError("base_url is required for the http-api adapter")
        return HttpApiAdapter(**kwargs)

    elif access_method == AccessMethod.IN_PROCESS_SERVICE:
        return InProcessServiceAdapter(services=kwargs.get("services"))

    elif access_method == AccessMethod.GRAPH_TRAVERSAL:
        return GraphTraversalAdapter(query=kwargs.get("query"))

    else:
        raise ValueError(f"Unsupported access method: {access_method}")


class AdapterRegistry:
    """One adapter per access method."""

    def __init__(self, adapters: Optional[Dict[AccessMethod, DataAdapter]] = None):
        self._adapters: Dict[AccessMethod, DataAdapter] = {}
        for method, adapter in (adapters or {}).items():
            self.register(method, adapter)

    def register(self, access_method: AccessMethod, adapter: DataAdapter) -> None:
        """Register an adapter for an access method."""
        self._adapters[AccessMethod(access_method)] = adapter

    def get(self, access_method: AccessMethod) -> DataAdapter:
        """Get the adapter for an access method."""
        adapter = self._adapters.get(AccessMethod(access_method))
        if adapter is None:
            raise AdapterNotFoundError(f"No adapter registered for {AccessMethod(access_method).value}")
        return adapter

    def list_adapters(self) -> List[str]:
        """List all registered access methods."""
        return [m.value for m in self._adapters]

    async def close(self) -> None:
        for adapter in self._adapters.values():
            await adapter.close()


def create_default_adapters(
    base_url: str,
    token: str = "",
    timeout: float = 30.0,
    api_paths: Optional[Dict[str, str]] = None,
    services: Optional[Dict[str, Any]] = None,
    graph_query: Any = None,
) -> AdapterRegistry:
    """Build a registry holding all three access methods."""
    return AdapterRegistry({
        AccessMethod.HTTP_API: create_adapter(
            AccessMethod.HTTP_API, base_url=base_url, token=token, timeout=timeout, api_paths=api_paths
        ),
        AccessMethod.IN_PROCESS_SERVICE: create_adapter(AccessMethod.IN_PROCESS_SERVICE, services=services),
        AccessMethod.GRAPH_TRAVERSAL: create_adapter(AccessMethod.GRAPH_TRAVERSAL, query=graph_query),
    })
