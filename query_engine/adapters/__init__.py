"""
Adapters module for the query engine.

Contains the data adapters the executor reads through:
1. Admin HTTP API (core entities)
2. In-process module services (custom entities)
3. Graph traversal (cross-module linked data)
"""

from .data_adapter import (
    DataAdapter,
    AdapterResult,
    Pagination,
    AdapterError,
    AdapterTimeoutError,
    PermissionDeniedError,
    AdapterNotFoundError,
)
from .http_adapter import HttpApiAdapter
from .service_adapter import InProcessServiceAdapter, find_service_method
from .graph_adapter import GraphTraversalAdapter
from .factory import create_adapter, create_default_adapters, AdapterRegistry

__all__ = [
    "DataAdapter",
    "AdapterResult",
    "Pagination",
    "AdapterError",
    "AdapterTimeoutError",
    "PermissionDeniedError",
    "AdapterNotFoundError",
    "HttpApiAdapter",
    "InProcessServiceAdapter",
    "find_service_method",
    "GraphTraversalAdapter",
    "create_adapter",
    "create_default_adapters",
    "AdapterRegistry",
]
