"""
Data Adapter Layer for the query engine.

This module provides a unified interface for read operations,
allowing the executor to fetch entity data through different
access methods (Admin HTTP API, in-process module services, and
graph traversal for linked data).

Design Principles:
- The executor NEVER talks to a backend directly
- All reads go through adapters
- Adapters translate backend failures into AdapterError codes
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional
from dataclasses import dataclass

from models import AccessMethod, ErrorCode, Operation


@dataclass
class Pagination:
    """Execution-side pagination (never part of the filters)."""
    take: int = 10
    skip: int = 0


@dataclass
class AdapterResult:
    """Raw backend response plus the total count when the backend reports one."""
    data: Any
    count: Optional[int] = None


class AdapterError(Exception):
    """Base exception for data access failures."""
    code = ErrorCode.API_ERROR

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AdapterTimeoutError(AdapterError):
    """Backend did not answer in time."""
    code = ErrorCode.TIMEOUT


class PermissionDeniedError(AdapterError):
    """Backend refused the request (401/403)."""
    code = ErrorCode.PERMISSION_DENIED


class AdapterNotFoundError(AdapterError):
    """No adapter registered for an access method."""
    code = ErrorCode.API_ERROR


class DataAdapter(ABC):
    """
    Abstract base class for data adapters.

    All entity reads in the system MUST go through this interface.
    """

    access_method: AccessMethod

    @abstractmethod
    async def list(
        self,
        entity: str,
        filters: Dict[str, Any],
        relations: List[str],
        pagination: Pagination,
    ) -> AdapterResult:
        """List entities matching the filters."""

    @abstractmethod
    async def retrieve(
        self,
        entity: str,
        filters: Dict[str, Any],
        relations: List[str],
        pagination: Pagination,
    ) -> AdapterResult:
        """
        Fetch a single entity.

        The id is taken from filters["id"]; remaining filters are ignored.
        """

    @abstractmethod
    async def list_and_count(
        self,
        entity: str,
        filters: Dict[str, Any],
        relations: List[str],
        pagination: Pagination,
    ) -> AdapterResult:
        """List entities and report the total count."""

    async def fetch(
        self,
        operation: str,
        entity: str,
        filters: Dict[str, Any],
        relations: List[str],
        pagination: Pagination,
    ) -> AdapterResult:
        """Dispatch a plan operation to the matching adapter method."""
        if operation == Operation.RETRIEVE.value:
            return await self.retrieve(entity, filters, relations, pagination)
        if operation == Operation.LIST_AND_COUNT.value:
            return await self.list_and_count(entity, filters, relations, pagination)
        return await self.list(entity, filters, relations, pagination)

    async def close(self) -> None:
        """Release any connections held by the adapter."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def require_id(entity: str, filters: Dict[str, Any]) -> Any:
    record_id = filters.get("id")
    if record_id in (None, ""):
        raise AdapterError(f"ID required for retrieve operation on {entity}")
    return record_id
