"""
Admin HTTP API adapter.

Core commerce entities (orders, customers, products, ...) are read through
the platform's Admin REST API. Relations are requested with the `fields`
parameter, each prefixed with `*`.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from models import AccessMethod
from .data_adapter import (
    DataAdapter,
    AdapterResult,
    AdapterError,
    AdapterTimeoutError,
    PermissionDeniedError,
    Pagination,
    require_id,
)
from ..utils.text import pluralize

logger = logging.getLogger("query_engine.adapters.http")


class HttpApiAdapter(DataAdapter):
    """Reads core entities from the Admin HTTP API."""

    access_method = AccessMethod.HTTP_API

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        api_paths: Optional[Dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_paths = dict(api_paths or {})
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url, headers=headers, timeout=timeout
        )

    def path_for(self, entity: str) -> str:
        """API path for an entity, e.g. order -> /admin/orders."""
        return self.api_paths.get(entity) or f"/admin/{pluralize(entity)}"

    def _params(
        self,
        filters: Dict[str, Any],
        relations: List[str],
        pagination: Optional[Pagination],
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for key, value in filters.items():
            if value is None:
                continue
            params[key] = value if isinstance(value, (list, tuple)) else str(value)
        if pagination is not None:
            params["limit"] = str(pagination.take)
            if pagination.skip:
                params["offset"] = str(pagination.skip)
        if relations:
            params["fields"] = ",".join(f"*{r}" for r in relations)
        return params

    async def _get(self, path: str, params: Dict[str, Any]) -> Any:
        logger.debug(f"GET {path} params={params}")
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise AdapterTimeoutError(f"Request to {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise AdapterError(f"Request to {path} failed: {e}") from e

        if response.status_code in (401, 403):
            raise PermissionDeniedError(
                f"Access denied for {path} (status {response.status_code})",
                status=response.status_code,
            )
        if response.status_code >= 400:
            message = f"API error: {response.status_code}"
            try:
                body = response.json()
                if isinstance(body, dict) and body.get("message"):
                    message = body["message"]
            except ValueError:
                pass
            raise AdapterError(message, status=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise AdapterError(f"Non-JSON response from {path}") from e

    @staticmethod
    def _count(payload: Any) -> Optional[int]:
        if isinstance(payload, dict):
            count = payload.get("count", payload.get("total"))
            if isinstance(count, int):
                return count
        return None

    async def list(self, entity, filters, relations, pagination) -> AdapterResult:
        payload = await self._get(self.path_for(entity), self._params(filters, relations, pagination))
        return AdapterResult(data=payload, count=self._count(payload))

    async def retrieve(self, entity, filters, relations, pagination) -> AdapterResult:
        record_id = require_id(entity, filters)
        path = f"{self.path_for(entity)}/{record_id}"
        payload = await self._get(path, self._params({}, relations, None))
        return AdapterResult(data=payload)

    async def list_and_count(self, entity, filters, relations, pagination) -> AdapterResult:
        return await self.list(entity, filters, relations, pagination)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
