"""
External documentation lookup for entity schemas.

Asks a documentation service what it knows about an entity
(`GET {base_url}/entities/{name}`). The service may answer with structured
JSON (`{"relations": [...], "filters": [...], "api_path": "..."}`) or with a
prose answer (`{"answer": "..."}`), in which case the endpoint path,
relations and filters are pulled out of the text. Any failure means
"no facts", never an exception.
"""

import re
import logging
from typing import Any, Dict, List, Optional

import httpx

from models import DocFacts

logger = logging.getLogger("query_engine.schema.docs")

API_PATH_RE = re.compile(r"(?:GET|POST|PUT|DELETE|PATCH)?\s*`?(/admin/[a-z-]+)`?", re.IGNORECASE)
SECTION_RE = {
    "relations": re.compile(r"(?:expandable\s+)?relations?:?\s*\n?([\s\S]*?)(?:\n\n|$)", re.IGNORECASE),
    "filters": re.compile(r"(?:filters?|query\s+parameters?):?\s*\n?([\s\S]*?)(?:\n\n|$)", re.IGNORECASE),
}
BULLET_RE = re.compile(r"[-*]\s*`?([a-z_]+)`?", re.IGNORECASE)
BACKTICK_RE = re.compile(r"`([a-z_]+)`", re.IGNORECASE)
NOT_FOUND_MARKERS = ("not found", "does not exist", "no documentation")
STOP_WORDS = {"and", "or", "the", "a", "an", "with", "for", "by", "to", "in", "on", "at"}


def _list_items(section: str) -> List[str]:
    items = BULLET_RE.findall(section) + BACKTICK_RE.findall(section)
    for part in section.split(","):
        cleaned = re.sub(r"[`\[\]]", "", part).strip()
        if re.fullmatch(r"[a-z_]+", cleaned):
            items.append(cleaned)
    return [i for i in dict.fromkeys(items) if len(i) > 1 and i.lower() not in STOP_WORDS]


def parse_doc_answer(entity: str, answer: str) -> Optional[DocFacts]:
    """Pull endpoint path, relations and filters out of a prose documentation answer."""
    lowered = answer.lower()
    if any(marker in lowered for marker in NOT_FOUND_MARKERS):
        return None

    path_match = API_PATH_RE.search(answer)
    api_path = path_match.group(1) if path_match else None

    found: Dict[str, List[str]] = {}
    for key, pattern in SECTION_RE.items():
        match = pattern.search(answer)
        found[key] = _list_items(match.group(1)) if match else []

    if api_path or found["relations"] or found["filters"]:
        return DocFacts(relations=found["relations"], filters=found["filters"], api_path=api_path)
    return None


class DocumentationClient:
    """Looks entity facts up in an external documentation service."""

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client
        self._timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self._timeout)
        return self._client

    async def lookup(self, name: str) -> Optional[DocFacts]:
        """Facts about an entity, or None when unconfigured, unknown or unreachable."""
        if not self.enabled:
            return None

        try:
            response = await self._http().get(f"/entities/{name}")
        except httpx.HTTPError as e:
            logger.warning(f"Documentation lookup failed for {name}: {e}")
            return None

        if response.status_code == 404:
            logger.debug(f"No documentation for {name}")
            return None
        if response.status_code >= 400:
            logger.warning(f"Documentation lookup for {name} returned {response.status_code}")
            return None

        try:
            payload: Any = response.json()
        except ValueError:
            logger.warning(f"Documentation lookup for {name} returned non-JSON")
            return None

        if isinstance(payload, dict) and isinstance(payload.get("answer"), str):
            return parse_doc_answer(name, payload["answer"])
        if isinstance(payload, dict):
            facts = DocFacts(
                relations=list(payload.get("relations") or []),
                filters=list(payload.get("filters") or []),
                api_path=payload.get("api_path"),
            )
            if facts.api_path or facts.relations or facts.filters:
                return facts
        return None

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None
