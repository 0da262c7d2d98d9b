"""
Dynamic Schema Resolver.

Resolves an entity name to an EntityDescriptor, trying in order:

1. the TTL cache
2. the static registry, for entities the backing application owns
3. the documentation service, for core entities
4. the static registry
5. facts mined from the codebase (models and module links)
6. an `unknown` descriptor

Whatever path answers, the result is cached. Resolution never raises;
lookup errors are logged and the next source is tried.
"""

import time
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from configs import SCHEMA_CACHE_TTL_SECONDS, SCHEMA_RESOLVE_CONCURRENCY, PREWARM_ENTITIES
from models import AccessMethod, DiscoveryResult, EntityCategory, EntityDescriptor
from query_engine.utils import TTLCache
from .registry import EntityRegistry
from .docs_client import DocumentationClient

logger = logging.getLogger("query_engine.schema.resolver")


class DynamicSchemaResolver:
    """Layered entity lookup with a time-bounded cache."""

    def __init__(
        self,
        registry: EntityRegistry,
        docs_client: Optional[DocumentationClient] = None,
        context=None,
        ttl_seconds: float = SCHEMA_CACHE_TTL_SECONDS,
        concurrency: int = SCHEMA_RESOLVE_CONCURRENCY,
        clock=None,
    ):
        self.registry = registry
        self.docs_client = docs_client
        self.context = context
        self.concurrency = max(1, concurrency)
        self._cache: TTLCache[EntityDescriptor] = TTLCache(ttl_seconds, clock=clock or time.monotonic)

    # ============================================================
    # Resolution
    # ============================================================

    async def resolve(self, name: str) -> EntityDescriptor:
        key = self.registry.normalize(name)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Schema cache hit: {key}")
            return cached

        try:
            descriptor = await self._resolve_uncached(key)
        except Exception as e:
            logger.warning(f"Schema resolution failed for {key}, treating as unknown: {e}")
            descriptor = self._unknown(key)

        self._cache.set(key, descriptor)
        logger.debug(f"Resolved {key}: {descriptor.category.value} via {descriptor.source}")
        return descriptor

    async def _resolve_uncached(self, key: str) -> EntityDescriptor:
        static = self.registry.get(key)

        if static is not None and self.registry.is_owned(key):
            return self._enrich_from_models(static)

        docs = await self._lookup_docs(key)
        if docs is not None:
            return self._from_docs(key, docs, static)

        if static is not None:
            return static.model_copy(deep=True)

        mined = await self._from_miners(key)
        if mined is not None:
            return mined

        return self._unknown(key)

    async def _lookup_docs(self, key: str):
        if self.docs_client is None or not self.docs_client.enabled:
            return None
        try:
            return await self.docs_client.lookup(key)
        except Exception as e:
            logger.warning(f"Documentation lookup raised for {key}: {e}")
            return None

    def _from_docs(self, key: str, docs, static: Optional[EntityDescriptor]) -> EntityDescriptor:
        return EntityDescriptor(
            name=key,
            category=EntityCategory.DISCOVERED,
            access_method=AccessMethod.HTTP_API,
            relations=docs.relations or (static.relations if static else []),
            filters=docs.filters or (static.filters if static else ["id", "q"]),
            enum_values=dict(static.enum_values) if static else {},
            resolvable_refs=dict(static.resolvable_refs) if static else {},
            description=static.description if static else "",
            keywords=list(static.keywords) if static else [],
            api_path=docs.api_path or (static.api_path if static else None),
            source="docs",
        )

    def _enrich_from_models(self, static: EntityDescriptor) -> EntityDescriptor:
        """Static descriptor for an owned entity, with mined filters and enums merged in."""
        descriptor = static.model_copy(deep=True)
        if self.context is None:
            return descriptor

        model = self.context.models.get(static.name)
        if model is None:
            return descriptor

        for field_name in model.searchable_fields:
            if field_name not in descriptor.filters:
                descriptor.filters.append(field_name)
        for field_name, values in model.enum_fields.items():
            descriptor.enum_values.setdefault(field_name, list(values))
        return descriptor

    async def _from_miners(self, key: str) -> Optional[EntityDescriptor]:
        if self.context is None:
            return None
        await self.context.ensure_initialized()

        model = self.context.models.get(key)
        if model is not None:
            filters = ["id", "q"] + [f for f in model.searchable_fields if f not in ("id", "q")]
            return EntityDescriptor(
                name=key,
                category=EntityCategory.DISCOVERED,
                access_method=AccessMethod.IN_PROCESS_SERVICE,
                relations=[r.name for r in model.relations],
                filters=filters,
                enum_values=model.enum_fields,
                description=f"Custom module model {model.model_name} (table {model.table_name})",
                source="mined",
            )

        links = self.context.links.links_for(key)
        if links:
            return EntityDescriptor(
                name=key,
                category=EntityCategory.DISCOVERED,
                access_method=AccessMethod.GRAPH_TRAVERSAL,
                relations=sorted(self.context.links.linked_relation_names(key)),
                filters=["id"],
                description=f"Entity linked to {', '.join(sorted({l.other_side(key)[0] for l in links}))}",
                source="mined",
            )
        return None

    @staticmethod
    def _unknown(key: str) -> EntityDescriptor:
        return EntityDescriptor(name=key, category=EntityCategory.UNKNOWN, source="none")

    async def discover(self, candidate: str) -> DiscoveryResult:
        """Try to recognise a name pulled out of free text."""
        descriptor = await self.resolve(candidate)
        if descriptor.category == EntityCategory.UNKNOWN:
            logger.info(f"Entity not found: {candidate}")
            return DiscoveryResult(is_valid=False, category=EntityCategory.UNKNOWN)
        return DiscoveryResult(is_valid=True, category=descriptor.category, descriptor=descriptor)

    async def resolve_many(self, names: Iterable[str]) -> Dict[str, EntityDescriptor]:
        """Resolve several entities concurrently, at most `concurrency` in flight."""
        unique = list(dict.fromkeys(names))
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _one(name: str) -> EntityDescriptor:
            async with semaphore:
                return await self.resolve(name)

        descriptors = await asyncio.gather(*(_one(n) for n in unique))
        logger.info(f"Resolved {len(unique)} schemas")
        return dict(zip(unique, descriptors))

    async def prewarm(self, names: Optional[List[str]] = None) -> int:
        names = names if names is not None else PREWARM_ENTITIES
        resolved = await self.resolve_many(names)
        known = sum(1 for d in resolved.values() if d.category != EntityCategory.UNKNOWN)
        logger.info(f"Prewarmed schema cache with {known}/{len(resolved)} entities")
        return known

    # ============================================================
    # Prompt rendering
    # ============================================================

    def describe_for_llm(self, descriptors: Dict[str, EntityDescriptor]) -> str:
        """Dynamic schema block: only these relations and filters may be used."""
        if not descriptors:
            return ""

        lines = [
            "## Dynamic Entity Schemas",
            "",
            "ONLY use the relations, filters, and API paths listed here - do not guess or invent names.",
            "",
        ]
        source_labels = {
            "docs": "Documentation (verified)",
            "mined": "Codebase analysis",
            "static": "Static registry",
        }

        for name, descriptor in descriptors.items():
            if descriptor.category == EntityCategory.UNKNOWN:
                continue
            lines.append(f"### {name}")
            lines.append(f"- Type: {'Core entity' if descriptor.is_core else 'Custom module'}")
            lines.append(f"- Source: {source_labels.get(descriptor.source, descriptor.source)}")
            if descriptor.api_path:
                lines.append(f"- API: {descriptor.api_path}")
            lines.append(f"- Relations: {', '.join(descriptor.relations) or 'none'}")
            if descriptor.filters:
                lines.append(f"- Filters: {', '.join(descriptor.filters)}")
            if descriptor.description:
                lines.append(f"- Description: {descriptor.description}")
            if descriptor.enum_values:
                lines.append("- Enum Fields:")
                for field_name, values in descriptor.enum_values.items():
                    lines.append(f"  - {field_name}: [{', '.join(values)}]")
            if self.context is not None:
                links = self.context.links.links_for(name)
                if links:
                    lines.append("- Module Links:")
                    for link in links:
                        kind = "list" if link.is_list else "single"
                        lines.append(f"  - {link.source_entity} <-> {link.target_entity} ({kind})")
            lines.append("")

        return "\n".join(lines)

    # ============================================================
    # Cache management
    # ============================================================

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("Schema cache cleared")

    def cache_stats(self) -> Dict:
        stats = self._cache.stats()
        stats["entities"] = sorted(self._cache.keys())
        return stats
