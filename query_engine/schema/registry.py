"""
Entity Schema Registry.

Static table of entity descriptors: what each entity is, how it is
fetched, which relations and filters are valid, and which foreign-key
filters can be resolved by searching another entity first.
"""

import re
import logging
from typing import Dict, Iterable, List, Optional

from models import AccessMethod, EntityDescriptor

logger = logging.getLogger("query_engine.schema.registry")


class EntityRegistry:
    """In-memory registry of known entities, keyed by snake_case name."""

    def __init__(self, descriptors: Optional[Iterable[EntityDescriptor]] = None):
        self._entities: Dict[str, EntityDescriptor] = {}
        for descriptor in descriptors or []:
            self.register(descriptor)

    @classmethod
    def default(cls) -> "EntityRegistry":
        from .default_entities import DEFAULT_ENTITIES
        return cls(DEFAULT_ENTITIES)

    def register(self, descriptor: EntityDescriptor) -> None:
        self._entities[descriptor.name] = descriptor

    def get(self, name: str) -> Optional[EntityDescriptor]:
        return self._entities.get(self.normalize(name))

    @staticmethod
    def normalize(name: str) -> str:
        return name.strip().lower().replace(" ", "_").replace("-", "_")

    def names(self) -> List[str]:
        return list(self._entities.keys())

    def is_registered(self, name: str) -> bool:
        return self.normalize(name) in self._entities

    def is_owned(self, name: str) -> bool:
        """Custom-module entity whose registry entry is authoritative."""
        descriptor = self.get(name)
        return descriptor is not None and descriptor.access_method != AccessMethod.HTTP_API

    def is_core(self, name: str) -> bool:
        descriptor = self.get(name)
        return descriptor is not None and descriptor.access_method == AccessMethod.HTTP_API

    def core_entities(self) -> List[EntityDescriptor]:
        return [d for d in self._entities.values() if d.access_method == AccessMethod.HTTP_API]

    def custom_entities(self) -> List[EntityDescriptor]:
        return [d for d in self._entities.values() if d.access_method != AccessMethod.HTTP_API]

    def relations_for(self, name: str) -> List[str]:
        descriptor = self.get(name)
        return list(descriptor.relations) if descriptor else []

    def api_paths(self) -> Dict[str, str]:
        return {d.name: d.api_path for d in self._entities.values() if d.api_path}

    def detect_entities(self, text: str) -> List[str]:
        """Entities mentioned in free text, by name or keyword (word-start match)."""
        if not text:
            return []
        lowered = text.lower()
        detected: List[str] = []
        for name, descriptor in self._entities.items():
            terms = [name.replace("_", " ")] + [k.lower() for k in descriptor.keywords]
            for term in terms:
                if re.search(r"\b" + re.escape(term), lowered):
                    detected.append(name)
                    break
        return detected

    def describe_for_llm(self) -> str:
        """Entity schema block for the planner prompt."""
        lines: List[str] = []
        for name, descriptor in self._entities.items():
            lines.append(f"\n### {name}")
            lines.append(f"Description: {descriptor.description}")
            if descriptor.access_method == AccessMethod.HTTP_API:
                lines.append(f"Type: Core entity (API: {descriptor.api_path})")
            else:
                lines.append("Type: Custom module")
            lines.append(f"Relations: {', '.join(descriptor.relations) or 'none'}")
            if descriptor.resolvable_refs:
                lines.append("Filterable by:")
                for field_name, ref in descriptor.resolvable_refs.items():
                    lines.append(
                        f"  - {field_name}: resolves from {ref.entity} (search by: {', '.join(ref.search_by)})"
                    )
        return "\n".join(lines)

    def __contains__(self, name: str) -> bool:
        return self.is_registered(name)

    def __len__(self) -> int:
        return len(self._entities)
