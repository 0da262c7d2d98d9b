"""Entity schema registry, documentation lookup and dynamic resolution."""
from .registry import EntityRegistry
from .default_entities import DEFAULT_ENTITIES
from .docs_client import DocumentationClient, parse_doc_answer
from .resolver import DynamicSchemaResolver

__all__ = [
    "EntityRegistry",
    "DEFAULT_ENTITIES",
    "DocumentationClient",
    "parse_doc_answer",
    "DynamicSchemaResolver",
]
