"""
Link Miner.

Parses defineLink() files to extract cross-module connections:
which linkables are joined, whether the link is a list, custom field
names and link-table extra columns. Linked data is only reachable
through graph traversal, so the classifier and planner consult this.
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set

from .base import read_sources, balanced_block, top_level_comma
from ..utils.text import camel_to_snake

logger = logging.getLogger("query_engine.miners.links")

DEFINE_LINK_RE = re.compile(r"defineLink\s*\(([\s\S]*?)\)\s*$", re.MULTILINE)
LINKABLE_RE = re.compile(r"(\w+(?:Module)?)\s*\.linkable\.(\w+)")
FIELD_RE = re.compile(r"field:\s*['\"](\w+)['\"]")
EXTRA_COLUMNS_RE = re.compile(r"extraColumns:\s*\{")
COLUMN_NAME_RE = re.compile(r"(\w+):\s*\{")


def normalize_entity_name(linkable: str) -> str:
    """inventoryItem -> inventory_item, rawMaterials -> raw_material"""
    snake = camel_to_snake(linkable)
    return re.sub(r"s$", "", snake)


def _squash(name: str) -> str:
    return name.lower().replace("_", "")


@dataclass
class ParsedLink:
    file_name: str
    source_module: str
    source_linkable: str
    target_module: str
    target_linkable: str
    is_list: bool = False
    field_name: Optional[str] = None
    extra_columns: List[str] = field(default_factory=list)
    entry_point: Optional[str] = None

    @property
    def source_entity(self) -> str:
        return normalize_entity_name(self.source_linkable)

    @property
    def target_entity(self) -> str:
        return normalize_entity_name(self.target_linkable)

    def other_side(self, entity: str):
        """(entity, linkable) on the far side of the link from `entity`."""
        if _squash(self.source_entity) == _squash(entity):
            return self.target_entity, self.target_linkable
        return self.source_entity, self.source_linkable

    def query_field(self, entity: str) -> str:
        other_entity, other_linkable = self.other_side(entity)
        if self.is_list:
            return self.field_name or other_linkable
        return other_entity


def parse_link_file(content: str, file_name: str = "") -> Optional[ParsedLink]:
    match = DEFINE_LINK_RE.search(content)
    if not match:
        return None
    link_content = match.group(1)

    source = LINKABLE_RE.search(link_content)
    if not source:
        return None

    comma = top_level_comma(link_content)
    if comma == -1:
        return None
    target = LINKABLE_RE.search(link_content[comma + 1:])
    if not target:
        return None

    field_match = FIELD_RE.search(link_content)

    extra_columns: List[str] = []
    has_extra = "extraColumns" in link_content
    if has_extra:
        columns = EXTRA_COLUMNS_RE.search(link_content)
        block = balanced_block(link_content, columns.end()) if columns else None
        if block:
            extra_columns = COLUMN_NAME_RE.findall(block)

    source_entity = normalize_entity_name(source.group(2))
    target_entity = normalize_entity_name(target.group(2))

    return ParsedLink(
        file_name=file_name,
        source_module=source.group(1),
        source_linkable=source.group(2),
        target_module=target.group(1),
        target_linkable=target.group(2),
        is_list="isList: true" in link_content,
        field_name=field_match.group(1) if field_match else None,
        extra_columns=extra_columns,
        entry_point=f"{source_entity}_{target_entity}" if has_extra else None,
    )


class LinkMiner:
    """Index of module links by both endpoints."""

    def __init__(self):
        self._links: List[ParsedLink] = []
        self._by_entity: Dict[str, List[ParsedLink]] = {}
        self.initialized = False

    def mine(self, links_path: Path) -> List[ParsedLink]:
        """Parse all link files directly under links_path (`*.ts`)."""
        sources = read_sources(Path(links_path), "*.ts")
        logger.info(f"Found {len(sources)} link files")
        self.load_sources(sources)
        return self._links

    def load_sources(self, sources: Dict[str, str]) -> None:
        for rel_path, content in sources.items():
            try:
                link = parse_link_file(content, Path(rel_path).name)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            if link:
                self.add(link)
                logger.debug(f"Parsed: {link.file_name} ({link.source_entity} <-> {link.target_entity})")
        self.initialized = True

    def add(self, link: ParsedLink) -> None:
        self._links.append(link)
        self._by_entity.setdefault(link.source_entity, []).append(link)
        if link.target_entity != link.source_entity:
            self._by_entity.setdefault(link.target_entity, []).append(link)

    def links_for(self, entity: str) -> List[ParsedLink]:
        if entity in self._by_entity:
            return list(self._by_entity[entity])
        lowered = entity.lower()
        if lowered in self._by_entity:
            return list(self._by_entity[lowered])
        normalized = _squash(entity)
        for key, links in self._by_entity.items():
            if _squash(key) == normalized:
                return list(links)
        return []

    def link_between(self, entity_a: str, entity_b: str) -> Optional[ParsedLink]:
        target = _squash(entity_b)
        for link in self.links_for(entity_a):
            if target in (_squash(link.source_entity), _squash(link.target_entity)):
                return link
        return None

    def has_link_between(self, entity_a: str, entity_b: str) -> bool:
        return self.link_between(entity_a, entity_b) is not None

    def linked_relation_names(self, entity: str) -> Set[str]:
        """Every name a planner might use to ask for linked data from `entity`."""
        names: Set[str] = set()
        for link in self.links_for(entity):
            other_entity, other_linkable = link.other_side(entity)
            names.update({
                other_entity,
                other_entity + "s",
                other_linkable,
                camel_to_snake(other_linkable),
                link.query_field(entity),
            })
            if link.field_name:
                names.add(link.field_name)
        return names

    def all_links(self) -> List[ParsedLink]:
        return list(self._links)

    def doc_for(self, entity: str) -> Optional[str]:
        """LLM-friendly documentation about module links for an entity."""
        links = self.links_for(entity)
        if not links:
            return None

        lines = ["**Module Links** (use graph traversal to fetch):"]
        for link in links:
            other_entity, _ = link.other_side(entity)
            list_marker = " (list)" if link.is_list else ""
            lines.append(f'  - {other_entity}: fields=["*", "{link.query_field(entity)}.*"]{list_marker}')
            if link.extra_columns:
                lines.append(f"    Extra columns: {', '.join(link.extra_columns)}")
            if link.entry_point:
                lines.append(f"    Link table: {link.entry_point}")
        return "\n".join(lines)

    def docs_for(self, entities: List[str]) -> str:
        docs = []
        for entity in entities:
            doc = self.doc_for(entity)
            if doc:
                docs.extend([f"### {entity} Links", doc, ""])
        if not docs:
            return ""
        return "## Module Links (Cross-Module Relations)\n\n" + "\n".join(docs)

    def clear(self) -> None:
        self._links.clear()
        self._by_entity.clear()
        self.initialized = False

    def __len__(self) -> int:
        return len(self._links)
