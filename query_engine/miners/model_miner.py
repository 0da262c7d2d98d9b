"""
Model Miner.

Parses data-model definition files (`model.define("name", { ... })`) to extract:
- Field names and types
- Searchable fields (.searchable())
- Enum values with exact options
- Relations (hasMany, belongsTo, hasOne, manyToMany)

This gives the planner exact filter names and enum values for custom modules.
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import read_sources, balanced_block, split_quoted_list
from ..utils.text import pluralize

logger = logging.getLogger("query_engine.miners.models")

DEFINE_RE = re.compile(r"model\.define\s*\(\s*[\"'](\w+)[\"']\s*,\s*\{")
BASIC_FIELD_RE = re.compile(
    r"(\w+):\s*model\.(text|number|boolean|dateTime|bigNumber|id|json|array)\s*\(\s*[^)]*\)([^,]*)"
)
ENUM_FIELD_RE = re.compile(r"(\w+):\s*model\.enum\s*\(\s*\[([^\]]+)\]\s*\)([^,]*)")
RELATION_RE = re.compile(r"(\w+):\s*model\.(hasMany|belongsTo|hasOne|manyToMany)\s*\(\s*\(\)\s*=>\s*(\w+)")
MAPPED_BY_RE = re.compile(r"mappedBy:\s*[\"'](\w+)[\"']")
DEFAULT_RE = re.compile(r"\.default\s*\(\s*[\"']?([^)\"']+)[\"']?\s*\)")

ENUM_DISPLAY_LIMIT = 5


@dataclass
class ParsedField:
    name: str
    type: str
    searchable: bool = False
    nullable: bool = False
    enum_values: Optional[List[str]] = None
    default: Optional[str] = None


@dataclass
class ParsedRelation:
    name: str
    type: str
    target_model: str
    mapped_by: Optional[str] = None


@dataclass
class ParsedModel:
    model_name: str
    table_name: str
    file_path: str
    fields: List[ParsedField] = field(default_factory=list)
    relations: List[ParsedRelation] = field(default_factory=list)

    @property
    def searchable_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.searchable]

    @property
    def enum_fields(self) -> Dict[str, List[str]]:
        return {f.name: f.enum_values for f in self.fields if f.enum_values}

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


def parse_model_file(content: str, file_path: str = "") -> List[ParsedModel]:
    """Parse every model.define(...) in a single file."""
    models: List[ParsedModel] = []

    for match in DEFINE_RE.finditer(content):
        table_name = match.group(1)
        block = balanced_block(content, match.end())
        if block is None:
            logger.debug(f"Unbalanced model.define block for {table_name} in {file_path}")
            continue

        fields: List[ParsedField] = []
        for fm in BASIC_FIELD_RE.finditer(block):
            modifiers = fm.group(3) or ""
            default = DEFAULT_RE.search(modifiers)
            fields.append(ParsedField(
                name=fm.group(1),
                type=fm.group(2),
                searchable=".searchable()" in modifiers,
                nullable=".nullable()" in modifiers,
                default=default.group(1) if default else None,
            ))

        for fm in ENUM_FIELD_RE.finditer(block):
            modifiers = fm.group(3) or ""
            default = DEFAULT_RE.search(modifiers)
            fields.append(ParsedField(
                name=fm.group(1),
                type="enum",
                searchable=".searchable()" in modifiers,
                nullable=".nullable()" in modifiers,
                enum_values=split_quoted_list(fm.group(2)),
                default=default.group(1) if default else None,
            ))

        relation_matches = list(RELATION_RE.finditer(block))
        relations: List[ParsedRelation] = []
        for i, rm in enumerate(relation_matches):
            # mappedBy belongs to this relation only if it appears before the next one
            end = relation_matches[i + 1].start() if i + 1 < len(relation_matches) else len(block)
            mapped_by = MAPPED_BY_RE.search(block, rm.end(), end)
            relations.append(ParsedRelation(
                name=rm.group(1),
                type=rm.group(2),
                target_model=rm.group(3),
                mapped_by=mapped_by.group(1) if mapped_by else None,
            ))

        models.append(ParsedModel(
            model_name=table_name[:1].upper() + table_name[1:],
            table_name=table_name,
            file_path=file_path,
            fields=fields,
            relations=relations,
        ))

    return models


class ModelMiner:
    """Index of parsed models, looked up by model name, table name or underscore-less table name."""

    def __init__(self):
        self._models: Dict[str, ParsedModel] = {}
        self.initialized = False

    def mine(self, modules_path: Path) -> Dict[str, ParsedModel]:
        """Parse all model files under modules_path (`**/models/*.ts`)."""
        sources = read_sources(Path(modules_path), "**/models/*.ts")
        logger.info(f"Found {len(sources)} model files")
        self.load_sources(sources)
        return self._models

    def load_sources(self, sources: Dict[str, str]) -> None:
        for rel_path, content in sources.items():
            try:
                models = parse_model_file(content, rel_path)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            for model in models:
                self.add(model)
                logger.debug(
                    f"Parsed: {model.model_name} "
                    f"({len(model.searchable_fields)} searchable, {len(model.relations)} relations)"
                )
        self.initialized = True

    def add(self, model: ParsedModel) -> None:
        for key in (
            model.model_name.lower(),
            model.table_name.lower(),
            model.table_name.replace("_", "").lower(),
        ):
            self._models[key] = model

    def get(self, name: str) -> Optional[ParsedModel]:
        """Get parsed model by name (supports various naming conventions)."""
        lowered = name.lower()
        if lowered in self._models:
            return self._models[lowered]
        normalized = lowered.replace("_", "")
        for key, model in self._models.items():
            if key.replace("_", "") == normalized:
                return model
        return None

    def all_models(self) -> List[ParsedModel]:
        seen = set()
        models = []
        for model in self._models.values():
            if model.table_name not in seen:
                seen.add(model.table_name)
                models.append(model)
        return models

    def doc_for(self, name: str) -> Optional[str]:
        """Build LLM-friendly documentation for a custom module model."""
        model = self.get(name)
        if model is None:
            return None

        lines = [f"### {model.model_name} (Custom Module)", f"Table: {model.table_name}", ""]

        if model.searchable_fields:
            lines.append("**Searchable Fields** (use q filter):")
            lines.append(f"  {', '.join(model.searchable_fields)}")
            lines.append("")

        if model.enum_fields:
            lines.append("**Enum Fields** (filter by exact value):")
            for field_name, values in model.enum_fields.items():
                shown = ", ".join(values[:ENUM_DISPLAY_LIMIT])
                suffix = ", ..." if len(values) > ENUM_DISPLAY_LIMIT else ""
                lines.append(f"  - {field_name}: [{shown}{suffix}]")
            lines.append("")

        if model.relations:
            lines.append("**Valid Relations**:")
            for rel in model.relations:
                lines.append(f"  - {rel.name} ({rel.type} -> {rel.target_model})")
            lines.append("")

        plural = pluralize(model.model_name)
        lines.append("**Query Patterns**:")
        lines.append(f"  - List: list{plural}(filters, config)")
        lines.append(f"  - Get by ID: retrieve{model.model_name}(id, config)")
        lines.append(f"  - Count: listAndCount{plural}(filters, config)")

        return "\n".join(lines)

    def docs_for(self, names: List[str]) -> str:
        docs = [doc for doc in (self.doc_for(n) for n in names) if doc]
        if not docs:
            return ""
        return "## Custom Module Models\n\n" + "\n\n".join(docs)

    def clear(self) -> None:
        self._models.clear()
        self.initialized = False

    def __len__(self) -> int:
        return len(self.all_models())
