"""
Route Miner.

Parses admin API route files (`**/route.ts`) to extract HTTP verbs, URL
patterns with dynamic params, triggered workflows and GET query params;
and validator files (`**/validators.ts`) to extract z.object schemas with
required/optional fields and enum values.
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import read_sources, balanced_block, split_quoted_list

logger = logging.getLogger("query_engine.miners.routes")

HTTP_VERBS = ("GET", "POST", "PUT", "DELETE", "PATCH")
VERB_RE = {
    verb: re.compile(rf"export\s+(const|async\s+function)\s+{verb}\s*[=(]", re.MULTILINE)
    for verb in HTTP_VERBS
}
PARAM_RE = re.compile(r"\[(\w+)\]")
WORKFLOW_IMPORT_RE = re.compile(
    r"import\s+[^;]*?(\w+Workflow)[^;]*?from\s+[\"'][^\"']*workflows", re.MULTILINE
)
QUERY_TYPE_RE = re.compile(r"query:\s*\{([^}]+(?:\{[^}]*\}[^}]*)*)\}")
QUERY_PARAM_RE = re.compile(r"(\w+)(\??):\s*([^;,\n]+)")
SCHEMA_RE = re.compile(r"(?:export\s+)?const\s+(\w+)\s*=\s*z\.object\s*\(\s*\{")
ZOD_FIELD_RE = re.compile(r"(\w+):\s*z\.(string|number|boolean|array|object|enum|date|union)")
ZOD_OPTIONAL_RE = re.compile(r"^\s*\([^)]*\)\s*\.optional\s*\(")
ZOD_ENUM_RE = re.compile(r"z\.enum\s*\(\s*\[([^\]]+)\]")

# entity name (underscores removed) -> route module directory
ENTITY_MODULES = {
    "design": "designs",
    "productionrun": "production-runs",
    "task": "tasks",
    "person": "persons",
    "partner": "partners",
    "rawmaterial": "raw-materials",
    "inventoryorder": "inventory-orders",
    "materialtype": "material-types",
    "customer": "customers",
    "order": "orders",
    "product": "products",
    "store": "store",
}


@dataclass
class ParsedQueryParam:
    name: str
    type: str = "string"
    required: bool = True
    enum_values: Optional[List[str]] = None


@dataclass
class ParsedRoute:
    path: str
    methods: List[str]
    module: str
    action: str
    params: List[str] = field(default_factory=list)
    workflow_name: Optional[str] = None
    query_params: List[ParsedQueryParam] = field(default_factory=list)

    @property
    def has_workflow(self) -> bool:
        return self.workflow_name is not None


@dataclass
class ParsedValidatorField:
    name: str
    type: str
    required: bool = True
    enum_values: Optional[List[str]] = None


@dataclass
class ParsedValidator:
    name: str
    fields: List[ParsedValidatorField] = field(default_factory=list)

    @property
    def required_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.required]

    @property
    def optional_fields(self) -> List[str]:
        return [f.name for f in self.fields if not f.required]


def extract_query_params(content: str) -> List[ParsedQueryParam]:
    """Query params from a `query: { offset?: number; status?: "a" | "b" }` annotation."""
    match = QUERY_TYPE_RE.search(content)
    if not match:
        return []

    params = []
    for pm in QUERY_PARAM_RE.finditer(match.group(1)):
        type_str = pm.group(3).strip().rstrip(";,").strip()
        param = ParsedQueryParam(name=pm.group(1), required=not pm.group(2))

        if "|" in type_str and ('"' in type_str or "'" in type_str):
            values = [
                v.strip().strip("\"'") for v in type_str.split("|")
            ]
            values = [v for v in values if v and v != "undefined"]
            if values:
                param.type = "enum"
                param.enum_values = values
        elif type_str == "number":
            param.type = "number"
        elif "[]" in type_str:
            param.type = "array"
        elif type_str == "boolean":
            param.type = "boolean"

        params.append(param)
    return params


def parse_route_file(content: str, relative_path: str) -> Optional[ParsedRoute]:
    """designs/[id]/send-to-partner/route.ts -> POST /admin/designs/[id]/send-to-partner"""
    relative_path = relative_path.replace("\\", "/")
    url_path = "/admin/" + re.sub(r"/?route\.ts$", "", relative_path)
    url_path = url_path.rstrip("/")
    module = relative_path.split("/")[0]

    methods = [verb for verb in HTTP_VERBS if VERB_RE[verb].search(content)]
    if not methods:
        return None

    workflow = WORKFLOW_IMPORT_RE.search(content)

    action = url_path.rstrip("/").split("/")[-1]
    if action.startswith("[") and action.endswith("]"):
        action = "detail"
    action = action.replace("-", "_")

    return ParsedRoute(
        path=url_path,
        methods=methods,
        module=module,
        action=action,
        params=PARAM_RE.findall(url_path),
        workflow_name=workflow.group(1) if workflow else None,
        query_params=extract_query_params(content) if "GET" in methods else [],
    )


def parse_zod_fields(block: str) -> List[ParsedValidatorField]:
    fields = []
    for match in ZOD_FIELD_RE.finditer(block):
        after = block[match.end():match.end() + 200]
        enum_values = None
        if match.group(2) == "enum":
            enum_match = ZOD_ENUM_RE.search(block, match.start())
            if enum_match:
                enum_values = split_quoted_list(enum_match.group(1))
        fields.append(ParsedValidatorField(
            name=match.group(1),
            type=match.group(2),
            required=not ZOD_OPTIONAL_RE.match(after),
            enum_values=enum_values,
        ))
    return fields


def parse_validator_file(content: str) -> List[ParsedValidator]:
    validators = []
    for match in SCHEMA_RE.finditer(content):
        block = balanced_block(content, match.end())
        if block is None:
            continue
        validators.append(ParsedValidator(name=match.group(1), fields=parse_zod_fields(block)))
    return validators


class RouteMiner:
    """Index of admin routes and validators by route module."""

    def __init__(self):
        self._routes: Dict[str, List[ParsedRoute]] = {}
        self._validators: Dict[str, List[ParsedValidator]] = {}
        self.initialized = False

    def mine(self, api_path: Path) -> Dict[str, List[ParsedRoute]]:
        api_path = Path(api_path)
        routes = read_sources(api_path, "**/route.ts")
        validators = read_sources(api_path, "**/validators.ts")
        logger.info(f"Found {len(routes)} route files, {len(validators)} validator files")
        self.load_sources(routes, validators)
        return self._routes

    def load_sources(self, routes: Dict[str, str], validators: Optional[Dict[str, str]] = None) -> None:
        for rel_path, content in routes.items():
            try:
                route = parse_route_file(content, rel_path)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            if route:
                self._routes.setdefault(route.module, []).append(route)
                suffix = f" (workflow: {route.workflow_name})" if route.has_workflow else ""
                logger.debug(f"Parsed: {','.join(route.methods)} {route.path}{suffix}")

        for rel_path, content in (validators or {}).items():
            module = rel_path.replace("\\", "/").split("/")[0]
            try:
                parsed = parse_validator_file(content)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            self._validators.setdefault(module, []).extend(parsed)
            for v in parsed:
                logger.debug(f"Parsed validator: {v.name} ({len(v.fields)} fields)")

        self.initialized = True

    def routes_for(self, module: str) -> List[ParsedRoute]:
        return list(self._routes.get(module, []))

    def validators_for(self, module: str) -> List[ParsedValidator]:
        return list(self._validators.get(module, []))

    def modules(self) -> List[str]:
        return list(self._routes.keys())

    def routes_for_workflow(self, workflow_name: str) -> List[ParsedRoute]:
        return [
            route
            for routes in self._routes.values()
            for route in routes
            if route.workflow_name == workflow_name
        ]

    def entity_to_module(self, entity: str) -> Optional[str]:
        """Map an entity name to its route module directory."""
        normalized = entity.lower().replace("_", "")
        if normalized in ENTITY_MODULES:
            return ENTITY_MODULES[normalized]
        hyphenated = entity.lower().replace("_", "-")
        for candidate in (hyphenated + "s", hyphenated):
            if candidate in self._routes:
                return candidate
        return None

    def doc_for(self, module: str) -> Optional[str]:
        """LLM-friendly documentation for a module's API."""
        routes = self.routes_for(module)
        if not routes:
            return None

        lines = [f"### {module} API Endpoints", ""]
        for route in routes:
            lines.append(f"**{'/'.join(route.methods)} {route.path}**")
            if route.has_workflow:
                lines.append(f"  Triggers workflow: {route.workflow_name}")
            if route.query_params:
                lines.append("  Query params:")
                for p in route.query_params:
                    enum_str = ""
                    if p.enum_values:
                        more = "|..." if len(p.enum_values) > 4 else ""
                        enum_str = f" ({'|'.join(p.enum_values[:4])}{more})"
                    required = "*" if p.required else ""
                    lines.append(f"    - {p.name}{required}: {p.type}{enum_str}")
            lines.append("")

        validators = self.validators_for(module)
        if validators:
            lines.append("**Input Schemas:**")
            for v in validators:
                lines.append(f"  {v.name}:")
                if v.required_fields:
                    lines.append(f"    Required: {', '.join(v.required_fields)}")
                if v.optional_fields:
                    more = ", ..." if len(v.optional_fields) > 5 else ""
                    lines.append(f"    Optional: {', '.join(v.optional_fields[:5])}{more}")
                for f in v.fields:
                    if f.enum_values:
                        more = ", ..." if len(f.enum_values) > 5 else ""
                        lines.append(f"    {f.name}: [{', '.join(f.enum_values[:5])}{more}]")
            lines.append("")

        return "\n".join(lines)

    def docs_for(self, modules: List[str]) -> str:
        docs = [doc for doc in (self.doc_for(m) for m in modules) if doc]
        if not docs:
            return ""
        return "## API Endpoints (from codebase)\n\n" + "\n".join(docs)

    def clear(self) -> None:
        self._routes.clear()
        self._validators.clear()
        self.initialized = False

    def __len__(self) -> int:
        return sum(len(r) for r in self._routes.values())
