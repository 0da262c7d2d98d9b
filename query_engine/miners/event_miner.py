"""
Event Miner.

Parses event subscribers and workflow definitions to build event chains:
which workflows an event triggers, which entities are read or written
along the way, and which further events cascade out of those workflows.
"""

import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import read_sources, split_quoted_list

logger = logging.getLogger("query_engine.miners.events")

EVENT_RE = re.compile(r"event:\s*[\"']([^\"']+)[\"']")
WORKFLOW_IMPORT_RE = re.compile(
    r"import\s+[^;]*?(\w+Workflow)[^;]*?from\s+[\"'][^\"']*workflows", re.MULTILINE
)
WORKFLOW_RUN_RE = re.compile(r"(\w+Workflow)\s*\(\s*(?:container|req\.scope)\s*\)\s*\.run")
GRAPH_CALL_RE = re.compile(r"query\.graph\s*\(\s*\{([\s\S]*?)\}\s*\)")
GRAPH_ENTITY_RE = re.compile(r"entity:\s*[\"'](\w+)[\"']")
GRAPH_FIELDS_RE = re.compile(r"fields:\s*\[([^\]]+)\]")
SERVICE_CALL_RE = re.compile(r"(\w+)Service\.(retrieve|list|create|update|delete)\w+")

WORKFLOW_EXPORT_RE = re.compile(r"export\s+(?:const|default|function)\s+(\w+Workflow)\s*=")
WORKFLOW_INPUT_RE = re.compile(r"type\s+\w*Input\w*\s*=\s*\{([^}]+)\}")
INPUT_FIELD_RE = re.compile(r"(\w+)\s*\??:")
CREATE_STEP_RE = re.compile(r"createStep\s*\(\s*[\"']([^\"']+)[\"']")
CREATE_CALL_RE = re.compile(r"\.create(\w+?)s?\s*\(")
UPDATE_CALL_RE = re.compile(r"\.update(\w+?)s?\s*\(")
EMIT_RE = re.compile(r"\.emit\s*\(\s*[\"']([^\"']+)[\"']")

SERVICE_OPERATIONS = {
    "retrieve": "read",
    "list": "read",
    "create": "create",
    "update": "update",
    "delete": "delete",
}


@dataclass
class EntityAccess:
    entity: str
    operation: str  # read | create | update | delete
    via: Optional[str] = None

    def same_as(self, other: "EntityAccess") -> bool:
        return self.entity == other.entity and self.operation == other.operation


@dataclass
class QueryPattern:
    entity: str
    fields: List[str] = field(default_factory=lambda: ["*"])


@dataclass
class ParsedSubscriber:
    file_name: str
    event_name: str
    triggered_workflows: List[str] = field(default_factory=list)
    entity_access: List[EntityAccess] = field(default_factory=list)
    query_patterns: List[QueryPattern] = field(default_factory=list)


@dataclass
class ParsedWorkflow:
    name: str
    file_name: str
    input_fields: List[str] = field(default_factory=list)
    steps: List[str] = field(default_factory=list)
    affected_entities: List[EntityAccess] = field(default_factory=list)
    emitted_events: List[str] = field(default_factory=list)


@dataclass
class EventChain:
    event: str
    subscribers: List[str] = field(default_factory=list)
    workflows: List[str] = field(default_factory=list)
    affected_entities: List[EntityAccess] = field(default_factory=list)
    cascading_events: List[str] = field(default_factory=list)
    query_patterns: List[QueryPattern] = field(default_factory=list)


def _add_access(accesses: List[EntityAccess], access: EntityAccess) -> None:
    if not any(a.same_as(access) for a in accesses):
        accesses.append(access)


def _unique(values: List[str]) -> List[str]:
    return list(dict.fromkeys(values))


def parse_subscriber_file(content: str, file_name: str = "") -> Optional[ParsedSubscriber]:
    event = EVENT_RE.search(content)
    if not event:
        return None

    workflows = _unique(WORKFLOW_IMPORT_RE.findall(content) + WORKFLOW_RUN_RE.findall(content))

    query_patterns = []
    for match in GRAPH_CALL_RE.finditer(content):
        block = match.group(1)
        entity = GRAPH_ENTITY_RE.search(block)
        if not entity:
            continue
        fields = GRAPH_FIELDS_RE.search(block)
        query_patterns.append(QueryPattern(
            entity=entity.group(1),
            fields=split_quoted_list(fields.group(1)) if fields else ["*"],
        ))

    accesses: List[EntityAccess] = []
    for service, verb in SERVICE_CALL_RE.findall(content):
        _add_access(accesses, EntityAccess(service.lower(), SERVICE_OPERATIONS[verb], "service call"))
    for pattern in query_patterns:
        _add_access(accesses, EntityAccess(pattern.entity, "read", "query.graph"))

    return ParsedSubscriber(
        file_name=file_name,
        event_name=event.group(1),
        triggered_workflows=workflows,
        entity_access=accesses,
        query_patterns=query_patterns,
    )


def parse_workflow_file(content: str, file_name: str = "") -> List[ParsedWorkflow]:
    names = WORKFLOW_EXPORT_RE.findall(content)
    if not names:
        return []

    input_fields: List[str] = []
    input_type = WORKFLOW_INPUT_RE.search(content)
    if input_type:
        input_fields = INPUT_FIELD_RE.findall(input_type.group(1))

    steps = CREATE_STEP_RE.findall(content)

    affected: List[EntityAccess] = []
    for entity in CREATE_CALL_RE.findall(content):
        _add_access(affected, EntityAccess(entity.lower(), "create"))
    for entity in UPDATE_CALL_RE.findall(content):
        _add_access(affected, EntityAccess(entity.lower(), "update"))

    emitted = _unique(EMIT_RE.findall(content))

    # Every workflow exported from a file shares that file's steps and effects
    return [
        ParsedWorkflow(
            name=name,
            file_name=file_name,
            input_fields=list(input_fields),
            steps=list(steps),
            affected_entities=list(affected),
            emitted_events=list(emitted),
        )
        for name in names
    ]


class EventMiner:
    """Subscribers by event name and workflows by workflow name."""

    def __init__(self):
        self._subscribers: Dict[str, ParsedSubscriber] = {}
        self._workflows: Dict[str, ParsedWorkflow] = {}
        self.initialized = False

    def mine(self, subscribers_path: Path, workflows_path: Path) -> None:
        subscribers = read_sources(Path(subscribers_path), "*.ts")
        workflows = read_sources(Path(workflows_path), "**/*.ts")
        logger.info(f"Found {len(subscribers)} subscriber files, {len(workflows)} workflow files")
        self.load_sources(subscribers, workflows)

    def load_sources(self, subscribers: Dict[str, str], workflows: Optional[Dict[str, str]] = None) -> None:
        for rel_path, content in subscribers.items():
            try:
                subscriber = parse_subscriber_file(content, Path(rel_path).name)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            if subscriber:
                self._subscribers[subscriber.event_name] = subscriber
                logger.debug(f"Parsed subscriber: {subscriber.event_name} -> {subscriber.triggered_workflows}")

        for rel_path, content in (workflows or {}).items():
            try:
                parsed = parse_workflow_file(content, Path(rel_path).name)
            except Exception as e:
                logger.warning(f"Failed to parse {rel_path}: {e}")
                continue
            for workflow in parsed:
                self._workflows[workflow.name] = workflow
                logger.debug(f"Parsed workflow: {workflow.name} ({len(workflow.steps)} steps)")

        self.initialized = True

    def subscriber(self, event_name: str) -> Optional[ParsedSubscriber]:
        return self._subscribers.get(event_name)

    def workflow(self, name: str) -> Optional[ParsedWorkflow]:
        return self._workflows.get(name)

    def chain_for(self, event_name: str) -> Optional[EventChain]:
        """Build the event chain for an event: subscriber, workflows and cascading events."""
        subscriber = self._subscribers.get(event_name)
        if subscriber is None:
            return None

        chain = EventChain(
            event=event_name,
            subscribers=[subscriber.file_name],
            workflows=list(subscriber.triggered_workflows),
            affected_entities=list(subscriber.entity_access),
            query_patterns=list(subscriber.query_patterns),
        )
        for workflow_name in subscriber.triggered_workflows:
            workflow = self._workflows.get(workflow_name)
            if workflow is None:
                continue
            for access in workflow.affected_entities:
                _add_access(chain.affected_entities, access)
            for event in workflow.emitted_events:
                if event not in chain.cascading_events:
                    chain.cascading_events.append(event)
        return chain

    def all_chains(self) -> List[EventChain]:
        return [c for c in (self.chain_for(e) for e in self._subscribers) if c]

    def chains_for_entities(self, entities: List[str]) -> List[EventChain]:
        """Event chains that touch any of the given entities."""
        wanted = [e.lower().replace("_", "") for e in entities]
        relevant = []
        for chain in self.all_chains():
            for access in chain.affected_entities:
                name = access.entity.lower().replace("_", "")
                if any(w == name or w in name for w in wanted):
                    relevant.append(chain)
                    break
        return relevant

    def doc_for(self, chain: EventChain) -> str:
        lines = [f"### Event: {chain.event}", ""]

        if chain.workflows:
            lines.append("**Triggers Workflows:**")
            lines.extend(f"  - {wf}" for wf in chain.workflows)
            lines.append("")

        if chain.affected_entities:
            lines.append("**Affected Entities:**")
            grouped: Dict[str, List[str]] = {}
            for access in chain.affected_entities:
                ops = grouped.setdefault(access.entity, [])
                if access.operation not in ops:
                    ops.append(access.operation)
            lines.extend(f"  - {entity}: {', '.join(ops)}" for entity, ops in grouped.items())
            lines.append("")

        if chain.query_patterns:
            lines.append("**Query Paths:**")
            for qp in chain.query_patterns:
                more = ", ..." if len(qp.fields) > 3 else ""
                lines.append(f"  - {qp.entity}: [{', '.join(qp.fields[:3])}{more}]")
            lines.append("")

        if chain.cascading_events:
            lines.append("**Cascading Events:**")
            lines.extend(f"  - {ev}" for ev in chain.cascading_events)
            lines.append("")

        return "\n".join(lines)

    def context_for(self, entities: List[str]) -> str:
        chains = self.chains_for_entities(entities)
        if not chains:
            return ""
        lines = [
            "## Event Chains (Business Logic Flows)",
            "",
            "These events affect the entities in your query:",
            "",
        ]
        lines.extend(self.doc_for(chain) for chain in chains)
        return "\n".join(lines)

    def clear(self) -> None:
        self._subscribers.clear()
        self._workflows.clear()
        self.initialized = False

    def __len__(self) -> int:
        return len(self._subscribers)
