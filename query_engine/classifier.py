"""
Entity Classifier.

Decides, per plan step, how an entity must be fetched (HTTP API, in-process
service, or graph traversal over module links) and which relations may be
expanded. `validate_relations` is the single gate every planner- or
cache-supplied relation list passes through.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from models import (
    AccessMethod,
    Classification,
    EntityCategory,
    EntityDescriptor,
    Operation,
    PlanStep,
    RelationCheck,
    ResponseExpectation,
    StepReference,
    parse_filter_value,
)
from query_engine.utils import pluralize
from query_engine.schema import EntityRegistry

logger = logging.getLogger("query_engine.classifier")


class EntityClassifier:
    """Classifies entities against the registry, resolved descriptors and mined links."""

    def __init__(self, registry: EntityRegistry, link_miner=None):
        self.registry = registry
        self.link_miner = link_miner
        self._resolved: Dict[str, EntityDescriptor] = {}

    def remember(self, descriptors: Dict[str, EntityDescriptor]) -> None:
        """Make runtime-discovered descriptors visible to classification."""
        for name, descriptor in descriptors.items():
            self._resolved[self.registry.normalize(name)] = descriptor

    def descriptor_for(self, name: str) -> Optional[EntityDescriptor]:
        key = self.registry.normalize(name)
        descriptor = self._resolved.get(key)
        if descriptor is not None and descriptor.category != EntityCategory.UNKNOWN:
            return descriptor
        return self.registry.get(key)

    def _linked_names(self, name: str) -> set:
        if self.link_miner is None:
            return set()
        return self.link_miner.linked_relation_names(self.registry.normalize(name))

    # ============================================================
    # Classification
    # ============================================================

    def classify(self, name: str, relations: Optional[Iterable[str]] = None) -> Classification:
        key = self.registry.normalize(name)
        descriptor = self.descriptor_for(key)

        if descriptor is None:
            return Classification(
                entity_name=key,
                is_core=False,
                access_method=AccessMethod.IN_PROCESS_SERVICE,
                valid_relations=[],
                category=EntityCategory.UNKNOWN,
            )

        linked = self._linked_names(key)
        if linked & set(relations or []):
            return Classification(
                entity_name=key,
                is_core=False,
                access_method=AccessMethod.GRAPH_TRAVERSAL,
                valid_relations=list(descriptor.relations) + sorted(linked - set(descriptor.relations)),
                category=descriptor.category,
            )

        return Classification(
            entity_name=key,
            is_core=descriptor.is_core,
            access_method=descriptor.access_method,
            valid_relations=list(descriptor.relations),
            category=descriptor.category,
        )

    def validate_relations(self, name: str, proposed: Iterable[str]) -> RelationCheck:
        """Split proposed relations into those the entity supports and those it does not."""
        descriptor = self.descriptor_for(name)
        allowed = set(descriptor.relations) if descriptor else set()
        if descriptor is not None:
            allowed |= self._linked_names(name)

        check = RelationCheck()
        for relation in proposed:
            if relation in allowed and relation not in check.valid:
                check.valid.append(relation)
            elif relation not in allowed and relation not in check.invalid:
                check.invalid.append(relation)

        if check.invalid:
            logger.warning(f"Dropping invalid relations for {name}: {check.invalid}")
        return check

    def response_expectation(
        self,
        name: str,
        is_core: bool,
        operation: str = Operation.LIST.value,
    ) -> ResponseExpectation:
        key = self.registry.normalize(name)
        is_list = operation != Operation.RETRIEVE.value
        if not is_core:
            return ResponseExpectation(wrapper_key=None, is_list=is_list)
        wrapper = pluralize(key) if is_list else key
        return ResponseExpectation(wrapper_key=wrapper, is_list=is_list)

    # ============================================================
    # Helpers
    # ============================================================

    @staticmethod
    def find_dependencies(filters: Dict[str, Any]) -> List[int]:
        """Step indices referenced by `$N` / `$N.field` filter values."""
        steps = set()
        for value in filters.values():
            parsed = parse_filter_value(value)
            if isinstance(parsed, StepReference):
                steps.add(parsed.step_index)
        return sorted(steps)

    @staticmethod
    def describe_step(step: PlanStep, classification: Classification) -> str:
        parts = [f"Step {step.step}: {step.operation} {step.entity} via {classification.access_method.value}"]
        if step.filters:
            parts.append(f"filtered by {', '.join(step.filters)}")
        if step.relations:
            parts.append(f"with {', '.join(step.relations)}")
        if step.extract:
            parts.append(f"extracting {step.extract}")
        return ", ".join(parts)

    @staticmethod
    def summary(classification: Classification) -> str:
        kind = "core" if classification.is_core else "custom"
        return (
            f"{classification.entity_name} [{kind}, {classification.category.value}, "
            f"{classification.access_method.value}, {len(classification.valid_relations)} relations]"
        )
