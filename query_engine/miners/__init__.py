"""Codebase miners: models, links, routes and event chains."""
from .model_miner import ModelMiner, ParsedModel, ParsedField, ParsedRelation, parse_model_file
from .link_miner import LinkMiner, ParsedLink, parse_link_file, normalize_entity_name
from .route_miner import (
    RouteMiner,
    ParsedRoute,
    ParsedQueryParam,
    ParsedValidator,
    ParsedValidatorField,
    parse_route_file,
    parse_validator_file,
)
from .event_miner import (
    EventMiner,
    EventChain,
    EntityAccess,
    QueryPattern,
    ParsedSubscriber,
    ParsedWorkflow,
    parse_subscriber_file,
    parse_workflow_file,
)
from .context import CodebaseContext

__all__ = [
    "ModelMiner",
    "ParsedModel",
    "ParsedField",
    "ParsedRelation",
    "parse_model_file",
    "LinkMiner",
    "ParsedLink",
    "parse_link_file",
    "normalize_entity_name",
    "RouteMiner",
    "ParsedRoute",
    "ParsedQueryParam",
    "ParsedValidator",
    "ParsedValidatorField",
    "parse_route_file",
    "parse_validator_file",
    "EventMiner",
    "EventChain",
    "EntityAccess",
    "QueryPattern",
    "ParsedSubscriber",
    "ParsedWorkflow",
    "parse_subscriber_file",
    "parse_workflow_file",
    "CodebaseContext",
]
