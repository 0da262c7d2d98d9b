"""Models module initialization."""
from .schemas import (
    # Enums
    EntityCategory,
    AccessMethod,
    Operation,
    ErrorCode,
    MatchBand,
    # Entity schema models
    ResolvableRef,
    EntityDescriptor,
    DocFacts,
    DiscoveryResult,
    Classification,
    RelationCheck,
    ResponseExpectation,
    # Filter values
    REFERENCE_PATTERN,
    LiteralValue,
    StepReference,
    FilterValue,
    parse_filter_value,
    # Plan models
    WorkflowAction,
    PlanStep,
    QueryPlan,
    StepValidation,
    EnrichedStep,
    EnrichedPlan,
    # Execution models
    StepError,
    ExecutionLogEntry,
    DataLineage,
    FinalResult,
    ExecutionResult,
    # Cache models
    StoredPlan,
    PlanMatch,
    FailedQueryRecord,
    FailureMatch,
    FailureAnalysis,
    PlanSource,
    QueryAnswer,
    utcnow,
)

__all__ = [
    "EntityCategory",
    "AccessMethod",
    "Operation",
    "ErrorCode",
    "MatchBand",
    "ResolvableRef",
    "EntityDescriptor",
    "DocFacts",
    "DiscoveryResult",
    "Classification",
    "RelationCheck",
    "ResponseExpectation",
    "REFERENCE_PATTERN",
    "LiteralValue",
    "StepReference",
    "FilterValue",
    "parse_filter_value",
    "WorkflowAction",
    "PlanStep",
    "QueryPlan",
    "StepValidation",
    "EnrichedStep",
    "EnrichedPlan",
    "StepError",
    "ExecutionLogEntry",
    "DataLineage",
    "FinalResult",
    "ExecutionResult",
    "StoredPlan",
    "PlanMatch",
    "FailedQueryRecord",
    "FailureMatch",
    "FailureAnalysis",
    "PlanSource",
    "QueryAnswer",
    "utcnow",
]
