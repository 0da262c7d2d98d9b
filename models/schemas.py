"""
Pydantic models for structured data flow between planner, executor and caches.
These models ensure type safety and enable reliable data passing.
"""
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from typing_extensions import Annotated


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityCategory(str, Enum):
    """How the engine came to know an entity."""
    PRE_REGISTERED = "pre-registered"   # Owned module, static registry is authoritative
    DISCOVERED = "discovered"           # Found at runtime (docs lookup / mined code)
    UNKNOWN = "unknown"                 # Never queried directly


class AccessMethod(str, Enum):
    """Mechanism used to fetch an entity's data."""
    HTTP_API = "http-api"
    IN_PROCESS_SERVICE = "in-process-service"
    GRAPH_TRAVERSAL = "graph-traversal"


class Operation(str, Enum):
    """Read operations a plan step may perform."""
    LIST = "list"
    RETRIEVE = "retrieve"
    LIST_AND_COUNT = "listAndCount"


class ErrorCode(str, Enum):
    """Error taxonomy shared by planning and execution."""
    NO_RESULTS = "NO_RESULTS"
    API_ERROR = "API_ERROR"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    PLAN_GENERATION_FAILED = "PLAN_GENERATION_FAILED"
    ENTITY_NOT_FOUND = "ENTITY_NOT_FOUND"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TIMEOUT = "TIMEOUT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNKNOWN = "UNKNOWN"


class MatchBand(str, Enum):
    """Similarity band of a cache hit."""
    HIGH = "high"           # Safe to reuse verbatim
    MODERATE = "moderate"   # Usable as a worked example
    LOW = "low"             # Ignored


# ============================================================
# Entity Schema Models
# ============================================================

class ResolvableRef(BaseModel):
    """A foreign-key style field that can be resolved by searching another entity."""
    entity: str = Field(description="Entity the field points at")
    search_by: List[str] = Field(default_factory=lambda: ["q"], description="Filters usable to find it")


class EntityDescriptor(BaseModel):
    """Everything the planner and executor know about one entity."""
    name: str = Field(description="Canonical snake_case entity name")
    category: EntityCategory = Field(default=EntityCategory.UNKNOWN)
    access_method: AccessMethod = Field(default=AccessMethod.IN_PROCESS_SERVICE)
    relations: List[str] = Field(default_factory=list, description="Valid relation expansions")
    filters: List[str] = Field(default_factory=list, description="Filterable fields")
    enum_values: Dict[str, List[str]] = Field(default_factory=dict, description="Enumerated field values")
    resolvable_refs: Dict[str, ResolvableRef] = Field(default_factory=dict)
    description: str = Field(default="")
    keywords: List[str] = Field(default_factory=list, description="Words that mention this entity")
    api_path: Optional[str] = Field(default=None, description="REST path for http-api entities")
    source: str = Field(default="static", description="static | docs | mined")
    fetched_at: datetime = Field(default_factory=utcnow)

    @property
    def is_core(self) -> bool:
        return self.access_method == AccessMethod.HTTP_API

    @model_validator(mode="after")
    def _unknown_has_no_relations(self) -> "EntityDescriptor":
        if self.category == EntityCategory.UNKNOWN:
            self.relations = []
        return self


class DocFacts(BaseModel):
    """Facts returned by the external documentation lookup."""
    relations: List[str] = Field(default_factory=list)
    filters: List[str] = Field(default_factory=list)
    api_path: Optional[str] = None


class DiscoveryResult(BaseModel):
    """Outcome of trying to recognise a name extracted from free text."""
    is_valid: bool
    category: EntityCategory
    descriptor: Optional[EntityDescriptor] = None


class Classification(BaseModel):
    """How a step's entity must be fetched."""
    entity_name: str
    is_core: bool
    access_method: AccessMethod
    valid_relations: List[str] = Field(default_factory=list)
    category: EntityCategory = EntityCategory.UNKNOWN


class RelationCheck(BaseModel):
    valid: List[str] = Field(default_factory=list)
    invalid: List[str] = Field(default_factory=list)


class ResponseExpectation(BaseModel):
    """Shape the executor should expect back from the adapter."""
    wrapper_key: Optional[str] = Field(default=None, description="Key holding the items, if wrapped")
    is_list: bool = True
    id_field: str = "id"


# ============================================================
# Filter Values (tagged)
# ============================================================

REFERENCE_PATTERN = re.compile(r"^\$(\d+)(?:\.(\w+))?$")


class LiteralValue(BaseModel):
    """A concrete filter value."""
    kind: Literal["literal"] = "literal"
    value: Any = None

    def to_raw(self) -> Any:
        return self.value


class StepReference(BaseModel):
    """A value produced by an earlier step: `$N` or `$N.field`."""
    kind: Literal["reference"] = "reference"
    step_index: int = Field(ge=1)
    field: Optional[str] = None

    def to_raw(self) -> str:
        if self.field:
            return f"${self.step_index}.{self.field}"
        return f"${self.step_index}"


FilterValue = Annotated[Union[LiteralValue, StepReference], Field(discriminator="kind")]


def parse_filter_value(value: Any) -> Union[LiteralValue, StepReference]:
    """Turn a raw (LLM or cached) filter value into its tagged form."""
    if isinstance(value, (LiteralValue, StepReference)):
        return value
    if isinstance(value, dict) and value.get("kind") == "reference" and "step_index" in value:
        return StepReference(**value)
    if isinstance(value, dict) and value.get("kind") == "literal" and set(value) <= {"kind", "value"}:
        return LiteralValue(**value)
    if isinstance(value, str):
        match = REFERENCE_PATTERN.match(value.strip())
        if match:
            return StepReference(step_index=int(match.group(1)), field=match.group(2))
    return LiteralValue(value=value)


# ============================================================
# Query Plan Models
# ============================================================

class WorkflowAction(BaseModel):
    """Optional side-effecting action proposed alongside a plan."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["workflow"] = "workflow"
    endpoint: str
    method: Literal["POST", "PUT", "PATCH"]
    body: Optional[Dict[str, Any]] = None
    workflow_name: Optional[str] = Field(default=None, alias="workflowName")


class PlanStep(BaseModel):
    """One retrieval operation within a plan."""
    model_config = ConfigDict(populate_by_name=True)

    step: int = Field(ge=1, description="Sequence number, 1-based")
    entity: str
    operation: str = Field(default=Operation.LIST.value, description="list | retrieve | listAndCount")
    filters: Dict[str, FilterValue] = Field(default_factory=dict)
    relations: List[str] = Field(default_factory=list)
    extract: Optional[str] = Field(default=None, description="Field to hand to later steps")
    linked_fields: List[str] = Field(default_factory=list, alias="linkedFields")
    fields: List[str] = Field(default_factory=list)
    execution_method: Optional[Literal["http", "module", "graph"]] = Field(default=None, alias="executionMethod")

    @field_validator("filters", mode="before")
    @classmethod
    def _tag_filters(cls, value: Any) -> Dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise ValueError("filters must be an object")
        return {str(k): parse_filter_value(v) for k, v in value.items()}

    @field_validator("relations", "linked_fields", "fields", mode="before")
    @classmethod
    def _none_to_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_serializer("filters")
    def _dump_filters(self, filters: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v.to_raw() for k, v in filters.items()}

    def references(self) -> List[StepReference]:
        return [v for v in self.filters.values() if isinstance(v, StepReference)]

    def raw_filters(self) -> Dict[str, Any]:
        return {k: v.to_raw() for k, v in self.filters.items()}


class QueryPlan(BaseModel):
    """Ordered, dependency-safe retrieval plan."""
    model_config = ConfigDict(populate_by_name=True)

    steps: List[PlanStep] = Field(min_length=1)
    final_entity: str = Field(alias="finalEntity")
    explanation: str = ""
    action: Optional[WorkflowAction] = None

    @model_validator(mode="after")
    def _references_point_backward(self) -> "QueryPlan":
        numbers = [s.step for s in self.steps]
        if len(set(numbers)) != len(numbers):
            raise ValueError(f"duplicate step numbers: {numbers}")
        self.steps = sorted(self.steps, key=lambda s: s.step)
        known = set(numbers)
        for step in self.steps:
            for ref in step.references():
                if ref.step_index >= step.step:
                    raise ValueError(
                        f"step {step.step} references step {ref.step_index}; "
                        "references must point to an earlier step"
                    )
                if ref.step_index not in known:
                    raise ValueError(f"step {step.step} references missing step {ref.step_index}")
        return self

    def to_prompt_dict(self) -> Dict[str, Any]:
        """Compact camelCase form, as the planner prompt shows plans."""
        return self.model_dump(by_alias=True, exclude_none=True, exclude_defaults=True)

    def entities(self) -> List[str]:
        seen: List[str] = []
        for step in self.steps:
            if step.entity not in seen:
                seen.append(step.entity)
        return seen


class StepValidation(BaseModel):
    require_non_empty: bool = False
    require_fields: List[str] = Field(default_factory=lambda: ["id"])
    extract_field: Optional[str] = None


class EnrichedStep(PlanStep):
    """Plan step plus everything the executor needs to run it."""
    classification: Classification
    response_expectation: ResponseExpectation
    validation: StepValidation
    description: str = ""
    depends_on: List[int] = Field(default_factory=list)


class EnrichedPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    steps: List[EnrichedStep]
    final_entity: str = Field(alias="finalEntity")
    explanation: str = ""
    action: Optional[WorkflowAction] = None
    core_entities: List[str] = Field(default_factory=list)
    custom_entities: List[str] = Field(default_factory=list)
    source: QueryPlan

    @property
    def plan(self) -> QueryPlan:
        return self.source


# ============================================================
# Execution Models
# ============================================================

class StepError(BaseModel):
    code: ErrorCode
    message: str


class ExecutionLogEntry(BaseModel):
    """Provenance record for one executed step."""
    step: int
    entity: str
    operation: str
    filters: Dict[str, Any] = Field(default_factory=dict, description="Filters after substitution")
    success: bool
    duration_ms: float = 0.0
    item_count: int = 0
    resolved_value: Any = None
    error: Optional[StepError] = None


class DataLineage(BaseModel):
    step: int
    entity: str
    extracted_field: Optional[str] = None
    extracted_value: Any = None


class FinalResult(BaseModel):
    entity: str
    data: Any = None
    count: Optional[int] = None


class ExecutionResult(BaseModel):
    """Everything the caller needs to render an answer and its provenance."""
    success: bool
    final_result: Optional[FinalResult] = None
    execution_log: List[ExecutionLogEntry] = Field(default_factory=list)
    data_lineage: List[DataLineage] = Field(default_factory=list)
    error: Optional[StepError] = None
    failed_step: Optional[int] = None
    total_duration_ms: float = 0.0


# ============================================================
# Cache Models
# ============================================================

class StoredPlan(BaseModel):
    """A plan that executed successfully for some query."""
    id: str
    query: str
    plan: QueryPlan
    success_count: int = 1
    created_at: datetime = Field(default_factory=utcnow)
    last_used: datetime = Field(default_factory=utcnow)


class PlanMatch(BaseModel):
    record: StoredPlan
    similarity: float
    band: MatchBand

    @property
    def can_reuse(self) -> bool:
        return self.band == MatchBand.HIGH

    @property
    def needs_adaptation(self) -> bool:
        return self.band == MatchBand.MODERATE


class FailedQueryRecord(BaseModel):
    """A query whose plan could not be generated or executed."""
    id: str
    query: str
    plan: Optional[QueryPlan] = None
    failure_step: int = -1
    error_code: ErrorCode = ErrorCode.UNKNOWN
    error_message: str = ""
    context: Dict[str, Any] = Field(default_factory=dict)
    suggested_fix: Optional[str] = None
    resolved_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_resolved(self) -> bool:
        return self.resolved_by is not None


class FailureMatch(BaseModel):
    record: FailedQueryRecord
    similarity: float
    band: MatchBand


class FailureAnalysis(BaseModel):
    suggestion: str
    similar_failures: List[FailureMatch] = Field(default_factory=list)
    resolution_found: bool = False


# ============================================================
# Engine Output
# ============================================================

class PlanSource(str, Enum):
    CACHE = "cache"
    PLANNER = "planner"
    FALLBACK = "fallback"


class QueryAnswer(BaseModel):
    """Outcome of answering one question end to end."""
    query: str
    entities: List[str] = Field(default_factory=list)
    plan: QueryPlan
    plan_source: PlanSource
    result: ExecutionResult
    summary: str = ""
    failure_analysis: Optional[FailureAnalysis] = None
