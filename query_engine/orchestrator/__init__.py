"""Orchestrator module initialization: planning, model rotation and execution."""
from .llm_client import (
    CompletionClient,
    LiteLLMCompletionClient,
    LLMError,
    RateLimitError,
    AllModelsFailedError,
)
from .model_rotator import ModelRotator, ModelState, is_rate_limit_error
from .json_utils import (
    JSONExtractionError,
    PlanParseError,
    extract_first_json_block,
    safe_parse_llm_json,
    parse_plan_response,
)
from .query_planner import QueryPlanner, plan_requires_resolution, plan_entities
from .plan_executor import PlanExecutor, StepExecutionError, extract_items, format_for_llm

__all__ = [
    "CompletionClient",
    "LiteLLMCompletionClient",
    "LLMError",
    "RateLimitError",
    "AllModelsFailedError",
    "ModelRotator",
    "ModelState",
    "is_rate_limit_error",
    "JSONExtractionError",
    "PlanParseError",
    "extract_first_json_block",
    "safe_parse_llm_json",
    "parse_plan_response",
    "QueryPlanner",
    "plan_requires_resolution",
    "plan_entities",
    "PlanExecutor",
    "StepExecutionError",
    "extract_items",
    "format_for_llm",
]
