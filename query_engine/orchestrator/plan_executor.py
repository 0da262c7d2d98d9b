"""
Plan Executor.

Runs an EnrichedPlan step by step through the data adapters:

- steps run strictly in ascending order
- `$N` / `$N.field` filter values are replaced with what earlier steps
  produced; an unresolvable reference fails the step
- pagination comes from configuration, never from filters
- the first failed step aborts the plan; there are no retries

Every step leaves an ExecutionLogEntry behind, and every extracted value a
DataLineage record, so the caller can show where an answer came from.
"""

import time
import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple

from configs import DEFAULT_PAGE_SIZE
from models import (
    DataLineage,
    EnrichedPlan,
    EnrichedStep,
    EntityCategory,
    ErrorCode,
    ExecutionLogEntry,
    ExecutionResult,
    FinalResult,
    LiteralValue,
    StepError,
    StepReference,
)
from query_engine.adapters import AdapterError, AdapterRegistry, Pagination

logger = logging.getLogger("query_engine.executor")

PREVIEW_LIMIT = 10
PREVIEW_FIELDS = [
    "id", "name", "title", "label", "description", "value", "code", "handle", "sku",
    "status", "email", "display_id", "total", "currency_code", "created_at",
]


class StepExecutionError(Exception):
    """A step failed with a classified error code."""

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


# ============================================================
# RESULT SHAPES
# ============================================================

def extract_items(data: Any, wrapper_key: Optional[str] = None, is_list: bool = True) -> List[Any]:
    """
    Pull the list of records out of an adapter response, whatever its wrapping.

    An unwrapped dict is a single record when a list was not expected or it
    carries an `id`; its nested relation lists are never taken as the items.
    """
    if data is None:
        return []
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        if wrapper_key and wrapper_key in data:
            wrapped = data[wrapper_key]
            if isinstance(wrapped, list):
                return wrapped
            return [wrapped] if wrapped is not None else []
        if not is_list or "id" in data:
            return [data]
        for value in data.values():
            if isinstance(value, list):
                return value
    return []


def preview_item(item: Any) -> str:
    if not item:
        return "(empty)"
    if not isinstance(item, dict):
        return str(item)[:150]

    parts = []
    for key in PREVIEW_FIELDS:
        if item.get(key) not in (None, ""):
            parts.append(f"{key}: {item[key]}")
        if key == "name" and (item.get("first_name") or item.get("last_name")):
            parts.append(f"name: {item.get('first_name') or ''} {item.get('last_name') or ''}".strip())
    return ", ".join(parts) if parts else str(item)[:150]


class PlanExecutor:
    """Executes enriched plans against the registered adapters."""

    def __init__(self, adapters: AdapterRegistry, page_size: int = DEFAULT_PAGE_SIZE):
        self.adapters = adapters
        self.page_size = page_size

    # ============================================================
    # Reference substitution
    # ============================================================

    @staticmethod
    def resolve_filters(
        step: EnrichedStep,
        produced: Dict[int, Any],
        first_items: Dict[int, Any],
    ) -> Dict[str, Any]:
        resolved: Dict[str, Any] = {}
        for key, value in step.filters.items():
            if isinstance(value, LiteralValue):
                resolved[key] = value.value
                continue

            ref: StepReference = value
            if ref.field is None:
                resolved_value = produced.get(ref.step_index)
            else:
                item = first_items.get(ref.step_index)
                resolved_value = item.get(ref.field) if isinstance(item, dict) else None

            if resolved_value is None:
                raise StepExecutionError(
                    ErrorCode.VALIDATION_ERROR,
                    f"Reference {ref.to_raw()} in filter '{key}' has no value from step {ref.step_index}",
                )
            resolved[key] = resolved_value
        return resolved

    # ============================================================
    # Execution
    # ============================================================

    async def _run_step(self, step: EnrichedStep, filters: Dict[str, Any]) -> Tuple[Any, Optional[int], List[Any]]:
        classification = step.classification
        if classification.category == EntityCategory.UNKNOWN:
            raise StepExecutionError(ErrorCode.ENTITY_NOT_FOUND, f"Unknown entity: {step.entity}")

        relations = list(step.relations)
        for linked in step.linked_fields:
            base = linked.split(".")[0]
            if base not in relations:
                relations.append(base)

        try:
            adapter = self.adapters.get(classification.access_method)
            result = await adapter.fetch(
                step.operation,
                step.entity,
                filters,
                relations,
                Pagination(take=self.page_size, skip=0),
            )
        except AdapterError as e:
            raise StepExecutionError(e.code, str(e)) from e
        except (TimeoutError, asyncio.TimeoutError) as e:
            raise StepExecutionError(ErrorCode.TIMEOUT, f"{step.entity} {step.operation} timed out") from e
        except Exception as e:
            raise StepExecutionError(ErrorCode.UNKNOWN, f"{type(e).__name__}: {e}") from e

        expectation = step.response_expectation
        items = extract_items(result.data, expectation.wrapper_key, expectation.is_list)
        return result.data, result.count, items

    async def execute(self, plan: EnrichedPlan) -> ExecutionResult:
        """Run every step in order; stop at the first failure."""
        started = time.perf_counter()
        produced: Dict[int, Any] = {}
        first_items: Dict[int, Any] = {}
        log: List[ExecutionLogEntry] = []
        lineage: List[DataLineage] = []
        final: Optional[FinalResult] = None
        last: Optional[FinalResult] = None

        logger.info(
            f"Executing {len(plan.steps)}-step plan: {plan.explanation[:80]} "
            f"(core: {plan.core_entities or '-'}, custom: {plan.custom_entities or '-'})"
        )

        for step in sorted(plan.steps, key=lambda s: s.step):
            step_started = time.perf_counter()
            filters: Dict[str, Any] = step.raw_filters()
            logger.info(step.description or f"Step {step.step}: {step.operation} {step.entity}")

            try:
                filters = self.resolve_filters(step, produced, first_items)
                data, count, items = await self._run_step(step, filters)

                resolved_value = None
                if step.extract:
                    if not items:
                        raise StepExecutionError(
                            ErrorCode.NO_RESULTS,
                            f"No {step.entity} found matching {filters}",
                        )
                    first = items[0]
                    if not isinstance(first, dict) or first.get(step.extract) is None:
                        raise StepExecutionError(
                            ErrorCode.EXTRACTION_FAILED,
                            f"Field '{step.extract}' missing from {step.entity} result",
                        )
                    resolved_value = first[step.extract]
                    lineage.append(DataLineage(
                        step=step.step,
                        entity=step.entity,
                        extracted_field=step.extract,
                        extracted_value=resolved_value,
                    ))
            except StepExecutionError as e:
                duration = (time.perf_counter() - step_started) * 1000
                error = StepError(code=e.code, message=e.message)
                log.append(ExecutionLogEntry(
                    step=step.step,
                    entity=step.entity,
                    operation=step.operation,
                    filters=filters,
                    success=False,
                    duration_ms=duration,
                    error=error,
                ))
                logger.error(f"Step {step.step} failed [{e.code.value}]: {e.message}")
                return ExecutionResult(
                    success=False,
                    final_result=None,
                    execution_log=log,
                    data_lineage=lineage,
                    error=error,
                    failed_step=step.step,
                    total_duration_ms=(time.perf_counter() - started) * 1000,
                )

            produced[step.step] = resolved_value if step.extract else (items[0] if items else None)
            first_items[step.step] = items[0] if items else None
            log.append(ExecutionLogEntry(
                step=step.step,
                entity=step.entity,
                operation=step.operation,
                filters=filters,
                success=True,
                duration_ms=(time.perf_counter() - step_started) * 1000,
                item_count=len(items),
                resolved_value=resolved_value,
            ))
            last = FinalResult(entity=step.entity, data=data, count=count if count is not None else len(items))
            if step.entity == plan.final_entity:
                final = last

        total = (time.perf_counter() - started) * 1000
        logger.info(f"Plan executed in {total:.0f}ms")
        return ExecutionResult(
            success=True,
            final_result=final or last,
            execution_log=log,
            data_lineage=lineage,
            total_duration_ms=total,
        )


def format_for_llm(result: ExecutionResult, explanation: str = "") -> str:
    """Provenance summary plus item previews, for the reply-generation step."""
    lines: List[str] = []
    if explanation:
        lines.extend([f"## Query Plan: {explanation}", ""])

    if len(result.execution_log) > 1:
        lines.append("### Resolution Steps:")
        for entry in result.execution_log[:-1]:
            if entry.success and entry.resolved_value is not None:
                lines.append(f"- Step {entry.step}: Found {entry.entity} -> {entry.resolved_value}")
            elif not entry.success and entry.error:
                lines.append(f"- Step {entry.step}: Failed to find {entry.entity} - {entry.error.message}")
        lines.append("")

    if result.success and result.final_result is not None:
        items = extract_items(result.final_result.data)
        lines.append(f"### Results ({result.final_result.entity}):")
        if not items:
            lines.append("No results found.")
        else:
            lines.append(f"Found {len(items)} item(s):")
            for item in items[:PREVIEW_LIMIT]:
                lines.append(f"- {preview_item(item)}")
            if len(items) > PREVIEW_LIMIT:
                lines.append(f"... and {len(items) - PREVIEW_LIMIT} more")
    elif result.error is not None:
        lines.append("### Error:")
        lines.append(f"[{result.error.code.value}] step {result.failed_step}: {result.error.message}")

    return "\n".join(lines)
