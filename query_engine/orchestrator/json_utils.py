"""
JSON extraction for LLM plan responses.

PROBLEM
-------
Models wrap the plan they were asked for in prose or code fences:
    "Here is the plan:\n```json\n{"steps": [...]}\n```\nLet me know!"

SOLUTION
--------
Strip fences, cut out the first balanced JSON object, parse it, then
validate it as a QueryPlan. Every failure surfaces as PlanParseError so
the planner can move on to the next model.
"""
import json
import re
from typing import Any, Dict, Optional, Tuple

from pydantic import ValidationError

from models import QueryPlan

FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")


class JSONExtractionError(Exception):
    """Raised when no JSON object can be cut out of the text."""
    pass


class PlanParseError(Exception):
    """Raised when a model reply is not a usable query plan."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


def _balanced_object_end(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        char = text[i]
        if escaped:
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            in_string = not in_string
        elif not in_string and char == "{":
            depth += 1
        elif not in_string and char == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return None


def extract_first_json_block(text: str) -> Tuple[str, Optional[str]]:
    """
    Cut the first JSON object out of a model reply.

    Returns:
        (json_string, stripped_text) where stripped_text is whatever
        surrounded the object, or None when there was nothing.

    Examples:
        >>> extract_first_json_block('Plan: {"a": 1} Done!')
        ('{"a": 1}', 'Plan: Done!')
    """
    if not text or not isinstance(text, str):
        raise JSONExtractionError("Input text is empty or not a string")

    text = text.strip()
    fenced = FENCE_RE.search(text)
    if fenced and "{" in fenced.group(1):
        outside = (text[:fenced.start()].strip() + " " + text[fenced.end():].strip()).strip()
        text, surrounding = fenced.group(1).strip(), outside or None
    else:
        surrounding = None

    start = text.find("{")
    if start == -1:
        raise JSONExtractionError("No JSON object found (no opening brace)")
    end = _balanced_object_end(text, start)
    if end is None:
        raise JSONExtractionError("No matching closing brace found (unbalanced braces)")

    before, after = text[:start].strip(), text[end:].strip()
    if before or after:
        surrounding = " ".join(p for p in (surrounding, before + " " + after) if p).strip()
    return text[start:end], surrounding


def safe_parse_llm_json(text: str) -> Tuple[Dict[str, Any], Optional[str]]:
    """Extract and parse the first JSON object; it must be an object, not an array or scalar."""
    json_str, stripped = extract_first_json_block(text)
    try:
        parsed = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise JSONExtractionError(f"Extracted text is not valid JSON: {e}\nExtracted: {json_str[:200]}")
    if not isinstance(parsed, dict):
        raise JSONExtractionError(f"Expected JSON object (dict), got {type(parsed).__name__}")
    return parsed, stripped


def parse_plan_response(text: str) -> QueryPlan:
    """Model reply -> validated QueryPlan, or PlanParseError."""
    try:
        data, _ = safe_parse_llm_json(text)
    except JSONExtractionError as e:
        raise PlanParseError(str(e), raw=text) from e

    if "steps" not in data and isinstance(data.get("plan"), dict):
        data = data["plan"]
    steps = data.get("steps")
    if "finalEntity" not in data and "final_entity" not in data and isinstance(steps, list) and steps:
        last = steps[-1]
        if isinstance(last, dict) and last.get("entity"):
            data["finalEntity"] = last["entity"]
    try:
        return QueryPlan.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(f"Invalid plan structure: {e.error_count()} error(s): {e}", raw=text) from e
