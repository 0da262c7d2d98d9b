"""
Model Provider Rotator.

Picks which model to call for each kind of LLM step and spaces calls out
so free-tier providers are not hammered:

- each step kind has an ordered list of candidate models (configuration)
- a rate-limited model is put on an exponential cool-down (60s, 120s, ...
  capped at 300s) and demoted to the end of the candidate list
- within one request, models not yet tried are preferred
- consecutive calls are spaced by a minimum delay, and the call after a
  rate-limit error waits an extra hold

The clock, sleep and random source are injectable so tests run instantly.
"""

import time
import uuid
import random
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple, TypeVar

import litellm

from configs import (
    STEP_MODELS,
    LLM_MIN_DELAY_MS,
    LLM_RATE_LIMIT_DELAY_MS,
    LLM_DELAY_JITTER,
    RATE_LIMIT_COOLDOWN_SECONDS,
    MAX_RATE_LIMIT_COOLDOWN_SECONDS,
)
from .llm_client import AllModelsFailedError

logger = logging.getLogger("query_engine.rotator")

T = TypeVar("T")

RATE_LIMIT_MARKERS = (
    "429",
    "rate limit",
    "rate-limit",
    "too many requests",
    "temporarily rate-limited",
    "quota exceeded",
)
REQUEST_MAX_AGE_SECONDS = 5 * 60
MIN_DELAY_FLOOR_MS = 100


def is_rate_limit_error(error: Any) -> bool:
    """True when an exception (or message) signals a rate limit or exhausted quota."""
    if error is None:
        return False
    if isinstance(error, litellm.RateLimitError):
        return True
    if getattr(error, "status", None) == 429 or getattr(error, "status_code", None) == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


@dataclass
class ModelState:
    """Rolling rate-limit status of one model. Times come from the rotator's clock."""
    model_id: str
    rate_limited_until: Optional[float] = None
    consecutive_failures: int = 0
    last_success: Optional[float] = None


class ModelRotator:
    """Per-step model selection with cool-downs and call spacing."""

    def __init__(
        self,
        step_models: Optional[Dict[str, List[str]]] = None,
        min_delay_ms: int = LLM_MIN_DELAY_MS,
        rate_limit_delay_ms: int = LLM_RATE_LIMIT_DELAY_MS,
        jitter: bool = LLM_DELAY_JITTER,
        cooldown_seconds: float = RATE_LIMIT_COOLDOWN_SECONDS,
        max_cooldown_seconds: float = MAX_RATE_LIMIT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ):
        self.step_models = {k: list(v) for k, v in (step_models if step_models is not None else STEP_MODELS).items()}
        self.min_delay_ms = min_delay_ms
        self.rate_limit_delay_ms = rate_limit_delay_ms
        self.jitter = jitter
        self.cooldown_seconds = cooldown_seconds
        self.max_cooldown_seconds = max_cooldown_seconds
        self._clock = clock
        self._sleep = sleep
        self._rng = rng

        self._states: Dict[str, ModelState] = {}
        self._requests: Dict[str, Tuple[float, Set[str]]] = {}
        self._last_call: Optional[float] = None
        self._pending_hold_ms = 0.0

    # ============================================================
    # Requests
    # ============================================================

    def new_request_id(self) -> str:
        self._cleanup_requests()
        request_id = f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"
        self._requests[request_id] = (self._clock(), set())
        return request_id

    def _cleanup_requests(self) -> None:
        now = self._clock()
        for request_id in [r for r, (created, _) in self._requests.items() if now - created > REQUEST_MAX_AGE_SECONDS]:
            del self._requests[request_id]

    def _record_usage(self, request_id: Optional[str], model: str) -> None:
        if request_id is None:
            return
        if request_id not in self._requests:
            self._requests[request_id] = (self._clock(), set())
        self._requests[request_id][1].add(model)

    def _used_in_request(self, request_id: Optional[str], model: str) -> bool:
        entry = self._requests.get(request_id) if request_id else None
        return entry is not None and model in entry[1]

    # ============================================================
    # Rate-limit tracking
    # ============================================================

    def state(self, model: str) -> ModelState:
        if model not in self._states:
            self._states[model] = ModelState(model_id=model)
        return self._states[model]

    def is_rate_limited(self, model: str) -> bool:
        state = self._states.get(model)
        if state is None or state.rate_limited_until is None:
            return False
        return self._clock() < state.rate_limited_until

    def mark_rate_limited(self, model: str) -> float:
        """Put a model on cool-down; returns the cool-down in seconds."""
        state = self.state(model)
        state.consecutive_failures += 1
        failures = state.consecutive_failures
        cooldown = min(self.cooldown_seconds * (2 ** (failures - 1)), self.max_cooldown_seconds)
        state.rate_limited_until = self._clock() + cooldown
        self._pending_hold_ms = max(self._pending_hold_ms, self._with_jitter(self.rate_limit_delay_ms))
        logger.warning(f"Model rate-limited: {model} (cooldown {cooldown:.0f}s, failure #{failures})")
        return cooldown

    def mark_success(self, model: str) -> None:
        state = self.state(model)
        if state.consecutive_failures:
            logger.info(f"Model recovered: {model}")
        state.rate_limited_until = None
        state.consecutive_failures = 0
        state.last_success = self._clock()

    def get_models(self, step_kind: str, request_id: Optional[str] = None) -> List[str]:
        """Candidates for a step: available ones first, rate-limited ones last by soonest recovery."""
        candidates = self.step_models.get(step_kind)
        if not candidates:
            logger.warning(f"No models configured for {step_kind}, using every configured model")
            candidates = list(dict.fromkeys(m for models in self.step_models.values() for m in models))

        available = [m for m in candidates if not self.is_rate_limited(m)]
        fresh = [m for m in available if not self._used_in_request(request_id, m)]
        tried = [m for m in available if self._used_in_request(request_id, m)]
        limited = sorted(
            (m for m in candidates if self.is_rate_limited(m)),
            key=lambda m: self._states[m].rate_limited_until,
        )
        if not available:
            logger.warning(f"All models rate-limited for {step_kind}")
        return fresh + tried + limited

    # ============================================================
    # Pacing
    # ============================================================

    def _with_jitter(self, delay_ms: float) -> float:
        if not self.jitter:
            return max(MIN_DELAY_FLOOR_MS, delay_ms)
        jitter = delay_ms * 0.2 * (self._rng() * 2 - 1)
        return max(MIN_DELAY_FLOOR_MS, round(delay_ms + jitter))

    async def wait_for_turn(self) -> float:
        """Sleep until the next call is allowed; returns seconds slept."""
        wait_ms = 0.0
        if self._last_call is not None:
            elapsed_ms = (self._clock() - self._last_call) * 1000
            wait_ms = max(0.0, self._with_jitter(self.min_delay_ms) - elapsed_ms)
        wait_ms += self._pending_hold_ms
        self._pending_hold_ms = 0.0

        if wait_ms > 0:
            logger.debug(f"Waiting {wait_ms:.0f}ms before next LLM call")
            await self._sleep(wait_ms / 1000)
        self._last_call = self._clock()
        return wait_ms / 1000

    # ============================================================
    # Rotation
    # ============================================================

    async def run(
        self,
        step_kind: str,
        request_id: Optional[str],
        call: Callable[[str], Awaitable[T]],
    ) -> Tuple[T, str]:
        """Try candidates in order until one succeeds; returns (result, model used)."""
        errors: Dict[str, str] = {}
        for model in self.get_models(step_kind, request_id):
            await self.wait_for_turn()
            self._record_usage(request_id, model)
            logger.debug(f"Trying {model} for {step_kind}")
            try:
                result = await call(model)
            except Exception as e:
                errors[model] = str(e)
                if is_rate_limit_error(e):
                    self.mark_rate_limited(model)
                else:
                    logger.warning(f"{model} failed for {step_kind}: {e}")
                continue
            self.mark_success(model)
            logger.info(f"{model} succeeded for {step_kind}")
            return result, model

        raise AllModelsFailedError(step_kind, errors)

    # ============================================================
    # Introspection
    # ============================================================

    def status(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        models = dict.fromkeys(m for ms in self.step_models.values() for m in ms)
        status: Dict[str, Dict[str, Any]] = {}
        for model in models:
            state = self._states.get(model) or ModelState(model_id=model)
            entry: Dict[str, Any] = {"available": not self.is_rate_limited(model)}
            if not entry["available"]:
                entry["rate_limited_for"] = round(state.rate_limited_until - now)
                entry["consecutive_failures"] = state.consecutive_failures
            entry["seconds_since_success"] = None if state.last_success is None else round(now - state.last_success)
            status[model] = entry
        return status

    def reset(self) -> None:
        self._states.clear()
        self._requests.clear()
        self._last_call = None
        self._pending_hold_ms = 0.0
