"""
Tests for the model provider rotator.

Tests:
1. Candidate ordering and demotion of rate-limited models
2. Exponential cool-down, capped, reset by a success; per-model state
3. Per-request preference for untried models
4. Call spacing and the extra hold after a rate limit
5. Rotation through run() and the all-failed error
"""

import pytest

from query_engine.orchestrator import AllModelsFailedError, ModelRotator, RateLimitError, is_rate_limit_error


def test_rate_limited_model_is_demoted_not_removed(rotator, clock):
    assert rotator.get_models("query_planning") == ["model-a", "model-b"]

    assert rotator.mark_rate_limited("model-a") == 60
    assert rotator.is_rate_limited("model-a")
    assert rotator.get_models("query_planning") == ["model-b", "model-a"]

    clock.advance(61)
    assert not rotator.is_rate_limited("model-a")
    assert rotator.get_models("query_planning") == ["model-a", "model-b"]


def test_all_limited_models_ordered_by_recovery(rotator, clock):
    rotator.mark_rate_limited("model-b")
    clock.advance(10)
    rotator.mark_rate_limited("model-a")
    assert rotator.get_models("query_planning") == ["model-b", "model-a"]


def test_cooldown_doubles_and_caps(rotator, clock):
    cooldowns = []
    for _ in range(5):
        cooldowns.append(rotator.mark_rate_limited("model-a"))
        clock.advance(400)
    assert cooldowns == [60, 120, 240, 300, 300]

    rotator.mark_success("model-a")
    assert rotator.mark_rate_limited("model-a") == 60


def test_model_state_tracks_last_success(rotator, clock):
    state = rotator.state("model-a")
    assert (state.model_id, state.last_success, state.consecutive_failures) == ("model-a", None, 0)

    rotator.mark_rate_limited("model-a")
    rotator.mark_rate_limited("model-a")
    assert state.consecutive_failures == 2
    assert state.rate_limited_until == clock.now + 120

    rotator.mark_success("model-a")
    assert state.last_success == clock.now
    assert state.rate_limited_until is None
    assert state.consecutive_failures == 0

    clock.advance(42)
    assert rotator.status()["model-a"] == {"available": True, "seconds_since_success": 42}


def test_unknown_step_kind_uses_every_model(rotator):
    assert rotator.get_models("summarize") == ["model-a", "model-b", "model-c"]


def test_is_rate_limit_error():
    class HttpError(Exception):
        status_code = 429

    assert is_rate_limit_error(RateLimitError("slow down"))
    assert is_rate_limit_error(HttpError("nope"))
    assert is_rate_limit_error(Exception("Error 429: Too Many Requests"))
    assert is_rate_limit_error("provider says: quota exceeded")
    assert not is_rate_limit_error(ValueError("bad json"))
    assert not is_rate_limit_error(None)


@pytest.mark.asyncio
async def test_calls_are_spaced(rotator, clock):
    assert await rotator.wait_for_turn() == 0
    clock.advance(0.5)
    assert await rotator.wait_for_turn() == pytest.approx(1.0)
    assert clock.sleeps == [pytest.approx(1.0)]

    clock.advance(10)
    assert await rotator.wait_for_turn() == 0


def test_jitter_stays_within_twenty_percent(clock):
    high = ModelRotator(step_models={}, jitter=True, clock=clock, rng=lambda: 1.0)
    low = ModelRotator(step_models={}, jitter=True, clock=clock, rng=lambda: 0.0)
    assert high._with_jitter(1000) == 1200
    assert low._with_jitter(1000) == 800
    assert low._with_jitter(50) == 100


@pytest.mark.asyncio
async def test_run_rotates_past_rate_limited_model(rotator, clock):
    attempts = []

    async def call(model):
        attempts.append(model)
        if model == "model-a":
            raise RateLimitError("429 from provider", model=model)
        return f"plan from {model}"

    request_id = rotator.new_request_id()
    result, model = await rotator.run("query_planning", request_id, call)

    assert (result, model) == ("plan from model-b", "model-b")
    assert attempts == ["model-a", "model-b"]
    assert rotator.is_rate_limited("model-a")
    # Minimum spacing plus the hold after the rate limit
    assert clock.sleeps == [pytest.approx(6.5)]

    status = rotator.status()
    assert status["model-a"]["available"] is False
    assert status["model-a"]["consecutive_failures"] == 1
    assert 50 <= status["model-a"]["rate_limited_for"] <= 60
    assert status["model-b"] == {"available": True, "seconds_since_success": 0}


@pytest.mark.asyncio
async def test_run_prefers_models_not_yet_tried_in_request(rotator):
    async def call(model):
        return model

    request_id = rotator.new_request_id()
    _, first = await rotator.run("query_planning", request_id, call)
    assert first == "model-a"
    assert rotator.get_models("query_planning", request_id) == ["model-b", "model-a"]
    # A different request starts fresh
    assert rotator.get_models("query_planning", rotator.new_request_id()) == ["model-a", "model-b"]


@pytest.mark.asyncio
async def test_run_raises_when_every_model_fails(rotator):
    async def call(model):
        raise ValueError(f"{model} returned garbage")

    with pytest.raises(AllModelsFailedError) as exc_info:
        await rotator.run("query_planning", None, call)

    assert exc_info.value.step_kind == "query_planning"
    assert set(exc_info.value.errors) == {"model-a", "model-b"}
    # Ordinary failures do not put a model on cool-down
    assert not rotator.is_rate_limited("model-a")


def test_reset_clears_state(rotator):
    rotator.mark_rate_limited("model-a")
    rotator.reset()
    assert rotator.status()["model-a"] == {"available": True, "seconds_since_success": None}
