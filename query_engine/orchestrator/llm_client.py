"""
LLM Completion Client.

PURPOSE:
========
One async call: send a prompt to a named model, get text back. Which
model to call, and what to do when it is rate-limited, is the
ModelRotator's business, not this module's.

ARCHITECTURE:
=============
- CompletionClient: Abstract base class defining the interface
- LiteLLMCompletionClient: litellm-backed implementation (any provider
  litellm routes to, e.g. `openrouter/...`, `gemini/...`, `groq/...`)

USAGE:
======
    client = LiteLLMCompletionClient(temperature=0.1)
    text = await client.complete("openrouter/google/gemma-3-27b-it:free", prompt)
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import litellm
from litellm import acompletion

from configs import MAX_LLM_TOKENS, PLANNER_TEMPERATURE

logger = logging.getLogger("query_engine.llm")


# ============================================================
# ERRORS
# ============================================================

class LLMError(Exception):
    """Base exception for LLM errors."""
    pass


class RateLimitError(LLMError):
    """Raised when a model's rate limit or quota is exceeded."""

    def __init__(self, message: str, model: Optional[str] = None):
        super().__init__(message)
        self.model = model
        self.status_code = 429


class AllModelsFailedError(LLMError):
    """Raised when every candidate model for a step failed."""

    def __init__(self, step_kind: str, errors: Optional[dict] = None):
        self.step_kind = step_kind
        self.errors = errors or {}
        tried = ", ".join(self.errors) or "none"
        super().__init__(f"All models failed for {step_kind} (tried: {tried})")


# ============================================================
# CLIENTS
# ============================================================

class CompletionClient(ABC):
    """Async text completion against a named model."""

    @abstractmethod
    async def complete(self, model_id: str, prompt: str) -> str:
        """
        Return the model's text reply.

        Raises:
            RateLimitError: When the model is rate-limited
            LLMError: For other errors
        """
        pass


class LiteLLMCompletionClient(CompletionClient):
    """Completion through litellm's async API."""

    def __init__(self, temperature: float = PLANNER_TEMPERATURE, max_tokens: int = MAX_LLM_TOKENS):
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.call_count = 0

    async def complete(self, model_id: str, prompt: str) -> str:
        logger.debug(f"Calling {model_id} [max_tokens={self.max_tokens}]...")
        try:
            response = await acompletion(
                model=model_id,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except litellm.RateLimitError as e:
            raise RateLimitError(f"{model_id} rate-limited: {e}", model=model_id) from e
        except Exception as e:
            raise LLMError(f"{model_id} error: {e}") from e

        self.call_count += 1
        content = response.choices[0].message.content
        if not content:
            raise LLMError(f"{model_id} returned an empty response")
        logger.debug(f"{model_id} call successful (Total: {self.call_count})")
        return content
