"""
Query planning and execution engine.

Turns natural-language questions about a commerce / production backend into
multi-step retrieval plans, runs them through the right data access
mechanism and learns from the outcome.
"""
from .engine import QueryEngine
from .deps import build_engine, get_engine, reset_engine, setup_logging

__all__ = [
    "QueryEngine",
    "build_engine",
    "get_engine",
    "reset_engine",
    "setup_logging",
]
