"""
Conftest for query engine tests.

Puts the project root on sys.path and provides deterministic stand-ins for
the pieces that would otherwise need a network, a model download or a wall
clock: a bag-of-words embedder, a scripted completion client, recording
data adapters and a fake clock.
"""

import re
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

# Add project root to sys.path
project_root = str(Path(__file__).parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from models import AccessMethod  # noqa: E402
from query_engine.adapters import AdapterRegistry, AdapterResult, DataAdapter  # noqa: E402
from query_engine.classifier import EntityClassifier  # noqa: E402
from query_engine.miners import LinkMiner  # noqa: E402
from query_engine.orchestrator import CompletionClient, ModelRotator  # noqa: E402
from query_engine.schema import EntityRegistry  # noqa: E402
from query_engine.stores import Embedder  # noqa: E402


LINK_SOURCE = """
import RawMaterialModule from "../modules/raw_material"
import InventoryModule from "@medusajs/medusa/inventory"
import { defineLink } from "@medusajs/framework/utils"

export default defineLink(
  RawMaterialModule.linkable.rawMaterials,
  InventoryModule.linkable.inventoryItem
)
"""


# ============================================================
# Fakes
# ============================================================

class FakeClock:
    """Monotonic clock the tests move by hand; `sleep` advances it."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class BagOfWordsEmbedder(Embedder):
    """Word-count vectors over a vocabulary that grows as words are seen."""

    def __init__(self, dimensions: int = 2048):
        self.dimensions = dimensions
        self.vocabulary: Dict[str, int] = {}
        self.calls = 0

    def embed(self, text: str) -> np.ndarray:
        self.calls += 1
        vector = np.zeros(self.dimensions, dtype=np.float32)
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            index = self.vocabulary.setdefault(token, len(self.vocabulary))
            vector[index] += 1.0
        norm = np.linalg.norm(vector)
        return vector / norm if norm else vector


class ScriptedClient(CompletionClient):
    """
    Replies from a per-model script. A script entry is either a string
    (returned) or an exception (raised); the last entry repeats.
    """

    def __init__(self, scripts: Optional[Dict[str, List[Any]]] = None, default: Any = None):
        self.scripts = {k: list(v) for k, v in (scripts or {}).items()}
        self.default = default
        self.calls: List[Dict[str, str]] = []

    async def complete(self, model_id: str, prompt: str) -> str:
        self.calls.append({"model": model_id, "prompt": prompt})
        script = self.scripts.get(model_id)
        if script:
            reply = script.pop(0) if len(script) > 1 else script[0]
        else:
            reply = self.default
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            raise RuntimeError(f"no scripted reply for {model_id}")
        return reply


class RecordingAdapter(DataAdapter):
    """Returns canned responses per entity and records every call."""

    def __init__(self, access_method: AccessMethod, responses: Optional[Dict[str, Any]] = None):
        self.access_method = access_method
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def _respond(self, operation, entity, filters, relations, pagination) -> AdapterResult:
        self.calls.append({
            "operation": operation,
            "entity": entity,
            "filters": dict(filters),
            "relations": list(relations),
            "pagination": pagination,
        })
        response = self.responses.get(entity, [])
        if isinstance(response, list) and response and isinstance(response[0], (BaseException, AdapterResult)):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, AdapterResult):
            return response
        return AdapterResult(data=response)

    async def list(self, entity, filters, relations, pagination):
        return self._respond("list", entity, filters, relations, pagination)

    async def retrieve(self, entity, filters, relations, pagination):
        return self._respond("retrieve", entity, filters, relations, pagination)

    async def list_and_count(self, entity, filters, relations, pagination):
        return self._respond("listAndCount", entity, filters, relations, pagination)

    async def close(self) -> None:
        self.closed = True


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return EntityRegistry.default()


@pytest.fixture
def link_miner():
    miner = LinkMiner()
    miner.load_sources({"raw-material-inventory.ts": LINK_SOURCE})
    return miner


@pytest.fixture
def classifier(registry, link_miner):
    return EntityClassifier(registry, link_miner=link_miner)


@pytest.fixture
def embedder():
    return BagOfWordsEmbedder()


@pytest.fixture
def rotator(clock):
    return ModelRotator(
        step_models={
            "query_planning": ["model-a", "model-b"],
            "response_generation": ["model-c"],
        },
        min_delay_ms=1500,
        rate_limit_delay_ms=5000,
        jitter=False,
        cooldown_seconds=60,
        max_cooldown_seconds=300,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def http_adapter():
    return RecordingAdapter(AccessMethod.HTTP_API)


@pytest.fixture
def service_adapter():
    return RecordingAdapter(AccessMethod.IN_PROCESS_SERVICE)


@pytest.fixture
def graph_adapter():
    return RecordingAdapter(AccessMethod.GRAPH_TRAVERSAL)


@pytest.fixture
def adapters(http_adapter, service_adapter, graph_adapter):
    return AdapterRegistry({
        AccessMethod.HTTP_API: http_adapter,
        AccessMethod.IN_PROCESS_SERVICE: service_adapter,
        AccessMethod.GRAPH_TRAVERSAL: graph_adapter,
    })
