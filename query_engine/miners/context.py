"""
Codebase context: the four miners behind a single initialization gate.

The first `ensure_initialized()` mines models, links, routes and events
concurrently in worker threads; later calls return immediately. A miner
failure is logged and leaves that miner's table empty.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from configs import (
    CODEBASE_ROOT,
    MODELS_DIR,
    LINKS_DIR,
    ROUTES_DIR,
    SUBSCRIBERS_DIR,
    WORKFLOWS_DIR,
)
from .model_miner import ModelMiner
from .link_miner import LinkMiner
from .route_miner import RouteMiner
from .event_miner import EventMiner

logger = logging.getLogger("query_engine.miners.context")


class CodebaseContext:
    """Mined knowledge about the backing codebase, rendered for the planner prompt."""

    def __init__(
        self,
        root: Optional[Path] = None,
        models_dir: str = MODELS_DIR,
        links_dir: str = LINKS_DIR,
        routes_dir: str = ROUTES_DIR,
        subscribers_dir: str = SUBSCRIBERS_DIR,
        workflows_dir: str = WORKFLOWS_DIR,
    ):
        self.root = Path(root) if root is not None else CODEBASE_ROOT
        self.paths = {
            "models": self.root / models_dir,
            "links": self.root / links_dir,
            "routes": self.root / routes_dir,
            "subscribers": self.root / subscribers_dir,
            "workflows": self.root / workflows_dir,
        }
        self.models = ModelMiner()
        self.links = LinkMiner()
        self.routes = RouteMiner()
        self.events = EventMiner()
        self._lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def mark_initialized(self) -> None:
        """Use whatever the miners already hold (e.g. loaded from in-memory sources)."""
        self._initialized = True

    async def ensure_initialized(self) -> None:
        """Mine the codebase once; concurrent callers wait for the same run."""
        if self._initialized:
            return
        async with self._lock:
            if self._initialized:
                return

            jobs = {
                "models": lambda: self.models.mine(self.paths["models"]),
                "links": lambda: self.links.mine(self.paths["links"]),
                "routes": lambda: self.routes.mine(self.paths["routes"]),
                "events": lambda: self.events.mine(self.paths["subscribers"], self.paths["workflows"]),
            }
            results = await asyncio.gather(
                *(asyncio.to_thread(job) for job in jobs.values()),
                return_exceptions=True,
            )
            for name, result in zip(jobs, results):
                if isinstance(result, BaseException):
                    logger.warning(f"{name} miner failed, continuing without it: {result}")

            self._initialized = True
            logger.info(
                f"Codebase context ready: {len(self.models)} models, {len(self.links)} links, "
                f"{len(self.routes)} routes, {len(self.events)} event subscribers"
            )

    async def build_context(self, entities: List[str]) -> str:
        """Combined model / link / route / event documentation for the given entities."""
        await self.ensure_initialized()

        modules = []
        for entity in entities:
            module = self.routes.entity_to_module(entity)
            if module and module not in modules:
                modules.append(module)

        sections = [
            self.models.docs_for(entities),
            self.links.docs_for(entities),
            self.routes.docs_for(modules),
            self.events.context_for(entities),
        ]
        return "\n\n".join(s for s in sections if s)

    def stats(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "root": str(self.root),
            "models": len(self.models),
            "links": len(self.links),
            "routes": len(self.routes),
            "event_subscribers": len(self.events),
        }

    def reset(self) -> None:
        for miner in (self.models, self.links, self.routes, self.events):
            miner.clear()
        self._initialized = False
