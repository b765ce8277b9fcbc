"""
Orchestrator - Main entry point for the index synchronizer.

Builds every component once and exposes the commands the surrounding
application calls:

    start_watch(path) -> message | WatcherAlreadyRunningError
    stop_watch()      -> message | WatcherNotRunningError
    status()          -> WatcherStatus
    search(query)     -> semantic hits (query role)
    search_names(q)   -> full-text hits
"""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

from .config import get_config, RoutingMode, SyncConfig, set_config
from .coordinator import IndexCoordinator
from .embedder import EmbeddingRouter, ModelFactory
from .extractor import Extractor, detect_language
from .fulltext import FullTextIndex
from .indexer import VectorStore
from .models import SearchHit, WatcherStatus
from .processor import EventProcessor, NotificationChannel
from .sinks import ObservationSink, log_sink
from .watcher import WatchSupervisor


logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Composition root for the sync pipeline.

    WatchSupervisor → EventProcessor → Extractor → EmbeddingRouter → IndexCoordinator
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        sink: ObservationSink = log_sink,
        model_factory: Optional[ModelFactory] = None,
        extractor: Optional[Extractor] = None,
    ):
        self.config = config or get_config()
        if config:
            set_config(config)

        self._executor = ThreadPoolExecutor(
            max_workers=self.config.worker_threads,
            thread_name_prefix="indexsync",
        )
        self.sink = sink
        self.extractor = extractor or Extractor(self.config)
        self.router = EmbeddingRouter(self.config, model_factory=model_factory)
        self.vector_store = VectorStore(self.config)
        self.fulltext = FullTextIndex(self.config)
        self.coordinator = IndexCoordinator(
            self.vector_store, self.fulltext, self.config, executor=self._executor
        )
        self.supervisor = WatchSupervisor(self._create_processor, sink, self.config)

    def _create_processor(self, channel: NotificationChannel) -> EventProcessor:
        return EventProcessor(
            channel,
            self.extractor,
            self.router,
            self.coordinator,
            sink=self.sink,
            config=self.config,
            executor=self._executor,
        )

    async def start_watch(self, path: str | Path) -> str:
        return await self.supervisor.start(path)

    async def stop_watch(self) -> str:
        return await self.supervisor.stop()

    def status(self) -> WatcherStatus:
        return self.supervisor.status()

    async def search(self, query: str, limit: int = 10) -> List[SearchHit]:
        """Semantic search: embed the query (query role) and rank indexed paths."""
        loop = asyncio.get_running_loop()
        vector = await loop.run_in_executor(
            self._executor, self.router.embed_query, query, detect_language(query)
        )
        if vector is None:
            return []
        return await loop.run_in_executor(self._executor, self.vector_store.search, vector, limit)

    async def search_names(self, query: str, limit: int = 20) -> List[SearchHit]:
        """Full-text search over file names and extracted text."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self.fulltext.search, query, limit)

    async def close(self):
        """Stop any active watch and release resources."""
        if self.supervisor.status().running:
            await self.supervisor.stop()
        # A stopped loop may still be finishing the notification in hand
        await self.supervisor.wait_stopped()
        await self.coordinator.drain()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._executor.shutdown, True)
        self.vector_store.close()
        self.fulltext.close()


def main():
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="Keep full-text and vector indexes in sync with a folder")
    parser.add_argument("--watch", help="Directory to watch")
    parser.add_argument("--search", help="Run a semantic search and exit")
    parser.add_argument(
        "--routing",
        choices=[m.value for m in RoutingMode],
        help="Embedding model routing mode",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args()

    # Configure logging
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(name)s: %(message)s"
    )

    config = SyncConfig.from_env()
    if args.routing:
        config.routing = RoutingMode(args.routing)

    if not args.watch and not args.search:
        parser.error("one of --watch or --search is required")

    async def _main():
        orchestrator = Orchestrator(config)

        try:
            if args.search:
                for hit in await orchestrator.search(args.search):
                    print(f"{hit.score:.3f}  {hit.path}")

            if args.watch:
                print(await orchestrator.start_watch(Path(args.watch)))
                print("Watching for changes (Ctrl+C to stop)...")
                await orchestrator.supervisor.wait_stopped()
        finally:
            await orchestrator.close()

    try:
        asyncio.run(_main())
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
