"""
Index Coordinator - Applies index operations to both indexes.

Vector-store writes are awaited by the caller, one path at a time.
Full-text writes are dispatched as independent asyncio tasks so they
never hold up the event loop; `drain()` waits for all of them.
"""

import asyncio
import logging
import os
from concurrent.futures import Executor
from pathlib import Path
from typing import Dict, List, Optional, Set

from .config import get_config, SyncConfig
from .errors import RecordNotFoundError, StoreError
from .fulltext import FullTextIndex
from .indexer import VectorStore
from .models import EmbeddingChunk, Language


logger = logging.getLogger(__name__)


class IndexCoordinator:
    """
    Keeps the vector store and the full-text index in step.

    With `ordered_fulltext` enabled, each full-text task for a path waits
    for the previous task on the same path, so a remove can never be
    overtaken by an earlier add. Without it, tasks for the same path may
    complete in any order.
    """

    def __init__(
        self,
        vector_store: VectorStore,
        fulltext: FullTextIndex,
        config: SyncConfig | None = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config or get_config()
        self.vector_store = vector_store
        self.fulltext = fulltext
        self._executor = executor
        self._pending: Set[asyncio.Task] = set()
        self._tails: Dict[str, asyncio.Task] = {}

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    # --- Vector store (awaited) ---

    async def current_fingerprint(self, path: Path) -> Optional[str]:
        """Fingerprint currently indexed for a path."""
        return await self._run(self.vector_store.get_fingerprint, str(path))

    async def upsert_vectors(
        self,
        path: Path,
        fingerprint: str,
        vectors: List[EmbeddingChunk],
        language: Optional[Language] = None,
    ) -> None:
        """
        Replace the vector-store entry for a path.

        Raises:
            StoreError: The write failed; the previous entry is unchanged
        """
        await self._run(self.vector_store.upsert, str(path), fingerprint, vectors, language)

    async def delete_vectors(self, path: Path) -> bool:
        """
        Remove the vector-store entry for a path.

        Returns:
            True if an entry was removed, False if it was not in the index

        Raises:
            StoreError: The backend failed
        """
        try:
            await self._run(self.vector_store.delete, str(path))
        except RecordNotFoundError:
            return False
        return True

    # --- Full-text index (fire-and-forget) ---

    def schedule_fulltext_add(self, path: Path, text: Optional[str] = None) -> asyncio.Task:
        """Dispatch a full-text add for a path; its failures are only logged."""
        return self._schedule(path, self._fulltext_add(path, text))

    def schedule_fulltext_remove(self, path: Path) -> asyncio.Task:
        """Dispatch a full-text removal for a path; its failures are only logged."""
        return self._schedule(path, self._fulltext_remove(path))

    def _schedule(self, path: Path, coro) -> asyncio.Task:
        key = str(path)

        if self.config.ordered_fulltext:
            previous = self._tails.get(key)
            task = asyncio.create_task(self._after(previous, coro))
            self._tails[key] = task
            task.add_done_callback(lambda t, k=key: self._release_tail(k, t))
            task.add_done_callback(lambda t, c=coro: self._close_if_cancelled(c, t))
        else:
            task = asyncio.create_task(coro)

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _after(self, previous: Optional[asyncio.Task], coro):
        if previous is not None and not previous.done():
            await asyncio.wait({previous})
        await coro

    def _release_tail(self, key: str, task: asyncio.Task) -> None:
        if self._tails.get(key) is task:
            del self._tails[key]

    @staticmethod
    def _close_if_cancelled(coro, task: asyncio.Task) -> None:
        # A chained write cancelled before it started is never awaited
        if task.cancelled():
            coro.close()

    async def _fulltext_add(self, path: Path, text: Optional[str]) -> None:
        try:
            stat = await self._run(os.stat, path)
        except OSError as e:
            logger.error(f"Failed to get metadata for full-text add {path}: {e}")
            return

        try:
            await self._run(
                self.fulltext.add, str(path), int(stat.st_mtime), stat.st_size, text
            )
        except StoreError as e:
            logger.error(f"Failed to update full-text index (add/update) for {path}: {e}")
            return
        logger.info(f"Updated full-text index (add/update) for {path}")

    async def _fulltext_remove(self, path: Path) -> None:
        try:
            removed = await self._run(self.fulltext.remove, str(path))
        except StoreError as e:
            logger.error(f"Failed to update full-text index (remove) for {path}: {e}")
            return
        if removed:
            logger.info(f"Updated full-text index (remove) for {path}")
        else:
            logger.debug(f"{path} was not in the full-text index")

    def pending_count(self) -> int:
        """Number of full-text tasks still running."""
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every dispatched full-text task to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
