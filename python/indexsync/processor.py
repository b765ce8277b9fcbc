"""
Event Processor - The sync state machine.

Consumes raw change notifications one at a time, classifies them and
drives Extractor -> Fingerprint -> EmbeddingRouter -> IndexCoordinator
for each affected path, emitting exactly one Observation per processed
path.

States: IDLE -> RUNNING -> DRAINING -> STOPPED. The loop waits on
"next notification or cancellation", with cancellation taking priority.
On cancellation, notifications still queued are discarded, the one in
hand finishes, and outstanding full-text writes are awaited.
"""

import asyncio
import logging
import time
from concurrent.futures import Executor
from pathlib import Path
from typing import Optional, Tuple

from .classifier import classify, is_relevant_file, is_relevant_file_for_upsert
from .config import get_config, SyncConfig
from .coordinator import IndexCoordinator
from .embedder import EmbeddingRouter
from .errors import EmbeddingError, ExtractionError, StoreError, handle_error
from .extractor import Extractor
from .hasher import fingerprint
from .models import (
    EmbeddingChunk, EmbeddingRole, IndexOperation, LoopState, Observation,
    OperationKind, RawChangeNotification,
)
from .sinks import ObservationSink, deliver, log_sink


logger = logging.getLogger(__name__)


_CLOSED = object()
_CANCELLED = object()


class NotificationChannel:
    """
    Queue between the watcher threads and the event loop.

    `send()` may be called from any thread. After `close()` nothing more
    is accepted and the receiver sees None once the queue is empty.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, notification: RawChangeNotification) -> bool:
        """Enqueue a notification from any thread. False if not accepted."""
        if self._closed:
            return False
        try:
            self._loop.call_soon_threadsafe(self._put, notification)
        except RuntimeError:
            # Event loop already closed
            logger.debug(f"Dropping notification, event loop closed: {notification}")
            return False
        return True

    def _put(self, notification: RawChangeNotification) -> None:
        if not self._closed:
            self._queue.put_nowait(notification)

    def close(self) -> None:
        """Stop accepting notifications (event-loop thread only)."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def close_threadsafe(self) -> None:
        """Close the channel from a watcher thread."""
        try:
            self._loop.call_soon_threadsafe(self.close)
        except RuntimeError:
            logger.debug("Event loop closed before channel could be closed")

    async def receive(self) -> Optional[RawChangeNotification]:
        """Next notification, or None once the channel is closed and empty."""
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel for any later receiver
            self._queue.put_nowait(_CLOSED)
            return None
        return item

    def discard_pending(self) -> int:
        """Drop queued notifications; returns how many were dropped."""
        dropped = 0
        saw_sentinel = False
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED:
                saw_sentinel = True
            else:
                dropped += 1
        if saw_sentinel:
            self._queue.put_nowait(_CLOSED)
        return dropped

    def __len__(self) -> int:
        return self._queue.qsize()


class EventProcessor:
    """
    Sequential event loop over one notification channel.

    One processor serves one watch; a new watch gets a new processor.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        extractor: Extractor,
        router: EmbeddingRouter,
        coordinator: IndexCoordinator,
        sink: ObservationSink = log_sink,
        config: SyncConfig | None = None,
        executor: Optional[Executor] = None,
    ):
        self.config = config or get_config()
        self.channel = channel
        self.extractor = extractor
        self.router = router
        self.coordinator = coordinator
        self.sink = sink
        self._executor = executor

        self._state = LoopState.IDLE
        self._cancel = asyncio.Event()
        self.events_processed = 0
        self.last_event_time: Optional[int] = None

    @property
    def state(self) -> LoopState:
        return self._state

    def cancel(self) -> None:
        """Signal shutdown (event-loop thread only)."""
        self._cancel.set()

    async def run(self) -> None:
        """Run until cancelled or until the channel closes."""
        if self._state != LoopState.IDLE:
            raise RuntimeError(f"Event processor already used (state={self._state.value})")

        self._state = LoopState.RUNNING
        logger.info("Starting event processing loop...")

        try:
            while True:
                notification = await self._next()

                if notification is _CANCELLED:
                    await self._drain()
                    break

                if notification is None:
                    logger.info("Channel closed, exiting event processing loop")
                    break

                await self.process_notification(notification)
        finally:
            self._state = LoopState.STOPPED
            logger.info(
                f"Event processing loop exited. Processed {self.events_processed} events"
            )

    async def _next(self):
        """Wait for the next notification; cancellation has priority."""
        if self._cancel.is_set():
            return _CANCELLED

        receive = asyncio.ensure_future(self.channel.receive())
        cancelled = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({receive, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in (receive, cancelled):
                if not waiter.done():
                    waiter.cancel()

        if self._cancel.is_set():
            logger.info("Received shutdown signal, stopping event processing")
            return _CANCELLED
        return receive.result()

    async def _drain(self) -> None:
        self._state = LoopState.DRAINING
        dropped = self.channel.discard_pending()
        if dropped:
            logger.info(f"Discarded {dropped} queued notifications on shutdown")
        await self.coordinator.drain()

    async def process_notification(self, notification: RawChangeNotification) -> None:
        """Classify a notification and process each affected path."""
        self.events_processed += 1
        self.last_event_time = int(time.time())

        operations = classify(notification)
        if not operations:
            return

        logger.info(
            f"Processing {operations[0].kind.value} event with {len(operations)} paths"
        )

        for operation in operations:
            try:
                observation = await self.process_operation(operation)
            except Exception as e:
                message = handle_error(e, operation.path, operation.kind.value)
                observation = Observation(
                    event_type=self._event_type(operation),
                    path=str(operation.path),
                    success=False,
                    message=message,
                )

            if observation is not None:
                deliver(self.sink, observation)

    async def process_operation(self, operation: IndexOperation) -> Optional[Observation]:
        """
        Apply one operation to both indexes.

        Returns:
            The Observation to report, or None if the path is not relevant
            to the semantic index
        """
        path = operation.path

        if operation.kind == OperationKind.UPSERT:
            if not is_relevant_file_for_upsert(path, self.config):
                self.coordinator.schedule_fulltext_add(path)
                logger.info(f"Skipping non-relevant file for semantic index: {path}")
                return None
            logger.info(f"Action [Upsert] detected for: {path}")
            success, message = await self._upsert(path)

        elif operation.kind == OperationKind.DELETE:
            self.coordinator.schedule_fulltext_remove(path)
            if not is_relevant_file(path, self.config):
                logger.info(f"Skipping non-relevant file for semantic index: {path}")
                return None
            logger.info(f"Action [Delete] detected for: {path}")
            success, message = await self._delete(path)

        else:
            return None

        return Observation(
            event_type=self._event_type(operation),
            path=str(path),
            success=success,
            message=message,
        )

    def _event_type(self, operation: IndexOperation) -> str:
        if operation.kind == OperationKind.DELETE:
            return "deleted"
        # Best-effort: the file may have gone again by now
        return "created" if operation.path.exists() else "modified"

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, func, *args)

    async def _upsert(self, path: Path) -> Tuple[bool, str]:
        try:
            document = await self._run(self.extractor.extract, path)
        except ExtractionError as e:
            # Name and metadata only; previously indexed text is kept
            self.coordinator.schedule_fulltext_add(path)
            return False, handle_error(e, path, "extract")

        text = document.text.strip()
        self.coordinator.schedule_fulltext_add(path, text)

        if not text:
            logger.warning(
                f"Extracted empty or whitespace-only content for {path}, skipping upsert."
            )
            return True, f"Nothing to index in {path}"

        digest = fingerprint(text)
        logger.info(f"  -> Extracted text (lang: {document.language.value}), fingerprint: {digest}")

        if await self.coordinator.current_fingerprint(path) == digest:
            logger.info(f"Content unchanged for {path}, skipping embedding")
            return True, f"{path} is unchanged, already indexed"

        try:
            vectors = await self._run(
                self.router.embed, [text], document.language, EmbeddingRole.PASSAGE
            )
        except EmbeddingError as e:
            return False, handle_error(e, path, "embed")

        if len(vectors) == 0:
            logger.warning(
                f"No embeddings generated for {path}, likely due to content issues. Skipping upsert."
            )
            return True, f"No embeddings generated for {path}, nothing to index"

        logger.info(f"  -> Successfully generated {len(vectors)} embeddings (chunks)")
        chunks = [EmbeddingChunk(ordinal=i, vector=v) for i, v in enumerate(vectors)]

        try:
            await self.coordinator.upsert_vectors(path, digest, chunks, document.language)
        except StoreError as e:
            return False, handle_error(e, path, "upsert")

        logger.info(f"Successfully processed upsert for {path}")
        return True, f"Successfully indexed {path}"

    async def _delete(self, path: Path) -> Tuple[bool, str]:
        try:
            removed = await self.coordinator.delete_vectors(path)
        except StoreError as e:
            return False, handle_error(e, path, "delete")

        if not removed:
            logger.warning(f"Attempted to delete non-existent entry for {path}")
            return True, f"File {path} was not in index"

        logger.info(f"Successfully deleted entry for {path}")
        return True, f"Successfully removed {path} from index"
