"""
Watcher - Lifecycle of the single active file-system watch.

Uses watchdog for cross-platform, recursive monitoring. Watchdog events
are converted to RawChangeNotifications on the observer thread and
handed to the event loop through a NotificationChannel.
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import (
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .config import get_config, SyncConfig
from .errors import (
    PathWatchError,
    WatcherAlreadyRunningError,
    WatcherCreationError,
    WatcherNotRunningError,
)
from .models import ChangeKind, LoopState, Observation, RawChangeNotification, WatcherStatus
from .processor import EventProcessor, NotificationChannel
from .sinks import ObservationSink, deliver, log_sink


logger = logging.getLogger(__name__)


ProcessorFactory = Callable[[NotificationChannel], EventProcessor]


class ChangeEventHandler(FileSystemEventHandler):
    """Converts watchdog events to RawChangeNotifications."""

    def __init__(self, channel: NotificationChannel, root: Path):
        super().__init__()
        self.channel = channel
        self.root = root

    def _send(self, kind: ChangeKind, *paths) -> None:
        notification = RawChangeNotification(
            kind=kind,
            paths=tuple(Path(os.fsdecode(p)) for p in paths),
        )
        self.channel.send(notification)

    def on_created(self, event: FileSystemEvent):
        if isinstance(event, DirCreatedEvent):
            self._send(ChangeKind.OTHER, event.src_path)
        else:
            self._send(ChangeKind.CREATED, event.src_path)

    def on_modified(self, event: FileSystemEvent):
        if isinstance(event, DirModifiedEvent):
            self._send(ChangeKind.OTHER, event.src_path)
        else:
            self._send(ChangeKind.MODIFIED_CONTENT, event.src_path)

    def on_deleted(self, event: FileSystemEvent):
        if isinstance(event, DirDeletedEvent) and Path(os.fsdecode(event.src_path)) == self.root:
            logger.warning("Watched path seems to have been removed.")
            self.channel.close_threadsafe()
            return
        self._send(ChangeKind.REMOVED, event.src_path)

    def on_moved(self, event: FileSystemEvent):
        # One watchdog move carries both ends of a rename
        self._send(ChangeKind.RENAMED_FROM, event.src_path)
        self._send(ChangeKind.RENAMED_TO, event.dest_path)

    def on_opened(self, event: FileSystemEvent):
        self._send(ChangeKind.OTHER, event.src_path)

    def on_closed(self, event: FileSystemEvent):
        self._send(ChangeKind.OTHER, event.src_path)

    def on_closed_no_write(self, event: FileSystemEvent):
        self._send(ChangeKind.OTHER, event.src_path)


@dataclass
class _ActiveWatch:
    path: Path
    observer: Observer
    channel: NotificationChannel
    processor: EventProcessor
    task: asyncio.Task


class WatchSupervisor:
    """
    Owns at most one active watch.

    `start()` and `stop()` must be awaited on the application's event
    loop; `status()` may be called from anywhere.
    """

    def __init__(
        self,
        processor_factory: ProcessorFactory,
        sink: ObservationSink = log_sink,
        config: SyncConfig | None = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.config = config or get_config()
        self._processor_factory = processor_factory
        self._observer_factory = observer_factory
        self.sink = sink
        self._active: Optional[_ActiveWatch] = None
        self._last_task: Optional[asyncio.Task] = None
        self._lock = threading.Lock()

    async def start(self, path: str | Path) -> str:
        """
        Start watching a directory recursively.

        Raises:
            WatcherAlreadyRunningError: A watch is already active
            WatcherCreationError: The observer could not be created
            PathWatchError: The path could not be watched
        """
        logger.info(f"Starting file watcher for path: {path}")
        root = Path(path).expanduser().resolve()

        with self._lock:
            if self._active is not None:
                raise WatcherAlreadyRunningError()

            if not root.is_dir():
                raise PathWatchError(str(path), "not an existing directory")

            channel = NotificationChannel()
            try:
                observer = self._observer_factory()
            except Exception as e:
                raise WatcherCreationError(f"Failed to create file system watcher: {e}") from e

            try:
                observer.schedule(ChangeEventHandler(channel, root), str(root), recursive=True)
                observer.start()
            except OSError as e:
                raise PathWatchError(str(path), str(e)) from e

            processor = self._processor_factory(channel)
            task = asyncio.create_task(processor.run())
            self._active = _ActiveWatch(root, observer, channel, processor, task)
            self._last_task = task
            task.add_done_callback(self._on_loop_exit)

        logger.info(f"Successfully watching path: {root}")
        deliver(self.sink, Observation(
            event_type="watcher-started",
            path=str(root),
            success=True,
            message=f"File watcher started for {root}",
        ))
        return f"File watcher started successfully for: {root}"

    async def stop(self) -> str:
        """
        Stop the active watch.

        The event loop finishes the notification in hand and drains
        outstanding full-text writes in the background; await `wait_stopped()`
        to wait for that.

        Raises:
            WatcherNotRunningError: No watch is active
        """
        logger.info("Stopping file watcher")

        with self._lock:
            active = self._active
            if active is None:
                raise WatcherNotRunningError()
            self._active = None
            active.processor.cancel()
            active.channel.close()

        active.observer.stop()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None, active.observer.join, self.config.observer_join_timeout
        )

        deliver(self.sink, Observation(
            event_type="watcher-stopped",
            path="",
            success=True,
            message="File watcher stopped",
        ))
        return "File watcher stopped successfully"

    async def wait_stopped(self, timeout: Optional[float] = None) -> None:
        """Wait for the most recent event loop to reach STOPPED."""
        if self._last_task is not None:
            await asyncio.wait_for(asyncio.shield(self._last_task), timeout)

    def _on_loop_exit(self, task: asyncio.Task) -> None:
        """Release a watch whose event loop ended without stop() (root removed)."""
        with self._lock:
            active = self._active
            if active is None or active.task is not task:
                return
            self._active = None

        logger.warning(f"Event loop for {active.path} exited, releasing the watch")
        active.observer.stop()
        deliver(self.sink, Observation(
            event_type="watcher-stopped",
            path=str(active.path),
            success=True,
            message=f"File watcher stopped, {active.path} is no longer available",
        ))

    def status(self) -> WatcherStatus:
        """Snapshot of the current watch."""
        with self._lock:
            active = self._active
            if active is None:
                return WatcherStatus(running=False, state=LoopState.IDLE)
            return WatcherStatus(
                running=True,
                path=str(active.path),
                state=active.processor.state,
                events_processed=active.processor.events_processed,
                last_event_time=active.processor.last_event_time,
            )
