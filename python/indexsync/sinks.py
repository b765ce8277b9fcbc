"""
Observation sinks - Where processing outcomes are reported.

A sink is any callable taking an Observation. Delivery is best-effort:
a failing sink is logged and never retried.
"""

import logging
import threading
from typing import Callable, List

from .models import Observation


logger = logging.getLogger(__name__)


ObservationSink = Callable[[Observation], None]


def log_sink(observation: Observation) -> None:
    """Default sink: write the observation to the log."""
    level = logging.INFO if observation.success else logging.WARNING
    logger.log(level, f"[{observation.event_type}] {observation.message}")


class CollectingSink:
    """Keeps every observation in memory (for UIs polling, and for tests)."""

    def __init__(self):
        self._observations: List[Observation] = []
        self._lock = threading.Lock()

    def __call__(self, observation: Observation) -> None:
        with self._lock:
            self._observations.append(observation)

    @property
    def observations(self) -> List[Observation]:
        with self._lock:
            return list(self._observations)

    def for_path(self, path) -> List[Observation]:
        return [o for o in self.observations if o.path == str(path)]


def deliver(sink: ObservationSink, observation: Observation) -> None:
    """Hand an observation to a sink; failures are logged, never raised."""
    try:
        sink(observation)
    except Exception as e:
        logger.error(f"Failed to emit watcher event {observation.event_type} for {observation.path}: {e}")
