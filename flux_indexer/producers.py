"""Height producers: components that feed the heights to index into the work queue."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta
from typing import Union

from flux_indexer.interfaces import Height, Node
from flux_indexer.logsetup import bind
from flux_indexer.queue import WorkQueue
from flux_indexer.utils import sleep_unless_cancelled

Logger = Union[logging.Logger, logging.LoggerAdapter]


@dataclass(frozen=True)
class IndexerHeight:
    """A height to fetch, together with the number of failed attempts so far."""

    height: Height
    attempts: int = 0


class HeightProducer(ABC):
    """Provides the heights that the workers fetch and process."""

    @abstractmethod
    def enqueue_heights(self, cancel: threading.Event, queue: WorkQueue[IndexerHeight]) -> None:
        """Put the heights to index into ``queue``."""


class CombinedHeightProducer(HeightProducer):
    """Runs several producers one after the other, in the order they were added."""

    def __init__(self, *args: HeightProducer) -> None:
        self._producers: list[HeightProducer] = list(args)

    def add_producer(self, producer: HeightProducer) -> CombinedHeightProducer:
        self._producers.append(producer)
        return self

    def enqueue_heights(self, cancel: threading.Event, queue: WorkQueue[IndexerHeight]) -> None:
        for producer in self._producers:
            producer.enqueue_heights(cancel, queue)


class RangeHeightProducer(HeightProducer):
    """Produces every height from ``start`` to ``end``, both included."""

    def __init__(self, start: Height, end: Height) -> None:
        self._start = start
        self._end = end

    def enqueue_heights(self, cancel: threading.Event, queue: WorkQueue[IndexerHeight]) -> None:
        for height in range(self._start, self._end + 1):
            if not queue.put_unless_cancelled(cancel, IndexerHeight(height)):
                break


class ListHeightProducer(HeightProducer):
    """Produces the heights of a given list, in order."""

    def __init__(self, heights: Iterable[Height]) -> None:
        self._heights = list(heights)

    def enqueue_heights(self, cancel: threading.Event, queue: WorkQueue[IndexerHeight]) -> None:
        for height in self._heights:
            if not queue.put_unless_cancelled(cancel, IndexerHeight(height)):
                break


class NodeHeightProducer(HeightProducer):
    """Polls a node for new blocks and produces every height from ``start`` onwards."""

    def __init__(
        self,
        logger: Logger,
        node: Node,
        polling_interval: timedelta | float,
        start: Height,
    ) -> None:
        self._logger = bind(logger, component="NodeHeightProducer", **{"chain-id": node.chain_id})
        self._node = node
        self._polling_interval = polling_interval
        self._start = start

    def enqueue_heights(self, cancel: threading.Event, queue: WorkQueue[IndexerHeight]) -> None:
        to_fetch = self._start
        self._logger.info("start node monitoring loop", extra={"fields": {"start height": to_fetch}})
        try:
            while not cancel.is_set():
                if not sleep_unless_cancelled(cancel, self._polling_interval):
                    continue
                try:
                    current = self._node.get_current_height()
                except Exception as err:  # noqa: BLE001 - any node failure is retried
                    self._logger.error("get current node height", exc_info=err)
                    continue
                while to_fetch <= current:
                    queue.put_unless_cancelled(cancel, IndexerHeight(to_fetch))
                    to_fetch += 1
        finally:
            self._logger.info("stopping node monitoring loop")