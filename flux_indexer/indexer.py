"""The indexer: produces heights to index and runs the workers that index them."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from typing import Union

from flux_indexer.config import IndexerConfig
from flux_indexer.interfaces import Database, Height, Module, Node
from flux_indexer.logsetup import bind
from flux_indexer.producers import (
    CombinedHeightProducer,
    HeightProducer,
    IndexerHeight,
    ListHeightProducer,
    NodeHeightProducer,
)
from flux_indexer.queue import WorkQueue
from flux_indexer.worker import Worker

Logger = Union[logging.Logger, logging.LoggerAdapter]


class Indexer:
    """Indexes the blocks of one chain with a set of modules."""

    def __init__(
        self,
        config: IndexerConfig,
        logger: Logger,
        db: Database,
        node: Node,
        modules: Sequence[Module],
    ) -> None:
        self._config = config
        self._log = bind(logger, indexer=config.name, **{"chain-id": node.chain_id})
        self._db = db
        self._node = node
        self._queue: WorkQueue[IndexerHeight] = WorkQueue(config.height_queue_size)
        self._modules = list(modules)
        self._height_producer: HeightProducer | None = None

    @property
    def name(self) -> str:
        """The name that identifies the indexer."""
        return self._config.name

    def with_height_producer(self, producer: HeightProducer) -> Indexer:
        """Use ``producer`` instead of the default one to provide the heights to index."""
        self._height_producer = producer
        return self

    def start(self, cancel: threading.Event) -> list[threading.Thread]:
        """Start the height producer and the workers; return their threads."""
        producer = self._height_producer
        if producer is None:
            try:
                producer = self._build_default_height_producer()
            except Exception as err:
                raise RuntimeError(f"build default height producer: {err}") from err

        producer_thread = threading.Thread(
            target=self._enqueue_heights_loop,
            args=(cancel, producer),
            name=f"{self.name}-heights",
            daemon=True,
        )
        producer_thread.start()
        threads = [producer_thread]

        for _ in range(self._config.workers):
            worker = Worker(self._config, self._log, self._queue, self._db, self._node, self._modules)
            threads.append(worker.start(cancel))
        return threads

    def _build_default_height_producer(self) -> HeightProducer:
        """Produce the missing heights up to the node's height, then follow the node."""
        try:
            current: Height = self._node.get_current_height()
        except Exception as err:
            raise RuntimeError(f"get current node height: {err}") from err

        if self._config.start_height is not None:
            start = self._config.start_height
        else:
            try:
                lowest = self._db.get_lowest_block(self._node.chain_id)
            except Exception as err:
                raise RuntimeError(f"get lowest block {err}") from err
            start = lowest if lowest is not None and lowest < current else current

        try:
            missing = self._db.get_missing_blocks(self._node.chain_id, start, current - 1)
        except Exception as err:
            raise RuntimeError(f"get missing blocks: {err}") from err

        return CombinedHeightProducer(
            ListHeightProducer(missing),
            NodeHeightProducer(
                self._log, self._node, self._config.node_polling_interval, current
            ),
        )

    def _enqueue_heights_loop(self, cancel: threading.Event, producer: HeightProducer) -> None:
        try:
            producer.enqueue_heights(cancel, self._queue)
        except Exception as err:  # noqa: BLE001 - the loop must always close the queue
            self._log.error("enqueue heights", exc_info=err)
        finally:
            self._queue.close()