"""Workers: take heights from the queue, fetch the blocks and run the modules on them."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import replace
from typing import Union

from flux_indexer.config import IndexerConfig
from flux_indexer.interfaces import (
    Block,
    BlockHandleModule,
    Database,
    Height,
    Module,
    Node,
    TxHandleModule,
)
from flux_indexer.logsetup import bind
from flux_indexer.metrics import (
    INDEXER_FAILED_BLOCKS,
    LATEST_INDEXED_HEIGHT_BY_INDEXER,
    WORKERS_COUNT,
)
from flux_indexer.producers import IndexerHeight
from flux_indexer.queue import QueueClosed, WorkQueue

Logger = Union[logging.Logger, logging.LoggerAdapter]


class _BlockError(Exception):
    """A block could not be fetched, processed or recorded."""


class Worker:
    """Fetches blocks by height and passes them to the indexer's modules."""

    def __init__(
        self,
        config: IndexerConfig,
        logger: Logger,
        queue: WorkQueue[IndexerHeight],
        db: Database,
        node: Node,
        modules: Sequence[Module],
    ) -> None:
        self._config = config
        self._log = bind(logger, component="worker")
        self._queue = queue
        self._db = db
        self._node = node
        self._modules = list(modules)

    def start(self, cancel: threading.Event) -> threading.Thread:
        """Run the worker loop in a new thread and return the thread."""
        thread = threading.Thread(target=self.run, args=(cancel,), name="indexer-worker", daemon=True)
        thread.start()
        return thread

    def run(self, cancel: threading.Event) -> None:
        """Process heights until the queue is closed or ``cancel`` is set."""
        gauge = WORKERS_COUNT.labels(self._config.name)
        self._log.info("started worker")
        gauge.inc()
        try:
            while not cancel.is_set():
                try:
                    item = self._queue.get_unless_cancelled(cancel)
                except QueueClosed:
                    self._log.warning("height queue closed, stopping worker")
                    return
                try:
                    self._fetch_and_process_block(item.height)
                except _BlockError as err:
                    self._log.error(
                        "get and process block",
                        exc_info=err,
                        extra={"fields": {"height": item.height}},
                    )
                    self._re_enqueue(cancel, item)
        finally:
            gauge.dec()
            self._log.info("stopping indexing loop")

    def _fetch_and_process_block(self, height: Height) -> None:
        self._log.debug("fetch block", extra={"fields": {"height": height}})
        try:
            block = self._node.get_block(height)
        except Exception as err:
            raise _BlockError(f"fetch block {height}, {err}") from err

        try:
            self._process_block(block)
        except Exception as err:
            raise _BlockError(f"process block {height}") from err

        try:
            self._db.save_indexed_block(self._node.chain_id, height, block.timestamp)
        except Exception as err:
            raise _BlockError(f"save block {height} as indexed") from err

        self._log.debug("block indexed", extra={"fields": {"height": height}})
        LATEST_INDEXED_HEIGHT_BY_INDEXER.labels(self._config.name).set(float(height))

    def _process_block(self, block: Block) -> None:
        for module in self._modules:
            if isinstance(module, BlockHandleModule):
                try:
                    module.handle_block(block)
                except Exception as err:
                    raise _BlockError(
                        f"handle block, module: {module.name} err: {err}"
                    ) from err
            if isinstance(module, TxHandleModule):
                for tx in block.txs:
                    try:
                        module.handle_tx(block, tx)
                    except Exception as err:
                        raise _BlockError(
                            f"handle tx, module: {module.name}, tx: {tx.hash} err: {err}"
                        ) from err

    def _re_enqueue(self, cancel: threading.Event, item: IndexerHeight) -> None:
        fields = {"fields": {"height": item.height}}
        if cancel.is_set():
            self._log.debug("skip re-enqueue, context canceled", extra=fields)
            return
        retry = replace(item, attempts=item.attempts + 1)
        if retry.attempts >= self._config.max_attempts:
            self._log.error("failed to parse block, reached max attempts", extra=fields)
            INDEXER_FAILED_BLOCKS.labels(self._config.name).inc()
            return
        self._log.info("re-enqueue block", extra=fields)
        self._queue.put_later(cancel, self._config.time_before_retry, retry)