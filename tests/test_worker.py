import logging
import threading
import time
from datetime import datetime, timedelta, timezone

from flux_indexer.config import IndexerConfig
from flux_indexer.interfaces import (
    Block,
    BlockHandleModule,
    Database,
    Node,
    Tx,
    TxHandleModule,
)
from flux_indexer.metrics import (
    INDEXER_FAILED_BLOCKS,
    LATEST_INDEXED_HEIGHT_BY_INDEXER,
    WORKERS_COUNT,
)
from flux_indexer.producers import IndexerHeight
from flux_indexer.queue import WorkQueue
from flux_indexer.worker import Worker

LOGGER = logging.getLogger("test-worker")
STAMP = datetime(2021, 11, 22, 14, 0, tzinfo=timezone.utc)


class FakeTx(Tx):
    def __init__(self, tx_hash):
        self._hash = tx_hash

    @property
    def hash(self):
        return self._hash

    def is_successful(self):
        return True


class FakeBlock(Block):
    def __init__(self, height, txs):
        self._height = height
        self._txs = txs

    @property
    def chain_id(self):
        return "test"

    @property
    def height(self):
        return self._height

    @property
    def timestamp(self):
        return STAMP

    @property
    def txs(self):
        return self._txs


class FakeNode(Node):
    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.calls = []

    @property
    def chain_id(self):
        return "test"

    def get_block(self, height):
        self.calls.append(height)
        if self.failures.get(height, 0) > 0:
            self.failures[height] -= 1
            raise RuntimeError("node unavailable")
        return FakeBlock(height, [FakeTx(f"tx-{height}-a"), FakeTx(f"tx-{height}-b")])

    def get_lowest_height(self):
        return 1

    def get_current_height(self):
        return 100


class FakeDb(Database):
    def __init__(self):
        self.saved = []

    def get_lowest_block(self, chain_id):
        return None

    def get_missing_blocks(self, chain_id, start, end):
        return []

    def save_indexed_block(self, chain_id, height, timestamp):
        self.saved.append((chain_id, height, timestamp))


class Recorder(BlockHandleModule, TxHandleModule):
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    @property
    def name(self):
        return "recorder"

    def handle_block(self, block):
        if self.fail:
            raise ValueError("bad block")
        self.calls.append(("block", block.height))

    def handle_tx(self, block, tx):
        self.calls.append(("tx", block.height, tx.hash))


def make_config(name, max_attempts=5):
    return IndexerConfig(
        name=name,
        node_id="node",
        database_id="db",
        modules=["recorder"],
        max_attempts=max_attempts,
        time_before_retry=timedelta(milliseconds=10),
    )


def closed_queue(*heights):
    queue = WorkQueue(10)
    for height in heights:
        queue.put(IndexerHeight(height))
    queue.close()
    return queue


def test_worker_processes_blocks_and_saves_them():
    db, node, module = FakeDb(), FakeNode(), Recorder()
    worker = Worker(make_config("worker-ok"), LOGGER, closed_queue(1, 2), db, node, [module])
    worker.run(threading.Event())
    assert db.saved == [("test", 1, STAMP), ("test", 2, STAMP)]
    assert module.calls == [
        ("block", 1), ("tx", 1, "tx-1-a"), ("tx", 1, "tx-1-b"),
        ("block", 2), ("tx", 2, "tx-2-a"), ("tx", 2, "tx-2-b"),
    ]
    assert LATEST_INDEXED_HEIGHT_BY_INDEXER.labels("worker-ok").value == 2.0


def test_worker_count_returns_to_zero():
    worker = Worker(make_config("worker-count"), LOGGER, closed_queue(), FakeDb(), FakeNode(), [])
    worker.run(threading.Event())
    assert WORKERS_COUNT.labels("worker-count").value == 0.0


def test_failed_block_counted_after_max_attempts():
    db = FakeDb()
    node = FakeNode(failures={5: 10})
    before = INDEXER_FAILED_BLOCKS.labels("worker-fail").value
    worker = Worker(make_config("worker-fail", max_attempts=1), LOGGER, closed_queue(5), db, node,
                    [Recorder()])
    worker.run(threading.Event())
    assert db.saved == []
    assert node.calls == [5]
    assert INDEXER_FAILED_BLOCKS.labels("worker-fail").value == before + 1


def test_module_error_prevents_saving():
    db = FakeDb()
    before = INDEXER_FAILED_BLOCKS.labels("worker-module").value
    worker = Worker(make_config("worker-module", max_attempts=1), LOGGER, closed_queue(3), db,
                    FakeNode(), [Recorder(fail=True)])
    worker.run(threading.Event())
    assert db.saved == []
    assert INDEXER_FAILED_BLOCKS.labels("worker-module").value == before + 1


def test_failed_block_is_retried():
    db = FakeDb()
    node = FakeNode(failures={7: 1})
    queue = WorkQueue(10)
    queue.put(IndexerHeight(7))
    cancel = threading.Event()
    worker = Worker(make_config("worker-retry", max_attempts=3), LOGGER, queue, db, node,
                    [Recorder()])
    thread = worker.start(cancel)
    deadline = time.monotonic() + 5
    while not db.saved and time.monotonic() < deadline:
        time.sleep(0.01)
    cancel.set()
    thread.join(timeout=5)
    assert not thread.is_alive()
    assert [height for _, height, _ in db.saved] == [7]
    assert node.calls == [7, 7]


def test_cancelled_worker_does_nothing():
    db = FakeDb()
    queue = closed_queue(1)
    cancel = threading.Event()
    cancel.set()
    Worker(make_config("worker-cancel"), LOGGER, queue, db, FakeNode(), []).run(cancel)
    assert db.saved == []
    assert len(queue) == 1