"""Abstract interfaces shared by the indexer: blocks, transactions, nodes, databases and modules."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

Height = int
"""A block chain height: a non-negative integer that fits in 64 bits."""

MAX_HEIGHT: Height = 2**64 - 1


class Tx(ABC):
    """A transaction that has been included into a block."""

    @property
    @abstractmethod
    def hash(self) -> str:
        """The transaction hash."""

    @abstractmethod
    def is_successful(self) -> bool:
        """Whether the transaction was executed without errors."""


class Block(ABC):
    """A block produced by a block chain."""

    @property
    @abstractmethod
    def chain_id(self) -> str:
        """The ID of the chain that produced the block."""

    @property
    @abstractmethod
    def height(self) -> Height:
        """The height at which the block was produced."""

    @property
    @abstractmethod
    def timestamp(self) -> datetime:
        """The time at which the block was produced."""

    @property
    @abstractmethod
    def txs(self) -> Sequence[Tx]:
        """The transactions included in the block."""


class Database(ABC):
    """Storage used by the indexer to keep track of its indexing state."""

    @abstractmethod
    def get_lowest_block(self, chain_id: str) -> Height | None:
        """Return the lowest indexed height for the chain, or None if nothing was indexed."""

    @abstractmethod
    def get_missing_blocks(self, chain_id: str, start: Height, end: Height) -> list[Height]:
        """Return the heights in [start, end] that have not been indexed yet."""

    @abstractmethod
    def save_indexed_block(self, chain_id: str, height: Height, timestamp: datetime) -> None:
        """Record that the block at ``height`` has been indexed."""


class Node(ABC):
    """A block chain node that can be queried for blocks."""

    @property
    @abstractmethod
    def chain_id(self) -> str:
        """The ID of the chain served by the node."""

    @abstractmethod
    def get_block(self, height: Height) -> Block:
        """Fetch the block produced at ``height``."""

    @abstractmethod
    def get_lowest_height(self) -> Height:
        """Return the lowest height the node can serve."""

    @abstractmethod
    def get_current_height(self) -> Height:
        """Return the node's latest height."""


class Module(ABC):
    """An indexing module."""

    @property
    @abstractmethod
    def name(self) -> str:
        """The name that identifies the module."""


class BlockHandleModule(Module):
    """A module that indexes data extracted from whole blocks."""

    @abstractmethod
    def handle_block(self, block: Block) -> None:
        """Process the given block."""


class TxHandleModule(Module):
    """A module that indexes data extracted from single transactions."""

    @abstractmethod
    def handle_tx(self, block: Block, tx: Tx) -> None:
        """Process ``tx``, which is included in ``block``."""