"""Blocks and transactions of Cosmos chains."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flux_indexer.cosmos.abci import ABCIEvents
from flux_indexer.interfaces import Block, Height, Tx


@dataclass(frozen=True)
class BlockHeader:
    """The identifying part of a block."""

    chain_id: str
    height: Height
    time: datetime


@dataclass
class CosmosTx(Tx):
    """A transaction included in a Cosmos block."""

    code: int
    data: bytes
    tx_hash: str
    events: ABCIEvents = field(default_factory=ABCIEvents)
    log: str = ""

    @property
    def hash(self) -> str:
        return self.tx_hash

    def is_successful(self) -> bool:
        return self.code == 0


@dataclass
class CosmosBlock(Block):
    """A Cosmos block with its transactions and block-level events."""

    header: BlockHeader
    transactions: list[CosmosTx] = field(default_factory=list)
    begin_block_events: ABCIEvents = field(default_factory=ABCIEvents)
    end_block_events: ABCIEvents = field(default_factory=ABCIEvents)
    finalize_block_events: ABCIEvents = field(default_factory=ABCIEvents)

    @property
    def chain_id(self) -> str:
        return self.header.chain_id

    @property
    def height(self) -> Height:
        return self.header.height

    @property
    def timestamp(self) -> datetime:
        return self.header.time

    @property
    def txs(self) -> list[CosmosTx]:
        return list(self.transactions)