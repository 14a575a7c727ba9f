"""Adapters that let modules handle only the block and transaction types they understand."""

from __future__ import annotations

from typing import Any, Generic, Protocol, TypeVar

from flux_indexer.interfaces import Block, BlockHandleModule, Tx, TxHandleModule

B = TypeVar("B", bound=Block)
T = TypeVar("T", bound=Tx)


class _NamedHandler(Protocol):
    @property
    def name(self) -> str: ...


class BlockHandleAdapter(BlockHandleModule, Generic[B]):
    """Passes to ``handler`` only the blocks that are instances of ``block_type``."""

    def __init__(self, handler: Any, block_type: type[B]) -> None:
        self._handler = handler
        self._block_type = block_type

    @property
    def name(self) -> str:
        return self._handler.name

    def handle_block(self, block: Block) -> None:
        if not isinstance(block, self._block_type):
            return
        self._handler.handle_block(block)


class TxHandleAdapter(TxHandleModule, Generic[B, T]):
    """Passes to ``handler`` only the transactions of the expected block and tx types."""

    def __init__(self, handler: Any, block_type: type[B], tx_type: type[T]) -> None:
        self._handler = handler
        self._block_type = block_type
        self._tx_type = tx_type

    @property
    def name(self) -> str:
        return self._handler.name

    def handle_tx(self, block: Block, tx: Tx) -> None:
        if not isinstance(block, self._block_type):
            return
        if not isinstance(tx, self._tx_type):
            return
        self._handler.handle_tx(block, tx)