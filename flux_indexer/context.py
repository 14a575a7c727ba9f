"""Per-indexer context made available to the builders of databases, nodes and modules."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional, Union

from flux_indexer.config import Config, IndexerConfig
from flux_indexer.logsetup import bind

Logger = Union[logging.Logger, logging.LoggerAdapter]


@dataclass(frozen=True)
class IndexerContext:
    """The configuration and logger of the indexer being built."""

    config: Config
    indexer_config: IndexerConfig
    logger: Logger

    @classmethod
    def create(cls, config: Config, indexer_config: IndexerConfig, logger: Logger) -> IndexerContext:
        return cls(
            config=config,
            indexer_config=indexer_config,
            logger=bind(logger, indexer=indexer_config.name),
        )


_CURRENT: ContextVar[Optional[IndexerContext]] = ContextVar("indexer_context", default=None)


@contextmanager
def use_indexer_context(indexer_ctx: IndexerContext) -> Iterator[IndexerContext]:
    """Make ``indexer_ctx`` the current indexer context for the enclosed block."""
    token = _CURRENT.set(indexer_ctx)
    try:
        yield indexer_ctx
    finally:
        _CURRENT.reset(token)


def get_indexer_context() -> IndexerContext:
    """Return the current indexer context, raising RuntimeError if none is set."""
    current = _CURRENT.get()
    if current is None:
        raise RuntimeError("can't get IndexerContext from the provided Context")
    return current