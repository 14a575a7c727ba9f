"""Registries of the database, node and module types an indexer can be built from."""

from __future__ import annotations

from collections.abc import Callable
from typing import Optional

from flux_indexer.interfaces import Database, Module, Node

DatabaseBuilder = Callable[[str, Optional[bytes]], Database]
"""Builds a database from its ID and its raw YAML configuration."""

NodeBuilder = Callable[[str, Optional[bytes]], Node]
"""Builds a node from its ID and its raw YAML configuration."""

ModuleBuilder = Callable[[Database, Node, Optional[bytes]], Module]
"""Builds a module from the indexer's database and node and its raw YAML configuration."""


class NotRegisteredError(LookupError):
    """Raised when no builder is registered under the requested name."""


class DatabasesManager:
    """Builds the databases that indexers use to store their state."""

    def __init__(self) -> None:
        self._registered: dict[str, DatabaseBuilder] = {}

    def register(self, db_type: str, builder: DatabaseBuilder) -> DatabasesManager:
        """Register ``builder`` for databases of type ``db_type``."""
        self._registered[db_type] = builder
        return self

    def get_database(self, db_type: str, database_id: str, raw_config: bytes | None) -> Database:
        """Build a database of the requested type."""
        builder = self._registered.get(db_type)
        if builder is None:
            raise NotRegisteredError(f"can't find builder for db `{db_type}`")
        return builder(database_id, raw_config)


class NodesManager:
    """Builds the nodes that indexers fetch blocks from."""

    def __init__(self) -> None:
        self._registered: dict[str, NodeBuilder] = {}

    def register(self, node_type: str, builder: NodeBuilder) -> NodesManager:
        """Register ``builder`` for nodes of type ``node_type``."""
        self._registered[node_type] = builder
        return self

    def get_node(self, node_type: str, node_id: str, raw_config: bytes | None) -> Node:
        """Build a node of the requested type."""
        builder = self._registered.get(node_type)
        if builder is None:
            raise NotRegisteredError(f"can't find builder for node `{node_type}`")
        return builder(node_id, raw_config)


class ModulesManager:
    """Builds the indexing modules, including user-defined ones."""

    def __init__(self) -> None:
        self._registered: dict[str, ModuleBuilder] = {}

    def register(self, name: str, builder: ModuleBuilder) -> ModulesManager:
        """Register ``builder`` for the module called ``name``."""
        self._registered[name] = builder
        return self

    def get_module(
        self, name: str, db: Database, node: Node, raw_config: bytes | None
    ) -> Module:
        """Build the module with the requested name."""
        builder = self._registered.get(name)
        if builder is None:
            raise NotRegisteredError(f"module `{name}` not registered")
        return builder(db, node, raw_config)