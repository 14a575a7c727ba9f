"""Construction of indexers with their databases, nodes and modules."""

from __future__ import annotations

import copy
import logging
from typing import Union

import yaml

from flux_indexer.config import Config, ConfigError, IndexerConfig, RawConfig
from flux_indexer.context import IndexerContext, use_indexer_context
from flux_indexer.indexer import Indexer
from flux_indexer.interfaces import Database, Module, Node
from flux_indexer.logsetup import new_logger_from_config
from flux_indexer.managers import DatabasesManager, ModulesManager, NodesManager
from flux_indexer.utils import copy_map

Logger = Union[logging.Logger, logging.LoggerAdapter]


def _marshal(raw: RawConfig, what: str) -> bytes:
    try:
        return yaml.safe_dump(raw, sort_keys=False).encode("utf-8")
    except yaml.YAMLError as err:
        raise ConfigError(f"marshal {what} config") from err


class IndexersBuilder:
    """Creates indexers together with the databases, nodes and modules they need."""

    def __init__(
        self,
        databases: DatabasesManager,
        nodes: NodesManager,
        modules: ModulesManager,
    ) -> None:
        self._databases = databases
        self._nodes = nodes
        self._modules = modules

    def build_all(self, config: Config | None) -> list[Indexer]:
        """Build every indexer listed in ``config``."""
        logger = self._prepare(config)
        return [self._build(config, indexer_cfg, logger) for indexer_cfg in config.indexers]

    def build_by_name(self, config: Config | None, name: str) -> Indexer:
        """Build the indexer called ``name``."""
        logger = self._prepare(config)
        indexer_cfg = config.get_indexer_config(name)
        return self._build(config, indexer_cfg, logger)

    @staticmethod
    def _prepare(config: Config | None) -> logging.Logger:
        if config is None:
            raise ValueError("config can't be nil")
        try:
            config.validate()
        except ConfigError as err:
            raise ConfigError(f"invalid config: {err}") from err
        try:
            return new_logger_from_config(config.logging)
        except (ConfigError, ValueError) as err:
            raise ConfigError(f"create logger instance: {err}") from err

    def _build(self, config: Config, indexer_cfg: IndexerConfig, logger: Logger) -> Indexer:
        name = indexer_cfg.name
        with use_indexer_context(IndexerContext.create(config, indexer_cfg, logger)):
            try:
                db = self._build_database(config, indexer_cfg.database_id)
            except Exception as err:
                raise RuntimeError(f"build database for indexer {name}: {err}") from err
            try:
                node = self._build_node(config, indexer_cfg.node_id)
            except Exception as err:
                raise RuntimeError(f"build node for indexer {name}: {err}") from err
            try:
                modules = self._build_modules(config, db, node, indexer_cfg)
            except Exception as err:
                raise RuntimeError(f"build modules for indexer {name}: {err}") from err
        return Indexer(indexer_cfg, logger, db, node, modules)

    def _build_database(self, config: Config, db_id: str) -> Database:
        db_cfg = config.databases.get(db_id)
        if db_cfg is None:
            raise ConfigError(f"database {db_id} not found")
        db_type = db_cfg.get("type")
        if not isinstance(db_type, str):
            raise ConfigError(f"can't find 'type' field in database {db_id}")
        raw = _marshal(db_cfg, f"database {db_id}")
        return self._databases.get_database(db_type, db_id, raw)

    def _build_node(self, config: Config, node_id: str) -> Node:
        node_cfg = config.nodes.get(node_id)
        if node_cfg is None:
            raise ConfigError(f"node {node_id} not found")
        node_type = node_cfg.get("type")
        if not isinstance(node_type, str):
            raise ConfigError(f"can't find 'type' field in node {node_id}")
        raw = _marshal(node_cfg, f"node {node_id}")
        return self._nodes.get_node(node_type, node_id, raw)

    def _build_modules(
        self, config: Config, db: Database, node: Node, indexer_cfg: IndexerConfig
    ) -> list[Module]:
        modules: list[Module] = []
        for module_name in indexer_cfg.modules:
            found = module_name in config.modules
            module_cfg: RawConfig = copy.deepcopy(config.modules[module_name]) if found else {}
            if module_name in indexer_cfg.override_module_config:
                copy_map(module_cfg, indexer_cfg.override_module_config[module_name])
            raw = _marshal(module_cfg, f"module {module_name}") if found else None
            try:
                module = self._modules.get_module(module_name, db, node, raw)
            except Exception as err:
                raise RuntimeError(
                    f"build module `{module_name}` for indexer `{indexer_cfg.name}`: {err}"
                ) from err
            modules.append(module)
        return modules