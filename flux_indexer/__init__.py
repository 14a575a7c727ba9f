"""Blockchain indexer library: height producers, workers, modules and indexing state."""

__version__ = "0.1.0"