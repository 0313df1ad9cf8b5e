from __future__ import annotations
import logging

from .base import CatalogStore
from .memory import MemoryCatalogStore
from .sql import SqlCatalogStore

logger = logging.getLogger(__name__)


def build_store(backend: str) -> CatalogStore:
	"""Pick the catalog store once at process start."""
	backend = (backend or "sql").lower()
	if backend == "memory":
		logger.info("using in-memory catalog store (local mode, data is not persisted)")
		return MemoryCatalogStore()
	if backend == "sql":
		from ..db import SessionLocal

		return SqlCatalogStore(SessionLocal)
	raise ValueError(f"unknown storage backend {backend!r}; expected 'sql' or 'memory'")


__all__ = ["CatalogStore", "MemoryCatalogStore", "SqlCatalogStore", "build_store"]
