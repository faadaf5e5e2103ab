"""
Persistence

PostgreSQL store and the outbound write queue feeding it.
"""

from .store import CandleStore
from .writer import FlushBatch, PersistenceWriter, WriteKind, WriteRequest

__all__ = ["CandleStore", "FlushBatch", "PersistenceWriter", "WriteKind", "WriteRequest"]
