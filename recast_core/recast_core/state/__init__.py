"""State persistence layer: the Record Store and its backings."""

from recast_core.state.memory import InMemoryRecordStore
from recast_core.state.sql import SQLRecordStore
from recast_core.state.store import DEFAULT_HISTORY_LIMIT, RecordStore

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "InMemoryRecordStore",
    "RecordStore",
    "SQLRecordStore",
]
