from .compaction import compact_file, compact_store
from .pattern_store import CATEGORIES, PatternStore, StoreEntry

__all__ = ["CATEGORIES", "PatternStore", "StoreEntry", "compact_file", "compact_store"]
