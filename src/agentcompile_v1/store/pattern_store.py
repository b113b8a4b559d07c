from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

import orjson

from ..utils import iter_jsonl_lines, now_ms, stable_hash, write_jsonl_lines

logger = logging.getLogger(__name__)

CATEGORIES = ("executions", "sessions", "feedback", "decisions", "lineage")
CHECKSUM_FIELD = "_checksum"


@dataclass(frozen=True)
class StoreEntry:
    timestamp: int
    category: str
    data: Dict[str, Any]

    def to_record(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp, "category": self.category, "data": self.data}


def envelope_checksum(timestamp: int, category: str, data: Any) -> str:
    return stable_hash({"timestamp": timestamp, "category": category, "data": data})


def make_envelope(
    category: str, data: Mapping[str, Any], timestamp: Optional[int] = None
) -> Dict[str, Any]:
    ts = now_ms() if timestamp is None else int(timestamp)
    payload = dict(data)
    return {
        "timestamp": ts,
        "category": category,
        "data": payload,
        CHECKSUM_FIELD: envelope_checksum(ts, category, payload),
    }


def parse_envelope(line: bytes, *, verify_checksum: bool = True) -> Optional[StoreEntry]:
    try:
        raw = orjson.loads(line)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    timestamp = raw.get("timestamp")
    category = raw.get("category")
    data = raw.get("data")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool):
        return None
    if not isinstance(category, str) or not isinstance(data, dict):
        return None
    checksum = raw.get(CHECKSUM_FIELD)
    if verify_checksum and checksum is not None:
        if checksum != envelope_checksum(timestamp, category, data):
            return None
    return StoreEntry(timestamp=timestamp, category=category, data=data)


class PatternStore:
    def __init__(self, root: Path, clock: Optional[Callable[[], int]] = None) -> None:
        self.root = Path(root)
        self.clock = clock or now_ms

    def path_for(self, category: str) -> Path:
        if not category or "/" in category or category.startswith("."):
            raise ValueError(f"invalid store category: {category!r}")
        return self.root / f"{category}.jsonl"

    def append(self, category: str, data: Mapping[str, Any]) -> StoreEntry:
        envelope = make_envelope(category, data, self.clock())
        write_jsonl_lines(self.path_for(category), [envelope])
        return StoreEntry(envelope["timestamp"], category, envelope["data"])

    def append_many(self, category: str, records: Iterable[Mapping[str, Any]]) -> int:
        timestamp = self.clock()
        envelopes = [make_envelope(category, record, timestamp) for record in records]
        return write_jsonl_lines(self.path_for(category), envelopes)

    def iter_entries(self, category: str) -> Iterator[StoreEntry]:
        path = self.path_for(category)
        skipped = 0
        for line in iter_jsonl_lines(path):
            entry = parse_envelope(line)
            if entry is None:
                skipped += 1
                continue
            yield entry
        if skipped:
            logger.warning("skipped %d unreadable entries in %s", skipped, path)

    def read(self, category: str) -> List[StoreEntry]:
        return list(self.iter_entries(category))

    def read_data(self, category: str) -> List[Dict[str, Any]]:
        return [entry.data for entry in self.iter_entries(category)]
