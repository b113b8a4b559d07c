from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from ..schemas import ArtifactType, LineageChain, LineageEntry, LineageStage
from ..store.pattern_store import PatternStore
from ..utils import now_iso, stable_hash

logger = logging.getLogger(__name__)

LINEAGE_CATEGORY = "lineage"


def _latest_by_id(entries: Sequence[LineageEntry]) -> Dict[str, LineageEntry]:
    by_id: Dict[str, LineageEntry] = {}
    for entry in entries:
        by_id[entry.artifact_id] = entry
    return by_id


def entry_fingerprint(entry: LineageEntry) -> str:
    return stable_hash(entry.model_dump(mode="json", exclude={"timestamp"}))


def _traverse(
    entries: Sequence[LineageEntry], artifact_id: str, *, upstream: bool
) -> List[LineageEntry]:
    by_id = _latest_by_id(entries)
    edges: Dict[str, List[str]] = {}

    def link(source: str, target: str) -> None:
        neighbours = edges.setdefault(source, [])
        if target not in neighbours:
            neighbours.append(target)

    for entry in entries:
        for produced in entry.outputs:
            if upstream:
                link(produced, entry.artifact_id)
            else:
                link(entry.artifact_id, produced)
        for consumed in entry.inputs:
            if upstream:
                link(entry.artifact_id, consumed)
            else:
                link(consumed, entry.artifact_id)

    visited = {artifact_id}
    queue = deque([artifact_id])
    found: List[LineageEntry] = []
    while queue:
        current = queue.popleft()
        for neighbour in edges.get(current, []):
            if neighbour in visited:
                continue
            visited.add(neighbour)
            queue.append(neighbour)
            entry = by_id.get(neighbour)
            if entry is not None:
                found.append(entry)
    return found


def trace_upstream(entries: Sequence[LineageEntry], artifact_id: str) -> List[LineageEntry]:
    return _traverse(entries, artifact_id, upstream=True)


def trace_downstream(entries: Sequence[LineageEntry], artifact_id: str) -> List[LineageEntry]:
    return _traverse(entries, artifact_id, upstream=False)


def make_entry(
    artifact_id: str,
    artifact_type: ArtifactType,
    stage: LineageStage,
    *,
    inputs: Optional[Iterable[str]] = None,
    outputs: Optional[Iterable[str]] = None,
    metadata: Optional[Dict[str, object]] = None,
    timestamp: Optional[str] = None,
) -> LineageEntry:
    return LineageEntry(
        artifact_id=artifact_id,
        artifact_type=artifact_type,
        stage=stage,
        inputs=list(inputs or []),
        outputs=list(outputs or []),
        metadata=dict(metadata or {}),
        timestamp=timestamp or now_iso(),
    )


class LineageTracker:
    def __init__(self, store: PatternStore) -> None:
        self.store = store

    def record(self, entry: LineageEntry) -> None:
        self.store.append(LINEAGE_CATEGORY, entry.model_dump(mode="json"))

    def record_many(self, entries: Iterable[LineageEntry]) -> int:
        return self.store.append_many(
            LINEAGE_CATEGORY, [entry.model_dump(mode="json") for entry in entries]
        )

    def record_changed(self, entries: Iterable[LineageEntry]) -> int:
        latest = _latest_by_id(self.entries())
        fresh: List[LineageEntry] = []
        for entry in entries:
            previous = latest.get(entry.artifact_id)
            if previous is not None and entry_fingerprint(previous) == entry_fingerprint(entry):
                continue
            fresh.append(entry)
        return self.record_many(fresh)

    def entries(self) -> List[LineageEntry]:
        loaded: List[LineageEntry] = []
        for data in self.store.read_data(LINEAGE_CATEGORY):
            try:
                loaded.append(LineageEntry.model_validate(data))
            except ValidationError:
                logger.warning("skipping invalid lineage entry")
        return loaded

    def get(self, artifact_id: str) -> Optional[LineageEntry]:
        return _latest_by_id(self.entries()).get(artifact_id)

    def get_upstream(self, artifact_id: str) -> List[LineageEntry]:
        return trace_upstream(self.entries(), artifact_id)

    def get_downstream(self, artifact_id: str) -> List[LineageEntry]:
        return trace_downstream(self.entries(), artifact_id)

    def get_chain(self, artifact_id: str) -> LineageChain:
        entries = self.entries()
        return LineageChain(
            artifact=_latest_by_id(entries).get(artifact_id),
            upstream=trace_upstream(entries, artifact_id),
            downstream=trace_downstream(entries, artifact_id),
        )

    def get_by_artifact_type(self, artifact_type: ArtifactType) -> List[LineageEntry]:
        return [entry for entry in self.entries() if entry.artifact_type == artifact_type]
