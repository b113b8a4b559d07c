from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from ..lineage.tracker import LineageTracker, make_entry
from ..schemas import (
    ExecutionContext,
    LineageEntry,
    StoredExecutionBatch,
    ToolExecutionPair,
    TranscriptEntry,
    observation_artifact_id,
    pattern_artifact_id,
)
from ..store.pattern_store import PatternStore
from ..utils import now_ms, stable_hash
from .transcript import TranscriptParser, pair_tool_executions

logger = logging.getLogger(__name__)

EXECUTIONS_CATEGORY = "executions"


def observation_entries(pairs: Iterable[ToolExecutionPair]) -> List[LineageEntry]:
    entries: List[LineageEntry] = []
    seen = set()
    for pair in pairs:
        if pair.status != "complete":
            continue
        input_hash = stable_hash(pair.input)
        artifact_id = observation_artifact_id(pair.context.session_id, pair.tool_name, input_hash)
        if artifact_id in seen:
            continue
        seen.add(artifact_id)
        entries.append(
            make_entry(
                artifact_id,
                "observation",
                "capture",
                outputs=[pattern_artifact_id(pair.tool_name, input_hash)],
                metadata={"pair_id": pair.id, "output_hash": pair.output_hash},
            )
        )
    return entries


class ExecutionCapture:
    def __init__(
        self,
        store: PatternStore,
        parser: Optional[TranscriptParser] = None,
        lineage: Optional[LineageTracker] = None,
    ) -> None:
        self.store = store
        self.parser = parser or TranscriptParser()
        self.lineage = lineage

    def capture(
        self, entries: Iterable[TranscriptEntry], context: ExecutionContext
    ) -> Optional[StoredExecutionBatch]:
        pairs = pair_tool_executions(entries, context)
        if not pairs:
            return None
        complete = sum(1 for pair in pairs if pair.status == "complete")
        batch = StoredExecutionBatch(
            session_id=context.session_id,
            context=context,
            pairs=pairs,
            complete_count=complete,
            partial_count=len(pairs) - complete,
            captured_at=now_ms(),
        )
        self.store.append(EXECUTIONS_CATEGORY, batch.model_dump(mode="json"))
        logger.info(
            "captured %d executions for session %s (%d partial)",
            len(pairs),
            context.session_id,
            batch.partial_count,
        )
        if self.lineage is not None:
            self.lineage.record_many(observation_entries(pairs))
        return batch

    def capture_file(self, path: Path, context: ExecutionContext) -> Optional[StoredExecutionBatch]:
        return self.capture(self.parser.iter_file(path), context)
