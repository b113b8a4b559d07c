from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import ValidationError

from ..capture.capture import EXECUTIONS_CATEGORY
from ..config import DeterminismPolicy
from ..lineage.tracker import LineageTracker, make_entry
from ..schemas import (
    Classification,
    ClassifiedOperation,
    DeterminismScore,
    OperationKey,
    StoredExecutionBatch,
    ToolExecutionPair,
    observation_artifact_id,
    pattern_artifact_id,
)
from ..store.pattern_store import PatternStore
from ..utils import stable_hash

logger = logging.getLogger(__name__)


@dataclass
class OperationGroup:
    key: OperationKey
    pairs: List[ToolExecutionPair] = field(default_factory=list)
    output_counts: Dict[str, int] = field(default_factory=dict)
    session_ids: List[str] = field(default_factory=list)

    def add(self, pair: ToolExecutionPair) -> None:
        output_hash = pair.output_hash or ""
        self.pairs.append(pair)
        self.output_counts[output_hash] = self.output_counts.get(output_hash, 0) + 1
        if pair.context.session_id not in self.session_ids:
            self.session_ids.append(pair.context.session_id)

    @property
    def count(self) -> int:
        return len(self.pairs)

    def dominant_output_hash(self) -> Optional[str]:
        best: Optional[str] = None
        best_count = 0
        for output_hash, count in self.output_counts.items():
            if count > best_count:
                best, best_count = output_hash, count
        return best


def operation_key(pair: ToolExecutionPair) -> OperationKey:
    return OperationKey(tool_name=pair.tool_name, input_hash=stable_hash(pair.input))


def group_executions(
    batches: Iterable[StoredExecutionBatch],
) -> Dict[Tuple[str, str], OperationGroup]:
    groups: Dict[Tuple[str, str], OperationGroup] = {}
    for batch in batches:
        for pair in batch.pairs:
            if pair.status != "complete" or pair.output_hash is None:
                continue
            key = operation_key(pair)
            group = groups.get((key.tool_name, key.input_hash))
            if group is None:
                group = OperationGroup(key=key)
                groups[(key.tool_name, key.input_hash)] = group
            group.add(pair)
    return groups


def variance_score(observation_count: int, unique_outputs: int) -> float:
    if observation_count <= 1:
        return 0.0
    return (unique_outputs - 1) / (observation_count - 1)


def score_group(group: OperationGroup) -> DeterminismScore:
    unique = len(group.output_counts)
    return DeterminismScore(
        operation=group.key,
        variance_score=variance_score(group.count, unique),
        observation_count=group.count,
        unique_outputs=unique,
        session_ids=list(group.session_ids),
    )


def classify_determinism(determinism: float, policy: DeterminismPolicy) -> Classification:
    if determinism >= policy.deterministic_threshold:
        return "deterministic"
    if determinism >= policy.semi_deterministic_threshold:
        return "semi-deterministic"
    return "non-deterministic"


def load_batches(store: PatternStore) -> List[StoredExecutionBatch]:
    batches: List[StoredExecutionBatch] = []
    for data in store.read_data(EXECUTIONS_CATEGORY):
        try:
            batches.append(StoredExecutionBatch.model_validate(data))
        except ValidationError:
            logger.warning("skipping invalid execution batch")
    return batches


class DeterminismAnalyzer:
    def __init__(
        self,
        store: PatternStore,
        policy: Optional[DeterminismPolicy] = None,
        lineage: Optional[LineageTracker] = None,
    ) -> None:
        self.store = store
        self.policy = policy or DeterminismPolicy()
        self.lineage = lineage

    def groups(self) -> Dict[Tuple[str, str], OperationGroup]:
        return group_executions(load_batches(self.store))

    def analyze(self) -> List[DeterminismScore]:
        return [
            score_group(group)
            for group in self.groups().values()
            if group.count >= self.policy.min_sample_size
        ]

    def classify(self) -> List[ClassifiedOperation]:
        groups = self.groups()
        classified: List[ClassifiedOperation] = []
        for group in groups.values():
            if group.count < self.policy.min_sample_size:
                continue
            score = score_group(group)
            determinism = 1.0 - score.variance_score
            classified.append(
                ClassifiedOperation(
                    score=score,
                    classification=classify_determinism(determinism, self.policy),
                    determinism=determinism,
                )
            )
        classified.sort(key=lambda item: -item.determinism)
        if self.lineage is not None:
            self._record_patterns(classified)
        return classified

    def expected_output_hash(self, operation_id: str) -> Optional[str]:
        tool_name, _, input_hash = operation_id.rpartition(":")
        group = self.groups().get((tool_name, input_hash))
        if group is None:
            return None
        return group.dominant_output_hash()

    def _record_patterns(self, classified: List[ClassifiedOperation]) -> None:
        entries = []
        for item in classified:
            key = item.operation
            entries.append(
                make_entry(
                    pattern_artifact_id(key.tool_name, key.input_hash),
                    "pattern",
                    "analysis",
                    inputs=[
                        observation_artifact_id(session_id, key.tool_name, key.input_hash)
                        for session_id in item.score.session_ids
                    ],
                    metadata={
                        "determinism": item.determinism,
                        "classification": item.classification,
                        "observation_count": item.observation_count,
                    },
                )
            )
        self.lineage.record_changed(entries)
