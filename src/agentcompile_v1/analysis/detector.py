from __future__ import annotations

import math
from typing import List, Optional

from ..config import DetectorPolicy
from ..lineage.tracker import LineageTracker, make_entry
from ..schemas import (
    ClassifiedOperation,
    PromotionCandidate,
    ToolExecutionPair,
    candidate_artifact_id,
    pattern_artifact_id,
    script_artifact_id,
)
from ..store.pattern_store import PatternStore
from ..utils import canonical_text, clamp_unit
from .determinism import DeterminismAnalyzer


def estimate_token_savings(pair: ToolExecutionPair, chars_per_token: int) -> int:
    chars = len(canonical_text(pair.input)) + len(pair.output or "")
    return int(round(chars / chars_per_token))


def frequency_factor(frequency: int, saturation: int) -> float:
    if frequency <= 0:
        return 0.0
    return clamp_unit(math.log10(frequency + 1) / math.log10(saturation + 1))


def token_factor(tokens: int, saturation: int) -> float:
    if tokens <= 0:
        return 0.0
    return clamp_unit(tokens / saturation)


def composite_score(
    determinism: float, frequency: int, tokens: int, policy: DetectorPolicy
) -> float:
    total_weight = policy.determinism_weight + policy.frequency_weight + policy.token_weight
    weighted = (
        policy.determinism_weight * clamp_unit(determinism)
        + policy.frequency_weight * frequency_factor(frequency, policy.frequency_saturation)
        + policy.token_weight * token_factor(tokens, policy.token_saturation)
    )
    return clamp_unit(weighted / total_weight)


class PromotionDetector:
    def __init__(
        self,
        store: PatternStore,
        policy: Optional[DetectorPolicy] = None,
        analyzer: Optional[DeterminismAnalyzer] = None,
        lineage: Optional[LineageTracker] = None,
    ) -> None:
        self.store = store
        self.policy = policy or DetectorPolicy()
        self.analyzer = analyzer or DeterminismAnalyzer(store)
        self.lineage = lineage

    def detect(self) -> List[PromotionCandidate]:
        groups = self.analyzer.groups()
        promotable = set(self.policy.promotable_tools)
        candidates: List[PromotionCandidate] = []
        for operation in self.analyzer.classify():
            key = operation.operation
            if key.tool_name not in promotable:
                continue
            if operation.determinism < self.policy.min_determinism:
                continue
            group = groups.get((key.tool_name, key.input_hash))
            if group is None or not group.pairs:
                continue
            candidates.append(self._candidate(operation, group.pairs[-1]))
        candidates.sort(key=lambda item: (-item.composite_score, -item.frequency))
        if self.lineage is not None:
            self._record_candidates(candidates)
        return candidates

    def _candidate(
        self, operation: ClassifiedOperation, sample: ToolExecutionPair
    ) -> PromotionCandidate:
        frequency = operation.observation_count
        tokens = estimate_token_savings(sample, self.policy.chars_per_token)
        score = composite_score(operation.determinism, frequency, tokens, self.policy)
        return PromotionCandidate(
            operation=operation,
            tool_name=operation.operation.tool_name,
            frequency=frequency,
            estimated_token_savings=tokens,
            composite_score=score,
            meets_confidence=score >= self.policy.min_confidence,
        )

    def _record_candidates(self, candidates: List[PromotionCandidate]) -> None:
        entries = []
        for candidate in candidates:
            key = candidate.operation.operation
            entries.append(
                make_entry(
                    candidate_artifact_id(key.tool_name, key.input_hash),
                    "candidate",
                    "detection",
                    inputs=[pattern_artifact_id(key.tool_name, key.input_hash)],
                    outputs=[script_artifact_id(key.operation_id)],
                    metadata={
                        "composite_score": candidate.composite_score,
                        "meets_confidence": candidate.meets_confidence,
                        "frequency": candidate.frequency,
                    },
                )
            )
        self.lineage.record_changed(entries)
