from __future__ import annotations

import logging
from typing import Dict, List, Optional, Union

from ..calibration import mcc_to_unit, report_mcc
from ..config import GatekeeperPolicy
from ..lineage.tracker import LineageTracker, make_entry
from ..schemas import (
    BenchmarkReport,
    GatekeeperDecision,
    GatekeeperEvidence,
    PromotionCandidate,
    candidate_artifact_id,
    decision_artifact_id,
)
from ..store.pattern_store import PatternStore
from ..utils import now_iso

logger = logging.getLogger(__name__)

DECISIONS_CATEGORY = "decisions"

Number = Union[int, float]


def _format(value: Number) -> str:
    if isinstance(value, int):
        return str(value)
    return f"{value:.4f}".rstrip("0").rstrip(".") or "0"


def gate_line(gate: str, actual: Number, threshold: Number, passed: bool) -> str:
    verdict = "passed" if passed else "failed"
    return f"{gate} {_format(actual)} vs {_format(threshold)}: {verdict}"


class PromotionGatekeeper:
    def __init__(
        self,
        policy: Optional[GatekeeperPolicy] = None,
        store: Optional[PatternStore] = None,
        lineage: Optional[LineageTracker] = None,
    ) -> None:
        self.policy = policy or GatekeeperPolicy()
        self.store = store
        self.lineage = lineage

    def evaluate(
        self, candidate: PromotionCandidate, report: Optional[BenchmarkReport] = None
    ) -> GatekeeperDecision:
        policy = self.policy
        reasoning: List[str] = []
        results: List[bool] = []

        def check(gate: str, actual: Number, threshold: Number) -> None:
            passed = actual >= threshold
            results.append(passed)
            reasoning.append(gate_line(gate, actual, threshold, passed))

        determinism = candidate.operation.determinism
        observations = candidate.operation.observation_count
        check("determinism", determinism, policy.min_determinism)
        check("confidence", candidate.composite_score, policy.min_confidence)
        check("observations", observations, policy.min_observations)

        calibration: Dict[str, float] = {}
        if report is not None:
            if policy.min_f1 is not None:
                check("f1", report.f1, policy.min_f1)
                calibration.update(f1_score=report.f1, threshold_f1=policy.min_f1)
            if policy.min_accuracy is not None:
                check("accuracy", report.accuracy, policy.min_accuracy)
                calibration.update(accuracy=report.accuracy, threshold_accuracy=policy.min_accuracy)
            if policy.min_mcc is not None:
                mcc = mcc_to_unit(report_mcc(report))
                check("mcc", mcc, policy.min_mcc)
                calibration.update(mcc=mcc, threshold_mcc=policy.min_mcc)

        decision = GatekeeperDecision(
            candidate=candidate,
            approved=all(results),
            reasoning=reasoning,
            evidence=GatekeeperEvidence(
                determinism=determinism,
                composite_score=candidate.composite_score,
                observation_count=observations,
                threshold_determinism=policy.min_determinism,
                threshold_confidence=policy.min_confidence,
                threshold_observations=policy.min_observations,
                **calibration,
            ),
            timestamp=now_iso(),
        )
        self._audit(decision)
        return decision

    def _audit(self, decision: GatekeeperDecision) -> None:
        operation_id = decision.candidate.operation_id
        if self.store is not None:
            try:
                self.store.append(DECISIONS_CATEGORY, decision.model_dump(mode="json"))
            except OSError as exc:
                logger.warning("could not persist decision for %s: %s", operation_id, exc)
        if self.lineage is not None:
            key = decision.candidate.operation.operation
            try:
                self.lineage.record(
                    make_entry(
                        decision_artifact_id(operation_id, decision.timestamp),
                        "decision",
                        "gatekeeping",
                        inputs=[candidate_artifact_id(key.tool_name, key.input_hash)],
                        metadata={"approved": decision.approved},
                    )
                )
            except OSError as exc:
                logger.warning("could not record decision lineage for %s: %s", operation_id, exc)
