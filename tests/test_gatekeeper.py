from pathlib import Path

import pytest
from pydantic import ValidationError

from agentcompile_v1.calibration import calculate_mcc, mcc_to_unit, report_from_counts
from agentcompile_v1.config import GatekeeperPolicy
from agentcompile_v1.gate.gatekeeper import PromotionGatekeeper
from agentcompile_v1.schemas import (
    ClassifiedOperation,
    DeterminismScore,
    GatekeeperDecision,
    OperationKey,
    PromotionCandidate,
)
from agentcompile_v1.store.pattern_store import PatternStore


def _candidate(determinism: float, composite: float, observations: int) -> PromotionCandidate:
    score = DeterminismScore(
        operation=OperationKey(tool_name="Read", input_hash="abc"),
        variance_score=1.0 - determinism,
        observation_count=observations,
        unique_outputs=1,
    )
    operation = ClassifiedOperation(
        score=score, classification="deterministic", determinism=determinism
    )
    return PromotionCandidate(
        operation=operation,
        tool_name="Read",
        frequency=observations,
        estimated_token_savings=50,
        composite_score=composite,
        meets_confidence=True,
    )


def test_exact_thresholds_pass() -> None:
    decision = PromotionGatekeeper().evaluate(_candidate(0.95, 0.85, 5))
    assert decision.approved
    assert decision.reasoning == [
        "determinism 0.95 vs 0.95: passed",
        "confidence 0.85 vs 0.85: passed",
        "observations 5 vs 5: passed",
    ]
    assert decision.evidence.threshold_observations == 5


def test_just_below_determinism_rejects() -> None:
    decision = PromotionGatekeeper().evaluate(_candidate(0.9499, 0.99, 20))
    assert not decision.approved
    assert decision.reasoning[0] == "determinism 0.9499 vs 0.95: failed"
    assert decision.reasoning[1].endswith("passed")


def test_too_few_observations_mentions_observations() -> None:
    decision = PromotionGatekeeper().evaluate(_candidate(1.0, 0.9, 4))
    assert not decision.approved
    assert any("observation" in line and "failed" in line for line in decision.reasoning)


def test_calibration_gates_need_threshold_and_report() -> None:
    policy = GatekeeperPolicy(min_f1=0.8, min_accuracy=0.8, min_mcc=0.9)
    gatekeeper = PromotionGatekeeper(policy)
    candidate = _candidate(1.0, 0.9, 10)
    without_report = gatekeeper.evaluate(candidate)
    assert len(without_report.reasoning) == 3
    assert without_report.evidence.f1_score is None

    perfect = report_from_counts(tp=10, tn=10, fp=0, fn=0)
    with_report = gatekeeper.evaluate(candidate, perfect)
    assert len(with_report.reasoning) == 6
    assert with_report.approved
    assert with_report.evidence.mcc == 1.0
    assert with_report.evidence.threshold_mcc == 0.9

    no_threshold = PromotionGatekeeper().evaluate(candidate, perfect)
    assert len(no_threshold.reasoning) == 3


def test_mcc_gate_uses_rescaled_value() -> None:
    chance = report_from_counts(tp=5, tn=5, fp=5, fn=5)
    assert calculate_mcc(5, 5, 5, 5) == 0.0
    gatekeeper = PromotionGatekeeper(GatekeeperPolicy(min_mcc=0.6))
    decision = gatekeeper.evaluate(_candidate(1.0, 0.9, 10), chance)
    assert not decision.approved
    assert decision.reasoning[-1] == "mcc 0.5 vs 0.6: failed"
    assert mcc_to_unit(-1.0) == 0.0


def test_decisions_are_audited(tmp_path: Path) -> None:
    store = PatternStore(tmp_path)
    PromotionGatekeeper(store=store).evaluate(_candidate(1.0, 0.9, 10))
    stored = store.read("decisions")
    assert len(stored) == 1
    restored = GatekeeperDecision.model_validate(stored[0].data)
    assert restored.approved


def test_audit_failure_does_not_change_decision(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    decision = PromotionGatekeeper(store=PatternStore(blocker)).evaluate(_candidate(1.0, 0.9, 10))
    assert decision.approved


def test_decision_is_immutable() -> None:
    decision = PromotionGatekeeper().evaluate(_candidate(1.0, 0.9, 10))
    with pytest.raises(ValidationError):
        decision.approved = False  # type: ignore[misc]


def test_just_below_confidence_rejects() -> None:
    decision = PromotionGatekeeper().evaluate(_candidate(1.0, 0.8499, 5))
    assert not decision.approved
    assert decision.reasoning[1] == "confidence 0.8499 vs 0.85: failed"
    assert len(decision.reasoning) == 3
