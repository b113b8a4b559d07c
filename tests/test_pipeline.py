from pathlib import Path
from typing import List

from conftest import FixedClock, tool_result, tool_use, user, write_transcript

from agentcompile_v1.config import GatekeeperPolicy, Settings
from agentcompile_v1.pipeline import build_pipeline
from agentcompile_v1.schemas import CompletionSignal, DemotionDecision, OffloadResult

OUTPUT = "line\n" * 400


def _session_lines(session_id: str) -> list:
    lines = [user(f"{session_id}-u{i}", session_id=session_id) for i in range(5)]
    for i, command in enumerate(["cat setup.cfg", "git status", "ls"]):
        lines.append(
            tool_use(f"{session_id}-t{i}", "Bash", {"command": command}, session_id=session_id)
        )
        lines.append(
            tool_result(
                f"{session_id}-r{i}",
                OUTPUT if i == 0 else f"{session_id}-{i}",
                tool_use_id=f"{session_id}-t{i}",
                session_id=session_id,
            )
        )
    return lines


def test_end_to_end_promotion_lineage_and_demotion(tmp_path: Path, clock: FixedClock) -> None:
    settings = Settings(gatekeeper=GatekeeperPolicy(min_confidence=0.75))
    pipeline = build_pipeline(tmp_path / "store", settings, clock=clock)
    for idx in range(6):
        session_id = f"s{idx}"
        path = write_transcript(tmp_path / f"{session_id}.jsonl", _session_lines(session_id))
        pipeline.observer.on_session_start({"session_id": session_id, "transcript_path": str(path)})
        clock.advance(6)
        observation = pipeline.observer.on_session_end(
            {"session_id": session_id, "reason": "logout"}
        )
        assert observation is not None
        assert observation.tier == "persistent"

    decisions = pipeline.run_promotion()
    assert len(decisions) == 1
    decision = decisions[0]
    assert decision.approved
    assert decision.candidate.tool_name == "Bash"
    assert decision.candidate.frequency == 6
    assert len(pipeline.store.read("decisions")) == 1

    key = decision.candidate.operation.operation
    chain = pipeline.lineage.get_chain(f"cand:Bash:{key.input_hash}")
    upstream_types = sorted({entry.artifact_type for entry in chain.upstream})
    assert upstream_types == ["observation", "pattern"]
    assert len([e for e in chain.upstream if e.artifact_type == "observation"]) == 6

    demotions: List[DemotionDecision] = []
    bridge = pipeline.feedback_bridge(on_demotion=demotions.append)
    bridge.start()
    operation_id = decision.candidate.operation_id
    stable = OffloadResult(exit_code=0, stdout=OUTPUT)
    drifted = OffloadResult(exit_code=0, stdout="drifted")
    bridge.bus.emit(CompletionSignal.from_result(operation_id, stable))
    assert demotions == []
    for _ in range(3):
        bridge.bus.emit(CompletionSignal.from_result(operation_id, drifted))
    assert len(demotions) == 1
    executions = pipeline.lineage.get_by_artifact_type("execution")
    assert len(executions) == 4


def test_compact_covers_every_category(tmp_path: Path) -> None:
    pipeline = build_pipeline(tmp_path / "store")
    pipeline.store.append("feedback", {"x": 1})
    results = pipeline.compact()
    assert len(results) == 5
    assert all(result.error is None for result in results)
    assert sum(result.retained for result in results) == 1
