import hashlib
from typing import List, Optional

from agentcompile_v1.feedback.bridge import FeedbackBridge, SignalBus
from agentcompile_v1.feedback.drift import DriftMonitor
from agentcompile_v1.schemas import CompletionSignal, DemotionDecision, OffloadResult
from agentcompile_v1.store.pattern_store import PatternStore


def _signal(stdout: str = "ok", exit_code: int = 0, **kw) -> CompletionSignal:
    result = OffloadResult(exit_code=exit_code, stdout=stdout, duration_ms=12, **kw)
    return CompletionSignal.from_result("Bash:h", result)


def test_records_only_while_started(store: PatternStore) -> None:
    bus = SignalBus()
    bridge = FeedbackBridge(bus, store)
    bus.emit(_signal())
    assert store.read("feedback") == []

    bridge.start()
    bridge.start()
    assert bridge.running
    assert bus.listener_count == 1
    bus.emit(_signal("hello"))
    bridge.stop()
    assert not bridge.running
    bus.emit(_signal())
    bridge.start()
    bus.emit(_signal())

    records = [entry.data for entry in store.read("feedback")]
    assert len(records) == 2
    assert records[0]["stdout_hash"] == hashlib.sha256(b"hello").hexdigest()
    assert records[0]["status"] == "success"
    assert records[0]["duration_ms"] == 12
    assert "error" not in records[0]


def test_status_derivation() -> None:
    assert _signal(exit_code=2).status == "failure"
    assert _signal(timed_out=True).status == "timeout"
    errored = CompletionSignal.from_result("op", OffloadResult(exit_code=0), error="boom")
    assert errored.status == "error"


def test_drift_check_and_demotion_callback(store: PatternStore) -> None:
    expected = hashlib.sha256(b"stable").hexdigest()
    demotions: List[DemotionDecision] = []

    def resolver(operation_id: str) -> Optional[str]:
        return expected if operation_id == "Bash:h" else None

    bus = SignalBus()
    bridge = FeedbackBridge(
        bus,
        store,
        monitor=DriftMonitor(store),
        expected_hash=resolver,
        on_demotion=demotions.append,
    )
    bridge.start()
    bus.emit(_signal("stable"))
    for _ in range(3):
        bus.emit(_signal("changed"))
    bus.emit(_signal("changed", exit_code=1))
    assert len(demotions) == 1
    assert demotions[0].consecutive_mismatches == 3
