from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError

from ..config import DriftPolicy
from ..lineage.tracker import LineageTracker, make_entry
from ..schemas import DemotionDecision, DriftEvent, execution_artifact_id, script_artifact_id
from ..store.pattern_store import PatternStore
from ..utils import now_iso

logger = logging.getLogger(__name__)

FEEDBACK_CATEGORY = "feedback"


def fold_drift_counters(events: Iterable[DriftEvent]) -> Dict[str, int]:
    counters: Dict[str, int] = {}
    for event in events:
        if event.matched:
            counters[event.operation_id] = 0
        else:
            counters[event.operation_id] = counters.get(event.operation_id, 0) + 1
    return counters


def load_drift_events(store: PatternStore) -> List[DriftEvent]:
    events: List[DriftEvent] = []
    for data in store.read_data(FEEDBACK_CATEGORY):
        if "matched" not in data:
            continue
        try:
            events.append(DriftEvent.model_validate(data))
        except ValidationError:
            logger.warning("skipping invalid drift event")
    return events


class DriftMonitor:
    def __init__(
        self,
        store: PatternStore,
        policy: Optional[DriftPolicy] = None,
        lineage: Optional[LineageTracker] = None,
    ) -> None:
        self.store = store
        self.policy = policy or DriftPolicy()
        self.lineage = lineage
        self._counters: Optional[Dict[str, int]] = None
        self._recent: Dict[str, List[DriftEvent]] = {}

    def _ensure_loaded(self) -> Dict[str, int]:
        if self._counters is None:
            events = load_drift_events(self.store)
            self._counters = fold_drift_counters(events)
            for event in events:
                self._remember(event)
        return self._counters

    def _remember(self, event: DriftEvent) -> None:
        if event.matched:
            self._recent[event.operation_id] = [event]
            return
        window = self._recent.setdefault(event.operation_id, [])
        window.append(event)
        if len(window) > self.policy.sensitivity:
            del window[: len(window) - self.policy.sensitivity]

    def consecutive_mismatches(self, operation_id: str) -> int:
        return self._ensure_loaded().get(operation_id, 0)

    def check(self, operation_id: str, actual_hash: str, expected_hash: str) -> DemotionDecision:
        if not self.policy.enabled:
            return DemotionDecision(
                operation_id=operation_id,
                demoted=False,
                reason="drift monitoring disabled",
            )
        counters = self._ensure_loaded()
        matched = actual_hash == expected_hash
        count = 0 if matched else counters.get(operation_id, 0) + 1
        event = DriftEvent(
            operation_id=operation_id,
            timestamp=now_iso(),
            matched=matched,
            actual_hash=actual_hash,
            expected_hash=expected_hash,
            consecutive_mismatches=count,
        )
        self.store.append(FEEDBACK_CATEGORY, event.model_dump(mode="json"))
        counters[operation_id] = count
        self._remember(event)
        self._record_execution(event)

        sensitivity = self.policy.sensitivity
        demoted = count >= sensitivity
        if matched:
            reason = "output matched expected hash; mismatch counter reset"
        elif demoted:
            reason = f"{count} consecutive mismatches reached sensitivity {sensitivity}; demoting"
            logger.info("demoting %s after %d consecutive mismatches", operation_id, count)
        else:
            reason = f"mismatch {count} of {sensitivity} before demotion"
        return DemotionDecision(
            operation_id=operation_id,
            demoted=demoted,
            reason=reason,
            consecutive_mismatches=count,
            events=list(self._recent.get(operation_id, [])),
        )

    def _record_execution(self, event: DriftEvent) -> None:
        if self.lineage is None:
            return
        self.lineage.record(
            make_entry(
                execution_artifact_id(event.operation_id, event.timestamp),
                "execution",
                "feedback",
                inputs=[script_artifact_id(event.operation_id)],
                metadata={
                    "matched": event.matched,
                    "consecutive_mismatches": event.consecutive_mismatches,
                },
                timestamp=event.timestamp,
            )
        )
