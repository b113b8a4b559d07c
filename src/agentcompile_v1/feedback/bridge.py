from __future__ import annotations

import logging
from typing import Callable, List, Optional

from ..schemas import CompletionSignal, DemotionDecision, FeedbackRecord
from ..store.pattern_store import PatternStore
from ..utils import content_hash, now_iso
from .drift import FEEDBACK_CATEGORY, DriftMonitor

logger = logging.getLogger(__name__)

SignalListener = Callable[[CompletionSignal], None]


class SignalBus:
    def __init__(self) -> None:
        self._listeners: List[SignalListener] = []

    def subscribe(self, listener: SignalListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, signal: CompletionSignal) -> None:
        for listener in list(self._listeners):
            listener(signal)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


class FeedbackBridge:
    def __init__(
        self,
        bus: SignalBus,
        store: PatternStore,
        monitor: Optional[DriftMonitor] = None,
        expected_hash: Optional[Callable[[str], Optional[str]]] = None,
        on_demotion: Optional[Callable[[DemotionDecision], None]] = None,
    ) -> None:
        self.bus = bus
        self.store = store
        self.monitor = monitor
        self.expected_hash = expected_hash
        self.on_demotion = on_demotion
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.bus.subscribe(self.handle)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def handle(self, signal: CompletionSignal) -> FeedbackRecord:
        record = FeedbackRecord(
            operation_id=signal.operation_id,
            status=signal.status,
            exit_code=signal.result.exit_code,
            duration_ms=signal.result.duration_ms,
            stdout_hash=content_hash(signal.result.stdout),
            timestamp=now_iso(),
            error=signal.error,
        )
        self.store.append(FEEDBACK_CATEGORY, record.model_dump(mode="json", exclude_none=True))
        self._check_drift(record)
        return record

    def _check_drift(self, record: FeedbackRecord) -> None:
        if self.monitor is None or self.expected_hash is None or record.status != "success":
            return
        expected = self.expected_hash(record.operation_id)
        if expected is None:
            return
        decision = self.monitor.check(record.operation_id, record.stdout_hash, expected)
        if decision.demoted:
            logger.info("operation %s demoted: %s", record.operation_id, decision.reason)
            if self.on_demotion is not None:
                self.on_demotion(decision)
