from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from .analysis.detector import PromotionDetector
from .analysis.determinism import DeterminismAnalyzer
from .capture.capture import ExecutionCapture
from .config import Settings
from .feedback.bridge import FeedbackBridge, SignalBus
from .feedback.drift import DriftMonitor
from .gate.gatekeeper import PromotionGatekeeper
from .lineage.tracker import LineageTracker
from .observer.session_observer import SESSIONS_CATEGORY, SessionObserver
from .schemas import BenchmarkReport, CompactionResult, DemotionDecision, GatekeeperDecision
from .store.compaction import compact_store
from .store.pattern_store import CATEGORIES, PatternStore


@dataclass
class Pipeline:
    settings: Settings
    store: PatternStore
    lineage: LineageTracker
    capture: ExecutionCapture
    observer: SessionObserver
    analyzer: DeterminismAnalyzer
    detector: PromotionDetector
    gatekeeper: PromotionGatekeeper
    drift: DriftMonitor

    def run_promotion(
        self, report: Optional[BenchmarkReport] = None, only_confident: bool = True
    ) -> List[GatekeeperDecision]:
        decisions: List[GatekeeperDecision] = []
        for candidate in self.detector.detect():
            if only_confident and not candidate.meets_confidence:
                continue
            decisions.append(self.gatekeeper.evaluate(candidate, report))
        return decisions

    def feedback_bridge(
        self,
        bus: Optional[SignalBus] = None,
        on_demotion: Optional[Callable[[DemotionDecision], None]] = None,
    ) -> FeedbackBridge:
        return FeedbackBridge(
            bus or SignalBus(),
            self.store,
            monitor=self.drift,
            expected_hash=self.analyzer.expected_output_hash,
            on_demotion=on_demotion,
        )

    def compact(
        self,
        categories: Optional[Sequence[str]] = None,
        max_age_days: Optional[int] = None,
        now: Optional[int] = None,
    ) -> List[CompactionResult]:
        now = self.store.clock() if now is None else now
        results = compact_store(
            self.store.root,
            [c for c in (categories or CATEGORIES) if c != SESSIONS_CATEGORY],
            max_age_days=max_age_days,
            now=now,
        )
        if categories is None or SESSIONS_CATEGORY in categories:
            results.extend(
                compact_store(
                    self.store.root,
                    [SESSIONS_CATEGORY],
                    max_age_days=max_age_days or self.settings.retention.max_age_days,
                    now=now,
                    max_entries=self.settings.retention.max_entries,
                )
            )
        return results


def build_pipeline(
    root: Optional[Path] = None,
    settings: Optional[Settings] = None,
    clock: Optional[Callable[[], int]] = None,
) -> Pipeline:
    settings = settings or Settings()
    if root is None:
        if not settings.store_root:
            raise ValueError("store root is required")
        root = Path(settings.store_root)
    store = PatternStore(Path(root), clock=clock)
    lineage = LineageTracker(store)
    capture = ExecutionCapture(store, lineage=lineage)
    analyzer = DeterminismAnalyzer(store, settings.determinism, lineage=lineage)
    return Pipeline(
        settings=settings,
        store=store,
        lineage=lineage,
        capture=capture,
        observer=SessionObserver(
            store.root, settings, capture=capture, clock=store.clock, store=store
        ),
        analyzer=analyzer,
        detector=PromotionDetector(store, settings.detector, analyzer=analyzer, lineage=lineage),
        gatekeeper=PromotionGatekeeper(settings.gatekeeper, store=store, lineage=lineage),
        drift=DriftMonitor(store, settings.drift, lineage=lineage),
    )
