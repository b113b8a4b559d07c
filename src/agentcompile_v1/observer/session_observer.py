from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import orjson

from ..capture.capture import ExecutionCapture
from ..capture.transcript import TranscriptParser
from ..config import Settings
from ..schemas import (
    SESSION_END_REASONS,
    SESSION_SOURCES,
    ExecutionContext,
    SessionObservation,
)
from ..store.pattern_store import PatternStore
from ..utils import now_ms, read_json, write_json
from .anomaly import detect_anomalies
from .ephemeral import EphemeralStore
from .rate_limit import SessionRateLimiter
from .retention import prune_sessions
from .summarizer import summarize_session, transcript_bounds
from .tiering import TierEvaluator, squash_observations

logger = logging.getLogger(__name__)

SESSIONS_CATEGORY = "sessions"
SESSION_CACHE_FILE = ".session-cache.json"


def _field(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return None


class SessionObserver:
    def __init__(
        self,
        root: Path,
        settings: Optional[Settings] = None,
        capture: Optional[ExecutionCapture] = None,
        clock: Optional[Callable[[], int]] = None,
        store: Optional[PatternStore] = None,
    ) -> None:
        self.root = Path(root)
        self.settings = settings or Settings()
        self.clock = clock or now_ms
        self.store = store or PatternStore(self.root, clock=self.clock)
        self.ephemeral = EphemeralStore(self.root, clock=self.clock)
        self.capture = capture
        self.parser = TranscriptParser()
        self.evaluator = TierEvaluator(self.settings.tiering.min_score)
        self.rate_limiter = SessionRateLimiter(self.settings.rate_limit)
        self._cached: Optional[Dict[str, Any]] = None

    @property
    def cache_path(self) -> Path:
        return self.root / SESSION_CACHE_FILE

    def on_session_start(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        source = _field(data, "source")
        start_time = _field(data, "start_time", "startTime")
        if not isinstance(start_time, int) or isinstance(start_time, bool):
            start_time = self.clock()
        cached = {
            "session_id": str(_field(data, "session_id", "sessionId") or ""),
            "transcript_path": _field(data, "transcript_path", "transcriptPath"),
            "cwd": _field(data, "cwd"),
            "source": source if source in SESSION_SOURCES else "startup",
            "model": _field(data, "model"),
            "start_time": start_time,
        }
        self._cached = cached
        write_json(self.cache_path, cached)
        return cached

    def _load_cache(self, session_id: str) -> Dict[str, Any]:
        cached = self._cached
        if cached is None and self.cache_path.exists():
            try:
                loaded = read_json(self.cache_path)
            except (OSError, orjson.JSONDecodeError):
                logger.warning("ignoring unreadable session cache %s", self.cache_path)
                loaded = None
            cached = loaded if isinstance(loaded, dict) else None
        if cached is None or cached.get("session_id") != session_id:
            return {}
        return cached

    def on_session_end(self, data: Mapping[str, Any]) -> Optional[SessionObservation]:
        session_id = str(_field(data, "session_id", "sessionId") or "")
        if not session_id:
            logger.warning("session end without a session id")
            return None
        cached = self._load_cache(session_id)
        transcript_path = _field(data, "transcript_path", "transcriptPath") or cached.get(
            "transcript_path"
        )
        if not transcript_path:
            return None
        entries = self.parser.parse_file(Path(transcript_path))
        if not entries:
            return None

        now = self.clock()
        first_ts, _ = transcript_bounds(entries)
        start_time = cached.get("start_time")
        if not isinstance(start_time, int):
            start_time = first_ts if first_ts is not None else now
        reason = _field(data, "reason")
        observation = summarize_session(
            entries,
            session_id=session_id,
            start_time=start_time,
            end_time=now,
            source=cached.get("source") or "startup",
            reason=reason if reason in SESSION_END_REASONS else "other",
            limit=self.settings.top_n,
        )

        if not self.rate_limiter.allow(session_id, now):
            logger.info("rate limited observation for session %s", session_id)
            return None

        if self.capture is not None:
            context = ExecutionContext(
                session_id=session_id,
                active_skill=observation.active_skills[0] if observation.active_skills else None,
            )
            self.capture.capture(entries, context)

        score = self.evaluator.evaluate(observation)
        if score.promote:
            observation = observation.model_copy(update={"tier": "persistent"})
            self.store.append(SESSIONS_CATEGORY, observation.model_dump(mode="json"))
        else:
            observation = observation.model_copy(update={"tier": "ephemeral"})
            self.ephemeral.append(observation, session_id)
        logger.info(
            "session %s routed %s (score=%.2f: %s)",
            session_id,
            observation.tier,
            score.score,
            ", ".join(score.reasons) or "no signal",
        )

        for finding in detect_anomalies(observation):
            logger.warning("session %s anomaly: %s", session_id, finding)

        self.squash_ephemeral()
        self._apply_retention()
        return observation

    def squash_ephemeral(self) -> Optional[SessionObservation]:
        buffered = self.ephemeral.read_all()
        try:
            if not buffered:
                return None
            aggregate = squash_observations(buffered)
            counts = self.ephemeral.session_counts()
            cross_sessions = max(counts.values(), default=0)
            score = self.evaluator.evaluate(aggregate, cross_sessions or None)
            if not score.promote:
                logger.info(
                    "discarded %d ephemeral observations (score=%.2f)", len(buffered), score.score
                )
                return None
            aggregate = aggregate.model_copy(update={"tier": "persistent"})
            self.store.append(SESSIONS_CATEGORY, aggregate.model_dump(mode="json"))
            logger.info(
                "squashed %d ephemeral observations into %s", len(buffered), aggregate.session_id
            )
            return aggregate
        finally:
            self.ephemeral.clear()

    def _apply_retention(self) -> None:
        result = prune_sessions(
            self.store.path_for(SESSIONS_CATEGORY), self.settings.retention, now=self.store.clock()
        )
        if result.error:
            logger.warning("retention pruning failed: %s", result.error)
