from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..schemas import SessionMetrics, SessionObservation
from ..utils import stable_hash
from .summarizer import duration_minutes


@dataclass(frozen=True)
class TierScore:
    score: float
    promote: bool
    reasons: List[str] = field(default_factory=list)


class TierEvaluator:
    def __init__(self, min_score: float = 0.3) -> None:
        self.min_score = min_score

    def evaluate(
        self, observation: SessionObservation, cross_session_count: Optional[int] = None
    ) -> TierScore:
        metrics = observation.metrics
        score = 0.0
        reasons: List[str] = []

        if metrics.tool_calls >= 3:
            score += 0.3
            reasons.append(f"tool calls ({metrics.tool_calls})")
        elif metrics.tool_calls >= 1:
            score += 0.1
            reasons.append(f"tool calls ({metrics.tool_calls})")

        if observation.duration_minutes >= 5:
            score += 0.2
            reasons.append(f"duration ({observation.duration_minutes} min)")
        elif observation.duration_minutes >= 2:
            score += 0.1
            reasons.append(f"duration ({observation.duration_minutes} min)")

        files = metrics.unique_files_read + metrics.unique_files_written
        if files >= 3:
            score += 0.2
            reasons.append(f"files accessed ({files})")
        elif files >= 1:
            score += 0.05
            reasons.append(f"files accessed ({files})")

        if metrics.user_messages >= 5:
            score += 0.15
            reasons.append(f"user messages ({metrics.user_messages})")
        elif metrics.user_messages >= 3:
            score += 0.05
            reasons.append(f"user messages ({metrics.user_messages})")

        if observation.top_commands:
            score += 0.15
            reasons.append("rich metadata")

        if observation.squashed_from is not None and observation.squashed_from >= 2:
            score += 0.1
            reasons.append(f"squashed from {observation.squashed_from} sessions")

        if cross_session_count is not None and cross_session_count >= 2:
            score += 0.3
            reasons.append(f"seen across {cross_session_count} sessions")

        score = round(min(score, 1.0), 2)
        return TierScore(score=score, promote=score >= self.min_score, reasons=reasons)


def _union(lists: Sequence[Sequence[str]]) -> List[str]:
    merged: List[str] = []
    for values in lists:
        for value in values:
            if value not in merged:
                merged.append(value)
    return merged


def squash_observations(observations: Sequence[SessionObservation]) -> SessionObservation:
    if not observations:
        raise ValueError("cannot squash an empty buffer")
    start = min(obs.start_time for obs in observations)
    end = max(obs.end_time for obs in observations)
    metrics = SessionMetrics(
        user_messages=sum(obs.metrics.user_messages for obs in observations),
        assistant_messages=sum(obs.metrics.assistant_messages for obs in observations),
        tool_calls=sum(obs.metrics.tool_calls for obs in observations),
        unique_files_read=sum(obs.metrics.unique_files_read for obs in observations),
        unique_files_written=sum(obs.metrics.unique_files_written for obs in observations),
        unique_commands_run=sum(obs.metrics.unique_commands_run for obs in observations),
    )
    session_ids = [obs.session_id for obs in observations]
    return SessionObservation(
        session_id=f"squashed:{stable_hash(session_ids)[:16]}",
        start_time=start,
        end_time=end,
        duration_minutes=duration_minutes(start, end),
        source=observations[0].source,
        reason=observations[-1].reason,
        metrics=metrics,
        top_commands=_union([obs.top_commands for obs in observations]),
        top_files=_union([obs.top_files for obs in observations]),
        top_tools=_union([obs.top_tools for obs in observations]),
        active_skills=_union([obs.active_skills for obs in observations]),
        tier="ephemeral",
        squashed_from=len(observations),
    )
