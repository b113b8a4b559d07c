from agentcompile_v1.observer.anomaly import detect_anomalies
from agentcompile_v1.observer.tiering import TierEvaluator, squash_observations
from agentcompile_v1.schemas import SessionMetrics, SessionObservation


def _observation(
    session_id: str = "s1",
    *,
    minutes: int = 0,
    start: int = 0,
    tool_calls: int = 0,
    user_messages: int = 0,
    files_read: int = 0,
    top_commands: list | None = None,
    squashed_from: int | None = None,
) -> SessionObservation:
    return SessionObservation(
        session_id=session_id,
        start_time=start,
        end_time=start + minutes * 60_000,
        duration_minutes=minutes,
        metrics=SessionMetrics(
            tool_calls=tool_calls, user_messages=user_messages, unique_files_read=files_read
        ),
        top_commands=top_commands or [],
        squashed_from=squashed_from,
    )


def test_high_signal_session_promotes() -> None:
    score = TierEvaluator().evaluate(
        _observation(minutes=10, tool_calls=4, user_messages=6, files_read=5, top_commands=["git"])
    )
    assert score.promote
    assert score.score == 1.0
    assert "rich metadata" in score.reasons


def test_low_signal_session_stays_ephemeral() -> None:
    observation = _observation(minutes=1, tool_calls=1, user_messages=1, files_read=1)
    score = TierEvaluator().evaluate(observation)
    assert not score.promote
    assert score.score < 0.3


def test_threshold_is_inclusive() -> None:
    score = TierEvaluator(min_score=0.3).evaluate(_observation(tool_calls=3))
    assert score.score == 0.3
    assert score.promote


def test_score_is_rounded_to_two_places() -> None:
    observation = _observation(minutes=2, tool_calls=1, user_messages=3, files_read=1)
    score = TierEvaluator().evaluate(observation)
    assert score.score == 0.3
    assert score.score == round(score.score, 2)
    assert score.promote


def test_squash_bonus_and_cross_session_bonus() -> None:
    evaluator = TierEvaluator()
    base = _observation(user_messages=3)
    assert evaluator.evaluate(base).score == 0.05
    assert evaluator.evaluate(base.model_copy(update={"squashed_from": 3})).score == 0.15
    assert evaluator.evaluate(base, cross_session_count=2).score == 0.35


def test_squash_merges_metrics_and_span() -> None:
    common = {"minutes": 2, "tool_calls": 1, "user_messages": 2}
    merged = squash_observations(
        [
            _observation("a", start=0, top_commands=["ls"], **common),
            _observation("b", start=120_000, top_commands=["ls", "git"], **common),
            _observation("c", start=240_000, **common),
        ]
    )
    assert merged.squashed_from == 3
    assert merged.metrics.tool_calls == 3
    assert merged.metrics.user_messages == 6
    assert merged.duration_minutes == 6
    assert merged.top_commands == ["ls", "git"]
    assert TierEvaluator().evaluate(merged).promote


def test_anomalies_are_reported() -> None:
    findings = detect_anomalies(_observation(minutes=-3))
    assert any("negative duration" in finding for finding in findings)
    idle = detect_anomalies(_observation(minutes=90, user_messages=1))
    assert any("no tool calls" in finding for finding in idle)
    assert detect_anomalies(_observation(minutes=10, tool_calls=2, user_messages=2)) == []
