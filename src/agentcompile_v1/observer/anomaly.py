from __future__ import annotations

from typing import List

from ..schemas import SessionObservation

MAX_PLAUSIBLE_MINUTES = 24 * 60
IDLE_SESSION_MINUTES = 60
MAX_TOOL_CALLS_PER_MESSAGE = 50


def detect_anomalies(observation: SessionObservation) -> List[str]:
    metrics = observation.metrics
    findings: List[str] = []
    if observation.duration_minutes < 0:
        findings.append(f"negative duration ({observation.duration_minutes} min)")
    elif observation.duration_minutes > MAX_PLAUSIBLE_MINUTES:
        findings.append(f"implausible duration ({observation.duration_minutes} min)")
    if metrics.assistant_messages > 0 and metrics.user_messages == 0:
        findings.append("assistant messages without any user message")
    if metrics.tool_calls > MAX_TOOL_CALLS_PER_MESSAGE * max(metrics.user_messages, 1):
        findings.append(
            f"tool calls ({metrics.tool_calls}) far exceed user messages ({metrics.user_messages})"
        )
    if observation.duration_minutes > IDLE_SESSION_MINUTES and metrics.tool_calls == 0:
        findings.append(f"long session ({observation.duration_minutes} min) with no tool calls")
    return findings
