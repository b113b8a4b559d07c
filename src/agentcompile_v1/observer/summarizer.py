from __future__ import annotations

import math
from typing import Dict, List, Optional, Sequence

from ..capture.transcript import (
    extract_commands,
    extract_file_paths,
    extract_tool_counts,
    filter_tool_use,
    iter_commands,
    tool_file_path,
    top_n,
)
from ..schemas import SessionMetrics, SessionObservation, TranscriptEntry
from ..utils import parse_iso_ms

MS_PER_MINUTE = 60_000
SKILL_TOOLS = frozenset({"Skill"})


def duration_minutes(start_time: int, end_time: int) -> int:
    return int(math.floor((end_time - start_time) / MS_PER_MINUTE + 0.5))


def transcript_bounds(entries: Sequence[TranscriptEntry]) -> tuple[Optional[int], Optional[int]]:
    stamps = [ts for ts in (parse_iso_ms(entry.timestamp) for entry in entries) if ts is not None]
    if not stamps:
        return None, None
    return min(stamps), max(stamps)


def _count(values: Sequence[str]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts


def _file_counts(entries: Sequence[TranscriptEntry]) -> Dict[str, int]:
    paths = [tool_file_path(entry) for entry in filter_tool_use(entries)]
    return _count([path for path in paths if path is not None])


def active_skills(entries: Sequence[TranscriptEntry]) -> List[str]:
    skills: List[str] = []
    for entry in filter_tool_use(entries):
        if entry.tool_name not in SKILL_TOOLS:
            continue
        name = (entry.tool_input or {}).get("skill") or (entry.tool_input or {}).get("command")
        if isinstance(name, str) and name and name not in skills:
            skills.append(name)
    return skills


def compute_metrics(entries: Sequence[TranscriptEntry]) -> SessionMetrics:
    read, written = extract_file_paths(entries)
    return SessionMetrics(
        user_messages=sum(1 for entry in entries if entry.type == "user"),
        assistant_messages=sum(1 for entry in entries if entry.type == "assistant"),
        tool_calls=len(filter_tool_use(entries)),
        unique_files_read=len(read),
        unique_files_written=len(written),
        unique_commands_run=len(extract_commands(entries)),
    )


def summarize_session(
    entries: Sequence[TranscriptEntry],
    *,
    session_id: str,
    start_time: int,
    end_time: int,
    source: str = "startup",
    reason: str = "other",
    limit: int = 5,
) -> SessionObservation:
    return SessionObservation(
        session_id=session_id,
        start_time=start_time,
        end_time=end_time,
        duration_minutes=duration_minutes(start_time, end_time),
        source=source,
        reason=reason,
        metrics=compute_metrics(entries),
        top_commands=top_n(_count(list(iter_commands(entries))), limit),
        top_files=top_n(_file_counts(entries), limit),
        top_tools=top_n(extract_tool_counts(entries), limit),
        active_skills=active_skills(entries),
    )
