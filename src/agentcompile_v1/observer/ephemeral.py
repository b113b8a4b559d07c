from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import orjson
from pydantic import ValidationError

from ..schemas import SessionObservation
from ..store.pattern_store import make_envelope, parse_envelope
from ..utils import iter_jsonl_lines, now_ms, write_jsonl_lines

logger = logging.getLogger(__name__)

EPHEMERAL_FILE = ".ephemeral.jsonl"
EPHEMERAL_CATEGORY = "ephemeral"


def pattern_key(observation: SessionObservation) -> Optional[str]:
    if not observation.top_commands and not observation.top_tools:
        return None
    return "|".join([",".join(observation.top_commands), ",".join(observation.top_tools)])


class EphemeralStore:
    def __init__(self, root: Path, clock: Optional[Callable[[], int]] = None) -> None:
        self.path = Path(root) / EPHEMERAL_FILE
        self.clock = clock or now_ms

    def append(self, observation: SessionObservation, session_id: Optional[str] = None) -> None:
        envelope = make_envelope(
            EPHEMERAL_CATEGORY, observation.model_dump(mode="json"), self.clock()
        )
        envelope["session_id"] = session_id or observation.session_id
        write_jsonl_lines(self.path, [envelope])

    def read_all(self) -> List[SessionObservation]:
        observations: List[SessionObservation] = []
        for line in iter_jsonl_lines(self.path):
            entry = parse_envelope(line)
            if entry is None:
                logger.warning("skipping unreadable ephemeral entry")
                continue
            try:
                observations.append(SessionObservation.model_validate(entry.data))
            except ValidationError:
                logger.warning("skipping invalid ephemeral observation")
        return observations

    def clear(self) -> None:
        if self.path.exists():
            self.path.write_bytes(b"")

    def size(self) -> int:
        return sum(1 for _ in iter_jsonl_lines(self.path))

    def session_counts(self) -> Dict[str, int]:
        sessions: Dict[str, Set[str]] = {}
        for line in iter_jsonl_lines(self.path):
            try:
                raw = orjson.loads(line)
            except orjson.JSONDecodeError:
                continue
            entry = parse_envelope(line)
            if entry is None or not isinstance(raw, dict):
                continue
            try:
                observation = SessionObservation.model_validate(entry.data)
            except ValidationError:
                continue
            key = pattern_key(observation)
            if key is None:
                continue
            session_id = raw.get("session_id") or observation.session_id
            sessions.setdefault(key, set()).add(str(session_id))
        return {key: len(ids) for key, ids in sessions.items()}
