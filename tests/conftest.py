import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import orjson
import pytest

from agentcompile_v1.store.pattern_store import PatternStore

BASE_TS = "2025-01-01T00:00:00.000Z"


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    _ = config
    run_slow = os.getenv("RUN_SLOW_TESTS", "") or os.getenv("AGENTCOMPILE_RUN_SLOW", "")
    if str(run_slow).strip().lower() in {"1", "true", "yes"}:
        return
    skip_slow = pytest.mark.skip(reason="set RUN_SLOW_TESTS=1 to run slow tests")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


def transcript_line(
    uuid: str,
    entry_type: str,
    *,
    session_id: str = "s1",
    timestamp: str = BASE_TS,
    **extra: Any,
) -> Dict[str, Any]:
    line: Dict[str, Any] = {
        "uuid": uuid,
        "parentUuid": None,
        "sessionId": session_id,
        "timestamp": timestamp,
        "type": entry_type,
        "isSidechain": False,
    }
    line.update(extra)
    return line


def tool_use(
    uuid: str, tool_name: Optional[str], tool_input: Dict[str, Any], **kw: Any
) -> Dict[str, Any]:
    extra: Dict[str, Any] = {"tool_input": tool_input}
    if tool_name is not None:
        extra["tool_name"] = tool_name
    extra.update(kw)
    return transcript_line(uuid, "tool_use", **extra)


def tool_result(
    uuid: str, output: Any, tool_use_id: Optional[str] = None, **kw: Any
) -> Dict[str, Any]:
    extra: Dict[str, Any] = {"tool_output": output}
    if tool_use_id is not None:
        extra["tool_use_id"] = tool_use_id
    extra.update(kw)
    return transcript_line(uuid, "tool_result", **extra)


def user(uuid: str, text: str = "hello", **kw: Any) -> Dict[str, Any]:
    return transcript_line(uuid, "user", message={"role": "user", "content": text}, **kw)


def write_transcript(path: Path, lines: List[Dict[str, Any]]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"".join(orjson.dumps(line) + b"\n" for line in lines))
    return path


@pytest.fixture
def store(tmp_path: Path) -> PatternStore:
    return PatternStore(tmp_path / "store")


class FixedClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, minutes: float) -> None:
        self.now += int(minutes * 60_000)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
