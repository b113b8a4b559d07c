from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

import orjson
from pydantic import ValidationError

from ..schemas import ExecutionContext, ToolExecutionPair, TranscriptEntry
from ..utils import canonical_text, content_hash

logger = logging.getLogger(__name__)

UNKNOWN_TOOL = "unknown"
READ_TOOLS = frozenset({"Read"})
WRITE_TOOLS = frozenset({"Write", "Edit", "MultiEdit", "NotebookEdit"})
FILE_PATH_KEYS = ("file_path", "notebook_path", "path")


def _parse_line(line: str) -> Optional[TranscriptEntry]:
    text = line.strip()
    if not text:
        return None
    try:
        raw = orjson.loads(text)
    except orjson.JSONDecodeError:
        return None
    if not isinstance(raw, dict):
        return None
    try:
        entry = TranscriptEntry.model_validate(raw)
    except ValidationError:
        return None
    if entry.is_sidechain:
        return None
    return entry


class TranscriptParser:
    def iter_lines(self, lines: Iterable[str]) -> Iterator[TranscriptEntry]:
        skipped = 0
        for line in lines:
            entry = _parse_line(line)
            if entry is None:
                if line.strip():
                    skipped += 1
                continue
            yield entry
        if skipped:
            logger.debug("skipped %d transcript lines", skipped)

    def iter_file(self, path: Path) -> Iterator[TranscriptEntry]:
        path = Path(path)
        if not path.exists():
            return
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            yield from self.iter_lines(handle)

    def parse_file(self, path: Path) -> List[TranscriptEntry]:
        return list(self.iter_file(path))

    def parse_string(self, text: str) -> List[TranscriptEntry]:
        return list(self.iter_lines(text.splitlines()))


def filter_tool_use(entries: Iterable[TranscriptEntry]) -> List[TranscriptEntry]:
    return [entry for entry in entries if entry.type == "tool_use"]


def tool_file_path(entry: TranscriptEntry) -> Optional[str]:
    tool_input = entry.tool_input or {}
    for key in FILE_PATH_KEYS:
        value = tool_input.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _add_unique(target: List[str], value: str) -> None:
    if value not in target:
        target.append(value)


def extract_file_paths(entries: Iterable[TranscriptEntry]) -> Tuple[List[str], List[str]]:
    read: List[str] = []
    written: List[str] = []
    for entry in filter_tool_use(entries):
        path = tool_file_path(entry)
        if path is None:
            continue
        if entry.tool_name in READ_TOOLS:
            _add_unique(read, path)
        elif entry.tool_name in WRITE_TOOLS:
            _add_unique(written, path)
    return read, written


def _base_command(command: str) -> Optional[str]:
    parts = command.strip().split()
    if not parts:
        return None
    return parts[0]


def iter_commands(entries: Iterable[TranscriptEntry]) -> Iterator[str]:
    for entry in filter_tool_use(entries):
        if entry.tool_name != "Bash":
            continue
        command = (entry.tool_input or {}).get("command")
        if not isinstance(command, str):
            continue
        base = _base_command(command)
        if base:
            yield base


def extract_commands(entries: Iterable[TranscriptEntry]) -> List[str]:
    commands: List[str] = []
    for base in iter_commands(entries):
        _add_unique(commands, base)
    return commands


def extract_tool_counts(entries: Iterable[TranscriptEntry]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for entry in filter_tool_use(entries):
        name = entry.tool_name or UNKNOWN_TOOL
        counts[name] = counts.get(name, 0) + 1
    return counts


def top_n(counts: Mapping[str, int], n: int) -> List[str]:
    order = {key: idx for idx, key in enumerate(counts)}
    ranked = sorted(counts.items(), key=lambda item: (-item[1], order[item[0]]))
    return [key for key, _ in ranked[: max(n, 0)]]


def stringify_output(value: Any) -> str:
    if isinstance(value, str):
        return value
    return canonical_text(value)


def pair_tool_executions(
    entries: Iterable[TranscriptEntry], context: ExecutionContext
) -> List[ToolExecutionPair]:
    pending: Dict[str, TranscriptEntry] = {}
    matched: Dict[str, ToolExecutionPair] = {}
    order: List[str] = []
    for entry in entries:
        if entry.type == "tool_use":
            if entry.uuid in pending or entry.uuid in matched:
                continue
            pending[entry.uuid] = entry
            order.append(entry.uuid)
            continue
        if entry.type != "tool_result" or not pending:
            continue
        if entry.tool_use_id is not None and entry.tool_use_id in pending:
            invocation_id = entry.tool_use_id
        else:
            invocation_id = next(reversed(pending))
        invocation = pending.pop(invocation_id)
        output = stringify_output(entry.tool_output) if entry.tool_output is not None else ""
        matched[invocation_id] = ToolExecutionPair(
            id=invocation.uuid,
            tool_name=invocation.tool_name or UNKNOWN_TOOL,
            input=dict(invocation.tool_input or {}),
            output=output,
            output_hash=content_hash(output),
            status="complete",
            timestamp=invocation.timestamp,
            context=context,
        )

    pairs: List[ToolExecutionPair] = []
    for invocation_id in order:
        pair = matched.get(invocation_id)
        if pair is None:
            invocation = pending[invocation_id]
            pair = ToolExecutionPair(
                id=invocation.uuid,
                tool_name=invocation.tool_name or UNKNOWN_TOOL,
                input=dict(invocation.tool_input or {}),
                output=None,
                output_hash=None,
                status="partial",
                timestamp=invocation.timestamp,
                context=context,
            )
        pairs.append(pair)
    return pairs
