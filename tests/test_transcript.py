import hashlib
from pathlib import Path

import orjson
from conftest import tool_result, tool_use, transcript_line, user, write_transcript

from agentcompile_v1.capture.transcript import (
    TranscriptParser,
    extract_commands,
    extract_file_paths,
    extract_tool_counts,
    pair_tool_executions,
    top_n,
)
from agentcompile_v1.schemas import ExecutionContext

CONTEXT = ExecutionContext(session_id="s1")


def _parse(lines: list) -> list:
    text = "\n".join(orjson.dumps(line).decode() for line in lines)
    return TranscriptParser().parse_string(text)


def test_parser_skips_corrupt_and_sidechain_lines(tmp_path: Path) -> None:
    path = write_transcript(
        tmp_path / "t.jsonl",
        [user("u1"), transcript_line("side", "assistant", isSidechain=True)],
    )
    with path.open("ab") as handle:
        handle.write(b"{broken json\n\n")
        handle.write(orjson.dumps({"uuid": "x", "type": "nonsense"}) + b"\n")
    entries = TranscriptParser().parse_file(path)
    assert [entry.uuid for entry in entries] == ["u1"]
    assert entries[0].session_id == "s1"


def test_parser_missing_file_yields_nothing(tmp_path: Path) -> None:
    assert TranscriptParser().parse_file(tmp_path / "missing.jsonl") == []


def test_pairing_by_explicit_id_out_of_order() -> None:
    entries = _parse(
        [
            tool_use("a", "Read", {"file_path": "/a"}),
            tool_use("b", "Read", {"file_path": "/b"}),
            tool_result("ra", "A", tool_use_id="a"),
            tool_result("rb", "B", tool_use_id="b"),
        ]
    )
    pairs = pair_tool_executions(entries, CONTEXT)
    assert [(p.id, p.output) for p in pairs] == [("a", "A"), ("b", "B")]
    assert all(p.status == "complete" for p in pairs)


def test_pairing_falls_back_to_most_recent_pending() -> None:
    entries = _parse(
        [
            tool_use("a", "Bash", {"command": "ls"}),
            tool_use("b", "Bash", {"command": "pwd"}),
            tool_result("r1", "second"),
            tool_result("r2", "first"),
        ]
    )
    pairs = {p.id: p.output for p in pair_tool_executions(entries, CONTEXT)}
    assert pairs == {"a": "first", "b": "second"}


def test_unmatched_invocation_becomes_partial_and_orphan_result_ignored() -> None:
    entries = _parse(
        [
            tool_result("orphan", "nobody"),
            tool_use("a", "Read", {"file_path": "/a"}),
            tool_result("ra", "A", tool_use_id="a"),
            tool_use("b", None, {}),
        ]
    )
    pairs = pair_tool_executions(entries, CONTEXT)
    assert len(pairs) == 2
    partial = pairs[1]
    assert partial.status == "partial"
    assert partial.tool_name == "unknown"
    assert partial.output is None
    assert partial.output_hash is None


def test_output_hash_is_sha256_of_stringified_output() -> None:
    entries = _parse(
        [
            tool_use("a", "Glob", {"pattern": "*.py"}),
            tool_result("ra", {"files": ["x.py"]}, tool_use_id="a"),
        ]
    )
    pair = pair_tool_executions(entries, CONTEXT)[0]
    assert pair.output == '{"files":["x.py"]}'
    assert pair.output_hash == hashlib.sha256(pair.output.encode()).hexdigest()


def test_extraction_helpers() -> None:
    entries = _parse(
        [
            tool_use("1", "Read", {"file_path": "/src/a.py"}),
            tool_use("2", "Read", {"file_path": "/src/a.py"}),
            tool_use("3", "Edit", {"file_path": "/src/b.py"}),
            tool_use("4", "Bash", {"command": "git status"}),
            tool_use("5", "Bash", {"command": "git diff"}),
            tool_use("6", "Bash", {"command": "  pytest -q"}),
        ]
    )
    read, written = extract_file_paths(entries)
    assert read == ["/src/a.py"]
    assert written == ["/src/b.py"]
    assert extract_commands(entries) == ["git", "pytest"]
    counts = extract_tool_counts(entries)
    assert counts == {"Read": 2, "Edit": 1, "Bash": 3}
    assert top_n(counts, 2) == ["Bash", "Read"]
