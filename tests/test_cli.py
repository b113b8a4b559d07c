from pathlib import Path

import orjson
from conftest import tool_result, tool_use, user, write_transcript
from typer.testing import CliRunner

from agentcompile_v1.cli import app


def test_cli_hooks_and_reports(tmp_path: Path) -> None:
    runner = CliRunner()
    store_dir = tmp_path / "store"
    transcript = write_transcript(
        tmp_path / "t.jsonl",
        [
            user("u1"),
            tool_use("t1", "Read", {"file_path": "/a"}),
            tool_result("r1", "A", tool_use_id="t1"),
        ],
    )
    payload = orjson.dumps({"session_id": "s1", "transcript_path": str(transcript)}).decode()

    result = runner.invoke(app, ["hook", "session-start", "--store", str(store_dir)], input=payload)
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["hook", "session-end", "--store", str(store_dir)], input=payload)
    assert result.exit_code == 0, result.output
    assert "ephemeral" in result.output

    for command in ["analyze", "detect", "gate", "compact"]:
        result = runner.invoke(app, [command, "--store", str(store_dir)])
        assert result.exit_code == 0, result.output


def test_cli_lineage_unknown_artifact(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["lineage", "nope", "--store", str(tmp_path)])
    assert result.exit_code == 1


def test_cli_rejects_non_json_hook_payload(tmp_path: Path) -> None:
    result = CliRunner().invoke(
        app, ["hook", "session-end", "--store", str(tmp_path)], input="not json"
    )
    assert result.exit_code != 0
