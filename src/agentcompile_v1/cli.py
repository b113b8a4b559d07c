from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import orjson
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_settings
from .pipeline import Pipeline, build_pipeline
from .schemas import BenchmarkReport
from .utils import read_json

app = typer.Typer(help="agentcompile promotion pipeline")
hook_app = typer.Typer(help="Session hook entry points")
console = Console()

STORE_OPTION = typer.Option(..., "--store", file_okay=False)
CONFIG_OPTION = typer.Option(None, "--config", exists=True, dir_okay=False)
VERBOSE_OPTION = typer.Option(False, "--verbose", "-v")
REPORT_OPTION = typer.Option(None, "--report", exists=True, dir_okay=False)
ALL_CANDIDATES_OPTION = typer.Option(False, "--all")
MAX_AGE_OPTION = typer.Option(None, "--max-age-days", min=1)


@app.callback()
def main(verbose: bool = VERBOSE_OPTION) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _pipeline(store: Path, config: Optional[Path]) -> Pipeline:
    settings = load_settings(config)
    settings = settings.model_copy(update={"store_root": str(store)})
    return build_pipeline(store, settings)


def _read_hook_payload() -> Dict[str, Any]:
    raw = sys.stdin.read()
    if not raw.strip():
        return {}
    try:
        data = orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise typer.BadParameter(f"hook payload is not JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise typer.BadParameter("hook payload must be a JSON object")
    return data


@hook_app.command("session-start")
def session_start_cmd(store: Path = STORE_OPTION, config: Optional[Path] = CONFIG_OPTION) -> None:
    pipeline = _pipeline(store, config)
    cached = pipeline.observer.on_session_start(_read_hook_payload())
    console.print({"session_id": cached["session_id"], "source": cached["source"]})


@hook_app.command("session-end")
def session_end_cmd(store: Path = STORE_OPTION, config: Optional[Path] = CONFIG_OPTION) -> None:
    pipeline = _pipeline(store, config)
    observation = pipeline.observer.on_session_end(_read_hook_payload())
    if observation is None:
        console.print({"observed": False})
        return
    console.print(
        {
            "observed": True,
            "session_id": observation.session_id,
            "tier": observation.tier,
            "duration_minutes": observation.duration_minutes,
        }
    )


@app.command("analyze")
def analyze_cmd(store: Path = STORE_OPTION, config: Optional[Path] = CONFIG_OPTION) -> None:
    pipeline = _pipeline(store, config)
    table = Table(title="Operation Determinism")
    table.add_column("Operation")
    table.add_column("Observations")
    table.add_column("Unique Outputs")
    table.add_column("Determinism")
    table.add_column("Classification")
    for item in pipeline.analyzer.classify():
        table.add_row(
            item.operation.operation_id,
            str(item.observation_count),
            str(item.score.unique_outputs),
            f"{item.determinism:.3f}",
            item.classification,
        )
    console.print(table)


@app.command("detect")
def detect_cmd(store: Path = STORE_OPTION, config: Optional[Path] = CONFIG_OPTION) -> None:
    pipeline = _pipeline(store, config)
    table = Table(title="Promotion Candidates")
    table.add_column("Operation")
    table.add_column("Frequency")
    table.add_column("Tokens")
    table.add_column("Score")
    table.add_column("Confident")
    for candidate in pipeline.detector.detect():
        table.add_row(
            candidate.operation_id,
            str(candidate.frequency),
            str(candidate.estimated_token_savings),
            f"{candidate.composite_score:.3f}",
            "yes" if candidate.meets_confidence else "no",
        )
    console.print(table)


@app.command("gate")
def gate_cmd(
    store: Path = STORE_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    report: Optional[Path] = REPORT_OPTION,
    include_all: bool = ALL_CANDIDATES_OPTION,
) -> None:
    pipeline = _pipeline(store, config)
    benchmark = BenchmarkReport.model_validate(read_json(report)) if report else None
    decisions = pipeline.run_promotion(benchmark, only_confident=not include_all)
    table = Table(title="Gatekeeper Decisions")
    table.add_column("Operation")
    table.add_column("Approved")
    table.add_column("Reasoning")
    for decision in decisions:
        table.add_row(
            decision.candidate.operation_id,
            "yes" if decision.approved else "no",
            "\n".join(decision.reasoning),
        )
    console.print(table)


@app.command("lineage")
def lineage_cmd(
    artifact_id: str = typer.Argument(...),
    store: Path = STORE_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    pipeline = _pipeline(store, config)
    chain = pipeline.lineage.get_chain(artifact_id)
    if chain.artifact is None and not chain.upstream and not chain.downstream:
        console.print({"artifact_id": artifact_id, "found": False})
        raise typer.Exit(code=1)
    console.print(
        {
            "artifact_id": artifact_id,
            "found": chain.artifact is not None,
            "upstream": [entry.artifact_id for entry in chain.upstream],
            "downstream": [entry.artifact_id for entry in chain.downstream],
        }
    )


@app.command("compact")
def compact_cmd(
    store: Path = STORE_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
    max_age_days: Optional[int] = MAX_AGE_OPTION,
) -> None:
    pipeline = _pipeline(store, config)
    results = pipeline.compact(max_age_days=max_age_days)
    failed = False
    for result in results:
        console.print(result.model_dump())
        failed = failed or result.error is not None
    if failed:
        raise typer.Exit(code=1)


app.add_typer(hook_app, name="hook")
