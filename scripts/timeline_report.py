#!/usr/bin/env python3
"""Analyze a JSON export of test execution records and print timeline metrics."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NoReturn, Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.table import Table

from reporting.schemas import ExecutionRecord
from reporting.settings import get_settings
from reporting.summary import ExecutionSummary, build_summary, compute_trend
from reporting.timeline import TimelineAnalysis, analyze_timeline

console = Console()
app = typer.Typer(help="Reconstruct execution timelines from test result exports.")

_RECORDS = TypeAdapter(list[ExecutionRecord])


@app.callback()
def main() -> None:
    """Timeline analytics for test execution exports."""


def _fail(message: str) -> NoReturn:
    typer.secho(message, fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _load_json(path: Path) -> Any:
    if not path.exists():
        _fail(f"File not found: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        _fail(f"Invalid JSON in {path}: {exc}")


def load_records(path: Path) -> list[ExecutionRecord]:
    payload = _load_json(path)
    if isinstance(payload, dict):
        payload = payload.get("records")
    if not isinstance(payload, list):
        _fail("Records file must be a JSON array (or an object with a 'records' array).")
    try:
        return _RECORDS.validate_python(payload)
    except ValidationError as exc:
        _fail(f"Invalid execution records in {path}:\n{exc}")


def _load_previous(path: Path) -> ExecutionSummary:
    payload = _load_json(path)
    if isinstance(payload, dict) and isinstance(payload.get("summary"), dict):
        payload = payload["summary"]
    if not isinstance(payload, dict):
        _fail("Previous summary must be a JSON object.")
    try:
        return ExecutionSummary.from_dict(payload)
    except (TypeError, ValueError) as exc:
        _fail(f"Invalid previous summary in {path}: {exc}")


def _format_ms(value: Any) -> str:
    if value is None:
        return "—"
    if isinstance(value, (int, float)):
        return f"{value:.0f}"
    return str(value)


def _render_analysis(analysis: TimelineAnalysis) -> None:
    table = Table("Field", "Value", title="Timeline")
    table.add_row("Records", str(analysis.total_records))
    table.add_row("Skipped (incomplete timing)", str(analysis.skipped_records))
    table.add_row("Max concurrent tests", str(analysis.max_concurrent_tests))
    table.add_row("Parallel execution", "yes" if analysis.parallel else "no")
    table.add_row("Worker lanes", str(analysis.thread_count))
    table.add_row("Parallel efficiency (%)", f"{analysis.parallel_efficiency:.2f}")
    if analysis.window:
        table.add_row("Window start", analysis.window.start.isoformat())
        table.add_row("Window end", analysis.window.end.isoformat())
        table.add_row("Wall clock (ms)", _format_ms(analysis.window.total_ms))
    console.print(table)

    lanes = Table("Worker", "Tests", "Record IDs", title="Lanes")
    for worker, ids in analysis.lanes.items():
        preview = ", ".join(ids[:5]) + (" …" if len(ids) > 5 else "")
        lanes.add_row(worker, str(len(ids)), preview)
    console.print(lanes)

    phases = Table("Phase", "Milliseconds", title="Resource Phases (estimated)")
    phases.add_row("init", _format_ms(analysis.phases.init_ms))
    phases.add_row("startup", _format_ms(analysis.phases.startup_ms))
    phases.add_row("execution", _format_ms(analysis.phases.execution_ms))
    phases.add_row("teardown", _format_ms(analysis.phases.teardown_ms))
    console.print(phases)


def _render_summary(summary: ExecutionSummary) -> None:
    table = Table("Field", "Value", title="Summary")
    for key in ("total", "passed", "failed", "broken", "skipped", "retried"):
        table.add_row(key, str(getattr(summary, key)))
    table.add_row("pass_rate (%)", f"{summary.pass_rate:.2f}")
    table.add_row("duration_ms", _format_ms(summary.duration_ms))
    for suite, count in summary.suites.items():
        table.add_row(f"suite: {suite}", str(count))
    console.print(table)


@app.command()
def analyze(
    records: Path = typer.Argument(..., help="JSON file containing execution records."),
    json_output: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON instead of human-readable tables.",
    ),
    previous: Optional[Path] = typer.Option(
        None,
        "--previous",
        help="Summary JSON from an earlier run (output of --json) to compute trends against.",
    ),
    env_file: str = typer.Option(".env", "--env-file", help="Settings file read by python-decouple."),
) -> None:
    """Print concurrency metrics, worker lanes, phase estimates and run summary."""

    try:
        settings = get_settings(env_file)
    except ValueError as exc:
        _fail(f"Invalid settings in {env_file}: {exc}")
    logging.basicConfig(level=getattr(logging, settings.logging.level, logging.WARNING))

    loaded = load_records(records)
    analysis = analyze_timeline(loaded, settings=settings.timeline)
    summary = build_summary(loaded)
    trend = compute_trend(summary, _load_previous(previous)) if previous else None

    if json_output:
        payload: dict[str, Any] = {
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "records_path": str(records),
            "timeline": analysis.to_dict(),
            "summary": summary.to_dict(),
        }
        if trend is not None:
            payload["trend"] = trend.to_dict()
        typer.echo(json.dumps(payload, indent=2))
        return

    _render_analysis(analysis)
    _render_summary(summary)
    if trend is not None:
        table = Table("Metric", "Change", title="Trend")
        table.add_row("tests (%)", f"{trend.test_count_change:+.2f}")
        table.add_row("pass rate (points)", f"{trend.pass_rate_change:+.2f}")
        table.add_row("duration (%)", f"{trend.duration_change:+.2f}")
        console.print(table)
    if analysis.skipped_records:
        typer.secho(
            f"{analysis.skipped_records} record(s) lacked a start/end time and were left out "
            "of concurrency metrics.",
            fg=typer.colors.YELLOW,
        )


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
