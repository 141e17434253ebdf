from __future__ import annotations

from pathlib import Path
from typing import Optional

import orjson
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from .artifact_store import ArtifactStore
from .config import Settings, load_settings, parse_bounds
from .equivalence.checker import check_equivalence
from .errors import BoundsError, EquivalenceError
from .ledger.ledger import Ledger
from .schemas import AnalysisConfig, EquivalenceReport, export_schemas
from .summaries.store import PathSummaryStore
from .symbolic.normalize import normalize
from .symbolic.parser import parse_expr, render
from .utils import ensure_dir

app = typer.Typer(help="semequiv: bounded equivalence checking of two programs")
console = Console()

ledger_app = typer.Typer(help="Ledger commands")
schema_app = typer.Typer(help="Schema utilities")
app.add_typer(ledger_app, name="ledger")
app.add_typer(schema_app, name="schema")

EXIT_CODES = {"Equivalent": 0, "NotEquivalent": 1, "Unknown": 2}
EXIT_ERROR = 3

FIRST_OPTION = typer.Option(..., "--first", exists=True, dir_okay=False)
SECOND_OPTION = typer.Option(..., "--second", exists=True, dir_okay=False)
FUNCTION_OPTION = typer.Option(..., "--function")
BOUNDS_OPTION = typer.Option(..., "--bounds", help="name:min:max, comma separated")
MAX_PATHS_OPTION = typer.Option(None, "--max-paths")
TIMEOUT_OPTION = typer.Option(None, "--timeout", help="Seconds for the whole run")
WORKERS_OPTION = typer.Option(None, "--workers")
RUN_DIR_OPTION = typer.Option(None, "--run-dir")
CONFIG_OPTION = typer.Option(None, "--config", exists=True, dir_okay=False)
RUN_DIR_REQUIRED_OPTION = typer.Option(..., "--run-dir", exists=True)
BITS_OPTION = typer.Option(64, "--bits", min=2, max=64)
SCHEMA_OUT_OPTION = typer.Option(Path("schemas"), "--out-dir")
JSON_OPTION = typer.Option(False, "--json")


def _print_report(report: EquivalenceReport) -> None:
    result = report.result
    table = Table(title=f"Equivalence: {report.function_name}")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("verdict", result.verdict)
    table.add_row("paths_compared", str(result.paths_compared))
    table.add_row("candidate_regions", str(report.candidate_regions))
    table.add_row("pruned_pairs", str(report.pruned_pairs))
    if report.unknown_reason:
        table.add_row("unknown_reason", report.unknown_reason)
    for record in report.coverage:
        table.add_row(f"coverage {record.origin}", record.status)
    spot = report.spot_check
    if spot is not None:
        if spot.skipped_reason:
            table.add_row("spot_check", f"skipped ({spot.skipped_reason})")
        else:
            status = "disagreement" if spot.disagreement else "agree"
            table.add_row("spot_check", f"{status} on {spot.compared}/{spot.samples} samples")
    table.add_row("time_taken", f"{result.time_taken:.3f}s")
    console.print(table)

    counterexample = result.counterexample
    if counterexample is None:
        return
    inputs = ", ".join(f"{name}={value}" for name, value in counterexample.inputs.items())
    console.print(f"[bold]counterexample[/bold] {inputs}")
    diff = Table(title="Differences")
    diff.add_column("Channel")
    diff.add_column("First program")
    diff.add_column("Second program")
    for difference in counterexample.differences:
        diff.add_row(difference.label(), difference.first_value, difference.second_value)
    console.print(diff)


@app.command("check")
def check_cmd(
    first: Path = FIRST_OPTION,
    second: Path = SECOND_OPTION,
    function: str = FUNCTION_OPTION,
    bounds: str = BOUNDS_OPTION,
    max_paths: Optional[int] = MAX_PATHS_OPTION,
    timeout: Optional[float] = TIMEOUT_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    run_dir: Optional[Path] = RUN_DIR_OPTION,
    config: Optional[Path] = CONFIG_OPTION,
) -> None:
    try:
        parsed_bounds = parse_bounds(bounds)
    except BoundsError as exc:
        raise typer.BadParameter(str(exc), param_hint="--bounds") from exc
    try:
        settings: Settings = load_settings(
            config, max_paths=max_paths, timeout=timeout, workers=workers
        )
    except (ValidationError, EquivalenceError) as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc
    analysis = AnalysisConfig(
        function_name=function,
        bounds=parsed_bounds,
        max_paths=settings.max_paths,
        timeout=settings.timeout,
        first_summaries=str(first),
        second_summaries=str(second),
    )
    if run_dir is None:
        run_dir = Path("runs") / f"check_{function}"
    ensure_dir(run_dir)
    ledger = Ledger(run_dir / "ledger.jsonl")
    artifacts = ArtifactStore(run_dir, ledger)

    store = PathSummaryStore(function_name=function, bits=settings.int_bits)
    try:
        store.load_json(first, origin="FirstProgram")
        store.load_json(second, origin="SecondProgram")
    except EquivalenceError as exc:
        ledger.append(
            "RUN_ERROR",
            {"error": type(exc).__name__, "failure_atom": exc.failure_atom, "message": str(exc)},
        )
        console.print(f"[red]{type(exc).__name__}[/red]: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc
    try:
        report = check_equivalence(store, analysis, settings=settings, ledger=ledger)
    except EquivalenceError as exc:
        console.print(f"[red]{type(exc).__name__}[/red]: {exc}")
        raise typer.Exit(code=EXIT_ERROR) from exc

    artifacts.write_model("result.json", report.result, kind="equivalence_result")
    artifacts.write_model("report.json", report, kind="equivalence_report")
    _print_report(report)
    raise typer.Exit(code=EXIT_CODES[report.result.verdict])


@app.command("normalize")
def normalize_cmd(expression: str, bits: int = BITS_OPTION, json_out: bool = JSON_OPTION) -> None:
    try:
        expr = normalize(parse_expr(expression), bits)
    except EquivalenceError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1) from exc
    if json_out:
        typer.echo(orjson.dumps(expr, option=orjson.OPT_SORT_KEYS).decode("utf-8"))
    else:
        typer.echo(render(expr))


@ledger_app.command("verify")
def ledger_verify_cmd(run_dir: Path = RUN_DIR_REQUIRED_OPTION) -> None:
    ok, message = Ledger.verify_chain(run_dir / "ledger.jsonl")
    console.print({"ok": ok, "message": message})
    if not ok:
        raise typer.Exit(code=1)


@schema_app.command("export")
def schema_export_cmd(out_dir: Path = SCHEMA_OUT_OPTION) -> None:
    export_schemas(str(out_dir))
    console.print({"out_dir": str(out_dir)})


def main() -> None:
    app()


if __name__ == "__main__":
    main()
