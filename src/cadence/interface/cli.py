"""Cadence CLI: grading, scheduling, optimization and server commands."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated

import typer

from cadence.application.config import resolve_config
from cadence.application.grading import attempt_to_grade
from cadence.application.memory_model import advance, preview_intervals
from cadence.application.optimizer import optimize
from cadence.application.scheduling_service import utcnow
from cadence.domain.constants import (
    DEFAULT_LEARNING_RATE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_ERROR,
)
from cadence.domain.exceptions import CadenceError
from cadence.domain.models import Attempt, MemoryState
from cadence.domain.parameters import DEFAULT_PARAMETERS, DEFAULT_PARAMETERS_VERSION
from cadence.interface.history_file import HistoryFileError, load_history, parse_timestamp

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="cadence: memory-model scheduling for practice questions.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

config_app = typer.Typer(help="Manage cadence configuration.")
app.add_typer(config_app, name="config")


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
):
    """Global settings for cadence."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    if verbose:
        logging.getLogger("cadence").setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def format_interval(days: float) -> str:
    """Human-readable interval: minutes, hours or days."""
    minutes = days * 24 * 60
    if minutes < 60:
        return f"{minutes:.0f}m"
    if days < 1:
        return f"{minutes / 60:.1f}h"
    return f"{days:.1f}d"


def _build_attempt(correct: bool | None, time_ms: int | None, score: float | None) -> Attempt:
    if score is None and correct is None:
        raise typer.BadParameter("Provide --score or --correct/--incorrect.")
    return Attempt(correct=bool(correct), time_ms=time_ms, score=score)


def _build_prior(
    stability: float | None,
    difficulty: float | None,
    repetitions: int,
    last_review: str | None,
    now: datetime,
) -> MemoryState | None:
    if stability is None and difficulty is None:
        return None
    return MemoryState(
        stability=stability if stability is not None else 0.0,
        difficulty=difficulty if difficulty is not None else 0.0,
        repetitions=repetitions,
        last_review=parse_timestamp(last_review) or now,
    )


def _parse_now(now: str | None) -> datetime:
    try:
        return parse_timestamp(now) or utcnow()
    except HistoryFileError as e:
        raise typer.BadParameter(str(e)) from e


# ---------------------------------------------------------------------------
# Root commands
# ---------------------------------------------------------------------------


@app.command()
def grade(
    score: Annotated[float | None, typer.Option(help="Score from 0 to 100.")] = None,
    correct: Annotated[
        bool | None, typer.Option("--correct/--incorrect", help="Binary outcome.")
    ] = None,
    time_ms: Annotated[int | None, typer.Option(help="Answer latency in milliseconds.")] = None,
):
    """Convert an attempt outcome into a 0-5 grade."""
    g = attempt_to_grade(_build_attempt(correct, time_ms, score))
    typer.echo(f"Grade: {int(g)} ({g.name})")


@app.command()
def schedule(
    grade_: Annotated[int, typer.Option("--grade", "-g", help="Grade of this review (0-5).")],
    stability: Annotated[float | None, typer.Option(help="Prior stability (days).")] = None,
    difficulty: Annotated[float | None, typer.Option(help="Prior difficulty.")] = None,
    repetitions: Annotated[int, typer.Option(help="Prior successful streak.")] = 0,
    last_review: Annotated[
        str | None, typer.Option(help="Prior review time (ISO-8601). Defaults to now.")
    ] = None,
    now: Annotated[str | None, typer.Option(help="Review time (ISO-8601).")] = None,
    target_retention: Annotated[
        float | None, typer.Option(help="Retrievability at which the item becomes due.")
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Run one memory-model step. Without --stability/--difficulty it is a first review."""
    config = resolve_config({"target_retention": target_retention})
    review_time = _parse_now(now)
    prior = _build_prior(stability, difficulty, repetitions, last_review, review_time)

    result = advance(prior, grade_, review_time, DEFAULT_PARAMETERS, config.target_retention)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "stability": result.stability,
                    "difficulty": result.difficulty,
                    "repetitions": result.repetitions,
                    "interval_days": result.interval_days,
                    "next_due": result.next_due.isoformat(),
                    "fallbacks": list(result.fallbacks),
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Stability:   {result.stability:.4f} days")
    typer.echo(f"Difficulty:  {result.difficulty:.4f}")
    typer.echo(f"Repetitions: {result.repetitions}")
    typer.echo(f"Interval:    {format_interval(result.interval_days)}")
    typer.echo(f"Next due:    {result.next_due.isoformat()}")
    if result.degraded:
        typer.secho(f"Fallbacks:   {', '.join(result.fallbacks)}", fg="yellow")


@app.command()
def preview(
    stability: Annotated[float | None, typer.Option(help="Prior stability (days).")] = None,
    difficulty: Annotated[float | None, typer.Option(help="Prior difficulty.")] = None,
    repetitions: Annotated[int, typer.Option(help="Prior successful streak.")] = 0,
    last_review: Annotated[
        str | None, typer.Option(help="Prior review time (ISO-8601). Defaults to now.")
    ] = None,
):
    """Show the interval each grade would produce."""
    config = resolve_config()
    review_time = utcnow()
    prior = _build_prior(stability, difficulty, repetitions, last_review, review_time)

    intervals = preview_intervals(prior, review_time, DEFAULT_PARAMETERS, config.target_retention)
    for g, days in intervals.items():
        typer.echo(f"{int(g)} {g.name:<17} {format_interval(days)}")


@app.command("optimize")
def optimize_cmd(
    history: Annotated[Path, typer.Argument(help="YAML or JSON file with review records.")],
    max_iterations: Annotated[int, typer.Option(help="Maximum descent steps.")] = DEFAULT_MAX_ITERATIONS,
    learning_rate: Annotated[float, typer.Option(help="Initial step size.")] = DEFAULT_LEARNING_RATE,
    min_error: Annotated[float, typer.Option(help="Stop below this loss.")] = DEFAULT_MIN_ERROR,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Fit model weights to a review history file."""
    try:
        records = load_history(history)
    except (OSError, HistoryFileError) as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    result = optimize(records, DEFAULT_PARAMETERS, max_iterations, learning_rate, min_error)

    if json_output:
        typer.echo(
            json.dumps(
                {
                    "parameters": result.parameters.to_dict(),
                    "error": result.error,
                    "iterations": result.iterations,
                },
                indent=2,
            )
        )
        return

    typer.echo(f"Records: {len(records)}  Iterations: {result.iterations}  Error: {result.error:.4f}")
    if result.iterations == 0:
        typer.secho("Not enough history to fit; defaults unchanged.", fg="yellow")
    for name, value in result.parameters.to_dict().items():
        default = getattr(DEFAULT_PARAMETERS, name)
        marker = "" if value == default else f"  (default {default})"
        typer.echo(f"  {name:<4} {value:.4f}{marker}")


@app.command()
def record(
    user_id: Annotated[str, typer.Argument(help="Learner ID.")],
    question_id: Annotated[str, typer.Argument(help="Question ID.")],
    score: Annotated[float | None, typer.Option(help="Score from 0 to 100.")] = None,
    correct: Annotated[
        bool | None, typer.Option("--correct/--incorrect", help="Binary outcome.")
    ] = None,
    time_ms: Annotated[int | None, typer.Option(help="Answer latency in milliseconds.")] = None,
    database: Annotated[Path | None, typer.Option(help="SQLite history database.")] = None,
):
    """Record an attempt in the history store and print the next due date."""
    import asyncio

    from cadence.application.factory import get_scheduling_service

    attempt = _build_attempt(correct, time_ms, score)
    config = resolve_config({"database_path": database})
    service = get_scheduling_service(config)

    try:
        state = asyncio.run(service.record_attempt(user_id, question_id, attempt))
    except CadenceError as e:
        typer.secho(f"Error: {e}", fg="red", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"Grade {state.grade}, parameters: {state.parameters_source}")
    typer.echo(f"Next due {state.next_due.isoformat()} (in {format_interval(state.interval_days)})")


@app.command()
def serve(
    port: Annotated[int, typer.Option(help="Port to bind the server to.")] = 8778,
    host: Annotated[str, typer.Option(help="Host to bind the server to.")] = "127.0.0.1",
    reload: Annotated[bool, typer.Option(help="Enable auto-reload.")] = False,
):
    """Start the HTTP server."""
    import uvicorn

    uvicorn.run("cadence.server:app", host=host, port=port, reload=reload)


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show():
    """Display final resolved configuration."""
    config = resolve_config()
    d = {k: str(v) if isinstance(v, Path) else v for k, v in config.model_dump().items()}
    d["default_parameters"] = DEFAULT_PARAMETERS_VERSION
    typer.echo(json.dumps(d, indent=2))
