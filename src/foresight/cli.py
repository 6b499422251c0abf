"""Command line interface for foresight."""

import logging
from typing import List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from sqlalchemy.orm import Session

from foresight.config import settings
from foresight.db.models import User, create_db_and_tables
from foresight.db.session import get_session_context
from foresight.log.forecast_logger import AlreadyResolvedError, ForecastLogger, ForecastNotFoundError
from foresight.models import BaseRateMode, BlendMode, Domain, ForecastResult, ForecastStatus, Question, TraceKind
from foresight.retrieval.brave import BraveNewsRetriever
from foresight.scoring import calibration_error
from foresight.workflow import run_forecast

app = typer.Typer(help="Outside-view / inside-view forecasts with Brier-score tracking")
console = Console()
forecast_logger = ForecastLogger()

_STYLES = {
    TraceKind.INFO: "dim",
    TraceKind.SEARCH: "cyan",
    TraceKind.SCORE: "yellow",
    TraceKind.WEIGHT: "magenta",
    TraceKind.BLEND: "blue",
    TraceKind.FINAL: "bold green",
    TraceKind.ERROR: "bold red",
}


def _setup_logging(verbose: bool) -> None:
    """Configure basic logging."""
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level)


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {escape(message)}")
    raise typer.Exit(code=1)


def _existing_user(db: Session, username: str) -> User:
    account = forecast_logger.find_user(db, username)
    if account is None:
        _fail(f"User {username} not found")
    return account


def _parse_weights(pairs: Optional[List[str]]) -> dict[str, float]:
    weights: dict[str, float] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        try:
            if not sep or not key.strip():
                raise ValueError
            weights[key.strip()] = float(value)
        except ValueError:
            _fail(f"Bad weight {pair!r}, expected key=number")
    return weights


def _print_result(result: ForecastResult) -> None:
    table = Table("Factor", "Weight", "Raw", "Adjusted", "Articles", "Avg tier")
    for f in result.factors:
        table.add_row(
            f.label,
            f"{f.weight:g}%",
            f"{f.raw_score:.1f}",
            f"{f.adjusted_score:.2f}",
            str(f.article_count),
            f"{f.avg_tier:.2f}",
        )
    console.print(table)
    console.print(
        f"\n[bold green]Forecast Probability:[/bold green] {result.final_probability:.1f}% "
        f"(90% CI {result.confidence_low:.0f}–{result.confidence_high:.0f}%, {result.quality} evidence)"
    )
    console.print(f"[bold blue]Reference class:[/bold blue] {result.reference_class.label} ({result.reference_class.rate:.0%})")
    console.print(f"[bold blue]Blend:[/bold blue] {result.blend_descriptor}")


@app.command()
def forecast(
    question: str = typer.Argument(..., help="The forecasting question to ask."),
    domain: Domain = typer.Option(Domain.POLITICS, "--domain", "-d", help="Question domain."),
    window: int = typer.Option(settings.DEFAULT_NEWS_WINDOW, "--window", help="News lookback in days (7-90)."),
    mode: BaseRateMode = typer.Option(BaseRateMode.AUTO, "--mode", help="How to pick the base rate."),
    reference_class: Optional[str] = typer.Option(None, "--reference-class", help="Class description for custom mode."),
    manual_rate: Optional[float] = typer.Option(None, "--manual-rate", help="Base rate (0-1) for manual mode."),
    manual_label: str = typer.Option("", "--manual-label"),
    manual_source: str = typer.Option("", "--manual-source"),
    weight: Optional[List[str]] = typer.Option(None, "--weight", "-w", help="Factor weight override key=value."),
    blend: BlendMode = typer.Option(BlendMode.N_PLUS_ONE, "--blend", help="Blend formula."),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Save the forecast under this username."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
) -> None:
    """Forecast a binary question and print the full calculation trail."""
    _setup_logging(verbose)
    try:
        q = Question(
            text=question,
            domain=domain,
            mode=mode,
            reference_class=reference_class,
            manual_rate=manual_rate,
            manual_label=manual_label,
            manual_source=manual_source,
            news_window=window,
        )
    except ValidationError as e:
        _fail(str(e))

    try:
        retriever = BraveNewsRetriever()
    except ValueError as e:
        _fail(str(e))

    overrides = _parse_weights(weight)
    with get_session_context() as db:
        user_id = None
        if user:
            try:
                account = forecast_logger.get_or_create_user(db, user)
            except ValueError as e:
                _fail(str(e))
            user_id = account.id
            saved = forecast_logger.load_weights(db, user_id, domain.value) or {}
            overrides = {**saved, **overrides}

        result = None
        for event in run_forecast(q, retriever, weights=overrides, blend=blend):
            console.print(event.message, style=_STYLES[event.kind], markup=False)
            if event.result is not None:
                result = event.result

        if result is None:
            _fail("Forecast run ended without a result")
        _print_result(result)

        if user_id is not None:
            forecast_id = forecast_logger.log_forecast(db, q, result, user_id)
            console.print(f"\n[dim]Forecast ID {forecast_id} saved for {user}.[/dim]")


@app.command()
def resolve(
    forecast_id: int = typer.Argument(..., help="Forecast to resolve."),
    outcome: int = typer.Argument(..., help="1 if the event happened, 0 otherwise."),
) -> None:
    """Record the outcome of a forecast and score it."""
    with get_session_context() as db:
        try:
            record = forecast_logger.resolve_forecast(db, forecast_id, outcome)
        except (ForecastNotFoundError, AlreadyResolvedError, ValueError) as e:
            _fail(str(e))
        console.print(
            f"Forecast {record.id}: stated {record.probability:.2%}, outcome {record.outcome} "
            f"→ Brier score [bold]{record.brier_score:.4f}[/bold]"
        )


@app.command()
def profile(username: str = typer.Argument(..., help="Forecaster to show.")) -> None:
    """Show a forecaster's record and calibration."""
    with get_session_context() as db:
        account = _existing_user(db, username)
        stats = forecast_logger.user_stats(db, account)
        average = "—" if stats.average_score is None else f"{stats.average_score:.4f}"
        console.print(
            f"[bold]{stats.username}[/bold]: {stats.total} forecasts, {stats.resolved} resolved, "
            f"{stats.pending} pending | Brier {average} ({stats.label})"
        )

        buckets = forecast_logger.calibration_for_user(db, account.id)
        if not buckets:
            console.print("[dim]No resolved forecasts yet.[/dim]")
            return
        table = Table("Bin", "Forecasts", "Mean forecast", "Actual")
        for b in buckets:
            table.add_row(
                f"{b.lower:.0%}–{b.upper:.0%}", str(b.count), f"{b.mean_forecast:.0%}", f"{b.actual_frequency:.0%}"
            )
        console.print(table)
        error = calibration_error(buckets)
        if error is not None:
            console.print(f"Calibration error: {error:.3f}")


@app.command()
def leaderboard() -> None:
    """Rank forecasters by average Brier score."""
    with get_session_context() as db:
        table = Table("#", "User", "Forecasts", "Resolved", "Avg Brier", "Band")
        for rank, s in enumerate(forecast_logger.leaderboard(db), 1):
            average = "—" if s.average_score is None else f"{s.average_score:.4f}"
            table.add_row(str(rank), s.username, str(s.total), str(s.resolved), average, s.label)
        console.print(table)


@app.command()
def forecasts(
    username: str = typer.Argument(..., help="Forecaster whose forecasts to list."),
    status: ForecastStatus = typer.Option(ForecastStatus.ALL, "--status", "-s", help="Filter by resolution state."),
) -> None:
    """List a forecaster's saved forecasts, newest first."""
    with get_session_context() as db:
        account = _existing_user(db, username)
        records = forecast_logger.list_forecasts(db, account.id, status.value)
        if not records:
            console.print(f"No {status.value} forecasts for {username}.")
            return
        table = Table("ID", "Question", "Probability", "Outcome", "Brier")
        for r in records:
            table.add_row(
                str(r.id),
                r.question,
                f"{r.probability:.1%}",
                "pending" if r.outcome is None else str(r.outcome),
                "—" if r.brier_score is None else f"{r.brier_score:.4f}",
            )
        console.print(table)


@app.command()
def weights(
    username: str = typer.Argument(...),
    domain: Domain = typer.Option(Domain.POLITICS, "--domain", "-d"),
    set_: Optional[List[str]] = typer.Option(None, "--set", help="Override key=value; repeatable."),
) -> None:
    """Show or update saved factor-weight overrides."""
    with get_session_context() as db:
        if not set_:
            account = _existing_user(db, username)
        else:
            overrides = _parse_weights(set_)
            try:
                account = forecast_logger.get_or_create_user(db, username)
            except ValueError as e:
                _fail(str(e))
            current = forecast_logger.load_weights(db, account.id, domain.value) or {}
            forecast_logger.save_weights(db, account.id, domain.value, {**current, **overrides})
        saved = forecast_logger.load_weights(db, account.id, domain.value)
        if not saved:
            console.print(f"No saved weights for {username} in {domain.value}; defaults apply.")
            return
        for key, value in saved.items():
            console.print(f"{key} = {value:g}")
        console.print(f"[dim]Total: {sum(saved.values()):g}%[/dim]")


@app.command()
def init_db() -> None:
    """Initialize the database and create tables."""
    try:
        create_db_and_tables()
        console.print("[green]Database initialized successfully.[/green]")
    except Exception as e:
        console.print(f"[bold red]Error initializing database:[/bold red] {e}")
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()
