"""
Exam Grading CLI Application.

Provides a command-line interface for running a grading session, and a
regrade, over a JSON bundle of questions, a submission and grades.
"""

import logging
from pathlib import Path
from typing import Annotated, Optional
from uuid import UUID

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from exam_grading.bundle import BundleError, GradeEntry, GradeMethod, load_bundle
from exam_grading.config import get_settings
from exam_grading.engine import GradingEngine
from exam_grading.errors import GradingError
from exam_grading.models import GradingSession, QuestionGradingRecord

# Create Typer app
app = typer.Typer(
    name="exam-grading",
    help="Versioned grading sessions for exam submissions",
    add_completion=False,
)

console = Console()


def configure_logging(level: str) -> None:
    """Route package logs through rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.command()
def grade(
    bundle_file: Annotated[Path, typer.Argument(help="Path to the grading bundle (JSON)")],
    complete: Annotated[
        bool,
        typer.Option("--complete/--no-complete", help="Complete the session when fully graded"),
    ] = True,
    comment: Annotated[
        Optional[str],
        typer.Option("--comment", "-c", help="Overall grading comment"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Grade a submission from a bundle.

    Objective answers are scored automatically; the bundle's grades are
    applied to the subjective ones. The session is completed once every
    record has a score.
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    try:
        bundle = load_bundle(bundle_file)
        catalog, submission = bundle.to_catalog()
        engine = GradingEngine(catalog, settings)

        session = engine.sessions.start_grading(submission.id)
        _apply_grades(engine, session.id, bundle.grades)

        if complete and engine.aggregator.is_all_questions_graded(session.id):
            session = engine.sessions.complete_grading(session.id, comment)
        elif complete:
            pending = engine.aggregator.pending_count(session.id)
            console.print(
                f"[yellow]⚠ {pending} record(s) still need a score; session left IN_PROGRESS[/yellow]"
            )

        _display_session(engine, session, verbose)

    except BundleError as e:
        console.print(f"[red]Bundle Error:[/red] {e}")
        raise typer.Exit(1)
    except GradingError as e:
        console.print(f"[red]Grading Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def regrade(
    bundle_file: Annotated[Path, typer.Argument(help="Path to the grading bundle (JSON)")],
    comment: Annotated[
        Optional[str],
        typer.Option("--comment", "-c", help="Comment stored on the regraded version"),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed output"),
    ] = False,
) -> None:
    """
    Grade a submission, then regrade it.

    The first pass uses the bundle's grades and must complete. The second
    version reuses the same answers: objective records are re-scored
    automatically and the bundle's regrades are applied to the rest.
    """
    settings = get_settings()
    configure_logging("DEBUG" if verbose else settings.log_level)

    try:
        bundle = load_bundle(bundle_file)
        catalog, submission = bundle.to_catalog()
        engine = GradingEngine(catalog, settings)

        first = engine.sessions.start_grading(submission.id)
        _apply_grades(engine, first.id, bundle.grades)
        engine.sessions.complete_grading(first.id)

        second = engine.regrader.start_regrading(first.id)
        _apply_grades(engine, second.id, bundle.regrades)

        if engine.aggregator.is_all_questions_graded(second.id):
            second = engine.sessions.complete_grading(second.id, comment)
        else:
            pending = engine.aggregator.pending_count(second.id)
            console.print(
                f"[yellow]⚠ {pending} record(s) still need a score; "
                f"version {second.version} left IN_PROGRESS[/yellow]"
            )

        _display_session(engine, second, verbose)
        _display_history(engine.sessions.find_history(submission.id))

    except BundleError as e:
        console.print(f"[red]Bundle Error:[/red] {e}")
        raise typer.Exit(1)
    except GradingError as e:
        console.print(f"[red]Grading Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Show the effective configuration."""
    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1)

    table = Table(title="Exam Grading Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", justify="right")

    for name, value in settings.model_dump().items():
        table.add_row(name, str(value))

    console.print(table)


def _apply_grades(engine: GradingEngine, session_id: UUID, entries: tuple[GradeEntry, ...]) -> None:
    for entry in entries:
        record = engine.store.record_for_question(session_id, entry.question_id)
        if entry.method == GradeMethod.AI:
            engine.ai.grade(
                record.id,
                score=entry.score,
                is_correct=entry.is_correct,
                confidence=entry.confidence,
                analysis_note=entry.feedback,
            )
        else:
            engine.manual.grade(
                record.id,
                score=entry.score,
                is_correct=entry.is_correct,
                feedback=entry.feedback,
            )


def _display_session(engine: GradingEngine, session: GradingSession, verbose: bool = False) -> None:
    """Display a session summary and, in verbose mode, its records."""
    stats = engine.aggregator.score_statistics(session.id)
    progress = engine.aggregator.grading_progress(session.id)

    total = session.total_score if session.total_score is not None else stats.total_score
    score_color = (
        "green" if stats.percentage_score >= 70 else "yellow" if stats.percentage_score >= 50 else "red"
    )
    console.print(
        Panel(
            f"[{score_color}][bold]{total} / {stats.max_possible_score}[/bold] "
            f"({stats.percentage_score:.1f}%)[/{score_color}]\n"
            f"Version: {session.version}  Status: {session.status.value}  "
            f"Progress: {progress:.0%}",
            title="Grading Session",
        )
    )

    threshold = engine.settings.low_confidence_threshold
    review = [r for r in engine.store.records_for_session(session.id) if r.needs_review(threshold)]
    if review:
        console.print(f"[yellow]⚠ {len(review)} record(s) flagged for review[/yellow]")

    if verbose:
        _display_records(engine.store.records_for_session(session.id))
        if session.scoring_comment:
            console.print(Panel(session.scoring_comment, title="Comment"))


def _display_records(records: list[QuestionGradingRecord]) -> None:
    table = Table(title="Records")
    table.add_column("#", justify="right")
    table.add_column("Type", style="cyan")
    table.add_column("Method")
    table.add_column("Score", justify="right")
    table.add_column("Correct")
    table.add_column("Confidence", justify="right")
    table.add_column("Feedback")

    for record in records:
        score = "-" if record.score is None else f"{record.score}/{record.question.points}"
        correct = "-" if record.is_correct is None else ("✅" if record.is_correct else "❌")
        confidence = "-" if record.confidence_score is None else f"{record.confidence_score:.2f}"
        table.add_row(
            str(record.question.order),
            record.question.question_type.value,
            record.scoring_method.value,
            score,
            correct,
            confidence,
            (record.feedback or "")[:50],
        )

    console.print(table)


def _display_history(history: list[GradingSession]) -> None:
    table = Table(title="Version History")
    table.add_column("Version", justify="right")
    table.add_column("Status", style="cyan")
    table.add_column("Total", justify="right")
    table.add_column("Graded At")

    for session in history:
        table.add_row(
            str(session.version),
            session.status.value,
            "-" if session.total_score is None else str(session.total_score),
            "-" if session.graded_at is None else session.graded_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    console.print(table)


if __name__ == "__main__":
    app()
