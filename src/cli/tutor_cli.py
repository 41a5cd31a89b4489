"""
NCERT Math Tutor: Main CLI.

A Rich terminal interface for Socratic math tutoring over the NCERT
problem bank.

Commands:
- tutor problems        - List problems for a class
- tutor chapters        - List chapters that have problems
- tutor solve           - Work through a problem with the tutor
- tutor summary         - Show a session summary
- tutor init-db         - Create database tables
- tutor import-problems - Load a problem bank JSON file
"""
from __future__ import annotations

import asyncio
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from config import get_settings
from src.db.database import init_db
from src.problems.loader import load_problem_bank
from src.problems.repository import ProblemRepository
from src.tutoring.attempt import Attempt
from src.tutoring.errors import AttemptClosed, ConcurrentSubmission, EmptyAnswer, ProblemNotFound
from src.tutoring.llm_client import GeminiClient, LLMClient
from src.tutoring.recorder import SessionRecorder
from src.tutoring.session import TutoringSession
from src.tutoring.types import (
    AttemptState,
    BadgeType,
    Complexity,
    DiagnosticResult,
    MasteryOutcome,
    TurnOutcome,
    age_from_birthdate,
)


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="tutor",
    help="NCERT Math Tutor: Socratic practice for Classes 5-6",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "correct": "bold green",
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "dim": "dim",
    "badge": {
        BadgeType.PARTIAL_PROGRESS: "green",
        BadgeType.HINT_GIVEN: "yellow",
        BadgeType.CORRECTIVE_FEEDBACK: "magenta",
    },
    "complexity": {
        Complexity.EASY: "green",
        Complexity.MEDIUM: "yellow",
        Complexity.HARD: "red",
    },
}

BADGE_LABELS = {
    BadgeType.PARTIAL_PROGRESS: "Good progress",
    BadgeType.HINT_GIVEN: "Hint",
    BadgeType.CORRECTIVE_FEEDBACK: "Let's check that",
}

HELP_TEXT = "[dim]Type your answer, or /solution, /diagnose, /quit[/dim]"


def build_llm() -> LLMClient:
    """Language model used by interactive sessions."""
    return GeminiClient()


# =============================================================================
# Display Helpers
# =============================================================================

def display_problem(attempt: Attempt) -> None:
    problem = attempt.problem
    color = STYLES["complexity"].get(problem.complexity, "white")
    kind = "Mastery Check" if attempt.is_mastery_check else f"Problem {problem.problem_number}"
    header = (
        f"{kind}  |  Class {problem.grade}  |  Chapter {problem.chapter}  |  "
        f"[{color}]{problem.complexity.value}[/{color}]"
    )
    console.print(Panel(problem.text, title=header, title_align="left", border_style="cyan", padding=(1, 2)))


def display_turn(outcome: TurnOutcome, ceiling: int) -> None:
    badge = outcome.badge
    if outcome.state == AttemptState.SOLVED:
        border, title = STYLES["correct"], "[bold green]Correct![/bold green]"
    elif badge is not None:
        color = STYLES["badge"][badge]
        border, title = color, f"[{color}]{BADGE_LABELS[badge]}[/{color}]"
    else:
        border, title = "cyan", "Tutor"

    console.print(Panel(outcome.tutor_turn.text, title=title, title_align="left", border_style=border))
    if not outcome.is_terminal:
        console.print(f"[dim]Hints used: {outcome.hint_count}/{ceiling}[/dim]")
    if outcome.show_solution_button:
        console.print("[yellow]Stuck? Type /solution to see the worked solution.[/yellow]")


def display_diagnostic(diagnostic: DiagnosticResult) -> None:
    lines = [
        f"[bold]{diagnostic.misconception_type.value}[/bold] ({diagnostic.confidence.value} confidence)",
        diagnostic.description,
    ]
    if diagnostic.evidence:
        lines.append("\n[bold]Evidence[/bold]")
        lines.extend(f"  - {item}" for item in diagnostic.evidence)
    if diagnostic.recommendations:
        lines.append("\n[bold]Recommendations[/bold]")
        lines.extend(f"  - {item}" for item in diagnostic.recommendations)
    if diagnostic.prerequisite_concepts:
        lines.append("\n[bold]Prerequisites[/bold]")
        lines.extend(f"  - {item}" for item in diagnostic.prerequisite_concepts)
    console.print(Panel("\n".join(lines), title="Diagnosis", border_style="blue"))


# =============================================================================
# Interactive loop
# =============================================================================

async def run_tutoring(session: TutoringSession) -> None:
    """Drive one problem, and its mastery check, until it finishes or the learner quits."""
    ceiling = session.gateway.hint_ceiling
    display_problem(session.attempt)
    console.print(HELP_TEXT)

    while True:
        attempt = session.attempt
        text = Prompt.ask("\n[bold]Your answer[/bold]", console=console).strip()

        if text == "/quit":
            break
        if text == "/diagnose":
            display_diagnostic(await session.diagnose())
            continue

        try:
            if text == "/solution":
                outcome = await session.request_solution()
            else:
                outcome = await session.submit(text)
        except EmptyAnswer:
            console.print("[yellow]Please type an answer first.[/yellow]")
            continue
        except (AttemptClosed, ConcurrentSubmission) as e:
            console.print(f"[yellow]{e}[/yellow]")
            continue

        display_turn(outcome, ceiling)
        if not outcome.is_terminal:
            continue

        if attempt.is_mastery_check:
            if session.mastery_outcome == MasteryOutcome.MASTERY_PASSED:
                console.print("\n[bold green]Mastery confirmed. Great work![/bold green]")
            else:
                console.print("\n[yellow]Keep practising this kind of problem.[/yellow]")
            break

        if outcome.state != AttemptState.SOLVED:
            break

        if not Confirm.ask("\nTry a similar problem to check mastery?", default=True, console=console):
            session.skip_mastery_check()
            break

        with console.status("Preparing a similar problem..."):
            mastery_attempt = await session.start_mastery_check()
        if mastery_attempt is None:
            console.print("[yellow]No mastery problem available right now. Nice job on this one![/yellow]")
            break
        display_problem(mastery_attempt)
        console.print(HELP_TEXT)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def problems(
    grade: int = typer.Option(..., "--grade", "-g", help="Class (5 or 6)"),
    chapter: Optional[int] = typer.Option(None, "--chapter", "-c", help="Chapter number"),
    complexity: Optional[Complexity] = typer.Option(None, "--complexity", "-x", help="easy, medium or hard"),
) -> None:
    """List problems for a class."""
    found = ProblemRepository().list_problems(grade, chapter=chapter, complexity=complexity)
    if not found:
        console.print(f"[yellow]No problems for class {grade}.[/yellow]")
        raise typer.Exit(0)

    table = Table(title=f"Class {grade} problems")
    table.add_column("ID", no_wrap=True)
    table.add_column("Ch", justify="right")
    table.add_column("#", justify="right")
    table.add_column("Complexity")
    table.add_column("Problem")

    for problem in found:
        color = STYLES["complexity"].get(problem.complexity, "white")
        text = problem.text if len(problem.text) <= 60 else problem.text[:57] + "..."
        table.add_row(
            problem.id,
            str(problem.chapter),
            str(problem.problem_number),
            f"[{color}]{problem.complexity.value}[/{color}]",
            text,
        )

    console.print(table)


@app.command()
def chapters(
    grade: int = typer.Option(..., "--grade", "-g", help="Class (5 or 6)"),
) -> None:
    """List chapters that have problems."""
    found = ProblemRepository().chapters_for_grade(grade)
    if not found:
        console.print(f"[yellow]No chapters for class {grade}.[/yellow]")
        raise typer.Exit(0)
    console.print(f"Class {grade} chapters: {', '.join(str(c) for c in found)}")


@app.command()
def solve(
    problem_id: str = typer.Argument(..., help="Problem ID, e.g. problem_00042"),
    learner: str = typer.Option("Student", "--learner", "-l", help="Learner name"),
    age: Optional[int] = typer.Option(None, "--age", "-a", help="Learner age, adapts the tutor's language"),
    birthdate: Optional[datetime] = typer.Option(
        None, "--birthdate", "-b", formats=["%Y-%m-%d"], help="Learner birthdate, used when --age is not given"
    ),
) -> None:
    """Work through a problem with the tutor."""
    if age is None and birthdate is not None:
        age = age_from_birthdate(birthdate.date())

    recorder = SessionRecorder()
    session = TutoringSession(learner, learner_age=age, llm=build_llm(), recorder=recorder)

    try:
        session.start_problem(problem_id)
    except ProblemNotFound as e:
        console.print(f"[red]{e}[/red]")
        session.close()
        raise typer.Exit(1)

    try:
        asyncio.run(run_tutoring(session))
    finally:
        session.close()

    if session.session_id:
        console.print(f"\n[dim]Session {session.session_id}. See it with: tutor summary {session.session_id}[/dim]")


@app.command()
def summary(
    session_id: str = typer.Argument(..., help="Session ID"),
) -> None:
    """Show a session summary."""
    result = SessionRecorder().session_summary(session_id)
    if result is None:
        console.print(f"[red]Session {session_id} not found.[/red]")
        raise typer.Exit(1)

    console.print(f"\n[bold cyan]Session summary[/bold cyan] - {result.student_name}")
    console.print(f"  Problems attempted: {result.total_problems}")
    console.print(f"  Problems mastered:  {result.problems_mastered}")
    console.print(f"  Hints used:         {result.total_hints_used}")
    console.print(f"  Hints per problem:  {result.average_hints_per_problem:.1f}")
    if result.duration_minutes is not None:
        console.print(f"  Duration:           {result.duration_minutes:.0f} min")

    if not result.problem_details:
        return

    table = Table()
    table.add_column("Problem", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Hints", justify="right")
    table.add_column("Messages", justify="right")
    table.add_column("Result")

    for detail in result.problem_details:
        kind = "mastery check" if detail.is_mastery_check else "original"
        status = "[green]mastered[/green]" if detail.mastered else "[yellow]not yet[/yellow]"
        table.add_row(
            detail.problem_id,
            kind,
            str(detail.hints_used),
            str(detail.conversation_length),
            status,
        )

    console.print(table)


@app.command("init-db")
def init_db_command() -> None:
    """Create database tables."""
    init_db()
    console.print("[green]Database tables ready.[/green]")


@app.command("import-problems")
def import_problems(
    path: Path = typer.Argument(..., help="Problem bank JSON file"),
) -> None:
    """Load a problem bank JSON file into the database."""
    try:
        loaded = load_problem_bank(path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    stored = ProblemRepository().add_problems(loaded)
    console.print(f"[green]Imported {stored} problems from {path.name}.[/green]")


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level="WARNING",
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            rotation="10 MB",
            retention=5,
        )

    app()


if __name__ == "__main__":
    main()
