"""
Typer CLI for the question bank grouping engine.

Commands:
    qbank list              - Catalog view (groups and single questions)
    qbank show ID           - Show the logical question a record belongs to
    qbank classify          - Modality of every record
    qbank check-draft FILE  - Validate and decompose an editor buffer
    qbank save-draft FILE   - Save an editor buffer (new or --edit ID)
    qbank delete ID         - Delete the whole group a record belongs to
    qbank db init           - Initialize database tables

Every record command reads PostgreSQL by default, or a JSON export with
--file (written back after save-draft/delete).

Usage:
    qbank --help
    qbank list --file bank.json --subject EN
    qbank save-draft draft.json --file bank.json --edit 4f2a...
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich import print as rprint
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import Settings, get_settings
from src.bank.catalog import GroupEntry, MODALITY_LABELS
from src.bank.classifier import ModalityClassifier
from src.bank.decomposer import Decomposer
from src.bank.errors import QuestionBankError, ValidationError
from src.bank.executor import ReconcileOutcome
from src.bank.models import GroupDraft, QuestionGroup
from src.bank.service import QuestionBankService
from src.storage.base import QuestionStore, RecordFilter
from src.storage.memory import InMemoryQuestionStore

app = typer.Typer(help="qbank: question bank grouping engine", no_args_is_help=True)
db_app = typer.Typer(help="Database management")
app.add_typer(db_app, name="db")

console = Console()

FILE_OPTION = typer.Option(None, "--file", "-f", help="JSON export to use instead of PostgreSQL")


def configure_logging(settings: Settings) -> None:
    """Route loguru to stderr (and optionally a file) at the configured level."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")


@app.callback()
def main_callback() -> None:
    configure_logging(get_settings())


# ========================================
# Store selection
# ========================================


@asynccontextmanager
async def open_store(
    file: Path | None, write_back: bool = False
) -> AsyncGenerator[QuestionStore, None]:
    """Yield the JSON-file store or the SQL store."""
    if file is not None:
        if not file.exists():
            rprint(f"[red]✗[/red] File not found: {file}")
            raise typer.Exit(code=1)
        store = InMemoryQuestionStore.from_json_file(file)
        yield store
        if write_back:
            store.to_json_file(file)
        return

    from src.db.database import dispose_engines
    from src.storage.sql import SqlQuestionStore

    try:
        yield SqlQuestionStore()
    finally:
        await dispose_engines()


def _load_draft(path: Path) -> GroupDraft:
    try:
        return GroupDraft.from_dict(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, ValueError, KeyError) as e:
        rprint(f"[red]✗[/red] Could not read draft {path}: {e}")
        raise typer.Exit(code=1)


def _print_validation(error: ValidationError) -> None:
    table = Table(title="Draft is invalid", show_header=True)
    table.add_column("Field", style="cyan")
    table.add_column("Problem", style="red")
    for name, reason in error.errors.items():
        table.add_row(name, reason)
    console.print(table)


def _print_group(group: QuestionGroup) -> None:
    first = group.first
    header = (
        f"[bold]{MODALITY_LABELS[group.modality]}[/bold] - {group.size} member(s)\n"
        f"{first.subject or first.subject_code} / {first.topic or first.topic_code} / "
        f"grade {first.grade} / level {first.level or first.level_code}"
    )
    if group.is_compound and first.informative_text:
        header += f"\n\n[dim]{first.informative_text[:300]}[/dim]"
    console.print(Panel(header, title="Question group"))

    table = Table(show_header=True)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Code", style="cyan")
    table.add_column("Question", max_width=60)
    table.add_column("Answer", style="green")
    for index, record in enumerate(group.records, start=1):
        correct = record.correct_option()
        table.add_row(
            str(index),
            record.code or "-",
            record.question_text,
            f"{correct.id}) {correct.text or ''}" if correct else "-",
        )
    console.print(table)


def _print_outcome(outcome: ReconcileOutcome) -> None:
    table = Table(title="Save Results", show_header=True)
    table.add_column("Operation", style="cyan")
    table.add_column("Succeeded", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    for kind in ("create", "update", "delete"):
        table.add_row(kind, str(outcome.count(kind)), str(outcome.count(kind, ok=False)))
    table.add_row("unchanged", str(len(outcome.unchanged)), "-")
    console.print(table)
    for failure in outcome.failures:
        rprint(f"[red]✗[/red] {failure.kind} {failure.record_id or '(new)'}: {failure.error}")


# ========================================
# Read commands
# ========================================


@app.command("list")
def list_questions(
    file: Optional[Path] = FILE_OPTION,
    subject: Optional[str] = typer.Option(None, "--subject", help="Subject code"),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic code"),
    grade: Optional[str] = typer.Option(None, "--grade", help="Grade code"),
    level: Optional[str] = typer.Option(None, "--level", help="Level code"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Text search"),
) -> None:
    """List logical questions, newest first."""
    record_filter = RecordFilter(
        subject_code=subject, topic_code=topic, grade=grade, level_code=level, search=search
    )

    async def run():
        async with open_store(file) as store:
            return await QuestionBankService(store).list_catalog(record_filter)

    try:
        entries = asyncio.run(run())
    except QuestionBankError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    table = Table(title=f"Question Bank ({len(entries)} entries)", show_header=True)
    table.add_column("Kind", style="cyan")
    table.add_column("Id / Code", style="dim")
    table.add_column("Description", max_width=70)
    for entry in entries:
        if isinstance(entry, GroupEntry):
            table.add_row("group", entry.group.first.id or "-", entry.name)
        else:
            record = entry.record
            table.add_row("question", record.code or record.id or "-", record.question_text)
    console.print(table)


@app.command("show")
def show_group(
    record_id: str = typer.Argument(..., help="Id of any member"),
    file: Optional[Path] = FILE_OPTION,
) -> None:
    """Show the logical question a record belongs to."""

    async def run():
        async with open_store(file) as store:
            return await QuestionBankService(store).load_group(record_id)

    try:
        group = asyncio.run(run())
    except QuestionBankError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    _print_group(group)


@app.command("classify")
def classify_records(file: Optional[Path] = FILE_OPTION) -> None:
    """Show the modality of every record."""

    async def run():
        async with open_store(file) as store:
            return await store.query_records(RecordFilter())

    try:
        records = asyncio.run(run())
    except QuestionBankError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    classifier = ModalityClassifier(get_settings().english_subject_code)

    table = Table(title=f"Classification ({len(records)} records)", show_header=True)
    table.add_column("Id", style="dim")
    table.add_column("Code", style="cyan")
    table.add_column("Modality", style="green")
    for record in records:
        modality = classifier.classify(record, records)
        table.add_row(record.id or "-", record.code or "-", MODALITY_LABELS[modality])
    console.print(table)


# ========================================
# Write commands
# ========================================


@app.command("check-draft")
def check_draft(draft_file: Path = typer.Argument(..., help="Editor buffer JSON")) -> None:
    """Validate a draft and show the records it would produce."""
    draft = _load_draft(draft_file)
    try:
        targets = Decomposer().decompose(draft)
    except ValidationError as e:
        _print_validation(e)
        raise typer.Exit(code=1)

    table = Table(title=f"{MODALITY_LABELS[draft.modality]}: {len(targets)} record(s)")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Source id", style="dim")
    table.add_column("Question", max_width=60)
    table.add_column("Options", justify="right")
    for index, target in enumerate(targets, start=1):
        table.add_row(
            str(index),
            target.source_id or "(new)",
            target.shape.question_text,
            str(len(target.shape.options)),
        )
    console.print(table)
    rprint("[green]✓[/green] Draft is valid")


@app.command("save-draft")
def save_draft(
    draft_file: Path = typer.Argument(..., help="Editor buffer JSON"),
    file: Optional[Path] = FILE_OPTION,
    edit: Optional[str] = typer.Option(None, "--edit", help="Id of a member of the group being edited"),
    strict: bool = typer.Option(False, "--strict", help="Exit non-zero if any member operation failed"),
) -> None:
    """Save a draft as a new logical question, or over an existing group."""
    draft = _load_draft(draft_file)

    async def run():
        async with open_store(file, write_back=True) as store:
            service = QuestionBankService(store)
            previous = await service.load_group(edit) if edit else None
            return await service.save_group(draft, previous)

    try:
        outcome = asyncio.run(run())
    except ValidationError as e:
        _print_validation(e)
        raise typer.Exit(code=1)
    except QuestionBankError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)

    _print_outcome(outcome)
    if strict and outcome.failure_count:
        raise typer.Exit(code=1)


@app.command("delete")
def delete_group(
    record_id: str = typer.Argument(..., help="Id of any member"),
    file: Optional[Path] = FILE_OPTION,
) -> None:
    """Delete every member of the group a record belongs to."""

    async def run():
        async with open_store(file, write_back=True) as store:
            service = QuestionBankService(store)
            return await service.delete_group(await service.load_group(record_id))

    try:
        outcome = asyncio.run(run())
    except QuestionBankError as e:
        rprint(f"[red]✗[/red] {e}")
        raise typer.Exit(code=1)
    _print_outcome(outcome)


# ========================================
# DATABASE COMMANDS
# ========================================


@db_app.command("init")
def db_init() -> None:
    """
    Initialize database tables from SQLAlchemy models.

    Safe to run multiple times (idempotent).
    """
    from src.db.database import init_db

    logger.info("Initializing database tables...")
    init_db()
    rprint("[green]✓[/green] Database initialized!")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
