"""
Command-line entry point.

Usage (from the repository to document):
    doc-batch run --root apps --pattern "**/*.ts"
    doc-batch status
    doc-batch scan
    doc-batch failures
    doc-batch reset-failures

Or without installing:
    python -m src.doc_batch.cli run
"""

from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .attempts import track_progress
from .batch import RunStatus, run_documentation_batch
from .config import (
    ATTEMPT_LOG,
    DAILY_LIMIT_ENV,
    DEFAULT_DAILY_LIMIT,
    DEFAULT_IGNORE,
    DEFAULT_PATTERNS,
    DEFAULT_SOURCE_ROOT,
    DOCS_DIR,
    FAILED_ITEMS_LOG,
    FILES_LIST_FILE,
    PROGRESS_FILE,
    ConfigurationError,
    int_from_env,
    load_settings,
)
from .discovery import list_candidates, write_json
from .failures import clear_failed_items_log, load_failed_items
from .progress import ProgressStore

console = Console(stderr=True)
app = typer.Typer(help="Resumable, quota-aware source documentation batch.")


def _patterns(pattern: Optional[List[str]]) -> tuple[str, ...]:
    return tuple(pattern) if pattern else DEFAULT_PATTERNS


# --------------------------------
# run : document pending files
# --------------------------------
@app.command()
def run(
    root: Path = typer.Option(DEFAULT_SOURCE_ROOT, "--root", help="Directory to document"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", help="Glob under --root (repeatable)"),
    docs: Path = typer.Option(DOCS_DIR, "--docs", help="Output directory for docs"),
    progress: Path = typer.Option(PROGRESS_FILE, "--progress", help="Progress state file"),
    daily_limit: Optional[int] = typer.Option(None, "--daily-limit", min=0, help="API attempts per day"),
    model: Optional[str] = typer.Option(None, "--model", help="Gemini model id"),
    max_item_failures: Optional[int] = typer.Option(
        None, "--max-item-failures", min=0, help="Skip items after this many failures (0 = never)"
    ),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help=".env file with GOOGLE_API_KEYS"),
):
    """Document every pending file until done, the daily cap, or key exhaustion."""
    try:
        settings = load_settings(
            env_file=env_file,
            source_root=root,
            patterns=_patterns(pattern),
            docs_dir=docs,
            progress_file=progress,
            daily_limit=daily_limit,
            model=model,
            max_item_failures=max_item_failures,
        )
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    console.print(f"[bold cyan]Using {len(settings.api_keys)} API key(s), model {settings.model}[/bold cyan]")
    try:
        summary = run_documentation_batch(settings)
    except NotADirectoryError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    if summary.status == RunStatus.QUOTA_HALTED:
        console.print(f"[yellow]Halted ({summary.halt_reason}); rerun later to resume.[/yellow]")
    else:
        console.print(f"[green]Done! Documented {summary.completed} files this run.[/green]")


# --------------------------------
# status : progress and quota
# --------------------------------
@app.command()
def status(
    root: Path = typer.Option(DEFAULT_SOURCE_ROOT, "--root", help="Directory being documented"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", help="Glob under --root (repeatable)"),
    progress: Path = typer.Option(PROGRESS_FILE, "--progress", help="Progress state file"),
    attempt_log: Path = typer.Option(ATTEMPT_LOG, "--attempt-log", help="Attempt log CSV"),
    daily_limit: Optional[int] = typer.Option(None, "--daily-limit", min=0, help="API attempts per day"),
):
    """Show completion and today's quota usage without calling the API."""
    store = ProgressStore(progress)
    # Read-only: the rollover is shown but not persisted.
    record = store.rollover_if_new_day(store.load())

    try:
        limit = daily_limit if daily_limit is not None else int_from_env(
            DAILY_LIMIT_ENV, DEFAULT_DAILY_LIMIT, 0
        )
    except ConfigurationError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)

    candidates = None
    if root.is_dir():
        candidates = list_candidates(root, _patterns(pattern), DEFAULT_IGNORE)

    report = track_progress(record, candidates, limit, attempt_log)

    table = Table(title="Documentation progress")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Quota window", report["window_date"])
    table.add_row("Completed", str(report["completed"]))
    table.add_row("Remaining", "?" if report["remaining"] is None else str(report["remaining"]))
    table.add_row("Requests today", f"{report['requests_today']}/{limit}")
    table.add_row("Quota remaining", str(report["quota_remaining"]))
    table.add_row("Failing items", str(report["failing_items"]))
    for outcome, count in sorted(report["outcomes_today"].items()):
        table.add_row(f"Today: {outcome}", str(count))
    console.print(table)


# --------------------------------
# scan : list candidate files
# --------------------------------
@app.command()
def scan(
    root: Path = typer.Option(DEFAULT_SOURCE_ROOT, "--root", help="Directory to scan"),
    pattern: Optional[List[str]] = typer.Option(None, "--pattern", help="Glob under --root (repeatable)"),
    out: Path = typer.Option(FILES_LIST_FILE, "--out", help="JSON file for the candidate list"),
):
    """Write the candidate file list without calling the API."""
    try:
        files = list_candidates(root, _patterns(pattern), DEFAULT_IGNORE)
    except NotADirectoryError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)
    write_json(files, out)
    console.print(f"[green]Found {len(files)} files.[/green] List saved to {out}")


# --------------------------------
# failures : items being retried
# --------------------------------
@app.command()
def failures(
    progress: Path = typer.Option(PROGRESS_FILE, "--progress", help="Progress state file"),
    log: Path = typer.Option(FAILED_ITEMS_LOG, "--log", help="Failed items JSONL log"),
):
    """List items with recorded failures and their most frequent error."""
    record = ProgressStore(progress).load()
    if not record.failures:
        console.print("[green]No failing items.[/green]")
        return

    categories: dict[str, Counter] = {}
    for entry in load_failed_items(log):
        categories.setdefault(entry.get("item_id", ""), Counter())[entry.get("error_category", "other")] += 1

    table = Table(title="Failing items")
    table.add_column("Item")
    table.add_column("Failures", justify="right")
    table.add_column("Most frequent error")
    for item_id, count in sorted(record.failures.items(), key=lambda kv: (-kv[1], kv[0])):
        common = categories.get(item_id)
        table.add_row(item_id, str(count), common.most_common(1)[0][0] if common else "-")
    console.print(table)


# --------------------------------
# reset-failures : retry skipped items
# --------------------------------
@app.command("reset-failures")
def reset_failures(
    items: Optional[List[str]] = typer.Argument(None, help="Item ids to reset (all if omitted)"),
    progress: Path = typer.Option(PROGRESS_FILE, "--progress", help="Progress state file"),
    log: Path = typer.Option(FAILED_ITEMS_LOG, "--log", help="Failed items JSONL log"),
):
    """Clear failure counters so items over the failure limit are attempted again."""
    store = ProgressStore(progress)
    record = store.load()
    if items:
        cleared = [i for i in items if record.failures.pop(i, None) is not None]
    else:
        cleared = list(record.failures)
        record.failures.clear()
        clear_failed_items_log(log)
    store.save(record)
    console.print(f"[green]Reset failure counters for {len(cleared)} item(s).[/green]")


# --------------------------------
# Entry-point
# --------------------------------
if __name__ == "__main__":
    app()
