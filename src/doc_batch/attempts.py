"""
Per-attempt audit log and progress reporting.

Each API attempt appends one CSV row as soon as its outcome is known, so an
interrupted run loses at most the in-flight attempt.  ``track_progress``
combines the log with the progress file for the ``status`` command.
"""

from __future__ import annotations

import csv
from datetime import datetime
from pathlib import Path
from typing import Optional

import pandas as pd

from .config import ATTEMPT_LOG
from .progress import ProgressRecord

# Column order of the attempt log CSV.
ATTEMPT_LOG_COLUMNS: list[str] = [
    "timestamp",
    "window_date",
    "item_id",
    "key_index",
    "outcome",
    "error_category",
    "detail",
    "latency_seconds",
    "request_count",
]


def record_attempt(
    record: dict,
    log_path: Path = ATTEMPT_LOG,
) -> None:
    """
    Append a single attempt row to the CSV log immediately.

    Creates the file with a header row on first write.

    Args:
        record: Dict whose keys are a subset of ``ATTEMPT_LOG_COLUMNS``.
        log_path: Path to the attempt log CSV file.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_exists = log_path.exists() and log_path.stat().st_size > 0

    row = {"timestamp": datetime.now().isoformat(), **record}
    with log_path.open("a", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(
            fh,
            fieldnames=ATTEMPT_LOG_COLUMNS,
            extrasaction="ignore",
        )
        if not file_exists:
            writer.writeheader()
        writer.writerow(row)


def load_attempts(log_path: Path = ATTEMPT_LOG) -> pd.DataFrame:
    """Attempt log as a DataFrame (empty, with the log columns, if absent)."""
    log_path = Path(log_path)
    if not log_path.exists() or log_path.stat().st_size == 0:
        return pd.DataFrame(columns=ATTEMPT_LOG_COLUMNS)
    return pd.read_csv(log_path, dtype={"item_id": str, "window_date": str})


def track_progress(
    record: ProgressRecord,
    candidates: Optional[list[str]] = None,
    daily_limit: Optional[int] = None,
    log_path: Path = ATTEMPT_LOG,
) -> dict:
    """
    Report completion and quota status.

    Args:
        record: Current progress record.
        candidates: Candidate ids, when known, to compute what remains.
        daily_limit: Daily cap, to compute remaining quota.
        log_path: Attempt log to summarize.

    Returns:
        Dict with keys ``completed``, ``remaining`` (``None`` without
        candidates), ``window_date``, ``requests_today``,
        ``quota_remaining`` (``None`` without a cap), ``failing_items``,
        ``attempts_logged``, and ``outcomes_today`` (outcome → count for the
        current window).
    """
    attempts = load_attempts(log_path)

    outcomes_today: dict[str, int] = {}
    if not attempts.empty:
        today_rows = attempts[attempts["window_date"] == record.window_date]
        outcomes_today = {
            str(k): int(v) for k, v in today_rows["outcome"].value_counts().items()
        }

    remaining = None
    if candidates is not None:
        remaining = len([c for c in candidates if c not in record.completed_ids])

    quota_remaining = None
    if daily_limit is not None:
        quota_remaining = max(daily_limit - record.request_count, 0)

    return {
        "completed": len(record.completed_ids),
        "remaining": remaining,
        "window_date": record.window_date,
        "requests_today": record.request_count,
        "quota_remaining": quota_remaining,
        "failing_items": len(record.failures),
        "attempts_logged": len(attempts),
        "outcomes_today": outcomes_today,
    }
