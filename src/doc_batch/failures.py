"""
Error categorization and the failed-item log.

Failed attempts (empty output, transport errors, unreadable files) are
appended to a JSONL log so an operator can see what is being retried on the
next run.  The log is informational: the progress file alone decides which
items are revisited.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

import requests

from .config import FAILED_ITEMS_LOG


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class APIError:
    """
    Error category constants and classification logic for failed attempts.

    HTTP 429 is not an error category: the client reports it as a quota
    outcome.
    """

    TIMEOUT = "timeout"
    CONNECTION = "connection_error"
    SERVICE_UNAVAILABLE = "service_unavailable"
    INVALID_RESPONSE = "invalid_response"
    API_ERROR = "api_error"
    EMPTY = "empty_response"
    READ_ERROR = "read_error"
    SINK_ERROR = "sink_error"
    OTHER = "other"

    @staticmethod
    def categorize(error: Exception) -> tuple[str, str]:
        """
        Classify an exception raised around an HTTP call.

        Args:
            error: Exception raised by ``requests`` or response decoding.

        Returns:
            Tuple of (category: str, message: str).
        """
        if isinstance(error, requests.Timeout):
            return APIError.TIMEOUT, str(error)

        if isinstance(error, requests.ConnectionError):
            return APIError.CONNECTION, str(error)

        if isinstance(error, ValueError):
            # requests' JSONDecodeError subclasses ValueError
            return APIError.INVALID_RESPONSE, str(error)

        err = str(error).lower()
        if "timeout" in err or "timed out" in err:
            return APIError.TIMEOUT, str(error)

        return APIError.OTHER, str(error)

    @staticmethod
    def categorize_status(status_code: int) -> str:
        """Category for a non-2xx status that is not a quota signal."""
        if status_code in (500, 502, 503, 504):
            return APIError.SERVICE_UNAVAILABLE
        if 400 <= status_code < 500:
            return APIError.API_ERROR
        return APIError.OTHER


# ---------------------------------------------------------------------------
# Failed-item log
# ---------------------------------------------------------------------------

def log_failed_item(
    item_id: str,
    category: str,
    message: str,
    attempts: int,
    log_path: Path = FAILED_ITEMS_LOG,
) -> None:
    """
    Append one failed-item record to the JSONL log.

    Records accumulate across runs; :func:`clear_failed_items_log` resets it.

    Args:
        item_id: Item that failed.
        category: Category from :class:`APIError`.
        message: Human-readable detail.
        attempts: Failed attempts for this item since its last success.
        log_path: Path to the JSONL log file.
    """
    log_path = Path(log_path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "item_id": item_id,
        "error_category": category,
        "error_message": message[:500],
        "attempts": attempts,
        "timestamp": datetime.now().isoformat(),
    }
    with log_path.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(record) + "\n")


def load_failed_items(log_path: Path = FAILED_ITEMS_LOG) -> list[dict]:
    """
    Load failed-item records from the JSONL log.

    Lines that are not valid JSON (e.g. a write cut short by a crash) are
    skipped.

    Returns:
        List of record dicts (empty list if the file does not exist).
    """
    log_path = Path(log_path)
    if not log_path.exists():
        return []

    records: list[dict] = []
    with log_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError:
                continue
    return records


def clear_failed_items_log(log_path: Path = FAILED_ITEMS_LOG) -> bool:
    """
    Delete the failed-items log.

    Returns:
        ``True`` if a log was removed.
    """
    log_path = Path(log_path)
    if log_path.exists():
        log_path.unlink()
        print(f"Cleared failed items log: {log_path}")
        return True
    print(f"No failed items log to clear at {log_path}")
    return False
