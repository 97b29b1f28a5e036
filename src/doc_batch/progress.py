"""
Resumable job state: the progress record, daily quota window rollover, and
the JSON-file store.

The persisted document is forward-compatible::

    {"completed": ["apps/a.ts", ...], "date": "2026-10-19", "count": 42,
     "failures": {"apps/b.ts": 1}}

Any absent or wrong-typed field is replaced by its default instead of
failing the load.  Writes go through a temporary file and ``os.replace`` so
the store always holds one complete prior write.
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from .config import PROGRESS_FILE


def utc_today() -> str:
    """Current UTC calendar date as ``YYYY-MM-DD``."""
    return datetime.now(timezone.utc).date().isoformat()


@dataclass
class ProgressRecord:
    """
    Resumable job state.

    Attributes:
        completed_ids: Item ids already documented successfully.
        window_date: UTC date of the quota window ``request_count`` belongs to.
        request_count: API attempts charged against ``window_date``.
        failures: Item id → failed attempts since its last success.
    """

    completed_ids: set[str] = field(default_factory=set)
    window_date: str = field(default_factory=utc_today)
    request_count: int = 0
    failures: dict[str, int] = field(default_factory=dict)

    def to_json(self) -> dict:
        return {
            "completed": sorted(self.completed_ids),
            "date": self.window_date,
            "count": self.request_count,
            "failures": dict(sorted(self.failures.items())),
        }

    @classmethod
    def from_json(cls, data: dict, today: str | None = None) -> "ProgressRecord":
        """
        Build a record from a decoded JSON document, defaulting bad fields.

        Args:
            data: Decoded JSON object.
            today: Date used when ``date`` is missing or malformed.
        """
        today = today or utc_today()

        completed = data.get("completed")
        completed_ids = (
            {c for c in completed if isinstance(c, str)}
            if isinstance(completed, list) else set()
        )

        window_date = data.get("date")
        if not _is_iso_date(window_date):
            window_date = today

        count = data.get("count")
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            count = 0

        raw_failures = data.get("failures")
        failures: dict[str, int] = {}
        if isinstance(raw_failures, dict):
            for item_id, n in raw_failures.items():
                if isinstance(n, int) and not isinstance(n, bool) and n > 0:
                    failures[str(item_id)] = n

        return cls(
            completed_ids=completed_ids,
            window_date=window_date,
            request_count=count,
            failures=failures,
        )


def _is_iso_date(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return False
    return True


def rollover_if_new_day(record: ProgressRecord, today: str | None = None) -> ProgressRecord:
    """
    Return a record whose quota window is the current day.

    If ``record.window_date`` differs from ``today`` the result is a copy with
    ``request_count = 0`` and ``window_date = today``; otherwise ``record`` is
    returned as is.  ``completed_ids`` and ``failures`` are carried over.  No
    side effects: the caller persists the result.
    """
    today = today or utc_today()
    if record.window_date == today:
        return record
    return replace(
        record,
        completed_ids=set(record.completed_ids),
        failures=dict(record.failures),
        window_date=today,
        request_count=0,
    )


class ProgressStore:
    """
    JSON-file persistence for :class:`ProgressRecord`.

    With ``base`` set, absolute ids under it (written by older tools) are
    read back as base-relative ids so those items are not redone.
    """

    def __init__(
        self,
        path: Path = PROGRESS_FILE,
        clock: Callable[[], str] = utc_today,
        base: Optional[Path] = None,
    ) -> None:
        self.path = Path(path)
        self.clock = clock
        self.base = Path(base).resolve() if base is not None else None

    def today(self) -> str:
        return self.clock()

    def load(self) -> ProgressRecord:
        """
        Read the persisted record, or a fresh one if absent or unreadable.

        Never raises for a missing, corrupt, or non-object store; losing
        resumability is preferred over halting the pipeline.
        """
        today = self.today()
        if not self.path.exists():
            return ProgressRecord(window_date=today)

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            print(f"WARNING: progress file {self.path} unreadable ({exc}); starting fresh.")
            return ProgressRecord(window_date=today)

        if not isinstance(data, dict):
            print(f"WARNING: progress file {self.path} is not a JSON object; starting fresh.")
            return ProgressRecord(window_date=today)

        record = ProgressRecord.from_json(data, today=today)
        if self.base is not None:
            record.completed_ids = {self._relative_id(i) for i in record.completed_ids}
            record.failures = {self._relative_id(i): n for i, n in record.failures.items()}
        return record

    def _relative_id(self, item_id: str) -> str:
        """Absolute paths under ``base`` become base-relative POSIX ids."""
        path = Path(item_id)
        if not path.is_absolute():
            return item_id
        try:
            return path.resolve().relative_to(self.base).as_posix()
        except ValueError:
            return item_id

    def save(self, record: ProgressRecord) -> None:
        """
        Atomically replace the persisted record.

        The document is written to a temporary file in the same directory,
        flushed to disk, then moved over the target with ``os.replace``.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record.to_json(), fh, indent=2)
                fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def rollover_if_new_day(self, record: ProgressRecord) -> ProgressRecord:
        return rollover_if_new_day(record, today=self.today())

    def load_current(self) -> ProgressRecord:
        """Load, roll the quota window forward if needed, and persist a rollover."""
        record = self.load()
        rolled = self.rollover_if_new_day(record)
        if rolled is not record:
            print(
                f"New quota window {rolled.window_date} "
                f"(was {record.window_date}); request count reset."
            )
            self.save(rolled)
        return rolled
