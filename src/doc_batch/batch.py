"""
Batch orchestration: the resumable, quota-aware documentation run.

Per item:  Pending → Attempting → {Completed | SkippedEmpty | SkippedError
                                   | SkippedPermanent}
Per run:   Running → {Finished | QuotaHalted}

Guarantees:
- Every API attempt increments ``request_count`` and is persisted before
  the outcome is acted on, whatever the outcome.
- An item is added to ``completed_ids`` only after the sink stored its text.
- Items already in ``completed_ids`` are never attempted again.
- A quota-exhausted key is rotated and the same item retried; when no keys
  remain, or the daily cap is reached, the run halts cleanly.
- No per-item failure ends the run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from .attempts import record_attempt
from .client import GenerationClient
from .config import Settings
from .credentials import CredentialRotator, CredentialsExhausted, mask_key
from .discovery import list_candidates, structure_manifest, summarize_items, write_json
from .failures import APIError, log_failed_item
from .outcomes import (
    Empty,
    GenerationOutcome,
    Produced,
    QuotaExhausted,
    TransientError,
    outcome_name,
)
from .progress import ProgressRecord, ProgressStore
from .prompt import ItemReadError, WorkItem, build_prompt, load_work_item
from .sink import DocsSink


class ItemState:
    """Terminal states of one item within a run."""

    COMPLETED = "completed"
    SKIPPED_EMPTY = "skipped_empty"
    SKIPPED_ERROR = "skipped_error"
    SKIPPED_PERMANENT = "skipped_permanent"


class RunStatus:
    """Run-level states; both terminal states exit with code 0."""

    RUNNING = "running"
    FINISHED = "finished"
    QUOTA_HALTED = "quota_halted"

    # Why a run halted early
    HALT_DAILY_CAP = "daily_cap"
    HALT_CREDENTIALS = "credentials_exhausted"


class Submitter(Protocol):
    def submit(self, prompt: str, credential: str) -> GenerationOutcome: ...


class Sink(Protocol):
    def store(self, item_id: str, text: str): ...


class _DailyCapReached(Exception):
    """Internal signal: the next attempt would exceed the daily cap."""


@dataclass
class RunSummary:
    """Counts reported at the end of a run."""

    status: str = RunStatus.RUNNING
    halt_reason: Optional[str] = None
    candidates: int = 0
    already_completed: int = 0
    completed: int = 0
    skipped_empty: int = 0
    skipped_error: int = 0
    skipped_permanent: int = 0
    rotations: int = 0
    requests_made: int = 0
    request_count: int = 0
    window_date: str = ""
    duration_seconds: float = 0.0
    item_states: dict[str, str] = field(default_factory=dict)

    @property
    def not_reached(self) -> int:
        """Pending candidates left untouched because the run halted."""
        pending = self.candidates - self.already_completed
        return max(pending - len(self.item_states), 0)


class BatchRunner:
    """
    Drives candidates through prompt building, generation, and the sink.

    Args:
        store: Progress persistence.
        rotator: API key rotation.
        client: Anything with ``submit(prompt, credential)``.
        sink: Anything with ``store(item_id, text)`` that raises on failure.
        daily_cap: Maximum API attempts per quota window.
        max_item_failures: Failed attempts after which an item is skipped
            without calling the API; ``0`` retries forever.
        item_loader: ``item_id -> WorkItem``; raises ``ItemReadError``.
        prompt_builder: ``WorkItem -> str``.
        failed_items_log: JSONL failure log path, or ``None`` to disable.
        attempt_log: Attempt CSV path, or ``None`` to disable.
    """

    def __init__(
        self,
        store: ProgressStore,
        rotator: CredentialRotator,
        client: Submitter,
        sink: Sink,
        daily_cap: int,
        max_item_failures: int = 0,
        item_loader: Callable[[str], WorkItem] = load_work_item,
        prompt_builder: Callable[[WorkItem], str] = build_prompt,
        failed_items_log: Optional[Path] = None,
        attempt_log: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.rotator = rotator
        self.client = client
        self.sink = sink
        self.daily_cap = daily_cap
        self.max_item_failures = max_item_failures
        self.item_loader = item_loader
        self.prompt_builder = prompt_builder
        self.failed_items_log = failed_items_log
        self.attempt_log = attempt_log
        self.record: ProgressRecord = ProgressRecord()
        self.summary = RunSummary()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, candidates: Iterable[str]) -> RunSummary:
        """
        Process every pending candidate in order until done or halted.

        ``candidates`` is consumed once.  Returns the run summary; never
        raises for quota exhaustion or per-item failures.
        """
        start = time.monotonic()
        self.record = self.store.load_current()
        candidates = list(dict.fromkeys(candidates))
        pending = [c for c in candidates if c not in self.record.completed_ids]

        self.summary = RunSummary(
            candidates=len(candidates),
            already_completed=len(candidates) - len(pending),
            window_date=self.record.window_date,
        )
        print(f"Quota window: {self.record.window_date}")
        print(f"Completed items: {len(self.record.completed_ids)}")
        print(f"Requests used today: {self.record.request_count}/{self.daily_cap}")
        print(f"Pending: {len(pending)} of {len(candidates)} candidates\n")

        for idx, item_id in enumerate(pending, start=1):
            print(f"[{idx}/{len(pending)}] {item_id}")
            try:
                state = self._process_item(item_id)
            except _DailyCapReached:
                self._halt(RunStatus.HALT_DAILY_CAP)
                print("  Daily request limit reached. Stopping for today.")
                break
            except CredentialsExhausted:
                self._halt(RunStatus.HALT_CREDENTIALS)
                print("  All API keys used up for today. Stopping.")
                break
            except Exception as exc:
                # Anything unexpected (disk full, sink bugs) skips this item only
                print(f"  ERROR on {item_id}: {exc}")
                self._note_failure_safely(item_id, APIError.OTHER, str(exc))
                state = ItemState.SKIPPED_ERROR
            self._count(item_id, state)

        if self.summary.status == RunStatus.RUNNING:
            self.summary.status = RunStatus.FINISHED

        self.summary.request_count = self.record.request_count
        self.summary.window_date = self.record.window_date
        self.summary.duration_seconds = round(time.monotonic() - start, 1)
        self._print_summary()
        return self.summary

    def _halt(self, reason: str) -> None:
        self.summary.status = RunStatus.QUOTA_HALTED
        self.summary.halt_reason = reason

    def _count(self, item_id: str, state: str) -> None:
        self.summary.item_states[item_id] = state
        if state == ItemState.COMPLETED:
            self.summary.completed += 1
        elif state == ItemState.SKIPPED_EMPTY:
            self.summary.skipped_empty += 1
        elif state == ItemState.SKIPPED_PERMANENT:
            self.summary.skipped_permanent += 1
        else:
            self.summary.skipped_error += 1

    # ------------------------------------------------------------------
    # One item
    # ------------------------------------------------------------------

    def _process_item(self, item_id: str) -> str:
        self._check_cap()
        failures = self.record.failures.get(item_id, 0)
        if self.max_item_failures and failures >= self.max_item_failures:
            print(f"  Skipped: failed {failures} times (limit {self.max_item_failures}).")
            return ItemState.SKIPPED_PERMANENT

        try:
            item = self.item_loader(item_id)
            prompt = self.prompt_builder(item)
        except (ItemReadError, ValueError) as exc:
            print(f"  Skipped: {exc}")
            self._note_failure(item_id, APIError.READ_ERROR, str(exc))
            return ItemState.SKIPPED_ERROR

        while True:
            self._check_cap()
            credential = self.rotator.current()
            key_index = self.rotator.index
            outcome: Optional[GenerationOutcome] = None
            try:
                outcome = self.client.submit(prompt, credential)
            finally:
                # Charged even when submit raises
                self._charge_attempt(item_id, key_index, outcome)

            if isinstance(outcome, QuotaExhausted):
                print(f"  Rate limit hit on key #{key_index + 1} ({mask_key(credential)}), switching key...")
                self.rotator.rotate()
                self.summary.rotations += 1
                continue

            if isinstance(outcome, Produced):
                return self._complete(item_id, outcome.text)

            if isinstance(outcome, Empty):
                print(f"  No output received ({outcome.detail}), skipping file.")
                self._note_failure(item_id, APIError.EMPTY, outcome.detail)
                return ItemState.SKIPPED_EMPTY

            if isinstance(outcome, TransientError):
                print(f"  Request failed [{outcome.category}]: {outcome.detail[:120]}")
                self._note_failure(item_id, outcome.category, outcome.detail)
                return ItemState.SKIPPED_ERROR

            raise TypeError(f"Unknown generation outcome: {outcome!r}")

    def _check_cap(self) -> None:
        self._roll_window()
        if self.record.request_count >= self.daily_cap:
            raise _DailyCapReached()

    def _roll_window(self) -> None:
        rolled = self.store.rollover_if_new_day(self.record)
        if rolled is not self.record:
            print(f"  New quota window {rolled.window_date}; request count reset.")
            self.record = rolled
            self.store.save(self.record)

    def _charge_attempt(
        self, item_id: str, key_index: int, outcome: Optional[GenerationOutcome]
    ) -> None:
        self.record.request_count += 1
        self.summary.requests_made += 1
        self.store.save(self.record)

        if self.attempt_log is not None:
            record_attempt(
                {
                    "window_date": self.record.window_date,
                    "item_id": item_id,
                    "key_index": key_index,
                    "outcome": outcome_name(outcome) if outcome is not None else "client_error",
                    "error_category": getattr(outcome, "category", ""),
                    "detail": getattr(outcome, "detail", "")[:300],
                    "latency_seconds": getattr(outcome, "latency_seconds", None),
                    "request_count": self.record.request_count,
                },
                self.attempt_log,
            )

    def _complete(self, item_id: str, text: str) -> str:
        try:
            target = self.sink.store(item_id, text)
        except OSError as exc:
            print(f"  Could not write docs for {item_id}: {exc}")
            self._note_failure(item_id, APIError.SINK_ERROR, str(exc))
            return ItemState.SKIPPED_ERROR

        self.record.completed_ids.add(item_id)
        self.record.failures.pop(item_id, None)
        self.store.save(self.record)
        print(
            f"  Documented ({self.record.request_count}/{self.daily_cap})"
            + (f" → {target}" if target else "")
        )
        return ItemState.COMPLETED

    def _note_failure(self, item_id: str, category: str, message: str) -> None:
        attempts = self.record.failures.get(item_id, 0) + 1
        self.record.failures[item_id] = attempts
        self.store.save(self.record)
        if self.failed_items_log is not None:
            log_failed_item(item_id, category, message, attempts, self.failed_items_log)

    def _note_failure_safely(self, item_id: str, category: str, message: str) -> None:
        try:
            self._note_failure(item_id, category, message)
        except OSError as exc:
            print(f"  Could not record failure for {item_id}: {exc}")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _print_summary(self) -> None:
        s = self.summary
        sep = "=" * 60
        print(f"\n{sep}")
        if s.status == RunStatus.QUOTA_HALTED:
            print(f"RUN HALTED ({s.halt_reason})")
        else:
            print("RUN COMPLETE")
        print(f"  Documented this run: {s.completed}")
        print(f"  Skipped (empty):     {s.skipped_empty}")
        print(f"  Skipped (error):     {s.skipped_error}")
        print(f"  Skipped (limit):     {s.skipped_permanent}")
        print(f"  Not reached:         {s.not_reached}")
        print(f"  Key rotations:       {s.rotations}")
        print(f"  Requests this run:   {s.requests_made}")
        print(f"  Requests today:      {s.request_count}/{self.daily_cap}")
        print(f"  Duration:            {s.duration_seconds / 60:.1f} min")
        print(f"{sep}\n")


# ---------------------------------------------------------------------------
# Assembled pipeline
# ---------------------------------------------------------------------------

def run_documentation_batch(
    settings: Settings,
    client: Optional[Submitter] = None,
    base: Optional[Path] = None,
) -> RunSummary:
    """
    Discover sources, write the structure manifest, and run the batch.

    Args:
        settings: Resolved settings (keys, cap, paths).
        client: Generation client override; a :class:`GenerationClient` for
                ``settings.model`` is created when omitted.
        base: Directory item ids are relative to (cwd by default).

    Returns:
        The :class:`RunSummary` of the run.

    Raises:
        NotADirectoryError: ``settings.source_root`` does not exist.
    """
    base = base or Path.cwd()
    candidates = list_candidates(
        settings.source_root, settings.patterns, settings.ignore, base=base
    )
    print(f"Found {len(candidates)} files in {settings.source_root}/ "
          f"({datetime.now().strftime('%Y-%m-%d %H:%M')})")

    structures = summarize_items(candidates, base=base)
    try:
        write_json(structure_manifest(structures), settings.structure_file)
    except OSError as exc:
        print(f"WARNING: could not write {settings.structure_file} ({exc}); continuing without it.")

    owns_client = client is None
    if client is None:
        client = GenerationClient(
            model=settings.model,
            timeout=settings.request_timeout,
            generation_config=settings.generation_config,
        )

    runner = BatchRunner(
        store=ProgressStore(settings.progress_file, base=base),
        rotator=CredentialRotator(settings.api_keys),
        client=client,
        sink=DocsSink(settings.docs_dir),
        daily_cap=settings.daily_limit,
        max_item_failures=settings.max_item_failures,
        item_loader=lambda item_id: load_work_item(
            item_id, base=base, summarize=False, structure=structures.get(item_id)
        ),
        failed_items_log=settings.failed_items_log,
        attempt_log=settings.attempt_log,
    )
    try:
        return runner.run(candidates)
    finally:
        if owns_client:
            client.close()
