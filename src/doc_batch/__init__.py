"""
src/doc_batch: resumable, quota-aware source documentation batch.

Module layout
-------------
config.py       paths, API constants, quota defaults, Settings / load_settings
progress.py     ProgressRecord, daily rollover, atomic JSON ProgressStore
credentials.py  forward-only CredentialRotator, CredentialsExhausted
discovery.py    candidate listing, structural summaries, structure manifest
prompt.py       WorkItem loading and deterministic prompt building
outcomes.py     Produced / QuotaExhausted / Empty / TransientError
client.py       Gemini request construction and response classification
failures.py     error categories, failed-item JSONL log
attempts.py     per-attempt CSV log, progress report
sink.py         docs/ mirror writer
batch.py        BatchRunner state machine, run_documentation_batch
cli.py          typer commands: run, status, scan, failures, reset-failures

Public interface
----------------
Run the whole pipeline from settings:
    run_documentation_batch(load_settings())

Drive the runner with custom collaborators:
    BatchRunner(store, rotator, client, sink, daily_cap).run(candidates)
"""

from .batch import BatchRunner, ItemState, RunStatus, RunSummary, run_documentation_batch
from .client import GenerationClient
from .config import ConfigurationError, Settings, load_settings
from .credentials import CredentialRotator, CredentialsExhausted
from .outcomes import Empty, GenerationOutcome, Produced, QuotaExhausted, TransientError
from .progress import ProgressRecord, ProgressStore, rollover_if_new_day
from .prompt import ItemReadError, WorkItem, build_prompt, load_work_item
from .sink import DocsSink

__all__ = [
    # Orchestration
    "BatchRunner",
    "ItemState",
    "RunStatus",
    "RunSummary",
    "run_documentation_batch",
    # Configuration
    "ConfigurationError",
    "Settings",
    "load_settings",
    # Progress
    "ProgressRecord",
    "ProgressStore",
    "rollover_if_new_day",
    # Credentials
    "CredentialRotator",
    "CredentialsExhausted",
    # Requests and outcomes
    "WorkItem",
    "ItemReadError",
    "build_prompt",
    "load_work_item",
    "GenerationClient",
    "GenerationOutcome",
    "Produced",
    "QuotaExhausted",
    "Empty",
    "TransientError",
    # Sink
    "DocsSink",
]
