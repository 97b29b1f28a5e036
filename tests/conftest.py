"""
Shared pytest fixtures for batch pipeline tests.

The generation client and docs sink are replaced by in-memory stubs so the
runner's control flow can be driven outcome by outcome without a network.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from src.doc_batch.batch import BatchRunner
from src.doc_batch.credentials import CredentialRotator
from src.doc_batch.outcomes import Empty, Produced, QuotaExhausted, TransientError
from src.doc_batch.progress import ProgressStore
from src.doc_batch.prompt import WorkItem

TODAY = "2026-10-19"
YESTERDAY = "2026-10-18"


# ---------------------------------------------------------------------------
# Stubs
# ---------------------------------------------------------------------------

class StubClient:
    """
    Scripted generation client.

    ``by_item`` maps item id → outcome (or list of outcomes consumed in
    order); ``by_key`` maps credential → outcome and wins over ``by_item``.
    Anything unscripted returns ``Produced``.
    """

    def __init__(self, by_item: dict | None = None, by_key: dict | None = None):
        self.by_item = {k: list(v) if isinstance(v, list) else v for k, v in (by_item or {}).items()}
        self.by_key = by_key or {}
        self.calls: list[tuple[str, str]] = []

    def submit(self, prompt: str, credential: str):
        item_id = prompt.split("::", 1)[0]
        self.calls.append((item_id, credential))
        if credential in self.by_key:
            return self.by_key[credential]
        scripted = self.by_item.get(item_id)
        if isinstance(scripted, list):
            return scripted.pop(0) if scripted else Produced(text=f"docs for {item_id}")
        if scripted is not None:
            return scripted
        return Produced(text=f"docs for {item_id}")

    @property
    def items_called(self) -> list[str]:
        return [item for item, _ in self.calls]


class StubSink:
    """Records stored text; raises ``OSError`` for ids in ``fail_on``."""

    def __init__(self, fail_on: set[str] | None = None):
        self.fail_on = fail_on or set()
        self.stored: dict[str, str] = {}

    def store(self, item_id: str, text: str):
        if item_id in self.fail_on:
            raise OSError(f"disk full writing {item_id}")
        self.stored[item_id] = text
        return None


def stub_loader(item_id: str) -> WorkItem:
    return WorkItem(id=item_id, content=f"// source of {item_id}")


def stub_prompt(item: WorkItem) -> str:
    # Item id prefix lets StubClient know which item a prompt belongs to
    return f"{item.id}::{item.content}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def progress_path(tmp_path) -> Path:
    return tmp_path / "progress.json"


@pytest.fixture
def store(progress_path) -> ProgressStore:
    return ProgressStore(progress_path, clock=lambda: TODAY)


@pytest.fixture
def make_runner(store, tmp_path):
    """Factory building a BatchRunner around stubs; returns (runner, client, sink)."""

    def _make(
        client: StubClient | None = None,
        sink: StubSink | None = None,
        keys: tuple[str, ...] = ("key-one",),
        daily_cap: int = 100,
        max_item_failures: int = 0,
        item_loader=stub_loader,
        with_logs: bool = False,
        runner_store: ProgressStore | None = None,
    ):
        client = client or StubClient()
        sink = sink or StubSink()
        runner = BatchRunner(
            store=runner_store or store,
            rotator=CredentialRotator(keys),
            client=client,
            sink=sink,
            daily_cap=daily_cap,
            max_item_failures=max_item_failures,
            item_loader=item_loader,
            prompt_builder=stub_prompt,
            failed_items_log=tmp_path / "logs" / "failed_items.jsonl" if with_logs else None,
            attempt_log=tmp_path / "logs" / "attempt_log.csv" if with_logs else None,
        )
        return runner, client, sink

    return _make


@pytest.fixture
def outcomes():
    """Namespace of outcome constructors for readability in tests."""

    class _Outcomes:
        produced = staticmethod(lambda text="docs": Produced(text=text))
        quota = QuotaExhausted(detail="HTTP 429")
        empty = Empty(detail="no candidates in response")
        transient = TransientError(detail="connection reset", category="connection_error")

    return _Outcomes


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """
    Run from an empty directory with the batch variables unset.

    ``os.environ`` is swapped for a copy so values a ``.env`` file loads do
    not leak into later tests.
    """
    env = {k: v for k, v in os.environ.items()
           if k not in ("GOOGLE_API_KEYS", "DAILY_LIMIT", "GEMINI_MODEL", "MAX_ITEM_FAILURES")}
    monkeypatch.setattr(os, "environ", env)
    monkeypatch.chdir(tmp_path)
    return tmp_path
