"""
Unit tests for src/doc_batch/discovery.py.

Covers candidate listing (ordering, ignore patterns, id format) and
structural summaries for Python and TypeScript sources.
"""

from __future__ import annotations

import json

import pytest

from src.doc_batch.discovery import (
    build_structure_manifest,
    list_candidates,
    summarize_file,
    write_json,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write(path, text: str = "") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


PY_SOURCE = '''\
"""Example module."""
import os
from pathlib import Path
from . import sibling

__all__ = ["load", "Loader"]


def load(path):
    return Path(path).read_text()


async def fetch():
    pass


class Loader:
    def method(self):
        pass
'''

TS_SOURCE = '''\
import { Injectable } from "@angular/core";
import * as path from './path';

export function main(): void {}

function helper() {}

class Internal {}

export class Service {}

export const handler = () => 1;
'''


# ---------------------------------------------------------------------------
# list_candidates
# ---------------------------------------------------------------------------

class TestListCandidates:

    def test_sorted_relative_posix_ids(self, tmp_path):
        _write(tmp_path / "apps" / "z.ts")
        _write(tmp_path / "apps" / "a" / "b.ts")
        _write(tmp_path / "apps" / "a.ts")

        found = list_candidates(tmp_path / "apps", ["**/*.ts"], [], base=tmp_path)

        assert found == ["apps/a.ts", "apps/a/b.ts", "apps/z.ts"]

    def test_ignore_patterns_applied(self, tmp_path):
        _write(tmp_path / "apps" / "main.ts")
        _write(tmp_path / "apps" / "node_modules" / "lib" / "index.ts")
        _write(tmp_path / "apps" / "web" / "node_modules" / "x.ts")

        found = list_candidates(
            tmp_path / "apps", ["**/*.ts"], ["node_modules/**", "**/node_modules/**"], base=tmp_path
        )

        assert found == ["apps/main.ts"]

    def test_multiple_patterns_deduplicated(self, tmp_path):
        _write(tmp_path / "src" / "a.ts")
        _write(tmp_path / "src" / "b.js")

        found = list_candidates(tmp_path / "src", ["**/*.ts", "**/*.js", "*.ts"], [], base=tmp_path)

        assert found == ["src/a.ts", "src/b.js"]

    def test_directories_matching_pattern_skipped(self, tmp_path):
        (tmp_path / "apps" / "weird.ts").mkdir(parents=True)
        _write(tmp_path / "apps" / "real.ts")
        assert list_candidates(tmp_path / "apps", ["**/*.ts"], [], base=tmp_path) == ["apps/real.ts"]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(NotADirectoryError):
            list_candidates(tmp_path / "absent", ["**/*.ts"], [], base=tmp_path)


# ---------------------------------------------------------------------------
# summaries
# ---------------------------------------------------------------------------

class TestSummarizePython:

    def test_top_level_outline(self, tmp_path):
        path = tmp_path / "mod.py"
        _write(path, PY_SOURCE)

        info = summarize_file(path, "mod.py")

        assert info.file_path == "mod.py"
        assert info.functions == ["load", "fetch"]
        assert info.classes == ["Loader"]
        assert info.imports == ["os", "pathlib", "."]
        assert info.exports == ["load", "Loader"]

    def test_syntax_error_gives_none(self, tmp_path):
        path = tmp_path / "broken.py"
        _write(path, "def broken(:\n")
        assert summarize_file(path) is None

    def test_deeply_nested_source_gives_none(self, tmp_path, monkeypatch):
        path = tmp_path / "deep.py"
        _write(path, "x = 1\n")

        def too_deep(*args, **kwargs):
            raise RecursionError("maximum recursion depth exceeded")

        monkeypatch.setattr("src.doc_batch.discovery.ast.parse", too_deep)
        assert summarize_file(path) is None


class TestSummarizeTypeScript:

    def test_top_level_outline(self, tmp_path):
        path = tmp_path / "service.ts"
        _write(path, TS_SOURCE)

        info = summarize_file(path, "service.ts")

        assert info.imports == ["@angular/core", "./path"]
        assert info.functions == ["main", "helper"]
        assert info.classes == ["Internal", "Service"]
        assert info.exports == ["main", "Service", "handler"]

    def test_javascript_file(self, tmp_path):
        path = tmp_path / "util.js"
        _write(path, "const fs = require('fs');\nfunction read() {}\nclass Cache {}\n")

        info = summarize_file(path)

        assert info.functions == ["read"]
        assert info.classes == ["Cache"]


class TestSummarizeOther:

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "notes.md"
        _write(path, "# notes")
        assert summarize_file(path) is None

    def test_missing_file(self, tmp_path):
        assert summarize_file(tmp_path / "gone.py") is None


# ---------------------------------------------------------------------------
# manifest
# ---------------------------------------------------------------------------

class TestStructureManifest:

    def test_manifest_written_in_candidate_order(self, tmp_path):
        _write(tmp_path / "b.py", "def b():\n    pass\n")
        _write(tmp_path / "a.py", "class A:\n    pass\n")
        _write(tmp_path / "c.md", "skip")

        manifest = build_structure_manifest(["b.py", "a.py", "c.md"], base=tmp_path)
        write_json(manifest, tmp_path / "out" / "structure.json")

        data = json.loads((tmp_path / "out" / "structure.json").read_text())
        assert [entry["file_path"] for entry in data] == ["b.py", "a.py"]
        assert data[0]["functions"] == ["b"]
        assert data[1]["classes"] == ["A"]
