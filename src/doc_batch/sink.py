"""Documentation sink: mirrors each source path under the docs directory."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path, PurePosixPath

from .config import DOCS_DIR


class DocsSink:
    """
    Writes generated text to ``<docs_dir>/<item id>.md``.

    ``apps/web/main.ts`` becomes ``docs/apps/web/main.ts.md``.  Writing the
    same item twice overwrites the file, so a retried item is idempotent.
    """

    def __init__(self, docs_dir: Path = DOCS_DIR) -> None:
        self.docs_dir = Path(docs_dir)

    def doc_path(self, item_id: str) -> Path:
        rel = PurePosixPath(item_id)
        # Absolute ids (files outside the working directory) are re-rooted.
        parts = [p for p in rel.parts if p not in ("/", "..")]
        return self.docs_dir.joinpath(*parts).with_name(rel.name + ".md")

    def store(self, item_id: str, text: str) -> Path:
        """
        Persist ``text`` for ``item_id`` and return the written path.

        Raises:
            OSError: The file could not be written.  The item must then not
                     be marked completed.
        """
        target = self.doc_path(item_id)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", dir=target.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return target
