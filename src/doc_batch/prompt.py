"""
Work items and prompt construction.

``load_work_item`` is the only function here that touches the disk; prompt
building is a pure transformation so the same file content always yields
the same prompt text.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .discovery import FileStructure, summarize_file


class ItemReadError(OSError):
    """A work item's source text could not be read."""


@dataclass(frozen=True)
class WorkItem:
    """One source file to document; built per attempt, never persisted."""

    id: str
    content: str
    structure: Optional[FileStructure] = None


# Language label used in the instruction, keyed by file suffix.
LANGUAGE_NAMES: dict[str, str] = {
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".mts": "TypeScript",
    ".cts": "TypeScript",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".mjs": "JavaScript",
    ".cjs": "JavaScript",
    ".py": "Python",
}

PROMPT_TEMPLATE = """\
You are a {language} expert and technical writer. Read the code below and produce a detailed, easy-to-read explanation.
- Purpose of this file
- Simplify complex logic
- Explain each line of code
{structure}
File: {file_path}

Code:
{code}"""


def language_for(item_id: str) -> str:
    return LANGUAGE_NAMES.get(Path(item_id).suffix.lower(), "software")


def format_structure(structure: Optional[FileStructure]) -> str:
    """Render a structural summary as prompt lines; empty when there is none."""
    if structure is None or structure.is_empty():
        return ""
    lines = ["", "Structure of this file:"]
    for label, names in (
        ("Functions", structure.functions),
        ("Classes", structure.classes),
        ("Imports", structure.imports),
        ("Exports", structure.exports),
    ):
        if names:
            lines.append(f"- {label}: {', '.join(names)}")
    return "\n".join(lines) + "\n"


def build_prompt(item: WorkItem) -> str:
    """
    Build the generation prompt for one work item.

    Deterministic and side-effect free: an instruction, the optional
    structural summary, then the verbatim source text.
    """
    return PROMPT_TEMPLATE.format(
        language=language_for(item.id),
        structure=format_structure(item.structure),
        file_path=item.id,
        code=item.content,
    )


def load_work_item(
    item_id: str,
    base: Optional[Path] = None,
    summarize: bool = True,
    structure: Optional[FileStructure] = None,
) -> WorkItem:
    """
    Read one candidate into a :class:`WorkItem`.

    Args:
        item_id: Candidate id (path relative to ``base``, or absolute).
        base: Directory relative ids resolve against (cwd by default).
        summarize: Attach a structural summary when one can be built.
        structure: Summary already built for this item; used as is.

    Raises:
        ItemReadError: The file is missing, unreadable, or not UTF-8.
    """
    path = (base or Path.cwd()) / item_id
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ItemReadError(f"Cannot read {item_id}: {exc}") from exc

    if structure is None and summarize:
        structure = summarize_file(path, item_id)
    return WorkItem(id=item_id, content=content, structure=structure)
