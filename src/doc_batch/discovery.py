"""
Source discovery and structural summaries.

Discovery lists candidate files under a root in a stable, sorted order.  The
structural summary (top-level functions, classes, imports, exports) is an
optional hint folded into the prompt: Python files are read with ``ast``,
JavaScript/TypeScript files with tree-sitter.  A file that cannot be
summarized still gets documented, just without the hint.
"""

from __future__ import annotations

import ast
import fnmatch
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import tree_sitter_javascript as tsjs
import tree_sitter_typescript as tsts
from tree_sitter import Language, Node, Parser

from .config import DEFAULT_IGNORE, DEFAULT_PATTERNS


@dataclass
class FileStructure:
    """Top-level outline of one source file."""

    file_path: str
    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.functions or self.classes or self.imports or self.exports)


# ---------------------------------------------------------------------------
# Candidate listing
# ---------------------------------------------------------------------------

def _is_ignored(rel_path: str, ignore: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(rel_path, pattern) for pattern in ignore)


def list_candidates(
    root: Path,
    patterns: Iterable[str] = DEFAULT_PATTERNS,
    ignore: Iterable[str] = DEFAULT_IGNORE,
    base: Optional[Path] = None,
) -> list[str]:
    """
    Enumerate candidate item ids under ``root``.

    Ids are POSIX paths relative to ``base`` (the working directory by
    default) so they stay stable when the checkout moves.  Progress files
    holding absolute ids are relativized on load by :class:`ProgressStore`.
    Ignore patterns are matched against the path relative to ``root``.

    Args:
        root: Directory to search.
        patterns: Glob patterns relative to ``root`` (e.g. ``**/*.ts``).
        ignore: fnmatch patterns of paths to leave out.
        base: Directory ids are made relative to.

    Returns:
        Sorted, de-duplicated list of item ids.

    Raises:
        NotADirectoryError: ``root`` is not an existing directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise NotADirectoryError(f"Source root not found: {root}")
    base = (base or Path.cwd()).resolve()
    ignore = tuple(ignore)

    found: set[str] = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            if _is_ignored(path.relative_to(root).as_posix(), ignore):
                continue
            resolved = path.resolve()
            try:
                found.add(resolved.relative_to(base).as_posix())
            except ValueError:
                found.add(resolved.as_posix())
    return sorted(found)


# ---------------------------------------------------------------------------
# Python summaries
# ---------------------------------------------------------------------------

def _summarize_python(source: str, file_path: str) -> FileStructure:
    tree = ast.parse(source, filename=file_path)
    info = FileStructure(file_path=file_path)

    for node in tree.body:
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            info.functions.append(node.name)
        elif isinstance(node, ast.ClassDef):
            info.classes.append(node.name)
        elif isinstance(node, ast.Import):
            info.imports.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            info.imports.append("." * node.level + (node.module or ""))
        elif isinstance(node, ast.Assign):
            targets = [t.id for t in node.targets if isinstance(t, ast.Name)]
            if "__all__" in targets and isinstance(node.value, (ast.List, ast.Tuple)):
                info.exports.extend(
                    elt.value for elt in node.value.elts
                    if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
                )
    return info


# ---------------------------------------------------------------------------
# JavaScript / TypeScript summaries
# ---------------------------------------------------------------------------

_LANGUAGES = {
    ".js": Language(tsjs.language()),
    ".jsx": Language(tsjs.language()),
    ".mjs": Language(tsjs.language()),
    ".cjs": Language(tsjs.language()),
    ".ts": Language(tsts.language_typescript()),
    ".mts": Language(tsts.language_typescript()),
    ".cts": Language(tsts.language_typescript()),
    ".tsx": Language(tsts.language_tsx()),
}

_FUNCTION_NODES = {"function_declaration", "generator_function_declaration"}
_CLASS_NODES = {"class_declaration", "abstract_class_declaration"}
_EXPORTABLE_NODES = _FUNCTION_NODES | _CLASS_NODES | {
    "lexical_declaration",
    "variable_declaration",
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
}


def _text(node: Optional[Node]) -> str:
    return node.text.decode("utf-8") if node else ""


def _declared_names(node: Node) -> list[str]:
    """Names bound by a top-level declaration node."""
    if node.type in ("lexical_declaration", "variable_declaration"):
        return [
            _text(child.child_by_field_name("name"))
            for child in node.named_children
            if child.type == "variable_declarator"
        ]
    name = node.child_by_field_name("name")
    return [_text(name)] if name else []


def _record_declaration(node: Node, info: FileStructure) -> None:
    if node.type in _FUNCTION_NODES:
        info.functions.extend(_declared_names(node))
    elif node.type in _CLASS_NODES:
        info.classes.extend(_declared_names(node))


def _summarize_script(source: bytes, file_path: str, language: Language) -> FileStructure:
    parser = Parser()
    parser.language = language
    tree = parser.parse(source)
    info = FileStructure(file_path=file_path)

    for node in tree.root_node.named_children:
        if node.type == "import_statement":
            module = node.child_by_field_name("source")
            if module is not None:
                info.imports.append(_text(module).strip("'\"`"))
        elif node.type == "export_statement":
            declaration = node.child_by_field_name("declaration")
            if declaration is not None and declaration.type in _EXPORTABLE_NODES:
                _record_declaration(declaration, info)
                info.exports.extend(_declared_names(declaration))
            elif any(child.type == "default" for child in node.children):
                info.exports.append("default")
            for child in node.named_children:
                if child.type == "export_clause":
                    for spec in child.named_children:
                        alias = spec.child_by_field_name("alias")
                        info.exports.append(_text(alias or spec.child_by_field_name("name")))
        else:
            _record_declaration(node, info)
    return info


def summarize_file(path: Path, item_id: Optional[str] = None) -> Optional[FileStructure]:
    """
    Build a :class:`FileStructure` for ``path``.

    Returns ``None`` for unsupported extensions or files that cannot be read
    or parsed; the caller documents the file without a summary.
    """
    path = Path(path)
    item_id = item_id or path.as_posix()
    suffix = path.suffix.lower()

    try:
        if suffix == ".py":
            return _summarize_python(path.read_text(encoding="utf-8"), item_id)
        if suffix in _LANGUAGES:
            return _summarize_script(path.read_bytes(), item_id, _LANGUAGES[suffix])
    except (OSError, UnicodeDecodeError, SyntaxError, ValueError, RecursionError) as exc:
        print(f"  WARNING: could not summarize {item_id}: {exc}")
    return None


def summarize_items(item_ids: Iterable[str], base: Optional[Path] = None) -> dict[str, FileStructure]:
    """Summaries keyed by item id, in the given order; unsummarizable items are left out."""
    base = base or Path.cwd()
    summaries: dict[str, FileStructure] = {}
    for item_id in item_ids:
        info = summarize_file(base / item_id, item_id)
        if info is not None:
            summaries[item_id] = info
    return summaries


def structure_manifest(summaries: dict[str, FileStructure]) -> list[dict]:
    return [asdict(info) for info in summaries.values()]


def build_structure_manifest(item_ids: Iterable[str], base: Optional[Path] = None) -> list[dict]:
    """Summaries for every summarizable item, in the given order."""
    return structure_manifest(summarize_items(item_ids, base))


def write_json(data, path: Path) -> None:
    """Write ``data`` as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
