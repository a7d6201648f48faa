"""
Build-scoped parse cache.

Template files are read and parsed once per build: raw lines plus the
declaration block (the leading `---` fenced script block) and the literal
values declared in it. Directory listings and markdown files are memoized
alongside. Nothing here is invalidated implicitly; call `clear()` between builds.
"""

import asyncio
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from plugins.cms_marker.models import KIND_COMPUTED, KIND_VARIABLE
from plugins.cms_marker.snippets import normalize_text

DECLARATION_FENCE = "---"

SINGLE_QUOTED_RE = re.compile(r"'((?:[^'\\]|\\.)*)'")
DOUBLE_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
BACKTICK_RE = re.compile(r"`([^`]*)`")
OBJECT_PROPERTY_RE = re.compile(r"(\w+)\s*:\s*['\"`]")
DECLARATION_RE = re.compile(r"(?:const|let|var)\s+(\w+)(?:\s*:\s*[\w\[\]<>|. ]+)?\s*=")
ARRAY_START_RE = re.compile(r"(?:const|let|var)\s+(\w+)(?:\s*:\s*[^=]+)?\s*=\s*\[\s*$")
INLINE_ARRAY_RE = re.compile(r"=\s*\[")


@dataclass
class VariableDefinition:
    name: str
    value: str
    line: int
    kind: str = KIND_VARIABLE
    # Raw source line of the declaration, used as the editable snippet
    source: str = ""


@dataclass
class ParsedSourceFile:
    path: Path
    rel_path: str
    content: str
    lines: List[str]
    # 0-indexed line of the closing fence, -1 without a declaration block
    declaration_end: int = -1
    declarations: List[VariableDefinition] = field(default_factory=list)

    @property
    def template_start(self) -> int:
        return self.declaration_end + 1 if self.declaration_end >= 0 else 0


def _quoted_literal(text: str) -> Optional[str]:
    """The first string literal on the line; template literals with `${}` don't count."""
    matches = [
        m for m in (p.search(text) for p in (SINGLE_QUOTED_RE, DOUBLE_QUOTED_RE, BACKTICK_RE)) if m
    ]
    if not matches:
        return None
    first = min(matches, key=lambda m: m.start())
    if first.re is BACKTICK_RE and "${" in first.group(1):
        return None
    return first.group(1)


def find_declaration_block(lines: List[str]) -> Tuple[int, int]:
    """Return (start, end) 0-indexed fence lines, or (-1, -1) without a block."""
    start = -1
    for i, line in enumerate(lines):
        stripped = line.strip()
        if start == -1:
            if not stripped:
                continue
            if stripped != DECLARATION_FENCE:
                return -1, -1
            start = i
        elif stripped == DECLARATION_FENCE:
            return start, i
    return -1, -1


def _bracket_delta(text: str) -> int:
    return sum(text.count(c) for c in "[{(") - sum(text.count(c) for c in "]})")


def extract_declarations(lines: List[str], start: int, end: int) -> List[VariableDefinition]:
    """
    Extract literal string values declared between the fences.

    Recognized shapes: `const name = 'value'`, object properties `key: 'value'`
    and one-per-line string items of an array literal (`items[0]`, ...).
    """
    definitions: List[VariableDefinition] = []
    array_name: Optional[str] = None
    array_depth = 0
    array_index = 0

    def add(name: str, literal: str, i: int, kind: str = KIND_VARIABLE) -> None:
        value = normalize_text(literal)
        if value:
            definitions.append(VariableDefinition(name, value, i + 1, kind, lines[i]))

    for i in range(start + 1, end):
        trimmed = lines[i].strip()

        if array_name is not None:
            at_item_start = array_depth == 1 and trimmed[:1] in ("'", '"', "`", "{")
            literal = _quoted_literal(trimmed)
            prop = OBJECT_PROPERTY_RE.search(trimmed)
            if literal is not None and prop:
                add(prop.group(1), literal, i)
            elif literal is not None and at_item_start:
                add(f"{array_name}[{array_index}]", literal, i, KIND_COMPUTED)
            if at_item_start:
                array_index += 1
            array_depth += _bracket_delta(trimmed)
            if array_depth <= 0:
                array_name = None
            continue

        array_start = ARRAY_START_RE.search(trimmed)
        if array_start:
            array_name = array_start.group(1)
            array_depth = 1
            array_index = 0
            continue

        literal = _quoted_literal(trimmed)
        if literal is None:
            continue
        prop = OBJECT_PROPERTY_RE.search(trimmed)
        if prop:
            add(prop.group(1), literal, i)
            continue
        declared = DECLARATION_RE.search(trimmed)
        if declared and not INLINE_ARRAY_RE.search(trimmed):
            add(declared.group(1), literal, i)
    return definitions


def parse_source_text(path: Path, rel_path: str, content: str) -> ParsedSourceFile:
    lines = content.split("\n")
    start, end = find_declaration_block(lines)
    declarations = extract_declarations(lines, start, end) if end > 0 else []
    return ParsedSourceFile(
        path=path,
        rel_path=rel_path,
        content=content,
        lines=lines,
        declaration_end=end,
        declarations=declarations,
    )


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _scan_directory(path: Path) -> List[Tuple[str, bool]]:
    with os.scandir(path) as it:
        listing = [(entry.name, entry.is_dir()) for entry in it]
    return sorted(listing)


class ParseCache:
    def __init__(self, project_root: Path):
        self.project_root = Path(project_root)
        self._parsed: Dict[Path, Optional[ParsedSourceFile]] = {}
        self._directories: Dict[Path, List[Tuple[str, bool]]] = {}
        self._text_files: Dict[Path, Optional[str]] = {}

    def relative(self, path: Path) -> str:
        try:
            return Path(path).relative_to(self.project_root).as_posix()
        except ValueError:
            return Path(path).as_posix()

    async def read_text_file(self, path: Path) -> Optional[str]:
        """Read a text file once per build; unreadable files yield None."""
        path = Path(path)
        if path not in self._text_files:
            try:
                self._text_files[path] = await asyncio.to_thread(_read_text, path)
            except (OSError, UnicodeDecodeError):
                self._text_files[path] = None
        return self._text_files[path]

    async def get_parsed_file(self, path: Path) -> Optional[ParsedSourceFile]:
        path = Path(path)
        if path not in self._parsed:
            content = await self.read_text_file(path)
            self._parsed[path] = (
                None
                if content is None
                else parse_source_text(path, self.relative(path), content)
            )
        return self._parsed[path]

    async def list_directory(self, path: Path) -> List[Tuple[str, bool]]:
        """Sorted `(name, is_dir)` pairs; a missing directory is an empty listing."""
        path = Path(path)
        if path not in self._directories:
            try:
                self._directories[path] = await asyncio.to_thread(_scan_directory, path)
            except OSError:
                self._directories[path] = []
        return self._directories[path]

    async def walk_files(self, directory: Path, extensions: List[str]) -> List[Path]:
        """Recursive, depth-first, alphabetical listing of files with `extensions`."""
        found: List[Path] = []
        for name, is_dir in await self.list_directory(directory):
            full = Path(directory) / name
            if is_dir:
                found.extend(await self.walk_files(full, extensions))
            elif name.endswith(tuple(extensions)):
                found.append(full)
        return found

    def clear(self) -> None:
        self._parsed.clear()
        self._directories.clear()
        self._text_files.clear()
