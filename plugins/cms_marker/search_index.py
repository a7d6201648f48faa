"""
Search index built once per build over the component, page and layout trees.

Three indices are produced from a single walk:
- text candidates: every tag opening in a template, with its normalized inner
  text and the declared variables its markup references;
- prop candidates: literal attribute values passed to capitalized components;
- image candidates: literal `src` values.

The scanners are plain functions over a parsed file so the slow path (no index)
walks the same candidates in the same order.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from plugins.cms_marker.cache import ParseCache, ParsedSourceFile, VariableDefinition
from plugins.cms_marker.models import KIND_COMPUTED
from plugins.cms_marker.snippets import (
    collect_section,
    extract_element_from_snippet,
    extract_image_snippet,
    extract_inner_html_from_snippet,
    extract_opening_tag,
    normalize_text,
    scan_tag_block,
    strip_html_tags,
)

log = logging.getLogger("mkdocs.plugins.cms_marker")

TAG_OPEN_RE = re.compile(r"<([a-zA-Z][\w.:-]*)(?=[\s>/]|$)")
COMPONENT_OPEN_RE = re.compile(r"<([A-Z]\w*)")
PROP_VALUE_RE = re.compile(r"(\w+)=[\"']([^\"']+)[\"']")
IMAGE_SRC_RE = re.compile(r"""\bsrc=(["'])(.+?)\1""")
EXPRESSION_RE = re.compile(r"\{([^{}]*)\}")

SECTION_LINES = 5


@dataclass
class TextCandidate:
    file: str
    line: int
    tag: str
    snippet: str
    section_text: str
    inner_text: Optional[str] = None
    variables: List[VariableDefinition] = field(default_factory=list)

    @property
    def text(self) -> str:
        """Inner text when the element closes in view, else the surrounding section."""
        return self.inner_text if self.inner_text is not None else self.section_text


@dataclass
class PropCandidate:
    file: str
    line: int
    component: str
    prop_name: str
    value: str
    snippet: str


@dataclass
class ImageCandidate:
    file: str
    line: int
    src: str
    snippet: str


def _references(expression: str, definition: VariableDefinition) -> bool:
    if definition.kind == KIND_COMPUTED:
        base, _, index = definition.name.partition("[")
        pattern = rf"(?<![\w$]){re.escape(base)}\s*\[\s*{re.escape(index.rstrip(']'))}\s*\]"
    else:
        pattern = rf"(?<![\w$]){re.escape(definition.name)}(?![\w$])"
    return re.search(pattern, expression) is not None


def referenced_variables(scope: str, declarations: List[VariableDefinition]) -> List[VariableDefinition]:
    """Declarations used inside a `{...}` expression of `scope`."""
    if not declarations or "{" not in scope:
        return []
    expressions = EXPRESSION_RE.findall(scope)
    return [d for d in declarations if any(_references(e, d) for e in expressions)]


def scan_text_candidates(parsed: ParsedSourceFile) -> List[TextCandidate]:
    candidates = []
    lines = parsed.lines
    for i in range(parsed.template_start, len(lines)):
        line = lines[i]
        for match in TAG_OPEN_RE.finditer(line):
            tag = match.group(1).lower()
            block, closed = scan_tag_block(lines, i, tag, column=match.start())
            # Snippets keep the full first line; text and variables come from this element only
            snippet = "\n".join([line] + block[1:]) if closed or len(block) <= 1 else line
            element = extract_element_from_snippet("\n".join(block), tag) if closed else ""
            section = collect_section(lines, i, SECTION_LINES)
            inner_text = None
            if closed:
                inner = extract_inner_html_from_snippet(element, tag)
                if inner is not None:
                    inner_text = normalize_text(strip_html_tags(inner))
            candidates.append(
                TextCandidate(
                    file=parsed.rel_path,
                    line=i + 1,
                    tag=tag,
                    snippet=snippet,
                    section_text=normalize_text(strip_html_tags(section)),
                    inner_text=inner_text,
                    variables=referenced_variables(
                        element if closed else section, parsed.declarations
                    ),
                )
            )
    return candidates


def scan_prop_candidates(parsed: ParsedSourceFile) -> List[PropCandidate]:
    candidates = []
    lines = parsed.lines
    for i in range(parsed.template_start, len(lines)):
        component = COMPONENT_OPEN_RE.search(lines[i])
        if not component:
            continue
        opening, end = extract_opening_tag(lines, i)
        snippet = "\n".join(line for line in lines[i : end + 1] if line)
        for prop_name, value in PROP_VALUE_RE.findall(opening):
            prop_line = i
            for k in range(i, end + 1):
                if prop_name in lines[k] and value in lines[k]:
                    prop_line = k
                    break
            candidates.append(
                PropCandidate(
                    file=parsed.rel_path,
                    line=prop_line + 1,
                    component=component.group(1),
                    prop_name=prop_name,
                    value=normalize_text(value),
                    snippet=snippet,
                )
            )
    return candidates


def image_tag_start(lines: List[str], src_line: int, lookback: int = 10) -> int:
    """The line opening the tag whose `src` sits on `src_line`."""
    for i in range(src_line, max(-1, src_line - lookback - 1), -1):
        if TAG_OPEN_RE.search(lines[i]):
            return i
    return src_line


def scan_image_candidates(parsed: ParsedSourceFile) -> List[ImageCandidate]:
    candidates = []
    lines = parsed.lines
    for i in range(parsed.template_start, len(lines)):
        for match in IMAGE_SRC_RE.finditer(lines[i]):
            candidates.append(
                ImageCandidate(
                    file=parsed.rel_path,
                    line=i + 1,
                    src=match.group(2),
                    snippet=extract_image_snippet(lines, image_tag_start(lines, i)),
                )
            )
    return candidates


class SearchIndex:
    """Text, prop and image indices for one build; `build()` runs at most once."""

    def __init__(
        self,
        cache: ParseCache,
        search_dirs: List[Path],
        source_extensions: List[str],
        image_extensions: List[str],
    ):
        self.cache = cache
        self.search_dirs = [Path(d) for d in search_dirs]
        self.source_extensions = list(source_extensions)
        self.image_extensions = list(image_extensions)
        self._lock = asyncio.Lock()
        self._reset()

    def _reset(self) -> None:
        self._text: Dict[str, List[TextCandidate]] = {}
        self._props: List[PropCandidate] = []
        self._images: List[ImageCandidate] = []
        self._built = False

    @property
    def built(self) -> bool:
        return self._built

    async def source_files(self, extensions: List[str]) -> List[Path]:
        """Files under the search dirs in precedence, then alphabetical, order."""
        files: List[Path] = []
        seen = set()
        for directory in self.search_dirs:
            for path in await self.cache.walk_files(directory, extensions):
                if path not in seen:
                    seen.add(path)
                    files.append(path)
        return files

    async def build(self) -> None:
        async with self._lock:
            if self._built:
                log.debug("[cms_marker] search index already built; skipping")
                return

            files = await self.source_files(self.image_extensions)
            parsed_files = await asyncio.gather(*(self.cache.get_parsed_file(f) for f in files))

            for path, parsed in zip(files, parsed_files):
                if parsed is None:
                    continue
                if path.name.endswith(tuple(self.source_extensions)):
                    for candidate in scan_text_candidates(parsed):
                        self._text.setdefault(candidate.tag, []).append(candidate)
                    self._props.extend(scan_prop_candidates(parsed))
                self._images.extend(scan_image_candidates(parsed))

            self._built = True
            log.debug(
                f"[cms_marker] indexed {len(files)} files: "
                f"{sum(len(v) for v in self._text.values())} tags, "
                f"{len(self._props)} props, {len(self._images)} images"
            )

    def entries_for_tag(self, tag: str) -> List[TextCandidate]:
        return self._text.get(tag.lower(), [])

    @property
    def prop_entries(self) -> List[PropCandidate]:
        return self._props

    @property
    def image_entries(self) -> List[ImageCandidate]:
        return self._images

    def __len__(self) -> int:
        return sum(len(v) for v in self._text.values()) + len(self._props) + len(self._images)

    def clear(self) -> None:
        """Drop all indices and the parse cache."""
        self._reset()
        self.cache.clear()
