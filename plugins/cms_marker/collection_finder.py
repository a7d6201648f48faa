"""
Content collections: map a page path to its markdown file and read its front matter.

A page `/<collection>/<slug>` is backed by `<content_dir>/<collection>/<slug>.md`
(or `.mdx`, or `<slug>/index.md`). Only single-line `key: value` front-matter
fields are understood; the body is one opaque editable unit.
"""

import asyncio
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import yaml

from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.models import (
    KIND_COLLECTION,
    CollectionInfo,
    FrontmatterField,
    MarkdownContent,
    SourceLocation,
)
from plugins.cms_marker.snippets import normalize_text

FRONTMATTER_FENCE = "---"
FIELD_RE = re.compile(r"^\s*(\w+):\s*(.+)$")
MARKDOWN_EXTENSIONS = (".md", ".mdx")


def decode_scalar(raw: str) -> str:
    """Decode a YAML scalar; non-string values keep their raw text, minus quotes."""
    raw = raw.strip()
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        value = None
    if isinstance(value, str):
        return value
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw


def find_frontmatter(lines: List[str]) -> Tuple[int, int]:
    """0-indexed (start, end) of the first two `---` lines, or (-1, -1)."""
    start = -1
    for i, line in enumerate(lines):
        if line.strip() == FRONTMATTER_FENCE:
            if start == -1:
                start = i
            else:
                return start, i
    return -1, -1


def parse_frontmatter_fields(lines: List[str], start: int, end: int) -> Dict[str, FrontmatterField]:
    fields: Dict[str, FrontmatterField] = {}
    for i in range(start + 1, end):
        match = FIELD_RE.match(lines[i])
        if not match:
            continue
        value = decode_scalar(match.group(2))
        if value:
            fields[match.group(1)] = FrontmatterField(value=value, line=i + 1)
    return fields


def markdown_candidates(collection_path: Path, slug: str) -> List[Path]:
    """Files that may back `slug`, in lookup order."""
    candidates = [collection_path / f"{slug}{ext}" for ext in MARKDOWN_EXTENSIONS]
    parts = slug.split("/")
    if len(parts) > 1:
        nested = collection_path.joinpath(*parts[:-1])
        candidates.extend(nested / f"{parts[-1]}{ext}" for ext in MARKDOWN_EXTENSIONS)
    candidates.extend(collection_path / slug / f"index{ext}" for ext in MARKDOWN_EXTENSIONS)
    return candidates


async def find_collection_source(
    context: BuildContext, page_path: str, content_dir: Optional[str] = None
) -> Optional[CollectionInfo]:
    parts = page_path.strip("/").split("/")
    if len(parts) < 2 or not parts[0]:
        return None

    name, slug = parts[0], "/".join(parts[1:])
    collection_path = context.project_root / (content_dir or context.options.content_dir) / name
    if not await asyncio.to_thread(collection_path.is_dir):
        return None

    for candidate in markdown_candidates(collection_path, slug):
        if await asyncio.to_thread(candidate.is_file):
            return CollectionInfo(name=name, slug=slug, file=context.cache.relative(candidate))
    return None


async def _read_lines(context: BuildContext, info: CollectionInfo) -> Optional[List[str]]:
    content = await context.cache.read_text_file(context.project_root / info.file)
    return None if content is None else content.split("\n")


async def parse_markdown_content(context: BuildContext, info: CollectionInfo) -> Optional[MarkdownContent]:
    lines = await _read_lines(context, info)
    if lines is None:
        return None

    start, end = find_frontmatter(lines)
    frontmatter = parse_frontmatter_fields(lines, start, end) if end > 0 else {}
    body_start = end + 1 if end > 0 else 0
    return MarkdownContent(
        frontmatter=frontmatter,
        body="\n".join(lines[body_start:]).strip(),
        body_start_line=body_start + 1,
        file=info.file,
        collection_name=info.name,
        collection_slug=info.slug,
    )


async def find_markdown_source_location(
    context: BuildContext, text: str, info: CollectionInfo
) -> Optional[SourceLocation]:
    """Match `text` against front-matter values only; body text never matches."""
    query = normalize_text(text)
    if not query:
        return None
    lines = await _read_lines(context, info)
    if lines is None:
        return None

    start, end = find_frontmatter(lines)
    if end <= 0:
        return None
    for key, field in parse_frontmatter_fields(lines, start, end).items():
        if normalize_text(field.value) == query:
            return SourceLocation(
                file=info.file,
                line=field.line,
                kind=KIND_COLLECTION,
                snippet=lines[field.line - 1],
                variable_name=key,
                collection_name=info.name,
                collection_slug=info.slug,
            )
    return None
