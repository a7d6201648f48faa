"""
Text normalization and source snippet extraction helpers.

All line arguments are 0-indexed positions into a list of lines; every value
handed back to callers as a *line number* is 1-indexed.
"""

import re
from typing import List, Optional, Tuple

# Escapes and entities undone before comparing rendered text with source text
_UNESCAPES = (
    ("\\'", "'"),
    ('\\"', '"'),
    ("&#39;", "'"),
    ("&quot;", '"'),
    ("&apos;", "'"),
    ("&amp;", "&"),
)

WHITESPACE_RE = re.compile(r"\s+")
HTML_TAG_RE = re.compile(r"<[^>]*>")

MARKDOWN_PATTERNS = (
    (re.compile(r"^#+\s+"), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"\*([^*]+)\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"_([^_]+)_"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"^\s*[-*+]\s+"), ""),
    (re.compile(r"^\s*\d+\.\s+"), ""),
)

TAG_SNIPPET_MAX_LINES = 20
IMAGE_SNIPPET_MAX_LINES = 10


def normalize_text(text: str) -> str:
    """Trim, unescape quotes/entities, collapse whitespace and lower-case."""
    if not text:
        return ""
    value = text.strip()
    for needle, replacement in _UNESCAPES:
        value = value.replace(needle, replacement)
    return WHITESPACE_RE.sub(" ", value).lower()


def strip_html_tags(text: str) -> str:
    return WHITESPACE_RE.sub(" ", HTML_TAG_RE.sub(" ", text)).strip()


def strip_markdown_syntax(text: str) -> str:
    """Remove inline markdown markers so a body line can be compared with rendered text."""
    for pattern, replacement in MARKDOWN_PATTERNS:
        text = pattern.sub(replacement, text)
    return text.strip()


def collect_section(lines: List[str], start: int, num_lines: int = 5) -> str:
    """Join `num_lines` lines from `start` into a single whitespace-collapsed string."""
    parts = []
    for line in lines[start : start + num_lines]:
        parts.append(WHITESPACE_RE.sub(" ", line.strip()))
    return " " + " ".join(parts)


def _open_tag_re(tag: str) -> "re.Pattern[str]":
    return re.compile(rf"<{re.escape(tag)}(?:[\s>]|$)", re.IGNORECASE)


def _self_close_re(tag: str) -> "re.Pattern[str]":
    return re.compile(rf"<{re.escape(tag)}[^>]*/>", re.IGNORECASE)


def _close_tag_re(tag: str) -> "re.Pattern[str]":
    return re.compile(rf"</{re.escape(tag)}\s*>", re.IGNORECASE)


def scan_tag_block(
    lines: List[str],
    start: int,
    tag: str,
    max_lines: int = TAG_SNIPPET_MAX_LINES,
    column: int = 0,
) -> Tuple[List[str], bool]:
    """
    Collect lines from `start` until the element opened there is closed.

    The first line is read from `column` on, so a later opening of the same
    tag on a line is scanned without the siblings before it.

    Tracks opening, self-closing and closing tag counts for `tag`. Returns the
    collected lines and whether the element was seen to close within
    `max_lines` lines.
    """
    open_re, self_close_re, close_re = _open_tag_re(tag), _self_close_re(tag), _close_tag_re(tag)
    block: List[str] = []
    depth = 0
    for offset, line in enumerate(lines[start : start + max_lines]):
        if offset == 0:
            line = line[column:]
        if not line:
            continue
        block.append(line)
        opened = len(open_re.findall(line))
        self_closed = len(self_close_re.findall(line))
        closed = len(close_re.findall(line))
        depth += opened - self_closed - closed
        if self_closed > 0 or (depth <= 0 and (closed > 0 or opened > 0)):
            return block, True
    return block, False


def extract_complete_tag_snippet(
    lines: List[str], start: int, tag: str, max_lines: int = TAG_SNIPPET_MAX_LINES
) -> str:
    """
    Extract the full, indented source of the element opened at (or just above) `start`.

    When `start` points inside the element, the opening tag is searched up to
    `max_lines` lines backwards first. If the element does not close within
    `max_lines` lines only the first line is returned.
    """
    open_re = _open_tag_re(tag)
    actual_start = start
    if start < len(lines) and not open_re.search(lines[start]):
        for i in range(start - 1, max(-1, start - max_lines - 1), -1):
            if lines[i] and open_re.search(lines[i]):
                actual_start = i
                break

    block, closed = scan_tag_block(lines, actual_start, tag, max_lines)
    if not closed and len(block) > 1:
        return block[0]
    return "\n".join(block)


def extract_inner_html_from_snippet(snippet: str, tag: str) -> Optional[str]:
    """Given `<p class="x">content</p>` return `content`, or None if it cannot be isolated."""
    open_match = re.search(rf"<{re.escape(tag)}(?:\s[^>]*)?>", snippet, re.IGNORECASE)
    if not open_match:
        return None
    close_match = _close_tag_re(tag).search(snippet, open_match.end())
    if not close_match:
        return None
    if close_match.start() > open_match.end():
        return snippet[open_match.end() : close_match.start()]
    return None


def extract_element_from_snippet(snippet: str, tag: str) -> str:
    """The first `<tag ...>...</tag>` of `snippet`, or the whole snippet when it does not close."""
    open_match = re.search(rf"<{re.escape(tag)}(?:\s[^>]*)?>", snippet, re.IGNORECASE)
    if not open_match:
        return snippet
    close_match = _close_tag_re(tag).search(snippet, open_match.end())
    if not close_match:
        return snippet
    return snippet[open_match.start() : close_match.end()]


def extract_image_snippet(
    lines: List[str], start: int, max_lines: int = IMAGE_SNIPPET_MAX_LINES
) -> str:
    """
    Extract the `<img>` tag holding line `start`.

    Only a line containing `/>`, or one containing both `<img` and `>`, ends the
    snippet; attributes split over unusual line breaks can end it early.
    """
    block: List[str] = []
    closed = False
    for line in lines[start : start + max_lines]:
        if not line:
            continue
        block.append(line)
        if "/>" in line or ("<img" in line and ">" in line):
            closed = True
            break
    if not closed and len(block) > 1:
        return block[0]
    return "\n".join(block)


def extract_opening_tag(
    lines: List[str], start: int, max_lines: int = 10
) -> Tuple[str, int]:
    """
    Collect the opening tag starting on line `start` (up to the first `>`).

    Returns the tag text (lines joined with spaces) and the 0-indexed last line
    that was read.
    """
    opening = ""
    end = start
    for j in range(start, min(start + max_lines, len(lines))):
        opening += " " + lines[j]
        end = j
        if "/>" in lines[j]:
            break
        if ">" in lines[j]:
            idx = opening.find(">")
            if idx != -1:
                opening = opening[: idx + 1]
            break
    return opening, end
