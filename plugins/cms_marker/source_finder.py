"""
Resolve rendered text back to the template line that authored it.

Lookups go through the build's search index when it has been built and fall
back to walking the source directories otherwise; both paths feed the same
candidates, in the same order, to the matcher cascade.
"""

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.hashing import generate_source_hash
from plugins.cms_marker.image_finder import find_image_source_location
from plugins.cms_marker.matchers import DEFAULT_MATCHERS, Matcher, MatchResult, best_match
from plugins.cms_marker.models import (
    KIND_IMAGE,
    KIND_PROP,
    KIND_STATIC,
    AttributeSource,
    ColorClasses,
    ManifestEntry,
    SourceLocation,
)
from plugins.cms_marker.search_index import (
    PropCandidate,
    TextCandidate,
    scan_prop_candidates,
    scan_text_candidates,
)
from plugins.cms_marker.snippets import (
    extract_complete_tag_snippet,
    extract_inner_html_from_snippet,
    extract_opening_tag,
    normalize_text,
)


def location_from_match(match: MatchResult) -> SourceLocation:
    """Point variable matches at their declaration, static ones at the opening tag."""
    candidate = match.candidate
    if match.variable is not None:
        definition = match.variable
        return SourceLocation(
            file=candidate.file,
            line=definition.line,
            kind=definition.kind,
            snippet=definition.source,
            variable_name=definition.name,
            definition_line=definition.line,
        )
    return SourceLocation(
        file=candidate.file,
        line=candidate.line,
        kind=KIND_STATIC,
        snippet=candidate.snippet,
    )


def find_prop_location(query: str, candidates: Iterable[PropCandidate]) -> Optional[SourceLocation]:
    for candidate in candidates:
        if candidate.value == query:
            return SourceLocation(
                file=candidate.file,
                line=candidate.line,
                kind=KIND_PROP,
                snippet=candidate.snippet,
                variable_name=candidate.prop_name,
            )
    return None


def update_attribute_sources(
    lines: List[str],
    start: int,
    attributes: Dict[str, AttributeSource],
    file: str,
) -> Dict[str, AttributeSource]:
    """Attach the line of each attribute inside the opening tag starting at `start`."""
    _, end = extract_opening_tag(lines, start)
    for name, attribute in attributes.items():
        attribute.source_path = file
        for k in range(start, end + 1):
            if f"{name}=" in lines[k]:
                attribute.source_line = k + 1
                break
    return attributes


def update_color_class_sources(
    lines: List[str],
    start: int,
    color_classes: ColorClasses,
    file: str,
) -> ColorClasses:
    _, end = extract_opening_tag(lines, start)
    color_classes.source_path = file
    for k in range(start, end + 1):
        if any(cls in lines[k].split() or f'"{cls}' in lines[k] for cls in color_classes.all_color_classes):
            color_classes.source_line = k + 1
            break
    return color_classes


class SourceFinder:
    def __init__(self, context: BuildContext, matchers: Sequence[Matcher] = DEFAULT_MATCHERS):
        self.context = context
        self.matchers = list(matchers)

    async def parsed_sources(self):
        index = self.context.index
        files = await index.source_files(index.source_extensions)
        parsed = await asyncio.gather(*(self.context.cache.get_parsed_file(f) for f in files))
        return [p for p in parsed if p is not None]

    async def text_candidates(self, tag: str) -> List[TextCandidate]:
        index = self.context.index
        if index.built:
            return index.entries_for_tag(tag)
        tag = tag.lower()
        return [
            candidate
            for parsed in await self.parsed_sources()
            for candidate in scan_text_candidates(parsed)
            if candidate.tag == tag
        ]

    async def prop_candidates(self) -> List[PropCandidate]:
        index = self.context.index
        if index.built:
            return index.prop_entries
        return [c for parsed in await self.parsed_sources() for c in scan_prop_candidates(parsed)]

    async def find_source_location(self, text: str, tag: str) -> Optional[SourceLocation]:
        query = normalize_text(text)
        if not query:
            return None

        match = best_match(query, await self.text_candidates(tag), self.matchers)
        if match is not None:
            return location_from_match(match)

        return find_prop_location(query, await self.prop_candidates())

    async def extract_source_inner_html(self, file: str, line: int, tag: str) -> Optional[str]:
        """Inner HTML of the element at `file:line`, read from the source template."""
        parsed = await self.context.cache.get_parsed_file(self.context.project_root / file)
        if parsed is None or not 0 < line <= len(parsed.lines):
            return None
        snippet = extract_complete_tag_snippet(parsed.lines, line - 1, tag)
        return extract_inner_html_from_snippet(snippet, tag)

    async def update_entry_sources(self, entry: ManifestEntry, location: SourceLocation) -> None:
        """Locate editable attributes and color classes of a static match."""
        if location.kind != KIND_STATIC or not (entry.attributes or entry.color_classes):
            return
        parsed = await self.context.cache.get_parsed_file(self.context.project_root / location.file)
        if parsed is None:
            return
        start = location.line - 1
        if entry.attributes:
            update_attribute_sources(parsed.lines, start, entry.attributes, location.file)
        if entry.color_classes:
            update_color_class_sources(parsed.lines, start, entry.color_classes, location.file)

    async def enhance_entries_with_source_snippets(
        self, entries: Dict[str, ManifestEntry]
    ) -> Dict[str, ManifestEntry]:
        """
        Fill snippets and source hashes for entries resolved elsewhere.

        Images are re-resolved by their literal src; other entries get the inner
        HTML of the source element as snippet when they have none yet.
        """

        async def enhance(entry: ManifestEntry) -> None:
            if entry.image_metadata and entry.image_metadata.src:
                location = await find_image_source_location(self.context, entry.image_metadata.src)
                if location is not None:
                    entry.apply_location(location)
                    entry.source_type = KIND_IMAGE
                    entry.source_hash = generate_source_hash(location.snippet or entry.image_metadata.src)
                return
            if entry.source_snippet or not entry.source_path or not entry.source_line:
                if entry.source_snippet:
                    entry.source_hash = generate_source_hash(entry.source_snippet)
                return
            snippet = await self.extract_source_inner_html(entry.source_path, entry.source_line, entry.tag)
            if snippet:
                entry.source_snippet = snippet
                entry.source_hash = generate_source_hash(snippet)

        await asyncio.gather(*(enhance(e) for e in entries.values()))
        return entries
