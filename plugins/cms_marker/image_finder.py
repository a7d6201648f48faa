"""Locate images by their literal `src` value. First match in index order wins."""

from typing import Iterable, Optional

from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.models import KIND_IMAGE, SourceLocation
from plugins.cms_marker.search_index import ImageCandidate, scan_image_candidates


def _first_with_src(candidates: Iterable[ImageCandidate], src: str) -> Optional[SourceLocation]:
    for candidate in candidates:
        if candidate.src == src:
            return SourceLocation(
                file=candidate.file,
                line=candidate.line,
                kind=KIND_IMAGE,
                snippet=candidate.snippet,
            )
    return None


async def find_image_source_location(context: BuildContext, src: str) -> Optional[SourceLocation]:
    if not src:
        return None

    index = context.index
    if index.built:
        return _first_with_src(index.image_entries, src)

    for path in await index.source_files(index.image_extensions):
        parsed = await context.cache.get_parsed_file(path)
        if parsed is None:
            continue
        location = _first_with_src(scan_image_candidates(parsed), src)
        if location is not None:
            return location
    return None
