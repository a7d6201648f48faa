import hashlib
from collections import defaultdict
from typing import Dict, List, Mapping, Optional

from plugins.cms_marker.models import ManifestEntry, SourceContext


def sha256(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def short_hash(content: str) -> str:
    """First 12 hex characters of the SHA-256 digest."""
    return sha256(content)[:12]


def generate_stable_id(
    tag: str,
    text: str,
    source_path: Optional[str] = None,
    context: Optional[SourceContext] = None,
) -> str:
    """
    Content-derived id that survives rebuilds while text and structure stay the same.

    Built from the tag, the first 50 characters of text, the source path and the
    parent tag / sibling index of the element.
    """
    parts = [
        tag,
        text[:50].strip(),
        source_path or "",
        (context.parent_tag if context else None) or "",
        str(context.sibling_index) if context and context.sibling_index is not None else "",
    ]
    return short_hash("|".join(parts))


def generate_source_hash(source_snippet: str) -> str:
    return sha256(source_snippet)


def generate_manifest_content_hash(entries: Mapping[str, ManifestEntry]) -> str:
    """Hash every entry's tag, text, html and source path, ordered by entry key."""
    content = "\n".join(
        f"{entry.tag}|{entry.text}|{entry.html or ''}|{entry.source_path or ''}"
        for _, entry in sorted(entries.items())
    )
    return sha256(content)


def generate_source_file_hashes(entries: Mapping[str, ManifestEntry]) -> Dict[str, str]:
    """Map each source path to a hash of its entries, ordered by source line."""
    by_file: Dict[str, List[ManifestEntry]] = defaultdict(list)
    for entry in entries.values():
        if entry.source_path:
            by_file[entry.source_path].append(entry)

    hashes = {}
    for path, file_entries in by_file.items():
        ordered = sorted(file_entries, key=lambda e: (e.source_line or 0, e.id))
        content = "\n".join(
            f"{e.source_line or 0}|{e.text}|{e.source_snippet or ''}" for e in ordered
        )
        hashes[path] = sha256(content)
    return hashes
