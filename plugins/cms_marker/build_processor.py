"""
Drive marking, source resolution and manifest writing over a built site.

Pages are processed in windows of `max_concurrent`; a page that raises is
recorded and reported at the end, the rest of the build carries on.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from bs4 import BeautifulSoup

from plugins.cms_marker.collection_finder import (
    find_collection_source,
    find_markdown_source_location,
    parse_markdown_content,
)
from plugins.cms_marker.config import path_in_dirs
from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.errors import PageProcessingError
from plugins.cms_marker.hashing import generate_source_hash, generate_stable_id
from plugins.cms_marker.html_processor import (
    COMPONENT_ID_ATTRIBUTE,
    IMAGE_ATTRIBUTE,
    MARKDOWN_ATTRIBUTE,
    PLACEHOLDER_RE,
    CollectionMarkup,
    HtmlProcessor,
    component_name,
)
from plugins.cms_marker.image_finder import find_image_source_location
from plugins.cms_marker.manifest_writer import ManifestWriter
from plugins.cms_marker.models import (
    KIND_IMAGE,
    CollectionEntry,
    CollectionInfo,
    ComponentInstance,
    ManifestEntry,
    SourceLocation,
)
from plugins.cms_marker.rendered_tree import ROOT, RenderedTree
from plugins.cms_marker.seo_processor import SeoProcessor
from plugins.cms_marker.source_finder import SourceFinder

log = logging.getLogger("mkdocs.plugins.cms_marker")


@dataclass
class BuildSummary:
    total_pages: int = 0
    success_count: int = 0
    total_entries: int = 0
    total_components: int = 0
    errors: List[PageProcessingError] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def message(self) -> str:
        return (
            f"Processed {self.success_count}/{self.total_pages} pages with "
            f"{self.total_entries} entries and {self.total_components} components "
            f"in {self.duration_ms:.0f}ms"
        )


def get_page_path(html_path: Path, out_dir: Path) -> str:
    """`about/index.html` -> `/about`, `index.html` -> `/`, `blog/post.html` -> `/blog/post`."""
    rel = "/" + Path(html_path).relative_to(out_dir).as_posix()
    if rel.endswith("/index.html"):
        rel = rel[: -len("/index.html")]
    elif rel.endswith(".html"):
        rel = rel[: -len(".html")]
    return rel or "/"


def _find_html_files(out_dir: Path) -> List[Path]:
    return sorted(p for p in Path(out_dir).rglob("*.html") if p.is_file())


async def find_html_files(out_dir: Path) -> List[Path]:
    try:
        return await asyncio.to_thread(_find_html_files, out_dir)
    except OSError:
        return []


def _read_html(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _write_html(path: Path, html: str) -> None:
    path.write_text(html, encoding="utf-8")


def first_body_line(body: str) -> Optional[str]:
    for line in body.split("\n"):
        if line.strip():
            return line.strip()
    return None


class BuildProcessor:
    def __init__(self, context: BuildContext, writer: ManifestWriter):
        self.context = context
        self.options = context.options
        self.writer = writer
        self.finder = SourceFinder(context)
        self.seo = SeoProcessor(context, self.finder)
        self.marker = HtmlProcessor(context.options, context.ids.next_id)

    def _apply(self, entry: ManifestEntry, location: SourceLocation, fallback: str = "") -> None:
        entry.apply_location(location)
        entry.source_hash = generate_source_hash(location.snippet or fallback)

    async def resolve_entry(self, entry: ManifestEntry, collection: Optional[CollectionInfo]) -> None:
        if entry.source_path and not entry.source_path.endswith(".html"):
            # Direct source hint from the renderer
            await self.finder.enhance_entries_with_source_snippets({entry.id: entry})
            return
        if entry.collection_name and entry.content_path:
            return

        if entry.image_metadata and entry.image_metadata.src:
            location = await find_image_source_location(self.context, entry.image_metadata.src)
            if location is not None:
                self._apply(entry, location, entry.image_metadata.src)
                entry.source_type = KIND_IMAGE
            return

        query = entry.search_text or entry.text
        if collection is not None:
            location = await find_markdown_source_location(self.context, query, collection)
            if location is not None:
                self._apply(entry, location)
                return

        location = await self.finder.find_source_location(query, entry.tag)
        if location is not None:
            self._apply(entry, location)
            await self.finder.update_entry_sources(entry, location)
            entry.stable_id = generate_stable_id(entry.tag, entry.text, entry.source_path, entry.source_context)

    def prune_unresolved(self, entries: Dict[str, ManifestEntry]) -> List[str]:
        """
        Drop entries with neither a source path nor collection provenance.

        Surviving entries lose the child ids of dropped entries, and each
        `{{cms:<id>}}` placeholder of a dropped entry is replaced by its text.
        """
        removed = {
            entry_id: entry
            for entry_id, entry in entries.items()
            if not entry.source_path and not entry.collection_name
        }
        for entry_id in removed:
            del entries[entry_id]

        def inline(text: str) -> str:
            return PLACEHOLDER_RE.sub(
                lambda m: inline(removed[m.group(1)].text) if m.group(1) in removed else m.group(0),
                text,
            )

        if removed:
            for entry in entries.values():
                entry.child_ids = [c for c in entry.child_ids if c not in removed]
                entry.text = inline(entry.text)
        return list(removed)

    def strip_markers(self, soup: BeautifulSoup, ids: List[str]) -> None:
        attribute = self.options.attribute_name
        for entry_id in ids:
            element = soup.find(attrs={attribute: entry_id})
            if element is None:
                continue
            for name in (attribute, IMAGE_ATTRIBUTE, MARKDOWN_ATTRIBUTE):
                if element.has_attr(name):
                    del element[name]

    def infer_components(
        self,
        soup: BeautifulSoup,
        entries: Dict[str, ManifestEntry],
        components: Dict[str, ComponentInstance],
        file_id: str,
    ) -> None:
        """Wrap entries resolved to the same component file in their common ancestor."""
        groups: Dict[str, List[str]] = {}
        for entry_id, entry in entries.items():
            path = entry.source_path
            if not path or path_in_dirs(path, self.options.non_component_dirs):
                continue
            if path_in_dirs(path, self.options.component_dirs):
                groups.setdefault(path, []).append(entry_id)
        if not groups:
            return

        attribute = self.options.attribute_name
        tree = RenderedTree.from_soup(soup)
        positions = {n.attrs[attribute]: n.index for n in tree.nodes if attribute in n.attrs}

        for source_file, entry_ids in groups.items():
            nodes = [positions[e] for e in entry_ids if e in positions]
            root = tree.component_root(nodes)
            if root is None or root == ROOT or COMPONENT_ID_ATTRIBUTE in tree.nodes[root].attrs:
                continue

            component_id = self.context.ids.next_id()
            tree.set_attribute(root, COMPONENT_ID_ATTRIBUTE, component_id)
            components[component_id] = ComponentInstance(
                id=component_id,
                component_name=component_name(source_file),
                file=file_id,
                source_path=source_file,
                source_line=entries[entry_ids[0]].source_line or 1,
            )
            for entry_id in entry_ids:
                entries[entry_id].parent_component_id = component_id

    async def process_file(self, path: Path, out_dir: Path) -> int:
        """Mark, resolve and rewrite one page; returns the number of kept entries."""
        file_id = path.relative_to(out_dir).as_posix()
        page_path = get_page_path(path, out_dir)
        html = await asyncio.to_thread(_read_html, path)

        collection = await find_collection_source(self.context, page_path)
        markdown = await parse_markdown_content(self.context, collection) if collection else None
        markup = None
        if collection is not None and markdown is not None:
            markup = CollectionMarkup(
                name=collection.name,
                slug=collection.slug,
                content_path=collection.file,
                body_first_line=first_body_line(markdown.body),
            )

        result = self.marker.process(html, file_id, markup)
        entries, components = result.entries, result.components

        await asyncio.gather(*(self.resolve_entry(e, collection) for e in entries.values()))

        removed = self.prune_unresolved(entries)
        if removed and not entries:
            self.context.errors.add_warning(
                file_id, f"none of {len(removed)} marked element(s) resolved to a source file"
            )
        soup = BeautifulSoup(result.html, "html.parser")
        self.strip_markers(soup, removed)
        if self.options.mark_components:
            self.infer_components(soup, entries, components, file_id)

        collection_entry = None
        if markdown is not None:
            collection_entry = CollectionEntry.from_markdown(markdown, result.collection_wrapper_id)
        seo = None
        if self.options.process_seo:
            seo = await self.seo.process(soup, html, file_id, entries)
        self.writer.add_page(page_path, entries, components, collection_entry, seo)

        await asyncio.to_thread(_write_html, path, str(soup))
        if self.options.debug:
            log.debug(f"[cms_marker] {file_id}: {len(entries)} entries, {len(removed)} unresolved")
        return len(entries)

    async def process_build_output(self, out_dir: Path) -> BuildSummary:
        out_dir = Path(out_dir)
        started = time.perf_counter()
        summary = BuildSummary()

        self.context.begin_build()
        self.writer.reset()
        self.writer.set_out_dir(out_dir if self.options.generate_manifest else None)
        try:
            files = await find_html_files(out_dir)
            if not files:
                log.info("[cms_marker] No HTML files found to process")
                return summary

            await self.context.index.build()

            window = max(1, self.options.max_concurrent)
            for i in range(0, len(files), window):
                batch = files[i : i + window]
                results = await asyncio.gather(
                    *(self.process_file(f, out_dir) for f in batch), return_exceptions=True
                )
                for file, outcome in zip(batch, results):
                    if isinstance(outcome, Exception):
                        rel = file.relative_to(out_dir).as_posix()
                        log.error(f"[cms_marker] Error processing {rel}: {outcome}")
                        self.context.errors.add_error(rel, outcome)
                        summary.errors.append(PageProcessingError(rel, outcome))
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        summary.total_entries += outcome

            errors = self.context.errors
            if errors.has_errors():
                log.error(
                    f"[cms_marker] {len(summary.errors)} file(s) failed to process:\n{errors.summary()}"
                )
            elif errors.has_warnings():
                log.warning(f"[cms_marker] {len(errors.warnings)} page(s) without sources:\n{errors.summary()}")

            stats = await self.writer.finalize()
            summary.total_pages = len(files)
            summary.success_count = len(files) - len(summary.errors)
            summary.total_components = stats.total_components
            summary.duration_ms = (time.perf_counter() - started) * 1000

            if summary.errors:
                log.warning(f"[cms_marker] {summary.message}")
            else:
                log.info(f"[cms_marker] {summary.message}")
            return summary
        finally:
            self.context.end_build()


async def process_build_output(
    out_dir: Path, context: BuildContext, writer: ManifestWriter
) -> BuildSummary:
    return await BuildProcessor(context, writer).process_build_output(out_dir)
