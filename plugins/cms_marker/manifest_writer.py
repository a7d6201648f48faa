"""
Per-page manifest files plus the aggregate settings file.

`add_page()` merges a page into the in-memory aggregate right away and queues
the page file write behind every earlier write, so page files never race each
other or the final aggregate write in `finalize()`.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from plugins.cms_marker.colors import load_available_colors
from plugins.cms_marker.hashing import generate_manifest_content_hash, generate_source_file_hashes
from plugins.cms_marker.models import (
    AvailableColors,
    CollectionEntry,
    ComponentDefinition,
    ComponentInstance,
    ManifestEntry,
    PageSeo,
    serialize,
)

log = logging.getLogger("mkdocs.plugins.cms_marker")

MANIFEST_VERSION = "1.0"
GENERATED_BY = "mkdocs-cms-marker"

IDLE = "idle"
ACCUMULATING = "accumulating"
FINALIZING = "finalizing"


@dataclass
class PageManifest:
    entries: Dict[str, ManifestEntry]
    components: Dict[str, ComponentInstance]
    collection: Optional[CollectionEntry] = None
    seo: Optional[PageSeo] = None


@dataclass
class CmsManifest:
    entries: Dict[str, ManifestEntry] = field(default_factory=dict)
    components: Dict[str, ComponentInstance] = field(default_factory=dict)
    component_definitions: Dict[str, ComponentDefinition] = field(default_factory=dict)
    collections: Dict[str, CollectionEntry] = field(default_factory=dict)


@dataclass
class ManifestStats:
    total_entries: int
    total_pages: int
    total_components: int
    write_errors: int = 0


def build_metadata(entries: Dict[str, ManifestEntry]) -> Dict[str, Any]:
    return {
        "version": MANIFEST_VERSION,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "generatedBy": GENERATED_BY,
        "contentHash": generate_manifest_content_hash(entries),
        "sourceFileHashes": generate_source_file_hashes(entries),
    }


def _write_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


class ManifestWriter:
    def __init__(
        self,
        manifest_file: str = "cms-manifest.json",
        component_definitions: Optional[Dict[str, ComponentDefinition]] = None,
    ):
        self.manifest_file = manifest_file
        self.out_dir: Optional[Path] = None
        self.component_definitions = dict(component_definitions or {})
        self.available_colors: Optional[AvailableColors] = None
        self.write_errors = 0
        self._state = IDLE
        self._pages: Dict[str, PageManifest] = {}
        self._global = CmsManifest(component_definitions=self.component_definitions)
        self._write_queue: Optional[asyncio.Task] = None

    @property
    def state(self) -> str:
        return self._state

    def set_out_dir(self, out_dir: Optional[Path]) -> None:
        """Where manifests go; `None` keeps everything in memory."""
        self.out_dir = Path(out_dir) if out_dir is not None else None

    def set_component_definitions(self, definitions: Dict[str, ComponentDefinition]) -> None:
        self.component_definitions = dict(definitions)
        self._global.component_definitions = self.component_definitions

    def set_available_colors(self, colors: Optional[AvailableColors]) -> None:
        self.available_colors = colors

    async def load_available_colors(self, project_root: Path) -> AvailableColors:
        self.available_colors = await load_available_colors(project_root)
        return self.available_colors

    def get_page_manifest_path(self, page_path: str) -> Path:
        """`/` -> `index.json`, `/about` -> `about.json`, inside the output dir."""
        base = self.out_dir or Path(".")
        clean = page_path.strip("/")
        return base / ("index.json" if not clean else f"{clean}.json")

    def get_global_manifest(self) -> CmsManifest:
        return self._global

    def get_page_manifest(self, page_path: str) -> Optional[PageManifest]:
        return self._pages.get(page_path)

    def add_page(
        self,
        page_path: str,
        entries: Dict[str, ManifestEntry],
        components: Dict[str, ComponentInstance],
        collection: Optional[CollectionEntry] = None,
        seo: Optional[PageSeo] = None,
    ) -> None:
        """Merge a page into the aggregate and queue its file write."""
        self._state = ACCUMULATING
        page = PageManifest(entries=entries, components=components, collection=collection, seo=seo)
        self._pages[page_path] = page
        self._global.entries.update(entries)
        self._global.components.update(components)
        if collection is not None:
            key = f"{collection.collection_name}/{collection.collection_slug}"
            self._global.collections[key] = collection

        if self.out_dir is not None:
            self._enqueue(lambda: self._write_page(page_path, page))

    def _enqueue(self, write: Callable[[], Awaitable[None]]) -> None:
        previous = self._write_queue

        async def run() -> None:
            if previous is not None:
                await previous
            try:
                await write()
            except (OSError, TypeError, ValueError) as e:
                self.write_errors += 1
                log.error(f"[cms_marker] failed to write manifest: {e}")

        self._write_queue = asyncio.get_running_loop().create_task(run())

    def page_document(self, page_path: str, page: PageManifest) -> Dict[str, Any]:
        document = {
            "metadata": build_metadata(page.entries),
            "page": page_path,
            "entries": serialize(page.entries),
            "components": serialize(page.components),
            "componentDefinitions": serialize(self.component_definitions),
        }
        if page.collection is not None:
            document["collection"] = serialize(page.collection)
        if page.seo is not None:
            document["seo"] = serialize(page.seo)
        return document

    def settings_document(self) -> Dict[str, Any]:
        document = {
            "metadata": build_metadata(self._global.entries),
            "componentDefinitions": serialize(self.component_definitions),
        }
        if self.available_colors is not None:
            document["availableColors"] = serialize(self.available_colors)
        return document

    async def _write_page(self, page_path: str, page: PageManifest) -> None:
        path = self.get_page_manifest_path(page_path)
        await asyncio.to_thread(_write_json, path, self.page_document(page_path, page))

    async def finalize(self) -> ManifestStats:
        """Wait for queued page writes, then write the aggregate settings file."""
        self._state = FINALIZING
        try:
            if self._write_queue is not None:
                await self._write_queue
            if self.out_dir is not None:
                path = self.out_dir / self.manifest_file
                try:
                    await asyncio.to_thread(_write_json, path, self.settings_document())
                except OSError as e:
                    self.write_errors += 1
                    log.error(f"[cms_marker] failed to write {path}: {e}")
        finally:
            self._state = IDLE

        return ManifestStats(
            total_entries=len(self._global.entries),
            total_pages=len(self._pages),
            total_components=len(self._global.components),
            write_errors=self.write_errors,
        )

    def reset(self) -> None:
        """Forget pages and entries; component definitions and colors are kept."""
        self._pages.clear()
        self._global = CmsManifest(component_definitions=self.component_definitions)
        self._write_queue = None
        self.write_errors = 0
        self._state = IDLE
