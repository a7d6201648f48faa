"""
MkDocs plugin: after the site is built, mark editable elements in every page and
write the source manifests the in-browser editor reads.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from mkdocs.config import config_options as c
from mkdocs.plugins import BasePlugin

from plugins.cms_marker.build_processor import BuildSummary, process_build_output
from plugins.cms_marker.component_registry import ComponentRegistry
from plugins.cms_marker.config import DEFAULT_EXCLUDE_TAGS, MAX_CONCURRENT, CmsMarkerOptions
from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.manifest_writer import ManifestWriter

log = logging.getLogger("mkdocs.plugins.cms_marker")


class CmsMarkerPlugin(BasePlugin):
    """Map rendered elements back to the template lines that produced them.

    Configuration options (all optional):
    - attribute_name (str): Attribute carrying the element id.
    - include_tags / exclude_tags (list): Tags to mark / never mark.
    - include_empty_text (bool): Also mark elements without text.
    - generate_manifest (bool): Write per-page manifests.
    - manifest_file (str): Name of the aggregate settings file in site_dir.
    - mark_components (bool): Infer component regions.
    - process_seo (bool): Describe title, meta, canonical and JSON-LD tags in page manifests.
    - parse_json_ld (bool): Include JSON-LD blocks in that description.
    - component_dirs / page_dirs / layout_dirs (list): Source template roots, searched in this order.
    - content_dir (str): Markdown content collections root.
    - source_extensions (list): Template file extensions.
    - max_concurrent (int): Pages processed at once.
    - project_root (str): Source tree root, relative to mkdocs.yml.
    """

    config_scheme = (
        ("attribute_name", c.Type(str, default="data-cms-id")),
        ("include_tags", c.Optional(c.Type(list))),
        ("exclude_tags", c.Type(list, default=list(DEFAULT_EXCLUDE_TAGS))),
        ("include_empty_text", c.Type(bool, default=False)),
        ("generate_manifest", c.Type(bool, default=True)),
        ("manifest_file", c.Type(str, default="cms-manifest.json")),
        ("mark_components", c.Type(bool, default=True)),
        ("process_seo", c.Type(bool, default=True)),
        ("parse_json_ld", c.Type(bool, default=True)),
        ("component_dirs", c.Type(list, default=["src/components"])),
        ("page_dirs", c.Type(list, default=["src/pages"])),
        ("layout_dirs", c.Type(list, default=["src/layouts"])),
        ("content_dir", c.Type(str, default="src/content")),
        ("source_extensions", c.Type(list, default=[".astro"])),
        ("max_concurrent", c.Type(int, default=MAX_CONCURRENT)),
        ("project_root", c.Optional(c.Type(str))),
        ("debug", c.Type(bool, default=False)),
    )

    def __init__(self):
        super().__init__()
        self.options: Optional[CmsMarkerOptions] = None
        self.project_root: Optional[Path] = None
        self.writer: Optional[ManifestWriter] = None
        self.last_summary: Optional[BuildSummary] = None

    def _dbg(self, msg: str) -> None:
        if self.options and self.options.debug:
            log.info(f"[cms_marker] {msg}")

    def on_config(self, config, **kwargs):
        self.options = CmsMarkerOptions.from_plugin_config(self.config)
        config_file = config["config_file_path"]
        config_dir = Path(config_file).resolve().parent if config_file else Path.cwd()
        root = self.config.get("project_root")
        self.project_root = (config_dir / root).resolve() if root else config_dir
        if self.writer is None:
            self.writer = ManifestWriter(self.options.manifest_file)
        self._dbg(f"project root {self.project_root}, search dirs {self.options.search_dirs}")
        return config

    async def _run(self, site_dir: Path) -> BuildSummary:
        registry = ComponentRegistry(
            self.options.component_dirs, self.project_root, self.options.source_extensions
        )
        self.writer.set_component_definitions(await registry.scan())
        await self.writer.load_available_colors(self.project_root)

        context = BuildContext(self.project_root, self.options)
        return await process_build_output(site_dir, context, self.writer)

    def on_post_build(self, config, **kwargs):
        site_dir = Path(config["site_dir"]).resolve()
        self.last_summary = asyncio.run(self._run(site_dir))
        self._dbg(self.last_summary.message)
