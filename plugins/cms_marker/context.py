"""
Build session state: parse cache, search index, id counter and error collector.

Everything that used to live in module-level maps is owned by a `BuildContext`
so two builds (or two tests) never share stale files or ids. Call
`begin_build()` before processing and `end_build()` afterwards.
"""

import logging
from pathlib import Path
from typing import List, Optional

from plugins.cms_marker.cache import ParseCache
from plugins.cms_marker.config import CmsMarkerOptions
from plugins.cms_marker.errors import ErrorCollector
from plugins.cms_marker.search_index import SearchIndex

log = logging.getLogger("mkdocs.plugins.cms_marker")


class IdCounter:
    """Monotonic `cms-<n>` ids; increments happen synchronously."""

    def __init__(self, prefix: str = "cms-"):
        self.prefix = prefix
        self._value = 0

    def next_id(self) -> str:
        current = self._value
        self._value += 1
        return f"{self.prefix}{current}"

    @property
    def value(self) -> int:
        return self._value

    def reset(self) -> None:
        self._value = 0


class BuildContext:
    def __init__(self, project_root: Path, options: Optional[CmsMarkerOptions] = None):
        self.project_root = Path(project_root)
        self.options = options or CmsMarkerOptions()
        self.cache = ParseCache(self.project_root)
        self.index = SearchIndex(
            self.cache,
            self.source_dirs,
            self.options.source_extensions,
            self.options.image_extensions,
        )
        self.ids = IdCounter()
        self.errors = ErrorCollector()

    @property
    def source_dirs(self) -> List[Path]:
        """Absolute component, page and layout directories, in lookup precedence."""
        return [self.project_root / d for d in self.options.search_dirs]

    @property
    def content_dir(self) -> Path:
        return self.project_root / self.options.content_dir

    def begin_build(self) -> None:
        self.index.clear()
        self.ids.reset()
        self.errors.clear()
        log.debug(f"[cms_marker] build started for {self.project_root}")

    def end_build(self) -> None:
        self.index.clear()
        log.debug("[cms_marker] build session closed")
