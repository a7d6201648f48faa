"""Engine options and their mapping from the MkDocs plugin configuration."""

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

DEFAULT_EXCLUDE_TAGS = ["html", "head", "body", "script", "style"]

# Directories whose files are never treated as reusable components
DEFAULT_NON_COMPONENT_DIRS = ["src/pages", "src/layouts", "src/layout"]

# Extra extensions searched (by literal src) when resolving images
IMAGE_SOURCE_EXTENSIONS = [".tsx", ".jsx"]

MAX_CONCURRENT = 10


@dataclass
class CmsMarkerOptions:
    attribute_name: str = "data-cms-id"
    include_tags: Optional[List[str]] = None
    exclude_tags: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_TAGS))
    include_empty_text: bool = False
    generate_manifest: bool = True
    manifest_file: str = "cms-manifest.json"
    mark_components: bool = True
    mark_styled_spans: bool = True
    process_seo: bool = True
    parse_json_ld: bool = True
    component_dirs: List[str] = field(default_factory=lambda: ["src/components"])
    page_dirs: List[str] = field(default_factory=lambda: ["src/pages"])
    layout_dirs: List[str] = field(default_factory=lambda: ["src/layouts"])
    non_component_dirs: List[str] = field(
        default_factory=lambda: list(DEFAULT_NON_COMPONENT_DIRS)
    )
    content_dir: str = "src/content"
    source_extensions: List[str] = field(default_factory=lambda: [".astro"])
    max_concurrent: int = MAX_CONCURRENT
    # Attributes a renderer may emit to point straight at the source
    source_file_attribute: str = "data-astro-source-file"
    source_line_attribute: str = "data-astro-source-line"
    debug: bool = False

    @property
    def search_dirs(self) -> List[str]:
        """Source directories in lookup precedence: components, pages, layouts."""
        return [*self.component_dirs, *self.page_dirs, *self.layout_dirs]

    @property
    def image_extensions(self) -> List[str]:
        return [*self.source_extensions, *IMAGE_SOURCE_EXTENSIONS]

    @classmethod
    def from_plugin_config(cls, config: Mapping[str, Any]) -> "CmsMarkerOptions":
        """Build options from a plugin config mapping, ignoring unknown keys."""
        known = cls.__dataclass_fields__
        values = {k: v for k, v in config.items() if k in known and v is not None}
        options = cls(**values)
        if options.max_concurrent < 1:
            options.max_concurrent = 1
        options.include_tags = (
            [t.lower() for t in options.include_tags] if options.include_tags else None
        )
        options.exclude_tags = [t.lower() for t in options.exclude_tags]
        return options


def normalize_dir(path: str) -> str:
    """Strip leading/trailing slashes and use forward slashes."""
    return path.replace("\\", "/").strip("/")


def path_in_dirs(path: str, dirs: List[str]) -> bool:
    """True if the project-relative `path` sits under any of `dirs`."""
    normalized = path.replace("\\", "/")
    for directory in dirs:
        d = normalize_dir(directory)
        if not d:
            continue
        if normalized.startswith(d + "/") or f"/{d}/" in normalized:
            return True
    return False
