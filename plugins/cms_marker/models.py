"""
Data model shared by the source finder, the HTML marker and the manifest writer.

Python attributes are snake_case; `serialize()` converts any model into the
camelCase JSON shape consumed by the in-browser editor, dropping unset fields.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, Dict, List, Optional

# Location kinds produced by the resolvers
KIND_STATIC = "static"
KIND_VARIABLE = "variable"
KIND_PROP = "prop"
KIND_COMPUTED = "computed"
KIND_COLLECTION = "collection"
KIND_IMAGE = "image"
# Head metadata found only in the rendered page
KIND_RENDERED = "rendered"


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def serialize(value: Any) -> Any:
    """Convert dataclasses (recursively) into JSON-ready dicts with camelCase keys."""
    if is_dataclass(value) and not isinstance(value, type):
        out = {}
        for f in fields(value):
            if not f.metadata.get("serialize", True):
                continue
            item = getattr(value, f.name)
            if item is None:
                continue
            out[f.metadata.get("key", _camel(f.name))] = serialize(item)
        return out
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize(v) for v in value]
    return value


@dataclass(frozen=True)
class SourceLocation:
    file: str
    line: int
    kind: str = KIND_STATIC
    snippet: Optional[str] = None
    variable_name: Optional[str] = None
    # Only set for variable/computed matches: where the value is authored
    definition_line: Optional[int] = None
    collection_name: Optional[str] = None
    collection_slug: Optional[str] = None


@dataclass
class ImageMetadata:
    src: str
    alt: str = ""
    src_set: Optional[str] = None
    sizes: Optional[str] = None


@dataclass
class ColorClasses:
    bg: Optional[str] = None
    text: Optional[str] = None
    border: Optional[str] = None
    hover_bg: Optional[str] = None
    hover_text: Optional[str] = None
    all_color_classes: List[str] = field(default_factory=list)
    source_path: Optional[str] = None
    source_line: Optional[int] = None


@dataclass
class AttributeSource:
    value: str
    source_path: Optional[str] = None
    source_line: Optional[int] = None


@dataclass
class SourceContext:
    parent_tag: Optional[str] = None
    sibling_index: Optional[int] = None


@dataclass
class ManifestEntry:
    id: str
    tag: str
    text: str
    html: Optional[str] = None
    source_path: Optional[str] = None
    source_line: Optional[int] = None
    source_snippet: Optional[str] = None
    source_type: Optional[str] = None
    variable_name: Optional[str] = None
    child_ids: List[str] = field(default_factory=list)
    parent_component_id: Optional[str] = None
    collection_name: Optional[str] = None
    collection_slug: Optional[str] = None
    content_path: Optional[str] = None
    image_metadata: Optional[ImageMetadata] = None
    color_classes: Optional[ColorClasses] = None
    attributes: Optional[Dict[str, AttributeSource]] = None
    stable_id: Optional[str] = None
    source_hash: Optional[str] = None
    source_context: Optional[SourceContext] = None
    # Full rendered text of the element, used as the lookup query
    search_text: str = field(default="", repr=False, metadata={"serialize": False})

    def apply_location(self, location: SourceLocation) -> None:
        self.source_path = location.file
        self.source_line = location.line
        self.source_snippet = location.snippet
        self.source_type = location.kind
        self.variable_name = location.variable_name
        if location.collection_name:
            self.collection_name = location.collection_name
            self.collection_slug = location.collection_slug


@dataclass
class ComponentInstance:
    id: str
    component_name: str
    file: str
    source_path: str
    source_line: int
    props: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ComponentProp:
    name: str
    type: str
    required: bool
    default_value: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ComponentDefinition:
    name: str
    file: str
    props: List[ComponentProp] = field(default_factory=list)
    slots: Optional[List[str]] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class CollectionInfo:
    name: str
    slug: str
    file: str


@dataclass
class FrontmatterField:
    value: str
    line: int


@dataclass
class MarkdownContent:
    frontmatter: Dict[str, FrontmatterField]
    body: str
    body_start_line: int
    file: str
    collection_name: str
    collection_slug: str


@dataclass
class CollectionEntry:
    collection_name: str
    collection_slug: str
    source_path: str
    frontmatter: Dict[str, FrontmatterField]
    body: str
    body_start_line: int
    wrapper_id: Optional[str] = None

    @classmethod
    def from_markdown(cls, content: MarkdownContent, wrapper_id: Optional[str] = None):
        return cls(
            collection_name=content.collection_name,
            collection_slug=content.collection_slug,
            source_path=content.file,
            frontmatter=content.frontmatter,
            body=content.body,
            body_start_line=content.body_start_line,
            wrapper_id=wrapper_id,
        )


@dataclass
class TailwindColor:
    name: str
    shades: List[str] = field(default_factory=list)
    is_custom: bool = False


@dataclass
class AvailableColors:
    colors: List[TailwindColor] = field(default_factory=list)
    default_colors: List[str] = field(default_factory=list)
    custom_colors: List[str] = field(default_factory=list)


@dataclass
class SeoSource:
    """Where a head element's value is authored."""

    source_path: Optional[str] = None
    source_line: Optional[int] = None
    source_snippet: Optional[str] = None
    source_type: Optional[str] = None
    variable_name: Optional[str] = None

    def apply_location(self, location: SourceLocation) -> None:
        self.source_path = location.file
        self.source_line = location.line
        self.source_snippet = location.snippet
        self.source_type = location.kind
        self.variable_name = location.variable_name


@dataclass
class SeoTitle(SeoSource):
    content: str = ""
    cms_id: Optional[str] = None


@dataclass
class SeoMetaTag(SeoSource):
    content: str = ""
    name: Optional[str] = None
    property_name: Optional[str] = field(default=None, metadata={"key": "property"})
    # Split values of the keywords and robots tags
    keywords: Optional[List[str]] = None
    directives: Optional[List[str]] = None


@dataclass
class OpenGraphData:
    title: Optional[SeoMetaTag] = None
    description: Optional[SeoMetaTag] = None
    image: Optional[SeoMetaTag] = None
    url: Optional[SeoMetaTag] = None
    type: Optional[SeoMetaTag] = None
    site_name: Optional[SeoMetaTag] = None


@dataclass
class TwitterCardData:
    card: Optional[SeoMetaTag] = None
    title: Optional[SeoMetaTag] = None
    description: Optional[SeoMetaTag] = None
    image: Optional[SeoMetaTag] = None
    site: Optional[SeoMetaTag] = None


@dataclass
class CanonicalUrl(SeoSource):
    href: str = ""


@dataclass
class JsonLdEntry(SeoSource):
    type: str = "Unknown"
    data: Any = None


@dataclass
class PageSeo:
    title: Optional[SeoTitle] = None
    description: Optional[SeoMetaTag] = None
    keywords: Optional[SeoMetaTag] = None
    robots: Optional[SeoMetaTag] = None
    open_graph: Optional[OpenGraphData] = None
    twitter_card: Optional[TwitterCardData] = None
    canonical: Optional[CanonicalUrl] = None
    json_ld: Optional[List[JsonLdEntry]] = None
