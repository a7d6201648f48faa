"""
Mark editable elements of a rendered page and describe them as manifest entries.

Marking happens in passes over the parsed document:

1. component roots from renderer source hints (`data-astro-source-file`);
2. spans carrying only text-style utility classes get `data-cms-styled`;
3. on collection pages, the wrapper of the rendered markdown body becomes one
   editable unit and its contents are left alone;
4. every qualifying element gets the id attribute;
5. an entry is built for each marked element. Pure containers (no direct text,
   only marked children) lose their marker again.
"""

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Set

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from plugins.cms_marker.colors import extract_color_classes
from plugins.cms_marker.config import CmsMarkerOptions, path_in_dirs
from plugins.cms_marker.hashing import generate_stable_id
from plugins.cms_marker.models import (
    AttributeSource,
    ComponentInstance,
    ImageMetadata,
    ManifestEntry,
    SourceContext,
)
from plugins.cms_marker.snippets import normalize_text, strip_markdown_syntax

COMPONENT_ID_ATTRIBUTE = "data-cms-component-id"
STYLED_ATTRIBUTE = "data-cms-styled"
IMAGE_ATTRIBUTE = "data-cms-img"
MARKDOWN_ATTRIBUTE = "data-cms-markdown"

PLACEHOLDER_RE = re.compile(r"\{\{cms:([^}]+)\}\}")

LAYOUT_CLASS_PATTERNS = [
    re.compile(p)
    for p in (
        r"^text-(left|center|right|justify|start|end)$",
        r"^text-(wrap|nowrap|balance|pretty|ellipsis|clip)$",
        r"^align-",
        r"^bg-(fixed|local|scroll)$",
        r"^bg-(auto|cover|contain)$",
        r"^bg-(repeat|no-repeat|repeat-x|repeat-y|repeat-round|repeat-space)$",
        r"^bg-clip-",
        r"^bg-origin-",
        r"^bg-(top|bottom|left|right|center)$",
        r"^bg-(top|bottom)-(left|right)$",
    )
]

TEXT_STYLE_PATTERNS = [
    re.compile(p)
    for p in (
        r"^font-(thin|extralight|light|normal|medium|semibold|bold|extrabold|black|\d+)$",
        r"^(italic|not-italic)$",
        r"^(underline|overline|line-through|no-underline)$",
        r"^decoration-[\w-]+$",
        r"^underline-offset-",
        r"^(uppercase|lowercase|capitalize|normal-case)$",
        r"^text-[\w-]+$",
        r"^bg-[\w-]+$",
        r"^tracking-",
        r"^leading-",
    )
]

# Inline markup that makes an entry's HTML worth keeping next to its text
INLINE_FORMAT_TAGS = {"strong", "b", "em", "i", "u", "s", "mark", "small", "sub", "sup", "code", "br", "a"}

EDITABLE_ATTRIBUTES = {
    "a": ["href", "title", "target"],
    "img": ["alt", "title"],
    "button": ["title"],
    "input": ["placeholder"],
    "iframe": ["src", "title"],
}


def is_text_style_class(class_name: str) -> bool:
    if any(p.match(class_name) for p in LAYOUT_CLASS_PATTERNS):
        return False
    return any(p.match(class_name) for p in TEXT_STYLE_PATTERNS)


def has_only_text_style_classes(class_attr: str) -> bool:
    classes = class_attr.split()
    return bool(classes) and all(is_text_style_class(c) for c in classes)


def component_name(source_file: str) -> str:
    return PurePosixPath(source_file.replace("\\", "/")).stem


def class_string(element: Tag) -> str:
    value = element.get("class")
    return " ".join(value) if isinstance(value, list) else (value or "")


@dataclass
class CollectionMarkup:
    """What the marker needs to know about the markdown file behind a page."""

    name: str
    slug: str
    content_path: str
    body_first_line: Optional[str] = None


@dataclass
class ProcessHtmlResult:
    html: str
    entries: Dict[str, ManifestEntry] = field(default_factory=dict)
    components: Dict[str, ComponentInstance] = field(default_factory=dict)
    collection_wrapper_id: Optional[str] = None


class HtmlProcessor:
    def __init__(self, options: CmsMarkerOptions, next_id: Callable[[], str]):
        self.options = options
        self.next_id = next_id

    def is_component_file(self, source_file: str) -> bool:
        if path_in_dirs(source_file, self.options.non_component_dirs):
            return False
        return path_in_dirs(source_file, self.options.component_dirs)

    def process(
        self, html: str, file_id: str, collection: Optional[CollectionMarkup] = None
    ) -> ProcessHtmlResult:
        soup = BeautifulSoup(html, "html.parser")
        result = ProcessHtmlResult(html="")

        component_roots: Set[int] = set()
        if self.options.mark_components:
            component_roots = self._mark_component_roots(soup, file_id, result)
        if self.options.mark_styled_spans:
            self._mark_styled_spans(soup)

        wrapper = None
        if collection is not None:
            wrapper = self._mark_collection_wrapper(soup, collection, result)

        hints = self._mark_elements(soup, wrapper, component_roots)
        if self.options.generate_manifest:
            self._build_entries(soup, file_id, hints, result)

        for element in soup.find_all(attrs={self.options.source_file_attribute: True}):
            del element[self.options.source_file_attribute]
            if element.has_attr(self.options.source_line_attribute):
                del element[self.options.source_line_attribute]

        result.html = str(soup)
        return result

    def _mark_component_roots(self, soup, file_id, result) -> Set[int]:
        file_attr = self.options.source_file_attribute
        roots: Set[int] = set()
        for element in soup.find_all(attrs={file_attr: True}):
            source_file = element[file_attr]
            if not self.is_component_file(source_file):
                continue
            if any(parent.get(file_attr) == source_file for parent in element.parents if isinstance(parent, Tag)):
                continue

            component_id = self.next_id()
            element[COMPONENT_ID_ATTRIBUTE] = component_id
            roots.add(id(element))
            line = element.get(self.options.source_line_attribute, "1:0").split(":")[0]
            result.components[component_id] = ComponentInstance(
                id=component_id,
                component_name=component_name(source_file),
                file=file_id,
                source_path=source_file,
                source_line=int(line) if line.isdigit() else 1,
            )
        return roots

    def _mark_styled_spans(self, soup) -> None:
        for span in soup.find_all("span"):
            if not span.has_attr(STYLED_ATTRIBUTE) and has_only_text_style_classes(class_string(span)):
                span[STYLED_ATTRIBUTE] = "true"

    def _mark_collection_wrapper(self, soup, collection, result) -> Optional[Tag]:
        """Mark the parent of the first element whose text opens the markdown body."""
        if not collection.body_first_line:
            return None
        needle = normalize_text(strip_markdown_syntax(collection.body_first_line.strip()))
        if not needle:
            return None

        def starts_body(element: Tag) -> bool:
            return normalize_text(element.get_text(" ")).startswith(needle)

        scope = soup.body or soup
        for element in scope.find_all(True):
            if not starts_body(element) or any(starts_body(c) for c in element.find_all(True, recursive=False)):
                continue
            wrapper = element.parent
            if wrapper is None or wrapper is soup or wrapper.name in ("html", "body"):
                return None

            wrapper_id = self.next_id()
            wrapper[self.options.attribute_name] = wrapper_id
            wrapper[MARKDOWN_ATTRIBUTE] = "true"
            result.collection_wrapper_id = wrapper_id
            result.entries[wrapper_id] = ManifestEntry(
                id=wrapper_id,
                tag=wrapper.name,
                text=wrapper.get_text().strip(),
                collection_name=collection.name,
                collection_slug=collection.slug,
                content_path=collection.content_path,
            )
            return wrapper
        return None

    def _qualifies(self, element: Tag) -> bool:
        tag = element.name.lower()
        if tag in self.options.exclude_tags:
            return False
        if self.options.include_tags and tag not in self.options.include_tags:
            return False
        if tag == "img":
            return element.has_attr("src")
        return self.options.include_empty_text or bool(element.get_text().strip())

    def _mark_elements(self, soup, wrapper, component_roots) -> Dict[str, tuple]:
        """Assign ids; returns `id -> (file, line)` for elements carrying a source hint."""
        attribute = self.options.attribute_name
        file_attr, line_attr = self.options.source_file_attribute, self.options.source_line_attribute
        hints = {}
        for element in soup.find_all(True):
            if element.has_attr(attribute) or not self._qualifies(element):
                continue
            if wrapper is not None and any(p is wrapper for p in element.parents):
                continue

            element_id = self.next_id()
            element[attribute] = element_id
            if element.name.lower() == "img":
                element[IMAGE_ATTRIBUTE] = "true"

            source_file, source_line = element.get(file_attr), element.get(line_attr)
            if source_file and source_line:
                line = source_line.split(":")[0]
                if line.isdigit():
                    hints[element_id] = (source_file, int(line))
                if id(element) not in component_roots:
                    del element[file_attr]
                    del element[line_attr]
        return hints

    def _text_with_placeholders(self, element: Tag) -> str:
        parts: List[str] = []
        for child in element.children:
            if isinstance(child, Tag):
                child_id = child.get(self.options.attribute_name)
                parts.append(f"{{{{cms:{child_id}}}}}" if child_id else self._text_with_placeholders(child))
            elif isinstance(child, NavigableString) and not isinstance(child, PreformattedString):
                parts.append(str(child))
        return "".join(parts)

    def _drop_pure_containers(self, soup) -> None:
        """Unmark elements with no text of their own, innermost first."""
        attribute = self.options.attribute_name
        for element in reversed(soup.find_all(attrs={attribute: True})):
            if element.has_attr(MARKDOWN_ATTRIBUTE) or not element.find(attrs={attribute: True}):
                continue
            if not PLACEHOLDER_RE.sub("", self._text_with_placeholders(element)).strip():
                del element[attribute]

    def _build_entries(self, soup, file_id, hints, result) -> None:
        attribute = self.options.attribute_name
        self._drop_pure_containers(soup)
        for element in soup.find_all(attrs={attribute: True}):
            element_id = element[attribute]
            if element_id in result.entries:
                continue

            tag = element.name.lower()
            text = self._text_with_placeholders(element).strip()
            source_path, source_line = hints.get(element_id, (None, None))
            context = self._source_context(element)
            entry = ManifestEntry(
                id=element_id,
                tag=tag,
                text=text,
                source_path=source_path,
                source_line=source_line,
                child_ids=[c[attribute] for c in element.find_all(attrs={attribute: True})],
                parent_component_id=self._parent_component_id(element),
                color_classes=extract_color_classes(class_string(element)),
                attributes=self._editable_attributes(element),
                source_context=context,
                stable_id=generate_stable_id(tag, text, source_path, context),
                search_text=" ".join(element.get_text(" ").split()),
            )
            if any(d.name in INLINE_FORMAT_TAGS or d.has_attr(STYLED_ATTRIBUTE) for d in element.find_all(True)):
                entry.html = element.decode_contents().strip()
            if tag == "img":
                entry.image_metadata = ImageMetadata(
                    src=element.get("src", ""),
                    alt=element.get("alt", ""),
                    src_set=element.get("srcset"),
                    sizes=element.get("sizes"),
                )
            result.entries[element_id] = entry

    def _parent_component_id(self, element: Tag) -> Optional[str]:
        for parent in element.parents:
            if isinstance(parent, Tag) and parent.has_attr(COMPONENT_ID_ATTRIBUTE):
                return parent[COMPONENT_ID_ATTRIBUTE]
        return None

    def _editable_attributes(self, element: Tag) -> Optional[Dict[str, AttributeSource]]:
        names = EDITABLE_ATTRIBUTES.get(element.name.lower(), [])
        found = {n: AttributeSource(value=element[n]) for n in names if element.has_attr(n)}
        return found or None

    @staticmethod
    def _source_context(element: Tag) -> SourceContext:
        parent = element.parent
        if parent is None or isinstance(parent, BeautifulSoup):
            return SourceContext()
        siblings = [c for c in parent.children if isinstance(c, Tag)]
        index = next(i for i, c in enumerate(siblings) if c is element)
        return SourceContext(parent_tag=parent.name.lower(), sibling_index=index)
