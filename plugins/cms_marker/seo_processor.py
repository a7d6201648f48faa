"""
Describe a page's head metadata and where each value is authored.

The title, the description, keywords, robots, Open Graph and Twitter Card meta
tags, the canonical link and JSON-LD blocks are read from the rendered page.
Values are looked up in the source templates in index order: a literal
attribute first, then a declared variable rendered into that attribute, then
a literal component prop. A value found nowhere points at the rendered page.
"""

import asyncio
import json
import logging
import re
from dataclasses import fields
from typing import Dict, List, Optional, Pattern

from bs4 import BeautifulSoup, Tag

from plugins.cms_marker.cache import ParsedSourceFile
from plugins.cms_marker.context import BuildContext
from plugins.cms_marker.models import (
    KIND_RENDERED,
    KIND_STATIC,
    CanonicalUrl,
    JsonLdEntry,
    ManifestEntry,
    OpenGraphData,
    PageSeo,
    SeoMetaTag,
    SeoTitle,
    SourceLocation,
    TwitterCardData,
)
from plugins.cms_marker.snippets import (
    extract_complete_tag_snippet,
    extract_opening_tag,
    normalize_text,
)
from plugins.cms_marker.source_finder import SourceFinder, find_prop_location

log = logging.getLogger("mkdocs.plugins.cms_marker")

JSON_LD_TYPE = "application/ld+json"
OPEN_GRAPH_FIELDS = {"title", "description", "image", "url", "type", "site_name"}
TWITTER_FIELDS = {"card", "title", "description", "image", "site"}

# Lines above an attribute searched for the tag it belongs to
CONTEXT_LINES = 3
JSON_LD_SNIPPET_LINES = 30
RENDERED_NEEDLE_LENGTH = 50


def _has_values(value) -> bool:
    return any(getattr(value, f.name) is not None for f in fields(value))


def split_list(content: str, lower: bool = False) -> List[str]:
    items = [item.strip() for item in content.split(",")]
    return [item.lower() if lower else item for item in items if item]


def _in_tag_context(lines: List[str], i: int, tag_re: Pattern[str]) -> bool:
    if tag_re.search(lines[i]):
        return True
    return tag_re.search(" ".join(lines[max(0, i - CONTEXT_LINES) : i + 1])) is not None


def _tag_snippet(lines: List[str], i: int, tag: str) -> str:
    """The opening tag holding line `i`, from its `<tag` line on."""
    start = i
    for k in range(i, max(-1, i - CONTEXT_LINES - 1), -1):
        if f"<{tag}" in lines[k].lower():
            start = k
            break
    _, end = extract_opening_tag(lines, start)
    return "\n".join(line for line in lines[start : end + 1] if line)


def find_attribute_value_in_file(
    parsed: ParsedSourceFile, attr: str, value: str, tag: str, tag_re: Pattern[str]
) -> Optional[SourceLocation]:
    lines = parsed.lines
    static_re = re.compile(rf"\b{attr}\s*=\s*[\"']{re.escape(value)}[\"']", re.IGNORECASE)
    for i in range(parsed.template_start, len(lines)):
        if static_re.search(lines[i]) and _in_tag_context(lines, i, tag_re):
            return SourceLocation(
                file=parsed.rel_path, line=i + 1, kind=KIND_STATIC, snippet=_tag_snippet(lines, i, tag)
            )

    query = normalize_text(value)
    for definition in parsed.declarations:
        if definition.value != query:
            continue
        expression_re = re.compile(rf"\b{attr}\s*=\s*\{{\s*{re.escape(definition.name)}\s*\}}")
        for i in range(parsed.template_start, len(lines)):
            if expression_re.search(lines[i]) and _in_tag_context(lines, i, tag_re):
                return SourceLocation(
                    file=parsed.rel_path,
                    line=definition.line,
                    kind=definition.kind,
                    snippet=definition.source,
                    variable_name=definition.name,
                    definition_line=definition.line,
                )
    return None


def find_json_ld_in_file(parsed: ParsedSourceFile, json_ld_type: str) -> Optional[SourceLocation]:
    lines = parsed.lines
    for i in range(parsed.template_start, len(lines)):
        if JSON_LD_TYPE not in lines[i]:
            continue
        snippet = extract_complete_tag_snippet(lines, i, "script", JSON_LD_SNIPPET_LINES)
        if '"@type"' in snippet and json_ld_type in snippet:
            return SourceLocation(file=parsed.rel_path, line=i + 1, kind=KIND_STATIC, snippet=snippet)
    return None


def rendered_location(element: Tag, html: str, file_id: str) -> SourceLocation:
    """Fallback: the element's line in the rendered page."""
    snippet = str(element)
    needle = snippet.split("\n")[0][:RENDERED_NEEDLE_LENGTH].rstrip("/>")
    line = next((i + 1 for i, text in enumerate(html.split("\n")) if needle in text), 1)
    return SourceLocation(file=file_id, line=line, kind=KIND_RENDERED, snippet=snippet)


def categorize_meta_tags(tags: List[SeoMetaTag], seo: PageSeo) -> None:
    open_graph, twitter_card = OpenGraphData(), TwitterCardData()
    for tag in tags:
        name, prop = tag.name, tag.property_name
        if name == "description":
            seo.description = tag
        elif name == "keywords":
            tag.keywords = split_list(tag.content)
            seo.keywords = tag
        elif name == "robots":
            tag.directives = split_list(tag.content, lower=True)
            seo.robots = tag
        elif prop and prop.startswith("og:"):
            key = prop[len("og:") :]
            if key in OPEN_GRAPH_FIELDS:
                setattr(open_graph, key, tag)
        else:
            key = name or prop or ""
            if key.startswith("twitter:") and key[len("twitter:") :] in TWITTER_FIELDS:
                setattr(twitter_card, key[len("twitter:") :], tag)

    if _has_values(open_graph):
        seo.open_graph = open_graph
    if _has_values(twitter_card):
        seo.twitter_card = twitter_card


class SeoProcessor:
    def __init__(self, context: BuildContext, finder: SourceFinder):
        self.context = context
        self.options = context.options
        self.finder = finder

    async def find_attribute_source(
        self, attr: str, value: str, tag: str, tag_pattern: str
    ) -> Optional[SourceLocation]:
        tag_re = re.compile(tag_pattern, re.IGNORECASE)
        for parsed in await self.finder.parsed_sources():
            location = find_attribute_value_in_file(parsed, attr, value, tag, tag_re)
            if location is not None:
                return location
        return find_prop_location(normalize_text(value), await self.finder.prop_candidates())

    async def find_json_ld_source(self, json_ld_type: str) -> Optional[SourceLocation]:
        for parsed in await self.finder.parsed_sources():
            location = find_json_ld_in_file(parsed, json_ld_type)
            if location is not None:
                return location
        return None

    async def extract_title(
        self, soup: BeautifulSoup, html: str, file_id: str, entries: Dict[str, ManifestEntry]
    ) -> Optional[SeoTitle]:
        element = soup.find("title")
        if element is None:
            return None
        content = element.get_text().strip()
        if not content:
            return None

        title = SeoTitle(content=content)
        entry = entries.get(element.get(self.options.attribute_name))
        if entry is not None and entry.source_path:
            # Already resolved as a page entry
            title.cms_id = entry.id
            title.source_path = entry.source_path
            title.source_line = entry.source_line
            title.source_snippet = entry.source_snippet
            title.source_type = entry.source_type
            title.variable_name = entry.variable_name
            return title

        location = await self.finder.find_source_location(content, "title")
        title.apply_location(location or rendered_location(element, html, file_id))
        return title

    async def extract_meta_tags(self, head: Tag, html: str, file_id: str) -> List[SeoMetaTag]:
        found = []
        for meta in head.find_all("meta"):
            name, prop, content = meta.get("name"), meta.get("property"), meta.get("content")
            if not content or not (name or prop):
                continue
            found.append((meta, SeoMetaTag(content=content, name=name, property_name=prop)))

        async def locate(meta: Tag, tag: SeoMetaTag) -> None:
            identifier = re.escape(tag.name or tag.property_name)
            pattern = rf"<meta[^>]*(?:name|property)\s*=\s*[\"']{identifier}[\"']"
            location = await self.find_attribute_source("content", tag.content, "meta", pattern)
            tag.apply_location(location or rendered_location(meta, html, file_id))

        await asyncio.gather(*(locate(meta, tag) for meta, tag in found))
        return [tag for _, tag in found]

    async def extract_canonical(self, head: Tag, html: str, file_id: str) -> Optional[CanonicalUrl]:
        link = head.find("link", rel="canonical")
        if link is None or not link.get("href"):
            return None
        canonical = CanonicalUrl(href=link["href"])
        location = await self.find_attribute_source(
            "href", canonical.href, "link", r"<link[^>]*rel\s*=\s*[\"']canonical[\"']"
        )
        canonical.apply_location(location or rendered_location(link, html, file_id))
        return canonical

    async def extract_json_ld(self, soup: BeautifulSoup, html: str, file_id: str) -> List[JsonLdEntry]:
        blocks = []
        for script in soup.find_all("script", type=JSON_LD_TYPE):
            text = (script.string or "").strip()
            if not text:
                continue
            try:
                data = json.loads(text)
            except json.JSONDecodeError as e:
                log.debug(f"[cms_marker] {file_id}: skipping malformed JSON-LD: {e}")
                continue
            json_ld_type = data.get("@type") if isinstance(data, dict) else None
            entry = JsonLdEntry(type=json_ld_type if isinstance(json_ld_type, str) else "Unknown", data=data)
            location = await self.find_json_ld_source(entry.type)
            entry.apply_location(location or rendered_location(script, html, file_id))
            blocks.append(entry)
        return blocks

    async def process(
        self, soup: BeautifulSoup, html: str, file_id: str, entries: Dict[str, ManifestEntry]
    ) -> Optional[PageSeo]:
        """Head metadata of one page, or None when it has none."""
        seo = PageSeo(title=await self.extract_title(soup, html, file_id, entries))
        head = soup.find("head")
        if head is not None:
            categorize_meta_tags(await self.extract_meta_tags(head, html, file_id), seo)
            seo.canonical = await self.extract_canonical(head, html, file_id)
        if self.options.parse_json_ld:
            seo.json_ld = await self.extract_json_ld(soup, html, file_id) or None
        return seo if _has_values(seo) else None
