from bs4 import BeautifulSoup

from plugins.cms_marker.config import CmsMarkerOptions
from plugins.cms_marker.context import IdCounter
from plugins.cms_marker.html_processor import (
    COMPONENT_ID_ATTRIBUTE,
    IMAGE_ATTRIBUTE,
    MARKDOWN_ATTRIBUTE,
    STYLED_ATTRIBUTE,
    CollectionMarkup,
    HtmlProcessor,
    has_only_text_style_classes,
    is_text_style_class,
)

PAGE = (
    "<html><head><title>T</title></head><body>"
    "<h1>Services</h1>"
    "<p>Hello <strong>world</strong></p>"
    "<div><p>Only child</p></div>"
    '<a href="/contact" class="text-blue-500 underline">Contact</a>'
    '<img src="/a.png" alt="A">'
    "</body></html>"
)


def process(html, collection=None, **options):
    processor = HtmlProcessor(CmsMarkerOptions(**options), IdCounter().next_id)
    return processor.process(html, "index.html", collection)


def by_tag(result, tag):
    return [e for e in result.entries.values() if e.tag == tag]


class TestMarking:
    """Which elements get an id and what their entries hold."""

    def test_marks_text_elements(self):
        result = process(PAGE)
        assert sorted(e.tag for e in result.entries.values()) == ["a", "h1", "img", "p", "p", "strong", "title"]
        soup = BeautifulSoup(result.html, "html.parser")
        assert not soup.body.has_attr("data-cms-id")
        assert not soup.find("html").has_attr("data-cms-id")

    def test_pure_container_is_unmarked(self):
        result = process(PAGE)
        soup = BeautifulSoup(result.html, "html.parser")
        assert not soup.find("div").has_attr("data-cms-id")
        assert soup.find("div").p.has_attr("data-cms-id")

    def test_child_placeholders_and_html(self):
        result = process(PAGE)
        strong = by_tag(result, "strong")[0]
        paragraph = next(e for e in by_tag(result, "p") if e.child_ids)

        assert paragraph.text == f"Hello {{{{cms:{strong.id}}}}}"
        assert paragraph.child_ids == [strong.id]
        assert paragraph.search_text == "Hello world"
        assert "<strong" in paragraph.html
        assert strong.text == "world"

    def test_attributes_and_color_classes(self):
        link = by_tag(process(PAGE), "a")[0]
        assert link.attributes["href"].value == "/contact"
        assert link.color_classes.text == "text-blue-500"
        assert link.color_classes.all_color_classes == ["text-blue-500"]

    def test_image_entry(self):
        result = process(PAGE)
        image = by_tag(result, "img")[0]
        assert image.image_metadata.src == "/a.png"
        assert image.image_metadata.alt == "A"
        assert image.attributes["alt"].value == "A"
        soup = BeautifulSoup(result.html, "html.parser")
        assert soup.find("img")[IMAGE_ATTRIBUTE] == "true"

    def test_source_context_and_stable_id(self):
        h1 = by_tag(process(PAGE), "h1")[0]
        assert h1.source_context.parent_tag == "body"
        assert h1.source_context.sibling_index == 0
        assert h1.stable_id == by_tag(process(PAGE), "h1")[0].stable_id

    def test_include_tags(self):
        result = process(PAGE, include_tags=["h1"])
        assert [e.tag for e in result.entries.values()] == ["h1"]

    def test_no_entries_without_manifest(self):
        result = process(PAGE, generate_manifest=False)
        assert result.entries == {}
        assert 'data-cms-id="' in result.html


class TestStyledSpans:
    def test_text_style_classes(self):
        assert is_text_style_class("font-bold")
        assert is_text_style_class("text-red-500")
        assert not is_text_style_class("text-center")
        assert not is_text_style_class("flex")
        assert has_only_text_style_classes("font-bold italic")
        assert not has_only_text_style_classes("font-bold flex")
        assert not has_only_text_style_classes("")

    def test_marks_styled_spans(self):
        html = '<body><p>Hi <span class="font-bold text-red-500">there</span> <span class="flex">x</span></p></body>'
        soup = BeautifulSoup(process(html).html, "html.parser")
        styled, layout = soup.find_all("span")
        assert styled[STYLED_ATTRIBUTE] == "true"
        assert not layout.has_attr(STYLED_ATTRIBUTE)


class TestSourceHints:
    """Renderer-provided source attributes."""

    HTML = (
        "<html><body>"
        '<div data-astro-source-file="src/components/Card.astro" data-astro-source-line="3:1">'
        '<h2 data-astro-source-file="src/components/Card.astro" data-astro-source-line="4:2">Title</h2>'
        "</div>"
        '<main data-astro-source-file="src/pages/index.astro" data-astro-source-line="1:0"><p>x</p></main>'
        "</body></html>"
    )

    def test_component_roots(self):
        result = process(self.HTML)
        [component] = result.components.values()
        assert component.component_name == "Card"
        assert component.source_path == "src/components/Card.astro"
        assert component.source_line == 3

        soup = BeautifulSoup(result.html, "html.parser")
        assert soup.find("div")[COMPONENT_ID_ATTRIBUTE] == component.id
        assert not soup.find("main").has_attr(COMPONENT_ID_ATTRIBUTE)

    def test_hinted_entries(self):
        result = process(self.HTML)
        [component] = result.components.values()
        h2 = by_tag(result, "h2")[0]
        assert h2.source_path == "src/components/Card.astro"
        assert h2.source_line == 4
        assert h2.parent_component_id == component.id
        assert by_tag(result, "p")[0].source_path is None

    def test_hint_attributes_are_removed(self):
        assert "data-astro-source" not in process(self.HTML).html


class TestCollectionWrapper:
    """The element wrapping rendered markdown is one editable unit."""

    HTML = (
        "<html><body><h1>3D Printing</h1>"
        '<article class="prose"><h1>Intro</h1><p>Body text here.</p></article>'
        "</body></html>"
    )
    MARKUP = CollectionMarkup(
        name="services",
        slug="3d-printing",
        content_path="src/content/services/3d-printing.md",
        body_first_line="# Intro",
    )

    def test_wrapper_entry(self):
        result = process(self.HTML, self.MARKUP)
        wrapper = result.entries[result.collection_wrapper_id]
        assert wrapper.tag == "article"
        assert wrapper.collection_name == "services"
        assert wrapper.collection_slug == "3d-printing"
        assert wrapper.content_path == "src/content/services/3d-printing.md"

    def test_wrapper_contents_are_not_marked(self):
        result = process(self.HTML, self.MARKUP)
        soup = BeautifulSoup(result.html, "html.parser")
        article = soup.find("article")
        assert article[MARKDOWN_ATTRIBUTE] == "true"
        assert article["data-cms-id"] == result.collection_wrapper_id
        assert not any(el.has_attr("data-cms-id") for el in article.find_all(True))
        assert soup.find("h1")["data-cms-id"] != result.collection_wrapper_id

    def test_no_wrapper_when_body_not_rendered(self):
        markup = CollectionMarkup("services", "3d-printing", "x.md", body_first_line="Something else")
        result = process(self.HTML, markup)
        assert result.collection_wrapper_id is None
